# crud/action_log.py
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from peer_ranking.core.ids import generate_id
from peer_ranking.models import ActionLog


def insert_action_log(
    db: Session,
    dedup_key: str,
    time_bucket: int,
    action: str,
    actor_email: str,
    created_at: int,
    project_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    message: str = "",
    context: Optional[dict] = None,
    related_entities: Optional[dict] = None,
    level: str = "info",
) -> ActionLog:
    """
    Flush a ledger row without committing. A second row with the same
    (dedup_key, time_bucket) raises IntegrityError at flush time.
    """
    row = ActionLog(
        log_id=generate_id("log"),
        dedup_key=dedup_key,
        time_bucket=time_bucket,
        action=action,
        actor_email=actor_email,
        level=level,
        project_id=project_id,
        entity_type=entity_type,
        entity_id=entity_id,
        message=message,
        context=context,
        related_entities=related_entities,
        created_at=created_at,
    )
    db.add(row)
    db.flush()
    return row


def count_action_logs(db: Session, dedup_key: str, time_bucket: Optional[int] = None) -> int:
    stmt = select(func.count(ActionLog.log_id)).where(ActionLog.dedup_key == dedup_key)
    if time_bucket is not None:
        stmt = stmt.where(ActionLog.time_bucket == time_bucket)
    return db.scalar(stmt) or 0
