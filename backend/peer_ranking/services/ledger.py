# services/ledger.py
"""
Idempotent action ledger.

Every mutating ranking action first records a row keyed on
``(dedup_key, time_bucket)``. The unique constraint on that pair is the only
thing standing between concurrent retries of the same action: the first insert
wins, the rest see ``IntegrityError`` and are reported as duplicates.

The row is flushed, not committed. It becomes durable together with the
business write when the caller commits, and disappears with it on rollback.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peer_ranking.core.clock import Clock, system_clock, time_bucket
from peer_ranking.core.config import Settings, settings as default_settings
from peer_ranking.core.errors import is_read_only_error
from peer_ranking.crud.action_log import insert_action_log

logger = logging.getLogger("uvicorn")


@dataclass(frozen=True)
class LedgerResult:
    is_new: bool
    skipped_logging: bool = False


# ---------- Dedup key builders ----------

def ranking_submit_key(project_id: str, stage_id: str, group_id: str, actor_email: str, bucket: int) -> str:
    return f"ranking_submit:{project_id}:{stage_id}:{group_id}:{actor_email}:{bucket}"


def ranking_vote_key(proposal_id: str, actor_email: str, bucket: int) -> str:
    return f"ranking_vote:{proposal_id}:{actor_email}:{bucket}"


def ranking_withdraw_key(proposal_id: str, actor_email: str, bucket: int) -> str:
    return f"ranking_withdraw:{proposal_id}:{actor_email}:{bucket}"


def ranking_reset_key(proposal_id: str, actor_email: str, bucket: int) -> str:
    return f"ranking_reset:{proposal_id}:{actor_email}:{bucket}"


def comment_ranking_key(project_id: str, stage_id: str, actor_email: str, bucket: int) -> str:
    return f"comment_ranking:{project_id}:{stage_id}:{actor_email}:{bucket}"


def teacher_ranking_key(project_id: str, stage_id: str, actor_email: str, bucket: int) -> str:
    return f"teacher_ranking:{project_id}:{stage_id}:{actor_email}:{bucket}"


class ActionLedger:
    def __init__(self, db: Session, clock: Clock = system_clock, settings: Settings = default_settings):
        self.db = db
        self.clock = clock
        self.settings = settings

    def current_bucket(self, now_ms: Optional[int] = None) -> int:
        if now_ms is None:
            now_ms = self.clock.now_ms()
        return time_bucket(now_ms, self.settings.DEDUP_WINDOW_SECONDS)

    def record_action(
        self,
        dedup_key: str,
        actor_email: str,
        action_type: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        bucket: Optional[int] = None,
        project_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        message: str = "",
        related_entities: Optional[dict] = None,
    ) -> LedgerResult:
        """
        Returns ``is_new=False`` when an identical action already landed in the
        same bucket. In that case the session has been rolled back.
        """
        now_ms = self.clock.now_ms()
        if bucket is None:
            bucket = self.current_bucket(now_ms)

        context = dict(payload or {})
        context["dedup_key"] = dedup_key

        try:
            insert_action_log(
                self.db,
                dedup_key=dedup_key,
                time_bucket=bucket,
                action=action_type,
                actor_email=actor_email,
                created_at=now_ms,
                project_id=project_id,
                entity_type=entity_type,
                entity_id=entity_id,
                message=message or action_type,
                context=context,
                related_entities=related_entities,
            )
        except IntegrityError:
            self.db.rollback()
            logger.info(f"🔁 Duplicate {action_type} suppressed for {actor_email} ({dedup_key})")
            return LedgerResult(is_new=False)
        except Exception as e:
            if not is_read_only_error(e):
                raise
            self.db.rollback()
            if not self.settings.LEDGER_FAIL_OPEN_IN_READ_ONLY:
                raise
            logger.warning(f"⚠️ Read-only mode: {action_type} for {actor_email} not logged ({dedup_key})")
            return LedgerResult(is_new=True, skipped_logging=True)

        return LedgerResult(is_new=True)


def log_project_operation(actor_email: str, project_id: str, operation: str, entity_type: str, entity_id: str, details: Optional[dict] = None) -> None:
    """Audit line for a completed project operation; never raises."""
    try:
        extras = " ".join(f"{k}={v}" for k, v in sorted((details or {}).items()))
        logger.info(f"📝 {operation} by {actor_email} on {entity_type}:{entity_id} (project={project_id}) {extras}".rstrip())
    except Exception as e:
        logger.warning(f"⚠️ Could not log {operation}: {e}")
