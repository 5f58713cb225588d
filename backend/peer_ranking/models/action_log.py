# File: peer_ranking/models/action_log.py
from sqlalchemy import JSON, BigInteger, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from peer_ranking.models.base import Base


class ActionLog(Base):
    """
    Dedup ledger row. The unique constraint on (dedup_key, time_bucket) is the
    only concurrency control for retried actions; rows are insert-only.
    """

    __tablename__ = "action_logs"
    __table_args__ = (UniqueConstraint("dedup_key", "time_bucket", name="uq_action_logs_dedup_bucket"),)

    log_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    dedup_key: Mapped[str] = mapped_column(String(512), nullable=False)
    time_bucket: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[str] = mapped_column(String(16), nullable=False, default="info")
    project_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    related_entities: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
