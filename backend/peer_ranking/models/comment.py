# File: peer_ranking/models/comment.py
from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from peer_ranking.models.base import Base


class Comment(Base):
    __tablename__ = "comments"

    comment_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False, index=True)
    stage_id: Mapped[str] = mapped_column(ForeignKey("stages.stage_id", ondelete="CASCADE"), nullable=False, index=True)
    author_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_reply: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reply_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parent_comment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    mentioned_groups: Mapped[list | None] = mapped_column(JSON, nullable=True)  # [group_id, ...]
    mentioned_users: Mapped[list | None] = mapped_column(JSON, nullable=True)   # [user_email, ...]
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Reaction(Base):
    """Append-only: a user's latest row per target is their current reaction."""

    __tablename__ = "reactions"
    __table_args__ = (
        Index("idx_reactions_target_user", "target_type", "target_id", "user_email"),
    )

    reaction_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    target_type: Mapped[str] = mapped_column(String(16), nullable=False, default="comment")
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    reaction_type: Mapped[str] = mapped_column(String(32), nullable=False)  # helpful | disagreed | ...
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
