# File: peer_ranking/models/comment_ranking.py
from sqlalchemy import JSON, BigInteger, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from peer_ranking.models.base import Base


class CommentRankingProposal(Base):
    """One row per student submission event; history is never overwritten."""

    __tablename__ = "comment_ranking_proposals"
    __table_args__ = (
        Index("idx_comment_rankings_author", "project_id", "stage_id", "author_email", "created_at"),
        UniqueConstraint("project_id", "stage_id", "author_email", "version", name="uq_comment_rankings_author_version"),
    )

    proposal_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    stage_id: Mapped[str] = mapped_column(ForeignKey("stages.stage_id", ondelete="CASCADE"), nullable=False)
    author_email: Mapped[str] = mapped_column(String(255), nullable=False)
    ranking_data: Mapped[list] = mapped_column(JSON, nullable=False)  # [{"comment_id": ..., "rank": ...}, ...]
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
