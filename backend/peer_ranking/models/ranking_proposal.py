# File: peer_ranking/models/ranking_proposal.py
from sqlalchemy import JSON, BigInteger, ForeignKey, Index, SmallInteger, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column
from peer_ranking.models.base import Base

VOTABLE_STATUSES = ("pending", "reset")

_PENDING = text("settled_at IS NULL AND withdrawn_at IS NULL AND reset_at IS NULL")


class RankingProposal(Base):
    __tablename__ = "ranking_proposals"
    __table_args__ = (
        Index("idx_ranking_proposals_scope", "project_id", "stage_id", "group_id"),
        # At most one pending proposal per group and stage
        Index(
            "uq_ranking_proposals_one_pending",
            "project_id", "stage_id", "group_id",
            unique=True,
            postgresql_where=_PENDING,
            sqlite_where=_PENDING,
        ),
    )

    proposal_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    stage_id: Mapped[str] = mapped_column(ForeignKey("stages.stage_id", ondelete="CASCADE"), nullable=False)
    group_id: Mapped[str] = mapped_column(ForeignKey("groups.group_id", ondelete="CASCADE"), nullable=False)
    proposer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    ranking_data: Mapped[list] = mapped_column(JSON, nullable=False)  # [{"target_id": ..., "rank": ...}, ...]
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Lifecycle timestamps are the source of truth; status is derived from them
    settled_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    withdrawn_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    withdrawn_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reset_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    @property
    def status(self) -> str:
        if self.settled_at is not None:
            return "settled"
        if self.withdrawn_at is not None:
            return "withdrawn"
        if self.reset_at is not None:
            return "reset"
        return "pending"


class ProposalVote(Base):
    __tablename__ = "proposal_votes"
    __table_args__ = (UniqueConstraint("proposal_id", "voter_email", name="uq_proposal_votes_proposal_voter"),)

    vote_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    proposal_id: Mapped[str] = mapped_column(ForeignKey("ranking_proposals.proposal_id", ondelete="CASCADE"), nullable=False, index=True)
    voter_email: Mapped[str] = mapped_column(String(255), nullable=False)
    group_id: Mapped[str] = mapped_column(String(64), nullable=False)
    agree: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # +1 agree, -1 disagree
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    voted_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
