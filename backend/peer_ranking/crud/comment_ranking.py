# crud/comment_ranking.py
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from peer_ranking.models import CommentRankingProposal


def get_latest_comment_ranking(db: Session, project_id: str, stage_id: str, author_email: str) -> CommentRankingProposal | None:
    return db.scalar(
        select(CommentRankingProposal)
        .where(
            CommentRankingProposal.project_id == project_id,
            CommentRankingProposal.stage_id == stage_id,
            CommentRankingProposal.author_email == author_email,
        )
        .order_by(CommentRankingProposal.version.desc())
        .limit(1)
    )


def list_comment_ranking_history(db: Session, project_id: str, stage_id: str, author_email: str) -> list[CommentRankingProposal]:
    """Oldest first."""
    return list(db.scalars(
        select(CommentRankingProposal)
        .where(
            CommentRankingProposal.project_id == project_id,
            CommentRankingProposal.stage_id == stage_id,
            CommentRankingProposal.author_email == author_email,
        )
        .order_by(CommentRankingProposal.version, CommentRankingProposal.created_at)
    ).all())


def next_version(db: Session, project_id: str, stage_id: str, author_email: str) -> int:
    current = db.scalar(
        select(func.max(CommentRankingProposal.version)).where(
            CommentRankingProposal.project_id == project_id,
            CommentRankingProposal.stage_id == stage_id,
            CommentRankingProposal.author_email == author_email,
        )
    )
    return (current or 0) + 1
