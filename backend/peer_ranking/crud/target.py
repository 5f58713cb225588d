# crud/target.py
"""Lookups for the artifacts that can be ranked: submissions and comments."""
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from peer_ranking.models import Comment, Reaction, Submission


def get_submission(db: Session, project_id: str, submission_id: str, stage_id: Optional[str] = None) -> Submission | None:
    stmt = select(Submission).where(Submission.submission_id == submission_id, Submission.project_id == project_id)
    if stage_id is not None:
        stmt = stmt.where(Submission.stage_id == stage_id)
    return db.scalar(stmt)


def get_comment(db: Session, project_id: str, comment_id: str, stage_id: Optional[str] = None) -> Comment | None:
    stmt = select(Comment).where(Comment.comment_id == comment_id, Comment.project_id == project_id)
    if stage_id is not None:
        stmt = stmt.where(Comment.stage_id == stage_id)
    return db.scalar(stmt)


def list_top_level_comments(
    db: Session,
    project_id: str,
    stage_id: str,
    author_email: Optional[str] = None,
) -> list[Comment]:
    stmt = (
        select(Comment)
        .where(
            Comment.project_id == project_id,
            Comment.stage_id == stage_id,
            Comment.is_reply.is_(False),
            Comment.reply_level == 0,
        )
        .order_by(Comment.created_at)
    )
    if author_email is not None:
        stmt = stmt.where(Comment.author_email == author_email)
    return list(db.scalars(stmt).all())


def count_helpful_reactions(db: Session, comment_id: str, exclude_user_email: Optional[str] = None) -> int:
    """
    Number of users whose *latest* reaction to the comment is "helpful".
    Reactions are append-only, so earlier rows from the same user are ignored.
    """
    latest = (
        select(
            Reaction.user_email.label("user_email"),
            Reaction.reaction_type.label("reaction_type"),
            func.row_number().over(
                partition_by=Reaction.user_email,
                order_by=(Reaction.created_at.desc(), Reaction.reaction_id.desc()),
            ).label("rn"),
        )
        .where(Reaction.target_type == "comment", Reaction.target_id == comment_id)
        .subquery()
    )
    stmt = select(func.count()).select_from(latest).where(latest.c.rn == 1, latest.c.reaction_type == "helpful")
    if exclude_user_email is not None:
        stmt = stmt.where(latest.c.user_email != exclude_user_email)
    return db.scalar(stmt) or 0
