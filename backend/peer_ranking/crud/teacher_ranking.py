# crud/teacher_ranking.py
"""
Queries over the append-only teacher ranking tables. A "version" is the set of
rows one teacher wrote in one submission event, identified by created_at.
"""
from collections import OrderedDict
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from peer_ranking.models import TeacherCommentRanking, TeacherSubmissionRanking

_TARGET_COLUMN = {
    TeacherSubmissionRanking: "submission_id",
    TeacherCommentRanking: "comment_id",
}


def model_for(ranking_type: str):
    if ranking_type == "submission":
        return TeacherSubmissionRanking
    if ranking_type == "comment":
        return TeacherCommentRanking
    raise ValueError(f"Unknown ranking type '{ranking_type}'")


def count_teacher_rows(db: Session, model, project_id: str, stage_id: str, teacher_email: str) -> int:
    return db.scalar(
        select(func.count(model.ranking_id)).where(
            model.project_id == project_id,
            model.stage_id == stage_id,
            model.teacher_email == teacher_email,
        )
    ) or 0


def list_teacher_versions(db: Session, model, project_id: str, stage_id: str, teacher_email: str) -> list[tuple[int, list]]:
    """[(created_at, rows), ...] newest first; rows within a version ordered by rank."""
    rows = db.scalars(
        select(model)
        .where(
            model.project_id == project_id,
            model.stage_id == stage_id,
            model.teacher_email == teacher_email,
        )
        .order_by(model.created_at.desc(), model.rank)
    ).all()

    versions: "OrderedDict[int, list]" = OrderedDict()
    for row in rows:
        versions.setdefault(row.created_at, []).append(row)
    return list(versions.items())


def latest_rankings(db: Session, model, project_id: str, stage_id: str, teacher_email: Optional[str] = None) -> list:
    """Most recent row per teacher per target."""
    target = getattr(model, _TARGET_COLUMN[model])
    ranked = (
        select(
            model.ranking_id.label("ranking_id"),
            func.row_number().over(
                partition_by=(model.teacher_email, target),
                order_by=(model.created_at.desc(), model.ranking_id.desc()),
            ).label("rn"),
        )
        .where(model.project_id == project_id, model.stage_id == stage_id)
    )
    if teacher_email is not None:
        ranked = ranked.where(model.teacher_email == teacher_email)
    ranked = ranked.subquery()

    return list(db.scalars(
        select(model)
        .join(ranked, ranked.c.ranking_id == model.ranking_id)
        .where(ranked.c.rn == 1)
        .order_by(model.teacher_email, model.rank)
    ).all())


def summarize_versions(db: Session, model, project_id: str, stage_id: str, teacher_email: str) -> Optional[dict]:
    """Version count plus size and time of the newest version; None when the teacher never ranked."""
    scope = (
        model.project_id == project_id,
        model.stage_id == stage_id,
        model.teacher_email == teacher_email,
    )
    total_versions, latest = db.execute(
        select(func.count(model.created_at.distinct()), func.max(model.created_at)).where(*scope)
    ).one()
    if not total_versions:
        return None
    latest_count = db.scalar(select(func.count(model.ranking_id)).where(*scope, model.created_at == latest)) or 0
    return {
        "total_versions": int(total_versions),
        "latest_ranking_count": int(latest_count),
        "created_at": latest,
    }
