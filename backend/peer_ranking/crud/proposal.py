# crud/proposal.py
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from peer_ranking.core.ids import generate_id
from peer_ranking.models import RankingProposal

# A reset copy can share created_at with the proposal it replaces; it sorts after it.
_superseded_last = RankingProposal.reset_at.is_(None)


def get_proposal(db: Session, proposal_id: str, project_id: Optional[str] = None) -> RankingProposal | None:
    stmt = select(RankingProposal).where(RankingProposal.proposal_id == proposal_id)
    if project_id is not None:
        stmt = stmt.where(RankingProposal.project_id == project_id)
    return db.scalar(stmt)


def get_latest_proposal(db: Session, project_id: str, stage_id: str, group_id: str) -> RankingProposal | None:
    return db.scalar(
        select(RankingProposal)
        .where(
            RankingProposal.project_id == project_id,
            RankingProposal.stage_id == stage_id,
            RankingProposal.group_id == group_id,
        )
        .order_by(RankingProposal.created_at.desc(), _superseded_last.desc())
        .limit(1)
    )


def has_settled_proposal(db: Session, project_id: str, stage_id: str, group_id: str) -> bool:
    count = db.scalar(
        select(func.count(RankingProposal.proposal_id)).where(
            RankingProposal.project_id == project_id,
            RankingProposal.stage_id == stage_id,
            RankingProposal.group_id == group_id,
            RankingProposal.settled_at.is_not(None),
        )
    )
    return (count or 0) > 0


def get_pending_proposal(db: Session, project_id: str, stage_id: str, group_id: str) -> RankingProposal | None:
    """Pending means no lifecycle timestamp is set yet."""
    return db.scalar(
        select(RankingProposal)
        .where(
            RankingProposal.project_id == project_id,
            RankingProposal.stage_id == stage_id,
            RankingProposal.group_id == group_id,
            RankingProposal.settled_at.is_(None),
            RankingProposal.withdrawn_at.is_(None),
            RankingProposal.reset_at.is_(None),
        )
        .order_by(RankingProposal.created_at.desc())
        .limit(1)
    )


def count_resets(db: Session, project_id: str, stage_id: str, group_id: str) -> int:
    return db.scalar(
        select(func.count(RankingProposal.proposal_id)).where(
            RankingProposal.project_id == project_id,
            RankingProposal.stage_id == stage_id,
            RankingProposal.group_id == group_id,
            RankingProposal.reset_at.is_not(None),
        )
    ) or 0


def insert_proposal(
    db: Session,
    project_id: str,
    stage_id: str,
    group_id: str,
    proposer_email: str,
    ranking_data: list,
    created_at: int,
) -> RankingProposal:
    proposal = RankingProposal(
        proposal_id=generate_id("rkp"),
        project_id=project_id,
        stage_id=stage_id,
        group_id=group_id,
        proposer_email=proposer_email,
        ranking_data=ranking_data,
        created_at=created_at,
    )
    db.add(proposal)
    db.flush()
    return proposal


def mark_withdrawn(db: Session, proposal_id: str, withdrawn_by: str, withdrawn_at: int) -> int:
    """Compare-and-set; returns the number of rows changed (0 when another request won)."""
    result = db.execute(
        update(RankingProposal)
        .where(
            RankingProposal.proposal_id == proposal_id,
            RankingProposal.withdrawn_at.is_(None),
            RankingProposal.settled_at.is_(None),
        )
        .values(withdrawn_at=withdrawn_at, withdrawn_by=withdrawn_by)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def mark_reset(db: Session, proposal_id: str, reset_at: int) -> int:
    result = db.execute(
        update(RankingProposal)
        .where(
            RankingProposal.proposal_id == proposal_id,
            RankingProposal.reset_at.is_(None),
            RankingProposal.withdrawn_at.is_(None),
            RankingProposal.settled_at.is_(None),
        )
        .values(reset_at=reset_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def list_stage_proposals(db: Session, project_id: str, stage_id: str, group_id: Optional[str] = None) -> list[RankingProposal]:
    stmt = (
        select(RankingProposal)
        .where(RankingProposal.project_id == project_id, RankingProposal.stage_id == stage_id)
        .order_by(RankingProposal.group_id, RankingProposal.created_at, _superseded_last)
    )
    if group_id is not None:
        stmt = stmt.where(RankingProposal.group_id == group_id)
    return list(db.scalars(stmt).all())


def count_stage_proposals(db: Session, project_id: str, stage_id: str) -> int:
    """Every proposal of the stage except withdrawn ones."""
    return db.scalar(
        select(func.count(RankingProposal.proposal_id)).where(
            RankingProposal.project_id == project_id,
            RankingProposal.stage_id == stage_id,
            RankingProposal.withdrawn_at.is_(None),
        )
    ) or 0
