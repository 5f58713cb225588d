# crud/vote.py
from sqlalchemy.orm import Session
from sqlalchemy import case, func, select
from peer_ranking.core.ids import generate_id
from peer_ranking.crud.recorders import proposal_vote_recorder
from peer_ranking.models import ProposalVote

# --- Proposal Vote CRUD ---

def get_vote_for_voter(db: Session, proposal_id: str, voter_email: str) -> ProposalVote | None:
    return db.scalar(
        select(ProposalVote).where(ProposalVote.proposal_id == proposal_id, ProposalVote.voter_email == voter_email)
    )


def upsert_proposal_vote(
    db: Session,
    project_id: str,
    proposal_id: str,
    voter_email: str,
    group_id: str,
    agree: int,
    comment: str | None,
    voted_at: int,
    vote_id: str | None = None,
) -> str:
    """
    Insert the vote, or overwrite agree/comment/voted_at of the voter's existing row.
    Returns the stored vote_id: an overwritten row keeps the id it was created with.
    """
    return proposal_vote_recorder.record_one(
        db,
        {
            "vote_id": vote_id or generate_id("rpv"),
            "project_id": project_id,
            "proposal_id": proposal_id,
            "voter_email": voter_email,
            "group_id": group_id,
            "agree": agree,
            "comment": comment,
            "voted_at": voted_at,
        },
        returning=ProposalVote.vote_id,
    )


def get_vote_counts(db: Session, proposal_id: str) -> dict:
    """Aggregate straight from the vote rows; there is no cached counter."""
    row = db.execute(
        select(
            func.coalesce(func.sum(case((ProposalVote.agree == 1, 1), else_=0)), 0).label("agree"),
            func.coalesce(func.sum(case((ProposalVote.agree == -1, 1), else_=0)), 0).label("disagree"),
            func.count(ProposalVote.vote_id).label("total"),
            func.coalesce(func.sum(ProposalVote.agree), 0).label("net_score"),
        ).where(ProposalVote.proposal_id == proposal_id)
    ).one()
    return {
        "agree": int(row.agree),
        "disagree": int(row.disagree),
        "total": int(row.total),
        "net_score": int(row.net_score),
    }
