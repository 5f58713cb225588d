# services/vote_recorder.py
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.orm import Session

from peer_ranking.core.ids import generate_id
from peer_ranking.crud import vote as vote_crud
from peer_ranking.models import RankingProposal


def encode_agreement(agree: bool) -> int:
    """+1 / -1 so that SUM(agree) is the net score."""
    return 1 if agree else -1


def voting_result(net_score: int, total: int) -> str:
    if total == 0:
        return "no_votes"
    if net_score > 0:
        return "agree"
    if net_score < 0:
        return "disagree"
    return "tie"


@dataclass(frozen=True)
class VoteWrite:
    vote_id: str
    is_update: bool


@dataclass(frozen=True)
class VoteSummary:
    agree: int
    disagree: int
    total: int
    total_members: int
    net_score: int

    @property
    def voting_result(self) -> str:
        return voting_result(self.net_score, self.total)

    @property
    def all_voted(self) -> bool:
        return self.total_members > 0 and self.total >= self.total_members

    def to_dict(self) -> dict:
        data = asdict(self)
        data["voting_result"] = self.voting_result
        return data


class VoteRecorder:
    def record(
        self,
        db: Session,
        proposal: RankingProposal,
        voter_email: str,
        agree: bool,
        comment: Optional[str],
        now_ms: int,
    ) -> VoteWrite:
        # One INSERT ... ON CONFLICT statement; a stored id other than the
        # candidate means an earlier vote was overwritten.
        candidate = generate_id("rpv")
        stored = vote_crud.upsert_proposal_vote(
            db,
            project_id=proposal.project_id,
            proposal_id=proposal.proposal_id,
            voter_email=voter_email,
            group_id=proposal.group_id,
            agree=encode_agreement(agree),
            comment=comment,
            voted_at=now_ms,
            vote_id=candidate,
        )
        return VoteWrite(vote_id=stored, is_update=stored != candidate)

    def tally(self, db: Session, proposal_id: str, total_members: int) -> VoteSummary:
        counts = vote_crud.get_vote_counts(db, proposal_id)
        return VoteSummary(total_members=total_members, **counts)


vote_recorder = VoteRecorder()
