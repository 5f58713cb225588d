from fastapi import APIRouter

from peer_ranking.api.api_v1.deps import ActorEmail, ClockDep, DbSession, NotifierDep
from peer_ranking.schemas.ranking import (
    ProposalListResponse,
    ProposalResponse,
    ResetVotesRequest,
    ResetVotesResponse,
    StageVotingStatusResponse,
    SubmitProposalRequest,
    TallyResponse,
    VoteRequest,
    VoteResponse,
)
from peer_ranking.services.proposals import ProposalService

router = APIRouter()


@router.post("/projects/{project_id}/stages/{stage_id}/proposals", response_model=ProposalResponse)
def submit_proposal(project_id: str, stage_id: str, payload: SubmitProposalRequest, db: DbSession, actor: ActorEmail, clock: ClockDep, notifier: NotifierDep):
    service = ProposalService(db, clock=clock, notifier=notifier)
    return service.submit_proposal(actor, project_id, stage_id, payload.ranking)


@router.get("/projects/{project_id}/stages/{stage_id}/proposals", response_model=ProposalListResponse)
def list_stage_proposals(project_id: str, stage_id: str, db: DbSession, actor: ActorEmail):
    proposals = ProposalService(db).list_stage_proposals(actor, project_id, stage_id)
    return {"proposals": proposals}


@router.post("/projects/{project_id}/proposals/{proposal_id}/votes", response_model=VoteResponse)
def vote_on_proposal(project_id: str, proposal_id: str, payload: VoteRequest, db: DbSession, actor: ActorEmail, clock: ClockDep, notifier: NotifierDep):
    service = ProposalService(db, clock=clock, notifier=notifier)
    return service.vote_on_proposal(actor, project_id, proposal_id, payload.agree, payload.comment)


@router.get("/projects/{project_id}/proposals/{proposal_id}/tally", response_model=TallyResponse)
def get_proposal_tally(project_id: str, proposal_id: str, db: DbSession, actor: ActorEmail):
    return ProposalService(db).get_proposal_tally(project_id, proposal_id)


@router.post("/projects/{project_id}/proposals/{proposal_id}/withdraw", response_model=ProposalResponse)
def withdraw_proposal(project_id: str, proposal_id: str, db: DbSession, actor: ActorEmail, clock: ClockDep):
    return ProposalService(db, clock=clock).withdraw_proposal(actor, project_id, proposal_id)


@router.post("/projects/{project_id}/proposals/{proposal_id}/reset", response_model=ResetVotesResponse)
def reset_votes(project_id: str, proposal_id: str, db: DbSession, actor: ActorEmail, clock: ClockDep, notifier: NotifierDep, payload: ResetVotesRequest | None = None):
    service = ProposalService(db, clock=clock, notifier=notifier)
    return service.reset_votes(actor, project_id, proposal_id, payload.reason if payload else None)


@router.get("/projects/{project_id}/stages/{stage_id}/voting-status", response_model=StageVotingStatusResponse)
def get_stage_voting_status(project_id: str, stage_id: str, db: DbSession, actor: ActorEmail):
    return ProposalService(db).get_stage_voting_status(actor, project_id, stage_id)
