from fastapi import APIRouter

from peer_ranking.api.api_v1.deps import ActorEmail, ClockDep, DbSession
from peer_ranking.schemas.comment_ranking import (
    CommentRankingHistoryResponse,
    CommentRankingResponse,
    CommentVotingEligibility,
    StageCommentRankingsResponse,
    SubmitCommentRankingRequest,
)
from peer_ranking.services.comment_ranking import CommentRankingService
from peer_ranking.services.eligibility import check_comment_voting_eligibility

router = APIRouter()


@router.get("/projects/{project_id}/stages/{stage_id}/comment-rankings/eligibility", response_model=CommentVotingEligibility)
def comment_voting_eligibility(project_id: str, stage_id: str, db: DbSession, actor: ActorEmail):
    return check_comment_voting_eligibility(db, project_id, stage_id, actor)


@router.post("/projects/{project_id}/stages/{stage_id}/comment-rankings", response_model=CommentRankingResponse)
def submit_comment_ranking(project_id: str, stage_id: str, payload: SubmitCommentRankingRequest, db: DbSession, actor: ActorEmail, clock: ClockDep):
    return CommentRankingService(db, clock=clock).submit_comment_ranking(actor, project_id, stage_id, payload.rankings)


@router.get("/projects/{project_id}/stages/{stage_id}/comment-rankings", response_model=StageCommentRankingsResponse)
def get_stage_comment_rankings(project_id: str, stage_id: str, db: DbSession, actor: ActorEmail):
    return CommentRankingService(db).get_stage_comment_rankings(actor, project_id, stage_id)


@router.get("/projects/{project_id}/stages/{stage_id}/comment-rankings/history", response_model=CommentRankingHistoryResponse)
def get_comment_ranking_history(project_id: str, stage_id: str, db: DbSession, actor: ActorEmail):
    history = CommentRankingService(db).get_comment_ranking_history(actor, project_id, stage_id)
    return {"history": history}
