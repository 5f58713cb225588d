from fastapi import APIRouter, Query

from peer_ranking.api.api_v1.deps import ActorEmail, ClockDep, DbSession
from peer_ranking.schemas.teacher_ranking import (
    ComprehensiveVoteRequest,
    ComprehensiveVoteResponse,
    RankingType,
    TeacherRankingVersionsResponse,
    TeacherVoteHistoryResponse,
)
from peer_ranking.services.teacher_voting import ComprehensiveVotingCoordinator

router = APIRouter()


@router.post("/projects/{project_id}/stages/{stage_id}/teacher-rankings", response_model=ComprehensiveVoteResponse)
def submit_comprehensive_vote(project_id: str, stage_id: str, payload: ComprehensiveVoteRequest, db: DbSession, actor: ActorEmail, clock: ClockDep):
    coordinator = ComprehensiveVotingCoordinator(db, clock=clock)
    return coordinator.submit_comprehensive_vote(
        actor, project_id, stage_id,
        submissions=payload.submission_rankings,
        comments=payload.comment_rankings,
    )


@router.get("/projects/{project_id}/stages/{stage_id}/teacher-rankings/versions", response_model=TeacherRankingVersionsResponse)
def get_teacher_ranking_versions(
    project_id: str,
    stage_id: str,
    db: DbSession,
    actor: ActorEmail,
    ranking_type: RankingType = Query("submission"),
):
    return ComprehensiveVotingCoordinator(db).get_teacher_ranking_versions(actor, project_id, stage_id, ranking_type)


@router.get("/projects/{project_id}/stages/{stage_id}/teacher-rankings/history", response_model=TeacherVoteHistoryResponse)
def get_teacher_vote_history(project_id: str, stage_id: str, db: DbSession, actor: ActorEmail):
    return ComprehensiveVotingCoordinator(db).get_teacher_vote_history(actor, project_id, stage_id)
