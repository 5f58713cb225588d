from fastapi import APIRouter
from peer_ranking.api.api_v1 import proposals, comment_rankings
from peer_ranking.api.api_v1 import teacher_rankings
from peer_ranking.schemas.common import ErrorResponse


api_router = APIRouter(
    responses={status: {"model": ErrorResponse} for status in (403, 404, 409, 503)},
)

api_router.include_router(proposals.router, prefix="", tags=["proposals"])
api_router.include_router(comment_rankings.router, prefix="", tags=["comment-rankings"])
api_router.include_router(teacher_rankings.router, prefix="", tags=["teacher-rankings"])
