from pydantic import BaseModel, Field
from typing import Optional

# --- Comment Ranking Schemas ---
class CommentRankItem(BaseModel):
    comment_id: str
    rank: int

class SubmitCommentRankingRequest(BaseModel):
    rankings: list[CommentRankItem] = Field(default_factory=list)

class CommentRankingOut(BaseModel):
    proposal_id: str
    project_id: str
    stage_id: str
    author_email: str
    ranking_data: list[CommentRankItem]
    version: int
    created_at: int

class CommentRankingResponse(BaseModel):
    success: bool = True
    ranking: Optional[CommentRankingOut] = None
    deduped: bool = False

class CommentRankingHistoryResponse(BaseModel):
    success: bool = True
    history: list[CommentRankingOut]

# --- Eligibility ---
class CommentVotingEligibility(BaseModel):
    can_vote: bool
    code: Optional[str] = None
    reason: str
    comment_count: int
    comments_with_mentions: int

# --- Stage view ---
class StageCommentRank(BaseModel):
    comment_id: str
    author_email: str
    user_rank: Optional[int] = None
    teacher_rank: Optional[int] = None

class StageCommentRankingsResponse(BaseModel):
    success: bool = True
    stage_id: str
    max_selections: int
    latest_version: Optional[int] = None
    comments: list[StageCommentRank]
