from pydantic import BaseModel, Field
from typing import Literal, Optional

from .comment_ranking import CommentRankItem
from .ranking import SubmissionRankItem

# --- Comprehensive Vote Schemas ---
class ComprehensiveVoteRequest(BaseModel):
    submission_rankings: list[SubmissionRankItem] = Field(default_factory=list)
    comment_rankings: list[CommentRankItem] = Field(default_factory=list)

class ComprehensiveVoteResponse(BaseModel):
    success: bool = True
    submission_count: int
    comment_count: int
    created_at: Optional[int] = None
    deduped: bool = False

# --- Version history ---
RankingType = Literal["submission", "comment"]

class TeacherRankingRow(BaseModel):
    ranking_id: str
    teacher_email: str
    rank: int
    created_at: int
    submission_id: Optional[str] = None
    group_id: Optional[str] = None
    comment_id: Optional[str] = None
    author_email: Optional[str] = None

class TeacherRankingVersion(BaseModel):
    version_id: int
    created_at: int
    rankings: list[TeacherRankingRow]

class TeacherRankingVersionsResponse(BaseModel):
    success: bool = True
    ranking_type: RankingType
    versions: list[TeacherRankingVersion]
    latest_version: Optional[TeacherRankingVersion] = None

# --- Vote history summary ---
class TeacherVoteSummary(BaseModel):
    total_versions: int
    latest_ranking_count: int
    created_at: int

class TeacherVoteHistoryResponse(BaseModel):
    success: bool = True
    submission_ranking: Optional[TeacherVoteSummary] = None
    comment_ranking: Optional[TeacherVoteSummary] = None
