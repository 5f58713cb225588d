from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Optional

# --- Proposal Schemas ---
class SubmissionRankItem(BaseModel):
    model_config = ConfigDict(extra="allow")  # ranking bodies may carry extra display fields

    submission_id: str
    rank: int

class SubmitProposalRequest(BaseModel):
    ranking: list[SubmissionRankItem] = Field(default_factory=list)

class TallyResponse(BaseModel):
    agree: int
    disagree: int
    total: int
    total_members: int
    net_score: int
    voting_result: str
    status: Optional[str] = None
    proposal_id: Optional[str] = None

class ProposalOut(BaseModel):
    proposal_id: str
    project_id: str
    stage_id: str
    group_id: str
    proposer_email: str
    ranking_data: list[dict[str, Any]]
    status: str
    created_at: int
    settled_at: Optional[int] = None
    withdrawn_at: Optional[int] = None
    withdrawn_by: Optional[str] = None
    reset_at: Optional[int] = None
    tally: Optional[TallyResponse] = None
    version: Optional[int] = None

class ProposalResponse(BaseModel):
    success: bool = True
    proposal: Optional[ProposalOut] = None
    deduped: bool = False

class ProposalListResponse(BaseModel):
    success: bool = True
    proposals: list[ProposalOut]

# --- Vote Schemas ---
class VoteRequest(BaseModel):
    agree: bool
    comment: Optional[Annotated[str, Field(max_length=2000)]] = None

class VoteResponse(BaseModel):
    success: bool = True
    proposal_id: str
    vote_id: Optional[str] = None
    is_update: Optional[bool] = None
    agree: Optional[bool] = None
    tally: TallyResponse
    deduped: bool = False

# --- Reset Schemas ---
class ResetVotesRequest(BaseModel):
    reason: Optional[Annotated[str, Field(max_length=500)]] = None

class ResetVotesResponse(BaseModel):
    success: bool = True
    old_proposal_id: str
    new_proposal: Optional[ProposalOut] = None
    reason: Optional[str] = None
    vote_summary: Optional[TallyResponse] = None
    deduped: bool = False

# --- Stage Voting Status Schemas ---
class StageInfo(BaseModel):
    stage_id: str
    name: str
    status: str

class VotingStatistics(BaseModel):
    total_groups: int
    total_members: int
    total_proposals: int

class VotingUserStatus(BaseModel):
    role: str
    group_id: Optional[str] = None
    can_vote: bool
    is_teacher: bool
    is_observer: bool
    current_proposal_id: Optional[str] = None
    has_voted: bool = False

class ProposalVoteCounts(BaseModel):
    agree: int
    disagree: int
    total: int

class StageProposalStatus(BaseModel):
    proposal_id: str
    group_id: str
    group_name: Optional[str] = None
    proposer_email: str
    status: str
    voting_result: str
    created_at: int
    votes: ProposalVoteCounts

class StageVotingStatusResponse(BaseModel):
    success: bool = True
    stage: StageInfo
    statistics: VotingStatistics
    user_status: VotingUserStatus
    proposals: list[StageProposalStatus]
