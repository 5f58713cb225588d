# peer_ranking/schemas/__init__.py
from .common import ErrorBody, ErrorResponse

from .ranking import (
    SubmissionRankItem,
    SubmitProposalRequest,
    TallyResponse,
    ProposalOut,
    ProposalResponse,
    ProposalListResponse,
    VoteRequest,
    VoteResponse,
    ResetVotesRequest,
    ResetVotesResponse,
    StageInfo,
    VotingStatistics,
    VotingUserStatus,
    ProposalVoteCounts,
    StageProposalStatus,
    StageVotingStatusResponse,
)

from .comment_ranking import (
    CommentRankItem,
    SubmitCommentRankingRequest,
    CommentRankingOut,
    CommentRankingResponse,
    CommentRankingHistoryResponse,
    CommentVotingEligibility,
    StageCommentRank,
    StageCommentRankingsResponse,
)

from .teacher_ranking import (
    ComprehensiveVoteRequest,
    ComprehensiveVoteResponse,
    TeacherRankingRow,
    TeacherRankingVersion,
    TeacherRankingVersionsResponse,
    TeacherVoteSummary,
    TeacherVoteHistoryResponse,
)
