# backend/peer_ranking/services/__init__.py
from .comment_ranking import CommentRankingService
from .ledger import ActionLedger, LedgerResult
from .notifications import LoggingNotifier, Notifier, dispatch_notification
from .proposals import ProposalService
from .teacher_voting import ComprehensiveVotingCoordinator
from .vote_recorder import VoteRecorder, VoteSummary, encode_agreement, vote_recorder

__all__ = [
    "ActionLedger",
    "LedgerResult",
    "CommentRankingService",
    "ComprehensiveVotingCoordinator",
    "LoggingNotifier",
    "Notifier",
    "dispatch_notification",
    "ProposalService",
    "VoteRecorder",
    "VoteSummary",
    "encode_agreement",
    "vote_recorder",
]
