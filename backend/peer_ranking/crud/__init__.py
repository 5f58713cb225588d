# backend/peer_ranking/crud/__init__.py
from . import action_log, comment_ranking, membership, proposal, target, teacher_ranking, vote
from .recorders import (
    AppendOnlyRecorder,
    OverwriteRecorder,
    RankingRecorder,
    comment_ranking_recorder,
    proposal_vote_recorder,
    teacher_comment_recorder,
    teacher_submission_recorder,
)

__all__ = [
    "action_log",
    "comment_ranking",
    "membership",
    "proposal",
    "target",
    "teacher_ranking",
    "vote",
    "RankingRecorder",
    "OverwriteRecorder",
    "AppendOnlyRecorder",
    "proposal_vote_recorder",
    "teacher_submission_recorder",
    "teacher_comment_recorder",
    "comment_ranking_recorder",
]
