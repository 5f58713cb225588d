# File: peer_ranking/models/__init__.py
from .base import Base
from .project import Project, Stage, ProjectViewer
from .group import Group, GroupMembership
from .submission import Submission
from .comment import Comment, Reaction
from .ranking_proposal import RankingProposal, ProposalVote
from .comment_ranking import CommentRankingProposal
from .teacher_ranking import TeacherSubmissionRanking, TeacherCommentRanking
from .action_log import ActionLog

__all__ = [
    "Base",
    "Project",
    "Stage",
    "ProjectViewer",
    "Group",
    "GroupMembership",
    "Submission",
    "Comment",
    "Reaction",
    "RankingProposal",
    "ProposalVote",
    "CommentRankingProposal",
    "TeacherSubmissionRanking",
    "TeacherCommentRanking",
    "ActionLog",
]
