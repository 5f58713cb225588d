# services/eligibility.py
"""
Eligibility rules for ranking targets, ranking payloads and actors.

The rule functions are pure: they look at records that were already fetched
and return a ``Decision``. ``EligibilityChecker`` does the fetching.
"""
import enum
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from peer_ranking.core.config import settings
from peer_ranking.crud import membership as membership_crud
from peer_ranking.crud import target as target_crud
from peer_ranking.models import Comment, GroupMembership, Submission


@dataclass(frozen=True)
class Decision:
    allowed: bool
    code: Optional[str] = None
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Decision(True)


def denied(code: str, reason: str) -> Decision:
    return Decision(False, code, reason)


class Role(str, enum.Enum):
    LEADER = "leader"
    MEMBER = "member"
    TEACHER = "teacher"
    OBSERVER = "observer"
    NONE = "none"


def resolve_role(membership: Optional[GroupMembership], viewer_role: Optional[str]) -> Role:
    """Teacher/observer access wins over a group seat."""
    if viewer_role == "teacher":
        return Role.TEACHER
    if viewer_role == "observer":
        return Role.OBSERVER
    if membership is not None:
        return Role.LEADER if membership.role == "leader" else Role.MEMBER
    return Role.NONE


# ---------- Authorization, one function per operation ----------

def authorize_proposal_submit(role: Role) -> Decision:
    if role in (Role.LEADER, Role.MEMBER):
        return ALLOWED
    return denied("NOT_GROUP_MEMBER", "Only active group members can submit ranking proposals")


def authorize_proposal_vote(role: Role, voter_group_id: Optional[str], proposal_group_id: str) -> Decision:
    if role not in (Role.LEADER, Role.MEMBER):
        return denied("NOT_GROUP_MEMBER", "Only active group members can vote on ranking proposals")
    if voter_group_id != proposal_group_id:
        return denied("NOT_SAME_GROUP", "You can only vote on your own group's proposals")
    return ALLOWED


def authorize_proposal_withdraw(role: Role, actor_group_id: Optional[str], proposal_group_id: str) -> Decision:
    if role not in (Role.LEADER, Role.MEMBER):
        return denied("NOT_GROUP_MEMBER", "Only active group members can withdraw ranking proposals")
    if actor_group_id != proposal_group_id:
        return denied("NOT_SAME_GROUP", "You can only withdraw your own group's proposals")
    return ALLOWED


def authorize_vote_reset(role: Role, actor_group_id: Optional[str], proposal_group_id: str) -> Decision:
    if role != Role.LEADER or actor_group_id != proposal_group_id:
        return denied("NOT_GROUP_LEADER", "Only the group leader can reset proposal votes")
    return ALLOWED


def authorize_comprehensive_vote(role: Role) -> Decision:
    if role == Role.TEACHER:
        return ALLOWED
    return denied("NOT_TEACHER", "Only teachers can submit comprehensive rankings")


def authorize_status_view(role: Role) -> Decision:
    if role == Role.NONE:
        return denied("NO_ACCESS", "You do not have access to this project")
    return ALLOWED


# ---------- Ranking payload shape ----------

def _item_fields(item: Any, target_field: str) -> tuple[Any, Any]:
    if isinstance(item, dict):
        return item.get(target_field), item.get("rank")
    return getattr(item, target_field, None), getattr(item, "rank", None)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_items(items: Sequence[Any], target_field: str, max_items: Optional[int]) -> Decision:
    if not items:
        return denied("EMPTY_RANKING", "Ranking must contain at least one item")
    if max_items is not None and len(items) > max_items:
        return denied("TOO_MANY_ITEMS", f"Ranking may contain at most {max_items} items")

    targets: set = set()
    ranks: set = set()
    for item in items:
        target, rank = _item_fields(item, target_field)
        if not target or not _is_int(rank):
            return denied("INVALID_RANK_ITEM", f"Each item needs a {target_field} and an integer rank")
        if rank < 1 or (max_items is not None and rank > max_items):
            return denied("RANK_OUT_OF_RANGE", f"Rank {rank} is out of range")
        if target in targets:
            return denied("DUPLICATE_TARGET", f"{target} appears more than once")
        if rank in ranks:
            return denied("DUPLICATE_RANK", f"Rank {rank} is used more than once")
        targets.add(target)
        ranks.add(rank)
    return ALLOWED


def validate_submission_ranking(items: Sequence[Any], max_items: Optional[int] = None) -> Decision:
    return _check_items(items, "submission_id", max_items)


def validate_comment_ranking(items: Sequence[Any], max_items: int) -> Decision:
    """Ranks must be exactly 1..len(items): {1, 2, 3} passes, {1, 3} and {1, 1, 2} do not."""
    decision = _check_items(items, "comment_id", max_items)
    if not decision:
        return decision
    ranks = sorted(_item_fields(item, "comment_id")[1] for item in items)
    if ranks != list(range(1, len(items) + 1)):
        return denied("NON_CONTIGUOUS_RANKS", "Ranks must run from 1 without gaps")
    return ALLOWED


# ---------- Targets ----------

def submission_decision(submission: Optional[Submission], exclude_group_id: Optional[str] = None) -> Decision:
    if submission is None:
        return denied("SUBMISSION_NOT_FOUND", "Submission not found")
    if submission.status != "approved":
        return denied("SUBMISSION_NOT_APPROVED", f"Submission {submission.submission_id} is not approved")
    if exclude_group_id is not None and submission.group_id == exclude_group_id:
        return denied("OWN_GROUP_SUBMISSION", "You cannot rank your own group's submission")
    return ALLOWED


def comment_decision(
    comment: Optional[Comment],
    author_is_participant: bool,
    helpful_count: int,
    exclude_author_email: Optional[str] = None,
    min_helpful: int = 1,
) -> Decision:
    if comment is None:
        return denied("COMMENT_NOT_FOUND", "Comment not found")
    if comment.is_reply or (comment.reply_level or 0) != 0:
        return denied("COMMENT_IS_REPLY", "Only top-level comments can be ranked")
    if not (comment.mentioned_groups or comment.mentioned_users):
        return denied("COMMENT_HAS_NO_MENTIONS", "Comment must mention a group or a user")
    if exclude_author_email is not None and comment.author_email == exclude_author_email:
        return denied("SELF_VOTE_NOT_ALLOWED", "You cannot rank your own comment")
    if not author_is_participant:
        return denied("AUTHOR_NOT_PARTICIPANT", "Comment author is not an active project participant")
    if helpful_count < min_helpful:
        return denied(
            "INSUFFICIENT_HELPFUL_REACTIONS",
            f"Comment needs at least {min_helpful} helpful reaction(s) from other users",
        )
    return ALLOWED


def distinct_authors_decision(authors: Iterable[str]) -> Decision:
    seen: set = set()
    for author in authors:
        if author in seen:
            return denied("DUPLICATE_AUTHOR", f"More than one comment by {author} in one ranking")
        seen.add(author)
    return ALLOWED


class EligibilityChecker:
    """Fetches targets and applies the rule functions above."""

    def __init__(self, db: Session, min_helpful: Optional[int] = None):
        self.db = db
        self.min_helpful = settings.MIN_HELPFUL_REACTIONS if min_helpful is None else min_helpful

    def check_submission(
        self,
        project_id: str,
        submission_id: str,
        stage_id: Optional[str] = None,
        exclude_group_id: Optional[str] = None,
    ) -> tuple[Decision, Optional[Submission]]:
        submission = target_crud.get_submission(self.db, project_id, submission_id, stage_id)
        return submission_decision(submission, exclude_group_id), submission

    def check_comment(
        self,
        project_id: str,
        comment_id: str,
        stage_id: Optional[str] = None,
        exclude_author_email: Optional[str] = None,
    ) -> tuple[Decision, Optional[Comment]]:
        comment = target_crud.get_comment(self.db, project_id, comment_id, stage_id)
        if comment is None:
            return comment_decision(None, False, 0), None
        participant = membership_crud.is_project_participant(self.db, project_id, comment.author_email)
        helpful = target_crud.count_helpful_reactions(self.db, comment.comment_id, exclude_user_email=comment.author_email)
        decision = comment_decision(
            comment,
            author_is_participant=participant,
            helpful_count=helpful,
            exclude_author_email=exclude_author_email,
            min_helpful=self.min_helpful,
        )
        return decision, comment


def check_comment_voting_eligibility(db: Session, project_id: str, stage_id: str, user_email: str) -> dict:
    """A student may rank comments once they posted a top-level comment with a mention in the stage."""
    comments = target_crud.list_top_level_comments(db, project_id, stage_id, author_email=user_email)
    with_mentions = [c for c in comments if c.mentioned_groups or c.mentioned_users]

    if not comments:
        decision = denied("NO_COMMENTS", "Post at least one comment in this stage before ranking comments")
    elif not with_mentions:
        decision = denied("NO_MENTIONS", "At least one of your comments must mention a group or a user")
    else:
        decision = ALLOWED

    return {
        "can_vote": decision.allowed,
        "code": decision.code,
        "reason": decision.reason or "Eligible to rank comments",
        "comment_count": len(comments),
        "comments_with_mentions": len(with_mentions),
    }
