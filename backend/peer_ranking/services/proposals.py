# services/proposals.py
"""
Group ranking proposals and the votes cast on them.

Status is never stored: it is derived from the lifecycle timestamps
(settled_at, withdrawn_at, reset_at) and tallies are recomputed from the
vote rows on every read. Settlement itself happens elsewhere; nothing here
sets settled_at.
"""
import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peer_ranking.core.clock import Clock, system_clock
from peer_ranking.core.config import Settings, settings as default_settings
from peer_ranking.core.database import rollback_on_error
from peer_ranking.core.errors import InvalidShapeError, NotEligibleError, NotFoundError, StateConflictError
from peer_ranking.crud import membership as membership_crud
from peer_ranking.crud import proposal as proposal_crud
from peer_ranking.crud import vote as vote_crud
from peer_ranking.models import RankingProposal
from peer_ranking.models.ranking_proposal import VOTABLE_STATUSES
from peer_ranking.services.eligibility import (
    EligibilityChecker,
    Role,
    authorize_proposal_submit,
    authorize_proposal_vote,
    authorize_proposal_withdraw,
    authorize_status_view,
    authorize_vote_reset,
    resolve_role,
    validate_submission_ranking,
)
from peer_ranking.services.ledger import (
    ActionLedger,
    log_project_operation,
    ranking_reset_key,
    ranking_submit_key,
    ranking_vote_key,
    ranking_withdraw_key,
)
from peer_ranking.services.notifications import Notifier, dispatch_notification
from peer_ranking.services.vote_recorder import VoteSummary, vote_recorder

logger = logging.getLogger("uvicorn")

ACCEPTING_STAGE_STATUSES = ("active", "voting")


def _as_dict(item: Any) -> dict:
    if isinstance(item, dict):
        return dict(item)
    return item.model_dump()


def serialize_proposal(proposal: RankingProposal, summary: Optional[VoteSummary] = None, version: Optional[int] = None) -> dict:
    data = {
        "proposal_id": proposal.proposal_id,
        "project_id": proposal.project_id,
        "stage_id": proposal.stage_id,
        "group_id": proposal.group_id,
        "proposer_email": proposal.proposer_email,
        "ranking_data": proposal.ranking_data,
        "status": proposal.status,
        "created_at": proposal.created_at,
        "settled_at": proposal.settled_at,
        "withdrawn_at": proposal.withdrawn_at,
        "withdrawn_by": proposal.withdrawn_by,
        "reset_at": proposal.reset_at,
    }
    if summary is not None:
        data["tally"] = summary.to_dict()
    if version is not None:
        data["version"] = version
    return data


class ProposalService:
    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        notifier: Optional[Notifier] = None,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.clock = clock
        self.notifier = notifier
        self.settings = settings
        self.ledger = ActionLedger(db, clock, settings)
        self.checker = EligibilityChecker(db, settings.MIN_HELPFUL_REACTIONS)

    # ---------- Helpers ----------

    def _load_proposal(self, project_id: str, proposal_id: str) -> RankingProposal:
        proposal = proposal_crud.get_proposal(self.db, proposal_id, project_id)
        if proposal is None:
            raise NotFoundError("PROPOSAL_NOT_FOUND", "Ranking proposal not found")
        return proposal

    def _tally(self, proposal: RankingProposal) -> VoteSummary:
        total_members = membership_crud.count_group_members(self.db, proposal.project_id, proposal.group_id)
        return vote_recorder.tally(self.db, proposal.proposal_id, total_members)

    def _tally_dict(self, proposal: RankingProposal) -> dict:
        data = self._tally(proposal).to_dict()
        data["status"] = proposal.status
        return data

    def _max_resets(self, project_id: str) -> int:
        project = membership_crud.get_project(self.db, project_id)
        if project is not None and project.max_vote_reset_count is not None:
            return project.max_vote_reset_count
        return self.settings.DEFAULT_MAX_VOTE_RESET_COUNT

    # ---------- Submit ----------

    @rollback_on_error
    def submit_proposal(self, actor_email: str, project_id: str, stage_id: str, ranking: list) -> dict:
        membership = membership_crud.get_active_membership(self.db, project_id, actor_email)
        decision = authorize_proposal_submit(resolve_role(membership, None))
        if not decision:
            raise NotEligibleError(decision.code, decision.reason)
        group_id = membership.group_id

        stage = membership_crud.get_stage(self.db, project_id, stage_id)
        if stage is None:
            raise NotFoundError("STAGE_NOT_FOUND", "Stage not found in this project")
        if stage.status not in ACCEPTING_STAGE_STATUSES:
            raise StateConflictError("STAGE_NOT_ACTIVE", "Cannot submit rankings for inactive stages")
        if proposal_crud.has_settled_proposal(self.db, project_id, stage_id, group_id):
            raise StateConflictError(
                "SETTLED_PROPOSAL_EXISTS",
                "Your group already has a settled proposal for this stage",
            )

        items = [_as_dict(item) for item in ranking or []]
        now_ms = self.clock.now_ms()
        bucket = self.ledger.current_bucket(now_ms)
        result = self.ledger.record_action(
            ranking_submit_key(project_id, stage_id, group_id, actor_email, bucket),
            actor_email,
            "ranking_proposal_submit",
            {"stage_id": stage_id, "group_id": group_id, "items": len(items)},
            bucket=bucket,
            project_id=project_id,
            entity_type="ranking_proposal",
            message=f"Group {group_id} submitted ranking proposal for stage {stage_id}",
            related_entities={"stage": stage_id, "group": group_id},
        )
        if not result.is_new:
            latest = proposal_crud.get_latest_proposal(self.db, project_id, stage_id, group_id)
            if latest is None:
                raise StateConflictError("DUPLICATE_IN_FLIGHT", "An identical submission is still being processed")
            return {"proposal": serialize_proposal(latest, self._tally(latest)), "deduped": True}

        if proposal_crud.get_pending_proposal(self.db, project_id, stage_id, group_id) is not None:
            raise StateConflictError("PROPOSAL_EXISTS", "Your group already has an active ranking proposal for this stage")

        shape = validate_submission_ranking(items)
        if not shape:
            raise InvalidShapeError(shape.code, shape.reason)

        for item in items:
            eligible, _ = self.checker.check_submission(project_id, item["submission_id"], stage_id=stage_id)
            if not eligible:
                raise NotEligibleError(eligible.code, eligible.reason)

        try:
            proposal = proposal_crud.insert_proposal(
                self.db,
                project_id=project_id,
                stage_id=stage_id,
                group_id=group_id,
                proposer_email=actor_email,
                ranking_data=items,
                created_at=now_ms,
            )
        except IntegrityError as exc:
            # Another member's proposal won the one-pending index
            raise StateConflictError(
                "PROPOSAL_EXISTS", "Your group already has an active ranking proposal for this stage"
            ) from exc
        self.db.commit()
        logger.info(f"🗳️ Proposal {proposal.proposal_id} submitted by {actor_email} for group {group_id}")

        log_project_operation(actor_email, project_id, "ranking_proposal_created", "ranking_proposal", proposal.proposal_id, {"group": group_id, "stage": stage_id, "items": len(items)})
        dispatch_notification(
            self.notifier,
            [e for e in membership_crud.list_group_member_emails(self.db, project_id, group_id) if e != actor_email],
            "ranking_proposal_submitted",
            "New ranking proposal",
            f"{actor_email} submitted a ranking proposal for stage {stage.name}",
            {"proposal_id": proposal.proposal_id, "stage_id": stage_id},
        )
        return {"proposal": serialize_proposal(proposal, self._tally(proposal)), "deduped": False}

    # ---------- Vote ----------

    @rollback_on_error
    def vote_on_proposal(self, actor_email: str, project_id: str, proposal_id: str, agree: bool, comment: Optional[str] = None) -> dict:
        proposal = self._load_proposal(project_id, proposal_id)

        # Timestamps are authoritative, so they are checked before the derived status
        if proposal.settled_at is not None:
            raise StateConflictError("PROPOSAL_SETTLED", "This proposal has been settled and voting is closed")
        if proposal.withdrawn_at is not None:
            raise StateConflictError("PROPOSAL_WITHDRAWN", "This proposal has been withdrawn")
        if proposal.status not in VOTABLE_STATUSES:
            raise StateConflictError("PROPOSAL_NOT_VOTABLE", f"Cannot vote on a {proposal.status} proposal")

        membership = membership_crud.get_active_membership(self.db, project_id, actor_email)
        decision = authorize_proposal_vote(
            resolve_role(membership, None),
            membership.group_id if membership else None,
            proposal.group_id,
        )
        if not decision:
            raise NotEligibleError(decision.code, decision.reason)

        total_members = membership_crud.count_group_members(self.db, project_id, proposal.group_id)
        if total_members == 0:
            raise StateConflictError("NO_ACTIVE_MEMBERS", "No active members found in the group")

        now_ms = self.clock.now_ms()
        bucket = self.ledger.current_bucket(now_ms)
        result = self.ledger.record_action(
            ranking_vote_key(proposal_id, actor_email, bucket),
            actor_email,
            "ranking_proposal_vote",
            {"proposal_id": proposal_id, "agree": bool(agree)},
            bucket=bucket,
            project_id=project_id,
            entity_type="ranking_proposal",
            entity_id=proposal_id,
            message=f"{actor_email} voted on proposal {proposal_id}",
            related_entities={"stage": proposal.stage_id, "group": proposal.group_id},
        )
        if not result.is_new:
            proposal = self._load_proposal(project_id, proposal_id)
            return {"proposal_id": proposal_id, "tally": self._tally_dict(proposal), "deduped": True}

        write = vote_recorder.record(self.db, proposal, actor_email, agree, comment, now_ms)
        summary = vote_recorder.tally(self.db, proposal_id, total_members)
        self.db.commit()
        logger.info(f"✅ Vote {'updated' if write.is_update else 'recorded'} on {proposal_id} by {actor_email}")

        log_project_operation(actor_email, project_id, "proposal_voted", "ranking_proposal", proposal_id, {"agree": bool(agree), "net": summary.net_score})
        if proposal.proposer_email != actor_email:
            dispatch_notification(
                self.notifier,
                [proposal.proposer_email],
                "ranking_proposal_voted",
                "New vote on your proposal",
                f"{actor_email} {'agreed with' if agree else 'disagreed with'} your ranking proposal",
                {"proposal_id": proposal_id},
            )

        tally = summary.to_dict()
        tally["status"] = proposal.status
        return {
            "proposal_id": proposal_id,
            "vote_id": write.vote_id,
            "is_update": write.is_update,
            "agree": bool(agree),
            "tally": tally,
            "deduped": False,
        }

    # ---------- Withdraw ----------

    @rollback_on_error
    def withdraw_proposal(self, actor_email: str, project_id: str, proposal_id: str) -> dict:
        proposal = self._load_proposal(project_id, proposal_id)

        membership = membership_crud.get_active_membership(self.db, project_id, actor_email)
        decision = authorize_proposal_withdraw(
            resolve_role(membership, None),
            membership.group_id if membership else None,
            proposal.group_id,
        )
        if not decision:
            raise NotEligibleError(decision.code, decision.reason)

        now_ms = self.clock.now_ms()
        bucket = self.ledger.current_bucket(now_ms)
        result = self.ledger.record_action(
            ranking_withdraw_key(proposal_id, actor_email, bucket),
            actor_email,
            "ranking_proposal_withdraw",
            {"proposal_id": proposal_id},
            bucket=bucket,
            project_id=project_id,
            entity_type="ranking_proposal",
            entity_id=proposal_id,
            message=f"{actor_email} withdrawing ranking proposal {proposal_id}",
            related_entities={"stage": proposal.stage_id, "group": proposal.group_id},
        )
        if not result.is_new:
            proposal = self._load_proposal(project_id, proposal_id)
            return {"proposal": serialize_proposal(proposal), "deduped": True}

        if proposal.withdrawn_at is not None:
            raise StateConflictError("ALREADY_WITHDRAWN", "This proposal has already been withdrawn")
        if proposal.settled_at is not None:
            raise StateConflictError("CANNOT_WITHDRAW_SETTLED", "Cannot withdraw a settled proposal")
        if proposal.status != "pending":
            raise StateConflictError("CANNOT_WITHDRAW", f"Cannot withdraw a {proposal.status} proposal")

        if proposal_crud.mark_withdrawn(self.db, proposal_id, actor_email, now_ms) == 0:
            raise StateConflictError("WITHDRAW_CONFLICT", "Proposal changed state while it was being withdrawn")
        self.db.commit()
        logger.info(f"↩️ Proposal {proposal_id} withdrawn by {actor_email}")

        log_project_operation(actor_email, project_id, "ranking_proposal_withdrawn", "ranking_proposal", proposal_id)
        proposal = self._load_proposal(project_id, proposal_id)
        return {"proposal": serialize_proposal(proposal), "deduped": False}

    # ---------- Reset ----------

    @rollback_on_error
    def reset_votes(self, actor_email: str, project_id: str, proposal_id: str, reason: Optional[str] = None) -> dict:
        """
        Leader-only re-vote after a failed round: the old proposal gets reset_at
        and a pending copy with the same ranking is created in the same commit.
        """
        proposal = self._load_proposal(project_id, proposal_id)
        stage_id, group_id = proposal.stage_id, proposal.group_id

        membership = membership_crud.get_active_membership(self.db, project_id, actor_email)
        decision = authorize_vote_reset(
            resolve_role(membership, None),
            membership.group_id if membership else None,
            group_id,
        )
        if not decision:
            raise NotEligibleError(decision.code, decision.reason)

        reason = reason or "Vote tied"
        now_ms = self.clock.now_ms()
        bucket = self.ledger.current_bucket(now_ms)
        result = self.ledger.record_action(
            ranking_reset_key(proposal_id, actor_email, bucket),
            actor_email,
            "ranking_proposal_vote_reset",
            {"proposal_id": proposal_id, "reason": reason},
            bucket=bucket,
            project_id=project_id,
            entity_type="ranking_proposal",
            entity_id=proposal_id,
            message=f"Group leader {actor_email} resetting votes for proposal {proposal_id}",
            related_entities={"stage": stage_id, "group": group_id},
        )
        if not result.is_new:
            newest = proposal_crud.get_pending_proposal(self.db, project_id, stage_id, group_id)
            return {
                "old_proposal_id": proposal_id,
                "new_proposal": serialize_proposal(newest) if newest is not None else None,
                "reason": reason,
                "deduped": True,
            }

        if proposal.status != "pending":
            raise StateConflictError("PROPOSAL_NOT_PENDING", "Can only reset pending proposals")

        max_resets = self._max_resets(project_id)
        if proposal_crud.count_resets(self.db, project_id, stage_id, group_id) >= max_resets:
            raise StateConflictError("RESET_LIMIT_EXCEEDED", f"Each group can only reset votes {max_resets} time(s) per stage")

        summary = self._tally(proposal)
        if summary.total_members == 0:
            raise StateConflictError("NO_ACTIVE_MEMBERS", "No active members found in the group")
        if not summary.all_voted:
            raise StateConflictError(
                "NOT_ALL_VOTED",
                f"All group members must vote before reset. Current: {summary.total}/{summary.total_members}",
            )
        if summary.agree > summary.disagree:
            raise StateConflictError(
                "PROPOSAL_PASSED",
                f"Proposal passed with majority support ({summary.agree} vs {summary.disagree})",
            )

        if proposal_crud.mark_reset(self.db, proposal_id, now_ms) == 0:
            raise StateConflictError("RESET_CONFLICT", "Proposal changed state while it was being reset")
        new_proposal = proposal_crud.insert_proposal(
            self.db,
            project_id=project_id,
            stage_id=stage_id,
            group_id=group_id,
            proposer_email=actor_email,
            ranking_data=list(proposal.ranking_data),
            created_at=now_ms,
        )
        self.db.commit()
        logger.info(f"🔄 Votes reset on {proposal_id}; new proposal {new_proposal.proposal_id}")

        log_project_operation(actor_email, project_id, "ranking_proposal_vote_reset", "ranking_proposal", proposal_id, {"new_proposal": new_proposal.proposal_id, "reason": reason})
        dispatch_notification(
            self.notifier,
            membership_crud.list_group_member_emails(self.db, project_id, group_id),
            "ranking_proposal_reset",
            "Ranking proposal votes reset",
            f"{actor_email} reset the votes ({reason}). Please vote again.",
            {"old_proposal_id": proposal_id, "new_proposal_id": new_proposal.proposal_id},
        )
        return {
            "old_proposal_id": proposal_id,
            "new_proposal": serialize_proposal(new_proposal, self._tally(new_proposal)),
            "reason": reason,
            "vote_summary": summary.to_dict(),
            "deduped": False,
        }

    # ---------- Reads ----------

    def get_proposal_tally(self, project_id: str, proposal_id: str) -> dict:
        proposal = self._load_proposal(project_id, proposal_id)
        data = self._tally_dict(proposal)
        data["proposal_id"] = proposal_id
        return data

    def list_stage_proposals(self, actor_email: str, project_id: str, stage_id: str) -> list[dict]:
        """Teachers see every group; students see their own group; anyone else sees nothing."""
        if membership_crud.get_stage(self.db, project_id, stage_id) is None:
            raise NotFoundError("STAGE_NOT_FOUND", "Stage not found in this project")

        membership = membership_crud.get_active_membership(self.db, project_id, actor_email)
        role = resolve_role(membership, membership_crud.get_viewer_role(self.db, project_id, actor_email))
        if role == Role.TEACHER:
            proposals = proposal_crud.list_stage_proposals(self.db, project_id, stage_id)
        elif role in (Role.LEADER, Role.MEMBER):
            proposals = proposal_crud.list_stage_proposals(self.db, project_id, stage_id, group_id=membership.group_id)
        else:
            return []

        versions: dict[str, int] = {}
        out = []
        for proposal in proposals:
            versions[proposal.group_id] = versions.get(proposal.group_id, 0) + 1
            out.append(serialize_proposal(proposal, self._tally(proposal), versions[proposal.group_id]))
        return out

    def get_stage_voting_status(self, actor_email: str, project_id: str, stage_id: str) -> dict:
        """
        Stage-wide voting picture used by the settlement screens.

        Open to group members, teachers and observers. Every group's proposals
        are listed newest first with their counts; ``user_status`` describes the
        caller, and for group members whether they voted on their group's
        current proposal.
        """
        membership = membership_crud.get_active_membership(self.db, project_id, actor_email)
        role = resolve_role(membership, membership_crud.get_viewer_role(self.db, project_id, actor_email))
        decision = authorize_status_view(role)
        if not decision:
            raise NotEligibleError(decision.code, decision.reason)

        stage = membership_crud.get_stage(self.db, project_id, stage_id)
        if stage is None:
            raise NotFoundError("STAGE_NOT_FOUND", "Stage not found in this project")

        group_names = membership_crud.get_group_names(self.db, project_id)
        proposals = sorted(
            proposal_crud.list_stage_proposals(self.db, project_id, stage_id),
            key=lambda p: (p.created_at, p.reset_at is None),
            reverse=True,
        )
        rows = []
        for proposal in proposals:
            summary = self._tally(proposal)
            rows.append({
                "proposal_id": proposal.proposal_id,
                "group_id": proposal.group_id,
                "group_name": group_names.get(proposal.group_id),
                "proposer_email": proposal.proposer_email,
                "status": proposal.status,
                "voting_result": summary.voting_result,
                "created_at": proposal.created_at,
                "votes": {"agree": summary.agree, "disagree": summary.disagree, "total": summary.total},
            })

        current_proposal_id = None
        has_voted = False
        if membership is not None:
            current = proposal_crud.get_latest_proposal(self.db, project_id, stage_id, membership.group_id)
            if current is not None:
                current_proposal_id = current.proposal_id
                has_voted = vote_crud.get_vote_for_voter(self.db, current.proposal_id, actor_email) is not None

        return {
            "stage": {"stage_id": stage.stage_id, "name": stage.name, "status": stage.status},
            "statistics": {
                "total_groups": membership_crud.count_active_groups(self.db, project_id),
                "total_members": membership_crud.count_active_members(self.db, project_id),
                "total_proposals": proposal_crud.count_stage_proposals(self.db, project_id, stage_id),
            },
            "user_status": {
                "role": role.value,
                "group_id": membership.group_id if membership else None,
                "can_vote": role in (Role.LEADER, Role.MEMBER),
                "is_teacher": role == Role.TEACHER,
                "is_observer": role == Role.OBSERVER,
                "current_proposal_id": current_proposal_id,
                "has_voted": has_voted,
            },
            "proposals": rows,
        }
