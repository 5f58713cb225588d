# services/teacher_voting.py
"""
Comprehensive (two-channel) teacher voting.

A teacher submits submission rankings and comment rankings in one request.
Both channels are validated completely before anything is written, then all
rows are appended and committed together. A ledger duplicate skips both
channels and reports what the teacher already has on record.
"""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from peer_ranking.core.clock import Clock, system_clock
from peer_ranking.core.config import Settings, settings as default_settings
from peer_ranking.core.database import rollback_on_error
from peer_ranking.core.errors import InvalidShapeError, NotEligibleError, NotFoundError
from peer_ranking.core.ids import generate_id
from peer_ranking.crud import membership as membership_crud
from peer_ranking.crud import teacher_ranking as teacher_ranking_crud
from peer_ranking.crud.recorders import teacher_comment_recorder, teacher_submission_recorder
from peer_ranking.models import TeacherCommentRanking, TeacherSubmissionRanking
from peer_ranking.services.comment_ranking import max_comment_selections
from peer_ranking.services.eligibility import (
    EligibilityChecker,
    authorize_comprehensive_vote,
    distinct_authors_decision,
    resolve_role,
    validate_comment_ranking,
    validate_submission_ranking,
)
from peer_ranking.services.ledger import ActionLedger, log_project_operation, teacher_ranking_key

logger = logging.getLogger("uvicorn")

RANKING_TYPES = ("submission", "comment")


def _as_dict(item: Any) -> dict:
    return dict(item) if isinstance(item, dict) else item.model_dump()


def _serialize_row(row) -> dict:
    data = {"ranking_id": row.ranking_id, "teacher_email": row.teacher_email, "rank": row.rank, "created_at": row.created_at}
    if isinstance(row, TeacherSubmissionRanking):
        data.update(submission_id=row.submission_id, group_id=row.group_id)
    else:
        data.update(comment_id=row.comment_id, author_email=row.author_email)
    return data


class ComprehensiveVotingCoordinator:
    def __init__(self, db: Session, clock: Clock = system_clock, settings: Settings = default_settings):
        self.db = db
        self.clock = clock
        self.settings = settings
        self.ledger = ActionLedger(db, clock, settings)
        self.checker = EligibilityChecker(db, settings.MIN_HELPFUL_REACTIONS)

    def _require_teacher(self, project_id: str, actor_email: str) -> None:
        role = resolve_role(None, membership_crud.get_viewer_role(self.db, project_id, actor_email))
        decision = authorize_comprehensive_vote(role)
        if not decision:
            raise NotEligibleError(decision.code, decision.reason)

    def _require_stage(self, project_id: str, stage_id: str) -> None:
        if membership_crud.get_stage(self.db, project_id, stage_id) is None:
            raise NotFoundError("STAGE_NOT_FOUND", "Stage not found in this project")

    # ---------- Channel validation (no writes) ----------

    def _validate_submissions(self, project_id: str, stage_id: str, items: list[dict]) -> list[dict]:
        shape = validate_submission_ranking(items)
        if not shape:
            raise InvalidShapeError(shape.code, shape.reason)
        resolved = []
        for item in items:
            # Teachers may rank every group, so no group is excluded
            decision, submission = self.checker.check_submission(project_id, item["submission_id"], stage_id=stage_id)
            if not decision:
                raise NotEligibleError(decision.code, decision.reason)
            resolved.append({"submission_id": submission.submission_id, "group_id": submission.group_id, "rank": item["rank"]})
        return resolved

    def _validate_comments(self, actor_email: str, project_id: str, stage_id: str, items: list[dict]) -> list[dict]:
        limit = max_comment_selections(self.db, project_id, self.settings)
        shape = validate_comment_ranking(items, limit)
        if not shape:
            raise InvalidShapeError(shape.code, shape.reason)
        resolved = []
        for item in items:
            decision, comment = self.checker.check_comment(
                project_id, item["comment_id"], stage_id=stage_id, exclude_author_email=actor_email
            )
            if not decision:
                raise NotEligibleError(decision.code, decision.reason)
            resolved.append({"comment_id": comment.comment_id, "author_email": comment.author_email, "rank": item["rank"]})
        distinct = distinct_authors_decision(r["author_email"] for r in resolved)
        if not distinct:
            raise InvalidShapeError(distinct.code, distinct.reason)
        return resolved

    # ---------- Operations ----------

    @rollback_on_error
    def submit_comprehensive_vote(
        self,
        actor_email: str,
        project_id: str,
        stage_id: str,
        submissions: Optional[list] = None,
        comments: Optional[list] = None,
    ) -> dict:
        self._require_teacher(project_id, actor_email)
        self._require_stage(project_id, stage_id)

        submissions = [_as_dict(i) for i in submissions or []]
        comments = [_as_dict(i) for i in comments or []]
        if not submissions and not comments:
            raise InvalidShapeError("EMPTY_RANKING", "Provide submission rankings, comment rankings, or both")

        now_ms = self.clock.now_ms()
        bucket = self.ledger.current_bucket(now_ms)
        result = self.ledger.record_action(
            teacher_ranking_key(project_id, stage_id, actor_email, bucket),
            actor_email,
            "teacher_comprehensive_vote",
            {"stage_id": stage_id, "submissions": len(submissions), "comments": len(comments)},
            bucket=bucket,
            project_id=project_id,
            entity_type="teacher_ranking",
            message=f"Teacher {actor_email} submitted rankings for stage {stage_id}",
            related_entities={"stage": stage_id},
        )
        if not result.is_new:
            return {
                "submission_count": teacher_ranking_crud.count_teacher_rows(self.db, TeacherSubmissionRanking, project_id, stage_id, actor_email),
                "comment_count": teacher_ranking_crud.count_teacher_rows(self.db, TeacherCommentRanking, project_id, stage_id, actor_email),
                "created_at": None,
                "deduped": True,
            }

        resolved_submissions = self._validate_submissions(project_id, stage_id, submissions) if submissions else []
        resolved_comments = self._validate_comments(actor_email, project_id, stage_id, comments) if comments else []

        base = {"project_id": project_id, "stage_id": stage_id, "teacher_email": actor_email, "created_at": now_ms}
        written_submissions = teacher_submission_recorder.record(
            self.db, [{"ranking_id": generate_id("tsr"), **base, **row} for row in resolved_submissions]
        )
        written_comments = teacher_comment_recorder.record(
            self.db, [{"ranking_id": generate_id("tcr"), **base, **row} for row in resolved_comments]
        )
        self.db.commit()
        logger.info(
            f"🧑‍🏫 Teacher rankings saved for {actor_email}: "
            f"{written_submissions} submission(s), {written_comments} comment(s)"
        )
        log_project_operation(
            actor_email, project_id, "teacher_rankings_submitted", "stage", stage_id,
            {"submissions": written_submissions, "comments": written_comments},
        )
        return {
            "submission_count": written_submissions,
            "comment_count": written_comments,
            "created_at": now_ms,
            "deduped": False,
        }

    def get_teacher_ranking_versions(self, actor_email: str, project_id: str, stage_id: str, ranking_type: str) -> dict:
        self._require_teacher(project_id, actor_email)
        self._require_stage(project_id, stage_id)
        if ranking_type not in RANKING_TYPES:
            raise InvalidShapeError("INVALID_RANKING_TYPE", f"ranking_type must be one of {', '.join(RANKING_TYPES)}")

        model = teacher_ranking_crud.model_for(ranking_type)
        versions = [
            {"version_id": created_at, "created_at": created_at, "rankings": [_serialize_row(r) for r in rows]}
            for created_at, rows in teacher_ranking_crud.list_teacher_versions(self.db, model, project_id, stage_id, actor_email)
        ]
        return {
            "ranking_type": ranking_type,
            "versions": versions,
            "latest_version": versions[0] if versions else None,
        }

    def get_teacher_vote_history(self, actor_email: str, project_id: str, stage_id: str) -> dict:
        """How often the teacher has ranked each channel in this stage, and how big the latest ranking was."""
        self._require_teacher(project_id, actor_email)
        self._require_stage(project_id, stage_id)
        return {
            ranking_type + "_ranking": teacher_ranking_crud.summarize_versions(
                self.db, teacher_ranking_crud.model_for(ranking_type), project_id, stage_id, actor_email
            )
            for ranking_type in RANKING_TYPES
        }

    def latest_teacher_rankings(self, project_id: str, stage_id: str, ranking_type: str) -> list[dict]:
        model = teacher_ranking_crud.model_for(ranking_type)
        return [_serialize_row(r) for r in teacher_ranking_crud.latest_rankings(self.db, model, project_id, stage_id)]
