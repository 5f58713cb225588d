# services/comment_ranking.py
import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peer_ranking.core.clock import Clock, system_clock
from peer_ranking.core.config import Settings, settings as default_settings
from peer_ranking.core.database import rollback_on_error
from peer_ranking.core.errors import InvalidShapeError, NotEligibleError, NotFoundError, StateConflictError
from peer_ranking.core.ids import generate_id
from peer_ranking.crud import comment_ranking as comment_ranking_crud
from peer_ranking.crud import membership as membership_crud
from peer_ranking.crud import target as target_crud
from peer_ranking.crud import teacher_ranking as teacher_ranking_crud
from peer_ranking.crud.recorders import comment_ranking_recorder
from peer_ranking.models import CommentRankingProposal, TeacherCommentRanking
from peer_ranking.services.eligibility import (
    EligibilityChecker,
    check_comment_voting_eligibility,
    distinct_authors_decision,
    validate_comment_ranking,
)
from peer_ranking.services.ledger import ActionLedger, comment_ranking_key, log_project_operation

logger = logging.getLogger("uvicorn")


def max_comment_selections(db: Session, project_id: str, settings: Settings = default_settings) -> int:
    project = membership_crud.get_project(db, project_id)
    if project is not None and project.max_comment_selections is not None:
        return project.max_comment_selections
    return settings.DEFAULT_MAX_COMMENT_SELECTIONS


def serialize_comment_ranking(row: CommentRankingProposal) -> dict:
    return {
        "proposal_id": row.proposal_id,
        "project_id": row.project_id,
        "stage_id": row.stage_id,
        "author_email": row.author_email,
        "ranking_data": row.ranking_data,
        "version": row.version,
        "created_at": row.created_at,
    }


def _as_dict(item: Any) -> dict:
    return dict(item) if isinstance(item, dict) else item.model_dump()


class CommentRankingService:
    """Student comment rankings: append-only, one new version per submission."""

    def __init__(self, db: Session, clock: Clock = system_clock, settings: Settings = default_settings):
        self.db = db
        self.clock = clock
        self.settings = settings
        self.ledger = ActionLedger(db, clock, settings)
        self.checker = EligibilityChecker(db, settings.MIN_HELPFUL_REACTIONS)

    def _require_stage(self, project_id: str, stage_id: str):
        stage = membership_crud.get_stage(self.db, project_id, stage_id)
        if stage is None:
            raise NotFoundError("STAGE_NOT_FOUND", "Stage not found in this project")
        return stage

    @rollback_on_error
    def submit_comment_ranking(self, actor_email: str, project_id: str, stage_id: str, items: list) -> dict:
        self._require_stage(project_id, stage_id)
        if not membership_crud.is_project_participant(self.db, project_id, actor_email):
            raise NotEligibleError("NOT_GROUP_MEMBER", "Only active group members can rank comments")

        eligibility = check_comment_voting_eligibility(self.db, project_id, stage_id, actor_email)
        if not eligibility["can_vote"]:
            raise NotEligibleError(eligibility["code"], eligibility["reason"])

        items = [_as_dict(item) for item in items or []]
        now_ms = self.clock.now_ms()
        bucket = self.ledger.current_bucket(now_ms)
        result = self.ledger.record_action(
            comment_ranking_key(project_id, stage_id, actor_email, bucket),
            actor_email,
            "comment_ranking_submit",
            {"stage_id": stage_id, "items": len(items)},
            bucket=bucket,
            project_id=project_id,
            entity_type="comment_ranking",
            message=f"{actor_email} submitted comment ranking for stage {stage_id}",
            related_entities={"stage": stage_id},
        )
        if not result.is_new:
            latest = comment_ranking_crud.get_latest_comment_ranking(self.db, project_id, stage_id, actor_email)
            return {"ranking": serialize_comment_ranking(latest) if latest else None, "deduped": True}

        limit = max_comment_selections(self.db, project_id, self.settings)
        shape = validate_comment_ranking(items, limit)
        if not shape:
            raise InvalidShapeError(shape.code, shape.reason)

        authors = []
        for item in items:
            decision, comment = self.checker.check_comment(
                project_id, item["comment_id"], stage_id=stage_id, exclude_author_email=actor_email
            )
            if not decision:
                raise NotEligibleError(decision.code, decision.reason)
            authors.append(comment.author_email)

        distinct = distinct_authors_decision(authors)
        if not distinct:
            raise InvalidShapeError(distinct.code, distinct.reason)

        proposal_id = generate_id("crp")
        version = comment_ranking_crud.next_version(self.db, project_id, stage_id, actor_email)
        try:
            comment_ranking_recorder.record(self.db, [{
                "proposal_id": proposal_id,
                "project_id": project_id,
                "stage_id": stage_id,
                "author_email": actor_email,
                "ranking_data": [{"comment_id": i["comment_id"], "rank": i["rank"]} for i in items],
                "version": version,
                "created_at": now_ms,
            }])
        except IntegrityError as exc:
            raise StateConflictError(
                "RANKING_VERSION_CONFLICT", "Another comment ranking was saved at the same time, please retry"
            ) from exc
        self.db.commit()
        logger.info(f"💬 Comment ranking v{version} saved for {actor_email} in stage {stage_id}")
        log_project_operation(actor_email, project_id, "comment_ranking_submitted", "comment_ranking", proposal_id, {"version": version})

        latest = comment_ranking_crud.get_latest_comment_ranking(self.db, project_id, stage_id, actor_email)
        return {"ranking": serialize_comment_ranking(latest), "deduped": False}

    def get_comment_ranking_history(self, actor_email: str, project_id: str, stage_id: str) -> list[dict]:
        self._require_stage(project_id, stage_id)
        rows = comment_ranking_crud.list_comment_ranking_history(self.db, project_id, stage_id, actor_email)
        return [serialize_comment_ranking(row) for row in rows]

    def get_stage_comment_rankings(self, actor_email: str, project_id: str, stage_id: str) -> dict:
        """Per top-level comment: the actor's latest rank and the teachers' averaged rank."""
        self._require_stage(project_id, stage_id)

        latest = comment_ranking_crud.get_latest_comment_ranking(self.db, project_id, stage_id, actor_email)
        user_ranks = {item["comment_id"]: item["rank"] for item in (latest.ranking_data if latest else [])}

        teacher_ranks: dict[str, list[int]] = {}
        for row in teacher_ranking_crud.latest_rankings(self.db, TeacherCommentRanking, project_id, stage_id):
            teacher_ranks.setdefault(row.comment_id, []).append(row.rank)

        comments = []
        for comment in target_crud.list_top_level_comments(self.db, project_id, stage_id):
            ranks: Optional[list[int]] = teacher_ranks.get(comment.comment_id)
            comments.append({
                "comment_id": comment.comment_id,
                "author_email": comment.author_email,
                "user_rank": user_ranks.get(comment.comment_id),
                "teacher_rank": round(sum(ranks) / len(ranks)) if ranks else None,
            })

        return {
            "stage_id": stage_id,
            "max_selections": max_comment_selections(self.db, project_id, self.settings),
            "latest_version": latest.version if latest else None,
            "comments": comments,
        }
