# crud/recorders.py
"""
Two write paths for ranking actions:

* ``OverwriteRecorder`` keeps one live row per conflict key and replaces it in a
  single INSERT ... ON CONFLICT DO UPDATE statement (peer proposal votes).
* ``AppendOnlyRecorder`` inserts every submission event as new rows and never
  touches earlier ones (teacher rankings, student comment rankings).
"""
from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from sqlalchemy.orm import Session

from peer_ranking.models import (
    CommentRankingProposal,
    ProposalVote,
    TeacherCommentRanking,
    TeacherSubmissionRanking,
)


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert is not supported on dialect '{dialect}'")
    return insert


class RankingRecorder(ABC):
    def __init__(self, model):
        self.model = model

    @abstractmethod
    def record(self, db: Session, rows: Sequence[dict]) -> int:
        """Write ``rows`` inside the caller's transaction; returns rows written."""


class OverwriteRecorder(RankingRecorder):
    def __init__(self, model, conflict_columns: Iterable[str], update_columns: Iterable[str]):
        super().__init__(model)
        self.conflict_columns = tuple(conflict_columns)
        self.update_columns = tuple(update_columns)

    def _upsert(self, db: Session, rows: Sequence[dict]):
        insert = _dialect_insert(db)
        stmt = insert(self.model).values(list(rows))
        return stmt.on_conflict_do_update(
            index_elements=list(self.conflict_columns),
            set_={column: stmt.excluded[column] for column in self.update_columns},
        )

    def record(self, db: Session, rows: Sequence[dict]) -> int:
        if not rows:
            return 0
        db.execute(self._upsert(db, rows))
        return len(rows)

    def record_one(self, db: Session, row: dict, returning):
        """Upsert a single row and return ``returning`` as stored once the statement ran."""
        return db.execute(self._upsert(db, [row]).returning(returning)).scalar_one()


class AppendOnlyRecorder(RankingRecorder):
    def record(self, db: Session, rows: Sequence[dict]) -> int:
        if not rows:
            return 0
        db.add_all([self.model(**row) for row in rows])
        db.flush()
        return len(rows)


proposal_vote_recorder = OverwriteRecorder(
    ProposalVote,
    conflict_columns=("proposal_id", "voter_email"),
    update_columns=("agree", "comment", "voted_at"),
)
teacher_submission_recorder = AppendOnlyRecorder(TeacherSubmissionRanking)
teacher_comment_recorder = AppendOnlyRecorder(TeacherCommentRanking)
comment_ranking_recorder = AppendOnlyRecorder(CommentRankingProposal)
