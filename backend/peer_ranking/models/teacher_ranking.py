# File: peer_ranking/models/teacher_ranking.py
# Teacher rankings are appended per submission event; rows written by one
# event share created_at, which doubles as the version identifier.
from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from peer_ranking.models.base import Base


class TeacherSubmissionRanking(Base):
    __tablename__ = "teacher_submission_rankings"
    __table_args__ = (
        Index("idx_teacher_sub_rankings_scope", "project_id", "stage_id", "teacher_email", "created_at"),
    )

    ranking_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    stage_id: Mapped[str] = mapped_column(ForeignKey("stages.stage_id", ondelete="CASCADE"), nullable=False)
    submission_id: Mapped[str] = mapped_column(String(64), nullable=False)
    group_id: Mapped[str] = mapped_column(String(64), nullable=False)
    teacher_email: Mapped[str] = mapped_column(String(255), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class TeacherCommentRanking(Base):
    __tablename__ = "teacher_comment_rankings"
    __table_args__ = (
        Index("idx_teacher_cmt_rankings_scope", "project_id", "stage_id", "teacher_email", "created_at"),
    )

    ranking_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    stage_id: Mapped[str] = mapped_column(ForeignKey("stages.stage_id", ondelete="CASCADE"), nullable=False)
    comment_id: Mapped[str] = mapped_column(String(64), nullable=False)
    author_email: Mapped[str] = mapped_column(String(255), nullable=False)
    teacher_email: Mapped[str] = mapped_column(String(255), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
