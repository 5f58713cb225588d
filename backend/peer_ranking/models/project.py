# File: peer_ranking/models/project.py
# Projects, stages and viewers are managed elsewhere; only the columns the
# ranking subsystem reads are mapped here.
from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from peer_ranking.models.base import Base

STAGE_STATUSES = ("pending", "active", "voting", "completed", "archived")
VIEWER_ROLES = ("teacher", "observer")


class Project(Base):
    __tablename__ = "projects"

    project_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    max_comment_selections: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_vote_reset_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Stage(Base):
    __tablename__ = "stages"

    stage_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    stage_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ProjectViewer(Base):
    __tablename__ = "project_viewers"
    __table_args__ = (UniqueConstraint("project_id", "user_email", name="uq_project_viewers_project_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
