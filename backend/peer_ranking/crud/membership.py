# crud/membership.py
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from peer_ranking.models import Group, GroupMembership, Project, ProjectViewer, Stage


def get_project(db: Session, project_id: str) -> Project | None:
    return db.get(Project, project_id)


def get_stage(db: Session, project_id: str, stage_id: str) -> Stage | None:
    return db.scalar(select(Stage).where(Stage.stage_id == stage_id, Stage.project_id == project_id))


def get_active_membership(db: Session, project_id: str, user_email: str) -> GroupMembership | None:
    """A user belongs to at most one active group per project."""
    return db.scalar(
        select(GroupMembership)
        .where(
            GroupMembership.project_id == project_id,
            GroupMembership.user_email == user_email,
            GroupMembership.is_active.is_(True),
        )
        .order_by(GroupMembership.id)
        .limit(1)
    )


def list_group_member_emails(db: Session, project_id: str, group_id: str) -> list[str]:
    return list(db.scalars(
        select(GroupMembership.user_email)
        .where(
            GroupMembership.project_id == project_id,
            GroupMembership.group_id == group_id,
            GroupMembership.is_active.is_(True),
        )
        .order_by(GroupMembership.user_email)
    ).all())


def count_group_members(db: Session, project_id: str, group_id: str) -> int:
    return db.scalar(
        select(func.count(GroupMembership.id)).where(
            GroupMembership.project_id == project_id,
            GroupMembership.group_id == group_id,
            GroupMembership.is_active.is_(True),
        )
    ) or 0


def is_project_participant(db: Session, project_id: str, user_email: str) -> bool:
    """Active group leader or member of the project."""
    count = db.scalar(
        select(func.count(GroupMembership.id)).where(
            GroupMembership.project_id == project_id,
            GroupMembership.user_email == user_email,
            GroupMembership.role.in_(("leader", "member")),
            GroupMembership.is_active.is_(True),
        )
    )
    return (count or 0) > 0


def get_viewer_role(db: Session, project_id: str, user_email: str) -> str | None:
    return db.scalar(
        select(ProjectViewer.role).where(
            ProjectViewer.project_id == project_id,
            ProjectViewer.user_email == user_email,
            ProjectViewer.is_active.is_(True),
        )
    )


def count_active_groups(db: Session, project_id: str) -> int:
    """Groups with at least one active member."""
    return db.scalar(
        select(func.count(GroupMembership.group_id.distinct())).where(
            GroupMembership.project_id == project_id,
            GroupMembership.is_active.is_(True),
        )
    ) or 0


def count_active_members(db: Session, project_id: str) -> int:
    return db.scalar(
        select(func.count(GroupMembership.user_email.distinct())).where(
            GroupMembership.project_id == project_id,
            GroupMembership.is_active.is_(True),
        )
    ) or 0


def get_group_names(db: Session, project_id: str) -> dict[str, str]:
    rows = db.execute(select(Group.group_id, Group.name).where(Group.project_id == project_id)).all()
    return {group_id: name for group_id, name in rows}
