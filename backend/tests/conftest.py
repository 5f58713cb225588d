"""
Shared fixtures for the peer ranking tests.

Every test gets a fresh in-memory SQLite schema, a frozen clock aligned to the
start of a dedup window, a recording notifier and a seeded "world":

    proj1 / stage1 (active)
      g1: alice (leader), bob, carol
      g2: dave (leader), erin
      g3: frank (leader)
      tina: teacher, oscar: observer
      s1 (g1), s2 (g2), s3 (g3) approved; s4 (g2) not approved
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from peer_ranking.core.ids import generate_id
from peer_ranking.models import (
    Base,
    Comment,
    Group,
    GroupMembership,
    Project,
    ProjectViewer,
    Reaction,
    Stage,
    Submission,
)

# 28_333_334 * 60_000: the first millisecond of a dedup bucket
START_MS = 1_700_000_040_000

PROJECT = "proj1"
STAGE = "stage1"

ALICE = "alice@example.com"
BOB = "bob@example.com"
CAROL = "carol@example.com"
DAVE = "dave@example.com"
ERIN = "erin@example.com"
FRANK = "frank@example.com"
TINA = "tina@example.com"
OSCAR = "oscar@example.com"
MALLORY = "mallory@example.com"


class FrozenClock:
    def __init__(self, now_ms: int = START_MS):
        self.now = now_ms

    def now_ms(self) -> int:
        return self.now

    def advance(self, seconds: float = 0, ms: int = 0) -> None:
        self.now += int(seconds * 1000) + ms


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, recipients, kind, title, content, metadata=None):
        self.sent.append({"recipients": list(recipients), "kind": kind, "title": title, "metadata": metadata or {}})

    def kinds(self) -> list[str]:
        return [n["kind"] for n in self.sent]


class Seeder:
    """Inserts the entities the ranking subsystem only reads."""

    def __init__(self, db):
        self.db = db
        self._tick = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def _next_ts(self) -> int:
        self._tick += 1
        return START_MS - 3_600_000 + self._tick

    def project(self, project_id=PROJECT, **kw):
        return self._save(Project(project_id=project_id, name=kw.pop("name", "Project"), created_at=0, **kw))

    def stage(self, stage_id=STAGE, project_id=PROJECT, status="active"):
        return self._save(Stage(stage_id=stage_id, project_id=project_id, name=f"Stage {stage_id}", status=status))

    def group(self, group_id, project_id=PROJECT):
        return self._save(Group(group_id=group_id, project_id=project_id, name=group_id.upper()))

    def member(self, email, group_id, role="member", project_id=PROJECT, is_active=True):
        return self._save(GroupMembership(project_id=project_id, group_id=group_id, user_email=email, role=role, is_active=is_active))

    def viewer(self, email, role="teacher", project_id=PROJECT):
        return self._save(ProjectViewer(project_id=project_id, user_email=email, role=role, is_active=True))

    def submission(self, submission_id, group_id, status="approved", stage_id=STAGE, project_id=PROJECT):
        return self._save(Submission(
            submission_id=submission_id,
            project_id=project_id,
            stage_id=stage_id,
            group_id=group_id,
            status=status,
            submitted_at=self._next_ts(),
        ))

    def comment(
        self,
        comment_id,
        author,
        mentioned_groups=None,
        mentioned_users=None,
        is_reply=False,
        stage_id=STAGE,
        project_id=PROJECT,
    ):
        return self._save(Comment(
            comment_id=comment_id,
            project_id=project_id,
            stage_id=stage_id,
            author_email=author,
            content=f"comment {comment_id}",
            is_reply=is_reply,
            reply_level=1 if is_reply else 0,
            mentioned_groups=mentioned_groups,
            mentioned_users=mentioned_users,
            created_at=self._next_ts(),
        ))

    def reaction(self, comment_id, user, reaction_type="helpful", project_id=PROJECT):
        return self._save(Reaction(
            reaction_id=generate_id("rxn"),
            project_id=project_id,
            target_type="comment",
            target_id=comment_id,
            user_email=user,
            reaction_type=reaction_type,
            created_at=self._next_ts(),
        ))


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def world(seed):
    seed.project(max_comment_selections=3, max_vote_reset_count=1)
    seed.stage()
    for group_id in ("g1", "g2", "g3"):
        seed.group(group_id)
    seed.member(ALICE, "g1", role="leader")
    seed.member(BOB, "g1")
    seed.member(CAROL, "g1")
    seed.member(DAVE, "g2", role="leader")
    seed.member(ERIN, "g2")
    seed.member(FRANK, "g3", role="leader")
    seed.viewer(TINA, role="teacher")
    seed.viewer(OSCAR, role="observer")
    seed.submission("s1", "g1")
    seed.submission("s2", "g2")
    seed.submission("s3", "g3")
    seed.submission("s4", "g2", status="submitted")
    return seed


@pytest.fixture
def commented_world(world):
    """
    Top-level comments in stage1 with mentions and a helpful reaction each,
    plus the edge cases the eligibility rules reject.
    """
    world.comment("c_alice", ALICE, mentioned_groups=["g2"])
    world.comment("c_dave", DAVE, mentioned_groups=["g1"])
    world.comment("c_dave2", DAVE, mentioned_users=[FRANK])
    world.comment("c_erin", ERIN, mentioned_users=[ALICE])
    world.comment("c_frank", FRANK, mentioned_groups=["g1", "g2"])
    world.comment("c_reply", ERIN, mentioned_groups=["g1"], is_reply=True)
    world.comment("c_plain", CAROL)
    world.comment("c_unloved", FRANK, mentioned_groups=["g2"])
    world.comment("c_tina", TINA, mentioned_groups=["g1"])
    for comment_id, reactor in [
        ("c_alice", BOB),
        ("c_dave", BOB),
        ("c_dave2", CAROL),
        ("c_erin", BOB),
        ("c_frank", CAROL),
        ("c_reply", BOB),
        ("c_tina", ALICE),
    ]:
        world.reaction(comment_id, reactor)
    return world
