import pytest

from peer_ranking.core.errors import InvalidShapeError, NotEligibleError, NotFoundError, StateConflictError
from peer_ranking.crud import proposal as proposal_crud
from peer_ranking.crud.action_log import count_action_logs
from peer_ranking.models import ProposalVote, RankingProposal, Stage
from peer_ranking.services.ledger import ranking_submit_key
from peer_ranking.services.proposals import ProposalService

from conftest import ALICE, BOB, CAROL, DAVE, ERIN, FRANK, MALLORY, OSCAR, PROJECT, STAGE, START_MS, TINA

RANKING = [
    {"submission_id": "s2", "rank": 1},
    {"submission_id": "s3", "rank": 2},
    {"submission_id": "s1", "rank": 3},
]
BUCKET = START_MS // 60_000


@pytest.fixture
def service(db, clock, notifier, world):
    return ProposalService(db, clock=clock, notifier=notifier)


@pytest.fixture
def proposal_id(service):
    return service.submit_proposal(ALICE, PROJECT, STAGE, RANKING)["proposal"]["proposal_id"]


def _counts(tally):
    return tally["agree"], tally["disagree"], tally["total"]


# ---------- Submit ----------

def test_submit_creates_pending_proposal(service, notifier):
    result = service.submit_proposal(ALICE, PROJECT, STAGE, RANKING)

    proposal = result["proposal"]
    assert result["deduped"] is False
    assert proposal["status"] == "pending"
    assert proposal["group_id"] == "g1"
    assert proposal["ranking_data"] == RANKING
    assert proposal["tally"]["total_members"] == 3
    assert notifier.sent[0]["kind"] == "ranking_proposal_submitted"
    assert sorted(notifier.sent[0]["recipients"]) == [BOB, CAROL]


def test_submit_retry_in_same_bucket_is_idempotent(service, db, clock):
    first = service.submit_proposal(ALICE, PROJECT, STAGE, RANKING)
    clock.advance(seconds=30)
    second = service.submit_proposal(ALICE, PROJECT, STAGE, RANKING)

    assert second["deduped"] is True
    assert second["proposal"]["proposal_id"] == first["proposal"]["proposal_id"]
    assert db.query(RankingProposal).count() == 1


def test_other_member_is_blocked_by_pending_proposal_without_ledger_row(service, db, proposal_id):
    with pytest.raises(StateConflictError) as exc:
        service.submit_proposal(BOB, PROJECT, STAGE, RANKING)

    assert exc.value.code == "PROPOSAL_EXISTS"
    assert count_action_logs(db, ranking_submit_key(PROJECT, STAGE, "g1", BOB, BUCKET)) == 0


def test_rejected_payload_does_not_block_a_corrected_retry(service, db):
    bad = [{"submission_id": "s2", "rank": 1}, {"submission_id": "s3", "rank": 1}]
    with pytest.raises(InvalidShapeError) as exc:
        service.submit_proposal(ALICE, PROJECT, STAGE, bad)
    assert exc.value.code == "DUPLICATE_RANK"
    assert count_action_logs(db, ranking_submit_key(PROJECT, STAGE, "g1", ALICE, BUCKET)) == 0

    result = service.submit_proposal(ALICE, PROJECT, STAGE, RANKING)
    assert result["deduped"] is False


@pytest.mark.parametrize(
    "ranking, code",
    [
        ([{"submission_id": "s4", "rank": 1}], "SUBMISSION_NOT_APPROVED"),
        ([{"submission_id": "nope", "rank": 1}], "SUBMISSION_NOT_FOUND"),
    ],
)
def test_submit_rejects_ineligible_targets(service, db, ranking, code):
    with pytest.raises(NotEligibleError) as exc:
        service.submit_proposal(ALICE, PROJECT, STAGE, ranking)
    assert exc.value.code == code
    assert db.query(RankingProposal).count() == 0


def test_submit_requires_group_membership(service):
    for outsider in (TINA, MALLORY):
        with pytest.raises(NotEligibleError) as exc:
            service.submit_proposal(outsider, PROJECT, STAGE, RANKING)
        assert exc.value.code == "NOT_GROUP_MEMBER"


def test_submit_requires_open_stage(service, db, world):
    with pytest.raises(NotFoundError) as exc:
        service.submit_proposal(ALICE, PROJECT, "missing", RANKING)
    assert exc.value.code == "STAGE_NOT_FOUND"

    world.stage("stage_done", status="completed")
    with pytest.raises(StateConflictError) as exc:
        service.submit_proposal(ALICE, PROJECT, "stage_done", RANKING)
    assert exc.value.code == "STAGE_NOT_ACTIVE"


def test_voting_stage_accepts_proposals(service, world):
    world.stage("stage_vote", status="voting")
    world.submission("s9", "g2", stage_id="stage_vote")
    result = service.submit_proposal(ALICE, PROJECT, "stage_vote", [{"submission_id": "s9", "rank": 1}])
    assert result["proposal"]["stage_id"] == "stage_vote"


def test_pending_index_refuses_a_second_pending_proposal(service, db, monkeypatch, proposal_id):
    # BOB's pending check ran before ALICE's proposal was committed
    monkeypatch.setattr(proposal_crud, "get_pending_proposal", lambda *args, **kwargs: None)

    with pytest.raises(StateConflictError) as exc:
        service.submit_proposal(BOB, PROJECT, STAGE, RANKING)
    assert exc.value.code == "PROPOSAL_EXISTS"

    pending = db.query(RankingProposal).filter(
        RankingProposal.group_id == "g1",
        RankingProposal.settled_at.is_(None),
        RankingProposal.withdrawn_at.is_(None),
        RankingProposal.reset_at.is_(None),
    ).all()
    assert [p.proposal_id for p in pending] == [proposal_id]
    assert count_action_logs(db, ranking_submit_key(PROJECT, STAGE, "g1", BOB, BUCKET)) == 0


def test_pending_index_allows_other_groups(service, monkeypatch, proposal_id):
    monkeypatch.setattr(proposal_crud, "get_pending_proposal", lambda *args, **kwargs: None)
    other = service.submit_proposal(DAVE, PROJECT, STAGE, RANKING)
    assert other["proposal"]["group_id"] == "g2"


# ---------- Vote ----------

def test_vote_overwrite_and_dedup_scenario(service, db, clock, proposal_id):
    service.vote_on_proposal(ALICE, PROJECT, proposal_id, True)
    service.vote_on_proposal(BOB, PROJECT, proposal_id, True)
    result = service.vote_on_proposal(CAROL, PROJECT, proposal_id, False)

    assert _counts(result["tally"]) == (2, 1, 3)
    assert result["tally"]["total_members"] == 3
    assert result["tally"]["net_score"] == 1
    assert result["tally"]["voting_result"] == "agree"

    clock.advance(seconds=61)
    changed = service.vote_on_proposal(BOB, PROJECT, proposal_id, False)
    assert changed["is_update"] is True
    assert _counts(changed["tally"]) == (1, 2, 3)
    assert changed["tally"]["net_score"] == -1

    # a retried copy of the same request inside the bucket changes nothing
    retry = service.vote_on_proposal(BOB, PROJECT, proposal_id, False)
    assert retry["deduped"] is True
    assert _counts(retry["tally"]) == (1, 2, 3)

    assert db.query(ProposalVote).filter_by(proposal_id=proposal_id).count() == 3
    # recording votes never settles or rejects
    assert service.get_proposal_tally(PROJECT, proposal_id)["status"] == "pending"


def test_proposer_may_vote_on_own_proposal(service, proposal_id):
    result = service.vote_on_proposal(ALICE, PROJECT, proposal_id, True, comment="mine")
    assert result["is_update"] is False
    assert result["tally"]["agree"] == 1


def test_vote_notifies_proposer(service, notifier, proposal_id):
    service.vote_on_proposal(BOB, PROJECT, proposal_id, True)
    assert notifier.sent[-1]["kind"] == "ranking_proposal_voted"
    assert notifier.sent[-1]["recipients"] == [ALICE]


@pytest.mark.parametrize("voter, code", [(DAVE, "NOT_SAME_GROUP"), (TINA, "NOT_GROUP_MEMBER"), (MALLORY, "NOT_GROUP_MEMBER")])
def test_vote_requires_same_group(service, proposal_id, voter, code):
    with pytest.raises(NotEligibleError) as exc:
        service.vote_on_proposal(voter, PROJECT, proposal_id, True)
    assert exc.value.code == code


def test_vote_on_unknown_or_foreign_proposal(service, proposal_id):
    with pytest.raises(NotFoundError):
        service.vote_on_proposal(ALICE, PROJECT, "rkp_missing", True)
    with pytest.raises(NotFoundError):
        service.vote_on_proposal(ALICE, "other_project", proposal_id, True)


def _settle(db, proposal_id):
    db.get(RankingProposal, proposal_id).settled_at = START_MS + 1
    db.commit()


def test_settled_proposal_is_terminal(service, db, proposal_id):
    service.vote_on_proposal(ALICE, PROJECT, proposal_id, True)
    _settle(db, proposal_id)

    with pytest.raises(StateConflictError) as exc:
        service.vote_on_proposal(BOB, PROJECT, proposal_id, True)
    assert exc.value.code == "PROPOSAL_SETTLED"
    votes = db.query(ProposalVote).filter_by(proposal_id=proposal_id).all()
    assert [v.voter_email for v in votes] == [ALICE]
    assert db.get(RankingProposal, proposal_id).status == "settled"

    with pytest.raises(StateConflictError) as exc:
        service.submit_proposal(BOB, PROJECT, STAGE, RANKING)
    assert exc.value.code == "SETTLED_PROPOSAL_EXISTS"

    with pytest.raises(StateConflictError) as exc:
        service.withdraw_proposal(BOB, PROJECT, proposal_id)
    assert exc.value.code == "CANNOT_WITHDRAW_SETTLED"


# ---------- Withdraw ----------

def test_withdraw_then_resubmit(service, db, clock, proposal_id):
    result = service.withdraw_proposal(BOB, PROJECT, proposal_id)
    assert result["deduped"] is False
    assert result["proposal"]["status"] == "withdrawn"
    assert result["proposal"]["withdrawn_by"] == BOB

    again = service.withdraw_proposal(BOB, PROJECT, proposal_id)
    assert again["deduped"] is True

    with pytest.raises(StateConflictError) as exc:
        service.vote_on_proposal(CAROL, PROJECT, proposal_id, True)
    assert exc.value.code == "PROPOSAL_WITHDRAWN"

    clock.advance(seconds=61)
    with pytest.raises(StateConflictError) as exc:
        service.withdraw_proposal(BOB, PROJECT, proposal_id)
    assert exc.value.code == "ALREADY_WITHDRAWN"

    # withdrawn proposals do not block a new submission
    fresh = service.submit_proposal(CAROL, PROJECT, STAGE, RANKING)
    assert fresh["proposal"]["proposal_id"] != proposal_id


def test_withdraw_requires_same_group(service, proposal_id):
    with pytest.raises(NotEligibleError) as exc:
        service.withdraw_proposal(DAVE, PROJECT, proposal_id)
    assert exc.value.code == "NOT_SAME_GROUP"


# ---------- Reset ----------

def _vote_round(service, proposal_id, alice, bob, carol):
    service.vote_on_proposal(ALICE, PROJECT, proposal_id, alice)
    service.vote_on_proposal(BOB, PROJECT, proposal_id, bob)
    service.vote_on_proposal(CAROL, PROJECT, proposal_id, carol)


def test_leader_resets_a_failed_round(service, db, notifier, proposal_id):
    _vote_round(service, proposal_id, True, False, False)

    with pytest.raises(NotEligibleError) as exc:
        service.reset_votes(BOB, PROJECT, proposal_id)
    assert exc.value.code == "NOT_GROUP_LEADER"

    result = service.reset_votes(ALICE, PROJECT, proposal_id, reason="split vote")
    new = result["new_proposal"]

    assert result["deduped"] is False
    assert result["vote_summary"]["disagree"] == 2
    assert new["status"] == "pending"
    assert new["proposer_email"] == ALICE
    assert new["ranking_data"] == RANKING
    assert new["tally"]["total"] == 0
    assert service.get_proposal_tally(PROJECT, proposal_id)["status"] == "reset"
    # old votes are kept
    assert db.query(ProposalVote).filter_by(proposal_id=proposal_id).count() == 3
    assert notifier.kinds()[-1] == "ranking_proposal_reset"
    assert sorted(notifier.sent[-1]["recipients"]) == [ALICE, BOB, CAROL]


def test_reset_proposal_still_takes_votes(service, db, clock, proposal_id):
    _vote_round(service, proposal_id, True, False, False)
    service.reset_votes(ALICE, PROJECT, proposal_id)

    clock.advance(seconds=61)
    result = service.vote_on_proposal(BOB, PROJECT, proposal_id, True)

    assert result["is_update"] is True
    assert _counts(result["tally"]) == (2, 1, 3)
    assert result["tally"]["status"] == "reset"
    assert service.get_proposal_tally(PROJECT, proposal_id)["net_score"] == 1


def test_reset_retry_returns_the_new_proposal(service, proposal_id):
    _vote_round(service, proposal_id, False, False, True)
    first = service.reset_votes(ALICE, PROJECT, proposal_id)
    retry = service.reset_votes(ALICE, PROJECT, proposal_id)

    assert retry["deduped"] is True
    assert retry["new_proposal"]["proposal_id"] == first["new_proposal"]["proposal_id"]


def test_reset_limit(service, clock, proposal_id):
    _vote_round(service, proposal_id, True, False, False)
    new_id = service.reset_votes(ALICE, PROJECT, proposal_id)["new_proposal"]["proposal_id"]

    clock.advance(seconds=61)
    _vote_round(service, new_id, True, False, False)
    with pytest.raises(StateConflictError) as exc:
        service.reset_votes(ALICE, PROJECT, new_id)
    assert exc.value.code == "RESET_LIMIT_EXCEEDED"


@pytest.mark.parametrize(
    "votes, code",
    [
        ((True, False), "NOT_ALL_VOTED"),
        ((True, True, False), "PROPOSAL_PASSED"),
    ],
)
def test_reset_preconditions(service, proposal_id, votes, code):
    for voter, agree in zip((ALICE, BOB, CAROL), votes):
        service.vote_on_proposal(voter, PROJECT, proposal_id, agree)
    with pytest.raises(StateConflictError) as exc:
        service.reset_votes(ALICE, PROJECT, proposal_id)
    assert exc.value.code == code


def test_tie_can_be_reset(service, db, world):
    world.member("zed@example.com", "g3")
    proposal = service.submit_proposal(FRANK, PROJECT, STAGE, RANKING)["proposal"]
    service.vote_on_proposal(FRANK, PROJECT, proposal["proposal_id"], True)
    service.vote_on_proposal("zed@example.com", PROJECT, proposal["proposal_id"], False)

    result = service.reset_votes(FRANK, PROJECT, proposal["proposal_id"])
    assert result["vote_summary"]["voting_result"] == "tie"


# ---------- Reads ----------

def test_list_stage_proposals_by_role(service, clock, proposal_id):
    service.submit_proposal(DAVE, PROJECT, STAGE, [{"submission_id": "s1", "rank": 1}])
    _vote_round(service, proposal_id, True, False, False)
    service.reset_votes(ALICE, PROJECT, proposal_id)

    teacher_view = service.list_stage_proposals(TINA, PROJECT, STAGE)
    student_view = service.list_stage_proposals(BOB, PROJECT, STAGE)

    assert {p["group_id"] for p in teacher_view} == {"g1", "g2"}
    assert [p["group_id"] for p in student_view] == ["g1", "g1"]
    assert [p["version"] for p in student_view] == [1, 2]
    assert [p["status"] for p in student_view] == ["reset", "pending"]
    assert service.list_stage_proposals(MALLORY, PROJECT, STAGE) == []


def test_tally_reads_from_rows(service, db, proposal_id):
    service.vote_on_proposal(BOB, PROJECT, proposal_id, False)
    tally = service.get_proposal_tally(PROJECT, proposal_id)
    assert tally == {
        "agree": 0,
        "disagree": 1,
        "total": 1,
        "total_members": 3,
        "net_score": -1,
        "voting_result": "disagree",
        "status": "pending",
        "proposal_id": proposal_id,
    }


def test_failing_notifier_does_not_fail_the_action(db, clock, world):
    class Broken:
        def notify(self, *args, **kwargs):
            raise RuntimeError("smtp down")

    service = ProposalService(db, clock=clock, notifier=Broken())
    result = service.submit_proposal(ALICE, PROJECT, STAGE, RANKING)
    assert result["proposal"]["status"] == "pending"
    assert db.query(RankingProposal).count() == 1


def test_stage_voting_status_for_each_viewer(service, clock, proposal_id):
    dave_proposal = service.submit_proposal(DAVE, PROJECT, STAGE, [{"submission_id": "s1", "rank": 1}])["proposal"]
    service.vote_on_proposal(BOB, PROJECT, proposal_id, False)
    service.vote_on_proposal(CAROL, PROJECT, proposal_id, False)
    service.vote_on_proposal(ERIN, PROJECT, dave_proposal["proposal_id"], True)
    service.withdraw_proposal(ERIN, PROJECT, dave_proposal["proposal_id"])

    status = service.get_stage_voting_status(BOB, PROJECT, STAGE)

    assert status["stage"] == {"stage_id": STAGE, "name": "Stage stage1", "status": "active"}
    assert status["statistics"] == {"total_groups": 3, "total_members": 6, "total_proposals": 1}
    assert status["user_status"]["can_vote"] is True
    assert status["user_status"]["group_id"] == "g1"
    assert status["user_status"]["current_proposal_id"] == proposal_id
    assert status["user_status"]["has_voted"] is True

    by_group = {p["group_id"]: p for p in status["proposals"]}
    assert by_group["g1"]["votes"] == {"agree": 0, "disagree": 2, "total": 2}
    assert by_group["g1"]["voting_result"] == "disagree"
    assert by_group["g1"]["group_name"] == "G1"
    assert by_group["g2"]["status"] == "withdrawn"
    assert by_group["g2"]["votes"]["agree"] == 1

    assert service.get_stage_voting_status(ALICE, PROJECT, STAGE)["user_status"]["has_voted"] is False

    teacher = service.get_stage_voting_status(TINA, PROJECT, STAGE)["user_status"]
    assert (teacher["is_teacher"], teacher["can_vote"], teacher["has_voted"]) == (True, False, False)
    observer = service.get_stage_voting_status(OSCAR, PROJECT, STAGE)
    assert observer["user_status"]["is_observer"] is True
    assert len(observer["proposals"]) == 2


def test_stage_voting_status_lists_newest_first(service, clock, proposal_id):
    _vote_round(service, proposal_id, True, False, False)
    clock.advance(seconds=5)
    new_id = service.reset_votes(ALICE, PROJECT, proposal_id)["new_proposal"]["proposal_id"]

    proposals = service.get_stage_voting_status(TINA, PROJECT, STAGE)["proposals"]
    assert [p["proposal_id"] for p in proposals] == [new_id, proposal_id]
    assert [p["status"] for p in proposals] == ["pending", "reset"]


def test_stage_voting_status_access(service):
    with pytest.raises(NotEligibleError) as exc:
        service.get_stage_voting_status(MALLORY, PROJECT, STAGE)
    assert exc.value.code == "NO_ACCESS"

    with pytest.raises(NotFoundError) as exc:
        service.get_stage_voting_status(BOB, PROJECT, "missing")
    assert exc.value.code == "STAGE_NOT_FOUND"
