import pytest

from peer_ranking.core.config import Settings
from peer_ranking.core.errors import ReadOnlyModeError, is_read_only_error
from peer_ranking.crud.action_log import count_action_logs
from peer_ranking.services.ledger import (
    ActionLedger,
    comment_ranking_key,
    ranking_reset_key,
    ranking_submit_key,
    ranking_vote_key,
    ranking_withdraw_key,
    teacher_ranking_key,
)

from conftest import ALICE, START_MS


def _record(ledger, key, bucket=None):
    return ledger.record_action(key, ALICE, "test_action", {"x": 1}, bucket=bucket, project_id="proj1")


def test_key_formats():
    assert ranking_submit_key("p", "s", "g", ALICE, 7) == f"ranking_submit:p:s:g:{ALICE}:7"
    assert ranking_vote_key("rkp_1", ALICE, 7) == f"ranking_vote:rkp_1:{ALICE}:7"
    assert ranking_withdraw_key("rkp_1", ALICE, 7) == f"ranking_withdraw:rkp_1:{ALICE}:7"
    assert ranking_reset_key("rkp_1", ALICE, 7) == f"ranking_reset:rkp_1:{ALICE}:7"
    assert comment_ranking_key("p", "s", ALICE, 7) == f"comment_ranking:p:s:{ALICE}:7"
    assert teacher_ranking_key("p", "s", ALICE, 7) == f"teacher_ranking:p:s:{ALICE}:7"


def test_first_insert_wins_second_is_duplicate(db, clock):
    ledger = ActionLedger(db, clock)
    first = _record(ledger, "k1")
    db.commit()
    second = _record(ledger, "k1")

    assert first.is_new is True
    assert first.skipped_logging is False
    assert second.is_new is False
    assert count_action_logs(db, "k1") == 1


def test_duplicate_is_scoped_to_the_bucket(db, clock):
    ledger = ActionLedger(db, clock)
    assert _record(ledger, "k1").is_new
    db.commit()

    clock.advance(ms=59_999)
    assert not _record(ledger, "k1").is_new

    clock.advance(ms=1)
    assert _record(ledger, "k1").is_new
    db.commit()
    assert count_action_logs(db, "k1") == 2


def test_current_bucket_uses_configured_window(db, clock):
    assert ActionLedger(db, clock).current_bucket() == START_MS // 60_000
    narrow = ActionLedger(db, clock, Settings(DEDUP_WINDOW_SECONDS=10))
    assert narrow.current_bucket() == START_MS // 10_000


def test_uncommitted_row_disappears_on_rollback(db, clock):
    ledger = ActionLedger(db, clock)
    assert _record(ledger, "k1").is_new
    db.rollback()

    assert count_action_logs(db, "k1") == 0
    assert _record(ledger, "k1").is_new


def test_context_carries_the_dedup_key(db, clock):
    from peer_ranking.models import ActionLog

    _record(ActionLedger(db, clock), "k1")
    db.commit()
    row = db.query(ActionLog).one()
    assert row.context == {"x": 1, "dedup_key": "k1"}
    assert row.created_at == START_MS
    assert row.time_bucket == START_MS // 60_000


def test_read_only_mode_fails_open(db, clock):
    db.info["read_only"] = True
    result = _record(ActionLedger(db, clock), "k1")

    assert result.is_new is True
    assert result.skipped_logging is True
    db.info["read_only"] = False
    assert count_action_logs(db, "k1") == 0


def test_read_only_mode_can_fail_closed(db, clock):
    db.info["read_only"] = True
    ledger = ActionLedger(db, clock, Settings(LEDGER_FAIL_OPEN_IN_READ_ONLY=False))
    with pytest.raises(ReadOnlyModeError):
        _record(ledger, "k1")


def test_read_only_error_recognition():
    assert is_read_only_error(ReadOnlyModeError())
    assert is_read_only_error(Exception("attempt to write a readonly database"))
    assert not is_read_only_error(ValueError("boom"))

    try:
        try:
            raise ReadOnlyModeError()
        except ReadOnlyModeError as inner:
            raise RuntimeError("wrapped") from inner
    except RuntimeError as outer:
        assert is_read_only_error(outer)
