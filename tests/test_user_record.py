import logging

from core.entities.user import UserRecord
from tests.conftest import NOW


def test_string_packs_owned_is_not_split_into_letters(caplog):
    with caplog.at_level(logging.WARNING):
        record = UserRecord.from_doc("u", {"packsOwned": "cinematic_pack"})
    assert record.packs_owned == []
    assert "packsOwned" in caplog.text


def test_packs_owned_list_is_kept():
    record = UserRecord.from_doc("u", {"packsOwned": ["cinematic_pack", "", None, "anime_pack"]})
    assert record.packs_owned == ["cinematic_pack", "anime_pack"]


def test_fractional_credits_are_floored_and_logged(caplog):
    with caplog.at_level(logging.WARNING):
        record = UserRecord.from_doc("u", {"credits": 7.9})
    assert record.credits == 7
    assert "coerced" in caplog.text


def test_whole_float_credits_are_quiet(caplog):
    with caplog.at_level(logging.WARNING):
        assert UserRecord.from_doc("u", {"credits": 7.0}).credits == 7
        assert UserRecord.from_doc("u", {}).credits == 0
    assert caplog.text == ""


def test_garbage_credits_read_as_zero(caplog):
    with caplog.at_level(logging.WARNING):
        assert UserRecord.from_doc("u", {"credits": "lots"}).credits == 0
    assert "Non-numeric" in caplog.text


def test_round_trip_keeps_unchanged_instant_shapes():
    doc = {
        "plan": "pro",
        "planUntil": {"_seconds": (NOW // 1000) + 60, "_nanoseconds": 0},
        "adFreeUntil": "2001-01-01T00:00:00Z",
        "pushToken": "tok",
    }
    out = UserRecord.from_doc("u", doc).to_doc()
    assert out["planUntil"] == doc["planUntil"]
    assert out["adFreeUntil"] == doc["adFreeUntil"]
    assert out["pushToken"] == "tok"


def test_changed_instant_is_written_as_millis():
    record = UserRecord.from_doc("u", {"adFreeUntil": "2001-01-01T00:00:00Z"})
    record.entitlements["adFreeUntil"] = NOW
    assert record.to_doc()["adFreeUntil"] == NOW
