"""Tests for actions that read a status another request has since changed.

Each test snapshots the event before a competing action commits, then
replays an action against that snapshot. The conditional write affects
zero rows and must surface as a Conflict carrying the current status.
"""

import pytest

from discrecovery.recovery.participants import Participants, load_participants

from conftest import FINDER, OWNER, drop_off_location, drop_off_photo, proposal_request


@pytest.fixture
def snapshot(store):
    def _snapshot(event_id: str) -> Participants:
        with store.transaction() as tx:
            return load_participants(tx, event_id)

    return _snapshot


@pytest.fixture
def serve_stale(monkeypatch):
    """Make every recovery component load the given snapshot."""
    def _serve(stale: Participants) -> None:
        for module in ("lifecycle", "meetup", "dropoff"):
            monkeypatch.setattr(
                f"discrecovery.recovery.{module}.load_participants",
                lambda tx, event_id: stale,
            )

    return _serve


def _assert_conflict(result, current_status: str) -> None:
    assert not result.success
    assert result.error_kind == "conflict"
    assert result.http_status == 409
    assert result.data["current_status"] == current_status


class TestLostRaces:
    def test_second_surrender_loses(self, service, make_disc, open_recovery, snapshot, serve_stale) -> None:
        event_id = open_recovery(make_disc())
        stale = snapshot(event_id)
        assert service.surrender_disc(event_id, OWNER).success

        serve_stale(stale)
        _assert_conflict(service.surrender_disc(event_id, OWNER), "surrendered")

    def test_proposal_after_surrender_loses(
        self, service, make_disc, open_recovery, snapshot, serve_stale, clock,
    ) -> None:
        event_id = open_recovery(make_disc())
        stale = snapshot(event_id)
        assert service.surrender_disc(event_id, OWNER).success

        serve_stale(stale)
        result = service.propose_meetup(event_id, FINDER, proposal_request(clock))
        _assert_conflict(result, "surrendered")

        assert service.get_proposals(event_id, FINDER) == []

    def test_drop_off_after_proposal_loses(
        self, service, make_disc, open_recovery, snapshot, serve_stale, clock,
    ) -> None:
        event_id = open_recovery(make_disc())
        stale = snapshot(event_id)
        assert service.propose_meetup(event_id, OWNER, proposal_request(clock)).success

        serve_stale(stale)
        result = service.record_drop_off(event_id, FINDER, drop_off_photo(), drop_off_location())
        _assert_conflict(result, "meetup_proposed")

    def test_relinquish_after_retrieval_loses(
        self, service, make_disc, open_recovery, snapshot, serve_stale,
    ) -> None:
        seeded = make_disc()
        event_id = open_recovery(seeded)
        service.record_drop_off(event_id, FINDER, drop_off_photo(), drop_off_location())
        stale = snapshot(event_id)
        assert service.mark_retrieved(event_id, OWNER).success

        serve_stale(stale)
        _assert_conflict(service.relinquish_disc(event_id, OWNER), "recovered")
        assert service.get_disc(seeded.id)["owner_id"] == OWNER

    def test_lost_race_writes_no_audit_or_notification(
        self, service, make_disc, open_recovery, snapshot, serve_stale, audit_log,
    ) -> None:
        event_id = open_recovery(make_disc())
        stale = snapshot(event_id)
        service.surrender_disc(event_id, OWNER)
        records = audit_log.count
        notes = len(service.get_notifications(FINDER))

        serve_stale(stale)
        assert not service.surrender_disc(event_id, OWNER).success
        assert audit_log.count == records
        assert len(service.get_notifications(FINDER)) == notes
