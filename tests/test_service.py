"""Tests for RecoveryService: proves the facade orchestrates correctly."""

from pathlib import Path

import pytest

from discrecovery.persistence.audit_log import AuditKind, AuditLog
from discrecovery.service import RecoveryService, ServiceResult

from conftest import FINDER, OWNER, STRANGER, drop_off_location, drop_off_photo, proposal_request


class TestResults:
    def test_success_shape(self, service, make_disc) -> None:
        result = service.report_found(make_disc().short_code, FINDER)
        assert isinstance(result, ServiceResult)
        assert result.success
        assert result.errors == []
        assert result.error_kind is None

    def test_failure_shape(self, service) -> None:
        result = service.surrender_disc("missing", OWNER)
        assert not result.success
        assert result.errors == ["Recovery event not found"]
        assert result.error_kind == "not_found"
        assert result.http_status == 404
        assert result.data == {}

    def test_rejected_action_writes_nothing(self, service, make_disc, open_recovery, audit_log) -> None:
        event_id = open_recovery(make_disc())
        before = audit_log.count
        notes_before = len(service.get_notifications(FINDER))

        assert not service.surrender_disc(event_id, FINDER).success
        assert audit_log.count == before
        assert len(service.get_notifications(FINDER)) == notes_before


class TestAuditTrail:
    def test_full_meetup_recovery_is_audited(self, service, make_disc, open_recovery, audit_log, clock) -> None:
        event_id = open_recovery(make_disc())
        proposal = service.propose_meetup(event_id, FINDER, proposal_request(clock)).data["proposal"]
        service.accept_meetup(proposal["id"], OWNER)
        service.complete_recovery(event_id, OWNER)

        assert [r.kind for r in audit_log.records_for(event_id)] == [
            AuditKind.DISC_REPORTED_FOUND,
            AuditKind.MEETUP_PROPOSED,
            AuditKind.MEETUP_ACCEPTED,
            AuditKind.RECOVERY_COMPLETED,
        ]
        assert audit_log.last_record.actor_id == OWNER

    def test_drop_off_recovery_is_audited(self, service, make_disc, open_recovery, audit_log) -> None:
        event_id = open_recovery(make_disc())
        service.record_drop_off(event_id, FINDER, drop_off_photo(), drop_off_location())
        service.mark_retrieved(event_id, OWNER)
        kinds = [r.kind for r in audit_log.records_for(event_id)]
        assert kinds[-2:] == [AuditKind.DROP_OFF_RECORDED, AuditKind.DROP_OFF_RETRIEVED]

    def test_audit_timestamp_from_clock(self, service, make_disc, audit_log, clock) -> None:
        service.report_found(make_disc().short_code, FINDER)
        assert audit_log.last_record.timestamp_utc == "2026-01-01T12:00:00Z"

    def test_audit_failure_is_warning_not_error(self, store, policy, clock, make_disc, tmp_path: Path) -> None:
        path = tmp_path / "audit.jsonl"
        log = AuditLog(path)
        path.mkdir()
        service = RecoveryService(store, policy, clock=clock, audit_log=log)
        seeded = make_disc()

        result = service.report_found(seeded.short_code, FINDER)
        assert result.success
        assert "Audit degraded" in result.data["warning"]
        assert service.audit_degraded
        # The committed action stands
        assert service.lookup_qr_code(seeded.short_code).data["has_active_recovery"] is True

    def test_no_audit_log_configured(self, store, policy, clock, make_disc) -> None:
        service = RecoveryService(store, policy, clock=clock)
        result = service.report_found(make_disc().short_code, FINDER)
        assert result.success
        assert "warning" not in result.data
        assert not service.audit_degraded


class TestReads:
    def test_event_hidden_from_outsiders(self, service, make_disc, open_recovery) -> None:
        event_id = open_recovery(make_disc())
        assert service.get_recovery_event(event_id, OWNER) is not None
        assert service.get_recovery_event(event_id, FINDER) is not None
        assert service.get_recovery_event(event_id, STRANGER) is None
        assert service.get_recovery_event("missing", OWNER) is None

    def test_original_owner_keeps_access_after_surrender(self, service, make_disc, open_recovery) -> None:
        event_id = open_recovery(make_disc())
        service.surrender_disc(event_id, OWNER)
        assert service.get_recovery_event(event_id, OWNER)["status"] == "surrendered"

    def test_unknown_disc(self, service) -> None:
        assert service.get_disc("missing") is None

    def test_no_drop_off(self, service, make_disc, open_recovery) -> None:
        assert service.get_drop_off(open_recovery(make_disc()), FINDER) is None

    def test_proposals_hidden_from_outsiders(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        service.propose_meetup(event_id, OWNER, proposal_request(clock))
        assert len(service.get_proposals(event_id, OWNER)) == 1
        assert len(service.get_proposals(event_id, FINDER)) == 1
        assert service.get_proposals(event_id, STRANGER) == []
        assert service.get_proposals("missing", OWNER) == []

    def test_drop_off_hidden_from_outsiders(self, service, make_disc, open_recovery) -> None:
        event_id = open_recovery(make_disc())
        service.record_drop_off(event_id, FINDER, drop_off_photo(), drop_off_location())
        assert service.get_drop_off(event_id, OWNER)["photo_url"]
        assert service.get_drop_off(event_id, FINDER) is not None
        assert service.get_drop_off(event_id, STRANGER) is None
        assert service.get_drop_off("missing", FINDER) is None


class TestStatus:
    def test_status_structure(self, service) -> None:
        status = service.status()
        assert status["version"] == "0.1.0"
        assert status["policy_version"] == "1.0"
        assert status["discs"] == {"total": 0, "unowned": 0}
        assert status["recoveries"] == {"total": 0, "by_status": {}}
        assert status["audit"] == {"records": 0, "degraded": False}

    def test_status_counts(self, service, make_disc, open_recovery) -> None:
        open_recovery(make_disc())
        make_disc(owner_id=None)
        status = service.status()
        assert status["discs"] == {"total": 2, "unowned": 1}
        assert status["recoveries"]["by_status"] == {"found": 1}
        assert status["audit"]["records"] == 1


@pytest.mark.parametrize("reason", [None, "Rain delay"])
def test_declined_meetup_round_trip(service, make_disc, open_recovery, clock, reason) -> None:
    event_id = open_recovery(make_disc())
    proposal = service.propose_meetup(event_id, OWNER, proposal_request(clock)).data["proposal"]
    declined = service.decline_meetup(proposal["id"], FINDER, reason)
    assert declined.success
    assert declined.data["recovery_event"]["status"] == "found"
    assert service.get_notifications(OWNER)[-1]["type"] == "meetup_declined"
