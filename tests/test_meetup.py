"""Tests for meetup negotiation: proposals, counter-proposals, accept and decline."""

from dataclasses import replace
from datetime import datetime

import pytest

from discrecovery.models.recovery import MeetupStatus, ProposalRequest
from discrecovery.recovery.meetup import validate_proposal

from conftest import FINDER, OWNER, STRANGER, drop_off_location, drop_off_photo, proposal_request


def _pending(service, event_id) -> list[dict]:
    return service.get_proposals(event_id, OWNER, MeetupStatus.PENDING)


class TestProposalValidation:
    def test_valid_request(self, clock) -> None:
        assert validate_proposal(proposal_request(clock)) == []

    def test_blank_location(self, clock) -> None:
        errors = validate_proposal(replace(proposal_request(clock), location_name="   "))
        assert errors == ["location_name is required"]

    def test_naive_datetime(self) -> None:
        request = ProposalRequest(location_name="Park", proposed_datetime=datetime(2026, 5, 1, 10))
        assert "timezone-aware" in validate_proposal(request)[0]

    def test_coordinates_in_range(self, clock) -> None:
        request = replace(proposal_request(clock), latitude=91.0, longitude=-181.0)
        assert len(validate_proposal(request)) == 2

    def test_service_rejects_invalid_input(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        result = service.propose_meetup(
            event_id, OWNER, replace(proposal_request(clock), location_name=""),
        )
        assert result.http_status == 400
        assert result.error_kind == "invalid_request"


class TestPropose:
    def test_first_proposal(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        result = service.propose_meetup(event_id, FINDER, proposal_request(clock))
        assert result.success
        assert result.http_status == 201
        assert result.data["proposal"]["status"] == "pending"
        assert result.data["proposal"]["proposed_by"] == FINDER
        assert service.get_recovery_event(event_id, FINDER)["status"] == "meetup_proposed"

        owner_notes = service.get_notifications(OWNER)
        assert owner_notes[-1]["type"] == "meetup_proposed"
        assert owner_notes[-1]["data"]["proposal_id"] == result.data["proposal"]["id"]

    def test_counter_proposal_supersedes_other_party(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        owner_prop = service.propose_meetup(event_id, OWNER, proposal_request(clock, "Pro shop"))
        finder_prop = service.propose_meetup(event_id, FINDER, proposal_request(clock, "Hole 1 tee"))
        assert owner_prop.success and finder_prop.success

        proposals = {p["id"]: p for p in service.get_proposals(event_id, OWNER)}
        assert proposals[owner_prop.data["proposal"]["id"]]["status"] == "declined"
        pending = _pending(service, event_id)
        assert [p["id"] for p in pending] == [finder_prop.data["proposal"]["id"]]
        assert pending[0]["proposed_by"] == FINDER

        owner_types = [n["type"] for n in service.get_notifications(OWNER)]
        assert "meetup_countered" in owner_types
        assert service.get_recovery_event(event_id, OWNER)["status"] == "meetup_proposed"

    def test_reproposal_by_same_party_keeps_one_pending(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        service.propose_meetup(event_id, OWNER, proposal_request(clock, "First"))
        service.propose_meetup(event_id, OWNER, proposal_request(clock, "Second"))
        pending = _pending(service, event_id)
        assert len(pending) == 1
        assert pending[0]["location_name"] == "Second"
        # Own proposals are never "countered"
        assert "meetup_countered" not in [n["type"] for n in service.get_notifications(OWNER)]

    def test_many_rounds_leave_one_pending(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        for i in range(6):
            caller = OWNER if i % 2 == 0 else FINDER
            assert service.propose_meetup(event_id, caller, proposal_request(clock, f"Spot {i}")).success
        assert len(_pending(service, event_id)) == 1
        assert len(service.get_proposals(event_id, OWNER)) == 6

    def test_propose_after_confirmation_reopens_negotiation(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        service.propose_meetup(event_id, OWNER, proposal_request(clock))
        service.accept_meetup(_pending(service, event_id)[0]["id"], FINDER)
        assert service.propose_meetup(event_id, FINDER, proposal_request(clock, "Changed plans")).success
        assert service.get_recovery_event(event_id, FINDER)["status"] == "meetup_proposed"

    def test_propose_after_drop_off(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        service.record_drop_off(event_id, FINDER, drop_off_photo(), drop_off_location())
        assert service.propose_meetup(event_id, OWNER, proposal_request(clock)).success

    def test_terminal_event_rejects_proposal(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        service.surrender_disc(event_id, OWNER)
        result = service.propose_meetup(event_id, FINDER, proposal_request(clock))
        assert result.error_kind == "invalid_state"
        assert result.data["current_status"] == "surrendered"

    def test_stranger_cannot_propose(self, service, make_disc, open_recovery, clock) -> None:
        event_id = open_recovery(make_disc())
        result = service.propose_meetup(event_id, STRANGER, proposal_request(clock))
        assert result.http_status == 404

    def test_unknown_event(self, service, clock) -> None:
        assert service.propose_meetup("missing", OWNER, proposal_request(clock)).http_status == 404


class TestAcceptDecline:
    @pytest.fixture
    def proposed(self, service, make_disc, open_recovery, clock) -> tuple[str, str]:
        event_id = open_recovery(make_disc())
        result = service.propose_meetup(event_id, FINDER, proposal_request(clock))
        return event_id, result.data["proposal"]["id"]

    def test_accept_confirms_meetup(self, service, proposed) -> None:
        event_id, proposal_id = proposed
        result = service.accept_meetup(proposal_id, OWNER)
        assert result.success
        assert result.data["proposal"]["status"] == "accepted"
        assert result.data["recovery_event"]["status"] == "meetup_confirmed"
        assert service.get_notifications(FINDER)[-1]["type"] == "meetup_accepted"

    def test_author_cannot_accept_own_proposal(self, service, proposed) -> None:
        _, proposal_id = proposed
        result = service.accept_meetup(proposal_id, FINDER)
        assert result.http_status == 403

    def test_stranger_cannot_accept(self, service, proposed) -> None:
        _, proposal_id = proposed
        assert service.accept_meetup(proposal_id, STRANGER).http_status == 404

    def test_accept_superseded_proposal(self, service, proposed, clock) -> None:
        event_id, proposal_id = proposed
        service.propose_meetup(event_id, OWNER, proposal_request(clock, "Counter"))
        result = service.accept_meetup(proposal_id, OWNER)
        assert result.error_kind == "invalid_state"
        assert result.data["current_status"] == "declined"

    def test_decline_returns_event_to_found(self, service, proposed) -> None:
        event_id, proposal_id = proposed
        result = service.decline_meetup(proposal_id, OWNER, "Out of town")
        assert result.success
        assert result.data["proposal"]["status"] == "declined"
        assert result.data["recovery_event"]["status"] == "found"

        note = service.get_notifications(FINDER)[-1]
        assert note["type"] == "meetup_declined"
        assert note["body"].endswith(": Out of town")

    def test_decline_without_reason(self, service, proposed) -> None:
        _, proposal_id = proposed
        service.decline_meetup(proposal_id, OWNER)
        note = service.get_notifications(FINDER)[-1]
        assert note["body"] == "The owner declined your meetup proposal for Destroyer"

    def test_unknown_proposal(self, service) -> None:
        assert service.decline_meetup("missing", OWNER).http_status == 404
