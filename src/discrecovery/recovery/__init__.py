"""Recovery module: lifecycle, meetup negotiation, drop-off and reward."""

from discrecovery.recovery.dropoff import DropOffFlow
from discrecovery.recovery.lifecycle import RecoveryLifecycle
from discrecovery.recovery.meetup import MeetupNegotiation
from discrecovery.recovery.participants import Participants, load_participants
from discrecovery.recovery.reward import RewardAcknowledgment
from discrecovery.recovery.state_machine import RecoveryStateMachine

__all__ = [
    "DropOffFlow",
    "MeetupNegotiation",
    "Participants",
    "RecoveryLifecycle",
    "RecoveryStateMachine",
    "RewardAcknowledgment",
    "load_participants",
]
