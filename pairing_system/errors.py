"""
Placement errors.

Business-rule violations are PlacementError subclasses: terminal for the
calling workflow, never retried. SlotConflictError is internal to the
placement writer and always triggers a fresh resolve-then-write attempt.
PlanConfigurationError marks unusable plan settings and is never retried.
"""
from enum import Enum

from config import ConfigurationError


class PlacementErrorCode(Enum):
    """Placement failure reasons exposed to callers."""
    SPONSOR_NOT_IN_TREE = "sponsor_not_in_tree"
    MAX_DEPTH_REACHED = "max_depth_reached"
    NO_AVAILABLE_POSITION = "no_available_position"
    PLAN_NOT_OWNED = "plan_not_owned"
    INCOMPATIBLE_SPONSOR_PLAN = "incompatible_sponsor_plan"


class PlacementError(Exception):
    """Base class for placement business-rule violations."""
    code: PlacementErrorCode = None

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def toDict(self) -> dict:
        return {
            "success": False,
            "error": self.code.value if self.code else None,
            "message": self.message,
            **self.context,
        }


class SponsorNotInTree(PlacementError):
    code = PlacementErrorCode.SPONSOR_NOT_IN_TREE


class MaxDepthReached(PlacementError):
    code = PlacementErrorCode.MAX_DEPTH_REACHED


class NoAvailablePosition(PlacementError):
    code = PlacementErrorCode.NO_AVAILABLE_POSITION


class PlanNotOwned(PlacementError):
    code = PlacementErrorCode.PLAN_NOT_OWNED


class IncompatibleSponsorPlan(PlacementError):
    code = PlacementErrorCode.INCOMPATIBLE_SPONSOR_PLAN


class PlanConfigurationError(ConfigurationError):
    """A plan's chain settings cannot be used for placement."""

    def __init__(self, planID: str, pairingLimit: int):
        super().__init__(
            f"Plan {planID} has unsupported pairingLimit={pairingLimit}"
        )
        self.planID = planID
        self.pairingLimit = pairingLimit


class SlotConflictError(Exception):
    """The resolved slot was claimed by a concurrent writer."""

    def __init__(self, parentID: str, slotIndex: int, occupant: str = None):
        super().__init__(
            f"Slot {slotIndex} of {parentID} already taken"
            + (f" by {occupant}" if occupant else "")
        )
        self.parentID = parentID
        self.slotIndex = slotIndex
        self.occupant = occupant


class PlacementRetryExhausted(Exception):
    """Transient store errors or slot conflicts persisted past the retry budget."""

    def __init__(self, agentID: str, attempts: int, lastError: Exception = None):
        super().__init__(
            f"Placement of {agentID} failed after {attempts} attempts: {lastError}"
        )
        self.agentID = agentID
        self.attempts = attempts
        self.lastError = lastError
