# pairing_system/services/placement_service.py
"""
Placement service - places agents into pairing trees.

Entry point for the payment-verification workflow:

    service = PlacementService(session)
    result = service.placeAgent(agentID, planID, sponsorID)

Each attempt resolves a slot, locks the parent row, re-checks the slot,
writes the child and the parent's slot pointer, and runs both release
triggers, all in one transaction. A lost race (slot taken in between, or
the unique slot constraint firing) rolls back and re-resolves from scratch;
transient store errors are retried with exponential backoff. Business-rule
violations are raised to the caller as PlacementError and never retried.
"""
import time
from dataclasses import dataclass, asdict
from typing import Optional
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
import logging

from config import Config
from pairing_system.errors import (
    PlacementError,
    PlanNotOwned,
    IncompatibleSponsorPlan,
    SlotConflictError,
    PlacementRetryExhausted,
)
from pairing_system.services.agent_plan_service import AgentPlanService
from pairing_system.services.max_depth_unlock_service import MaxDepthUnlockService
from pairing_system.services.pairing_release_service import PairingReleaseService
from pairing_system.services.placement_resolver import PlacementResolver, Slot
from pairing_system.services.plan_settings_service import PlanSettingsService
from pairing_system.services.tree_store import TreeStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_BASE_DELAY = 0.1  # seconds


@dataclass
class PlacementResult:
    """Outcome of a successful placeAgent call."""
    agentID: str
    planID: str
    pairingLimit: int
    parentID: Optional[str] = None
    position: Optional[str] = None
    slotIndex: Optional[int] = None
    level: Optional[int] = None
    alreadyPlaced: bool = False
    commissionsReleased: int = 0
    rewardsUnlocked: int = 0
    attempts: int = 1

    def toDict(self) -> dict:
        return {"success": True, **asdict(self)}


class PlacementService:
    """Place agents into the pairing forest of a plan."""

    def __init__(self, session: Session):
        self.session = session
        self.store = TreeStore(session)
        self.planSettings = PlanSettingsService(session)
        self.ownership = AgentPlanService(session)
        self.resolver = PlacementResolver(session)
        self.pairingRelease = PairingReleaseService(session)
        self.maxDepthUnlock = MaxDepthUnlockService(session)

    # ═══════════════════════════════════════════════════════════════════════
    # PUBLIC API
    # ═══════════════════════════════════════════════════════════════════════

    def resolvePosition(self, sponsorID: str, planID: str) -> Slot:
        """
        Preview where an agent introduced by sponsorID would be placed.

        Read-only; the slot is not reserved and may be taken before a real
        placement runs.

        Raises:
            PlacementError: SponsorNotInTree, MaxDepthReached, NoAvailablePosition
        """
        return self.resolver.resolve(sponsorID, planID)

    def placeAgent(self, agentID: str, planID: str, sponsorID: Optional[str] = None) -> PlacementResult:
        """
        Place agentID into the forest of planID, under sponsorID or as a new root.

        Idempotent: an agent that already holds a position for the plan's
        pairing limit gets alreadyPlaced=True and nothing is written.
        Commits on success, rolls back on any failure.

        Args:
            agentID: Agent to place
            planID: Plan the agent has purchased
            sponsorID: Introducing agent, or None to create a root

        Returns:
            PlacementResult

        Raises:
            PlacementError: Business-rule violation (not retried)
            PlacementRetryExhausted: Conflicts or transient errors outlasted the retry budget
        """
        maxAttempts = max(1, int(Config.get(Config.PLACEMENT_MAX_ATTEMPTS, DEFAULT_MAX_ATTEMPTS)))
        baseDelay = float(Config.get(Config.PLACEMENT_RETRY_BASE_DELAY, DEFAULT_RETRY_BASE_DELAY))
        lastError = None

        for attempt in range(1, maxAttempts + 1):
            try:
                result = self._placeOnce(agentID, planID, sponsorID)
                self.session.commit()

            except PlacementError as e:
                self.session.rollback()
                logger.warning(f"Placement of {agentID} in plan {planID} rejected: {e.code.value} - {e}")
                raise

            except (SlotConflictError, IntegrityError) as e:
                # Lost a race for the slot (or for the agent itself): start over,
                # the next resolve sees the committed winner
                self.session.rollback()
                lastError = e
                logger.warning(
                    f"Placement conflict for {agentID} (attempt {attempt}/{maxAttempts}): "
                    f"{e.__class__.__name__}, re-resolving"
                )
                continue

            except OperationalError as e:
                self.session.rollback()
                lastError = e
                if attempt < maxAttempts:
                    delay = baseDelay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Transient store error placing {agentID} (attempt {attempt}/{maxAttempts}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    time.sleep(delay)
                continue

            except Exception:
                self.session.rollback()
                logger.error(f"Unexpected error placing {agentID} in plan {planID}", exc_info=True)
                raise

            result.attempts = attempt
            if result.alreadyPlaced:
                logger.info(f"Agent {agentID} already in pairing system {result.pairingLimit}, skipping")
            elif result.parentID is None:
                logger.info(f"✓ Agent {agentID} placed as root (pairingLimit={result.pairingLimit})")
            else:
                logger.info(
                    f"✓ Agent {agentID} placed under {result.parentID} "
                    f"{result.position} at level {result.level} "
                    f"(released={result.commissionsReleased}, unlocked={result.rewardsUnlocked})"
                )
            return result

        logger.error(f"Placement of {agentID} gave up after {maxAttempts} attempts: {lastError}")
        raise PlacementRetryExhausted(agentID, maxAttempts, lastError)

    # ═══════════════════════════════════════════════════════════════════════
    # SINGLE ATTEMPT
    # ═══════════════════════════════════════════════════════════════════════

    def _placeOnce(self, agentID: str, planID: str, sponsorID: Optional[str]) -> PlacementResult:
        """One resolve-then-write pass inside the current transaction. Does not commit."""
        settings = self.planSettings.get(planID)
        pairingLimit = settings.pairingLimit

        # (a) Already in this pairing forest, from this or any plan sharing the limit
        if self.store.hasPosition(agentID, pairingLimit):
            return PlacementResult(
                agentID=agentID,
                planID=planID,
                pairingLimit=pairingLimit,
                alreadyPlaced=True,
            )

        # (b) Ownership is the source of truth for placement
        if not self.ownership.isActive(agentID, planID):
            raise PlanNotOwned(
                "Agent must own the plan before being placed in tree",
                agentID=agentID,
                planID=planID,
            )

        if sponsorID is None:
            root = self.store.insertRoot(agentID, planID, pairingLimit)
            return PlacementResult(
                agentID=agentID,
                planID=planID,
                pairingLimit=pairingLimit,
                position=root.position,
                level=root.level,
            )

        if not self.ownership.hasActivePlanWithPairingLimit(sponsorID, pairingLimit):
            raise IncompatibleSponsorPlan(
                "Sponsor doesn't have a compatible plan",
                sponsorID=sponsorID,
                pairingLimit=pairingLimit,
            )

        slot = self.resolver.resolve(sponsorID, planID)

        parent = self.store.lockPosition(slot.parentID, pairingLimit)
        if parent is None:
            raise SlotConflictError(slot.parentID, slot.slotIndex)

        occupant = parent.getChild(slot.slotIndex)
        if occupant:
            raise SlotConflictError(slot.parentID, slot.slotIndex, occupant)

        child = self.store.insertChild(agentID, planID, parent, slot.slotIndex)

        result = PlacementResult(
            agentID=agentID,
            planID=planID,
            pairingLimit=pairingLimit,
            parentID=parent.agentID,
            position=child.position,
            slotIndex=child.slotIndex,
            level=child.level,
        )

        if pairingLimit > 1:
            result.commissionsReleased = self.pairingRelease.onSlotFilled(parent.agentID, pairingLimit)
            result.rewardsUnlocked = self.maxDepthUnlock.onPairingComplete(
                parent.agentID,
                child.level,
                pairingLimit
            )

        return result
