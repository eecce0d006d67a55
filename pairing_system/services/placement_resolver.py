# pairing_system/services/placement_resolver.py
"""
Placement resolver - finds the next free slot for a new agent under a sponsor.

Direct slots of the sponsor are tried first, left to right. When they are
all taken the downline is searched breadth-first (spillover), so the new
agent lands in the nearest open slot by tree distance, with ties going to
the lower slot index of the earlier-visited node.
"""
from collections import deque
from dataclasses import dataclass
from sqlalchemy.orm import Session
import logging

from models.tree_position import TreePosition, slot_label
from pairing_system.errors import (
    SponsorNotInTree,
    MaxDepthReached,
    NoAvailablePosition,
)
from pairing_system.services.plan_settings_service import PlanSettingsService
from pairing_system.services.tree_store import TreeStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    """A free child slot: the agent would become child #slotIndex of parentID."""
    parentID: str
    slotIndex: int
    level: int
    pairingLimit: int

    @property
    def position(self) -> str:
        return slot_label(self.slotIndex)

    def toDict(self) -> dict:
        return {
            "parentID": self.parentID,
            "position": self.position,
            "slotIndex": self.slotIndex,
            "level": self.level,
            "pairingLimit": self.pairingLimit,
        }


class PlacementResolver:
    """Compute where the next agent under a sponsor goes. Read-only."""

    def __init__(self, session: Session):
        self.session = session
        self.store = TreeStore(session)
        self.planSettings = PlanSettingsService(session)

    def resolve(self, sponsorID: str, planID: str) -> Slot:
        """
        Find the next available slot for a placement under sponsorID.

        Args:
            sponsorID: Agent the new agent is introduced under
            planID: Plan being placed (selects the pairing forest)

        Returns:
            Slot to fill

        Raises:
            SponsorNotInTree: Sponsor has no position in the plan's forest
            MaxDepthReached: Sponsor already sits at or below maxDepth
            NoAvailablePosition: Downline exhausted without a free slot
        """
        settings = self.planSettings.get(planID)
        pairingLimit = settings.pairingLimit
        maxDepth = settings.maxDepth

        sponsor = self.store.getPosition(sponsorID, pairingLimit)
        if not sponsor:
            raise SponsorNotInTree(
                "Sponsor is not positioned in this plan's tree",
                sponsorID=sponsorID,
                planID=planID,
                pairingLimit=pairingLimit,
            )

        if sponsor.level >= maxDepth:
            raise MaxDepthReached(
                "Maximum tree depth reached",
                sponsorID=sponsorID,
                level=sponsor.level,
                maxDepth=maxDepth,
            )

        # Direct slots first
        slot = sponsor.firstEmptySlot()
        if slot is not None:
            return Slot(
                parentID=sponsor.agentID,
                slotIndex=slot,
                level=sponsor.level + 1,
                pairingLimit=pairingLimit,
            )

        # All direct slots filled - spill over into the downline
        found = self._searchDownline(sponsor, pairingLimit, maxDepth)
        if found is None:
            raise NoAvailablePosition(
                "No available positions found in downline",
                sponsorID=sponsorID,
                pairingLimit=pairingLimit,
                maxDepth=maxDepth,
            )

        logger.debug(
            f"Spillover for sponsor {sponsorID}: {found.parentID} slot {found.slotIndex} "
            f"at level {found.level}"
        )
        return found

    def _searchDownline(self, sponsor: TreePosition, pairingLimit: int, maxDepth: int):
        """
        Breadth-first search for the first empty slot below sponsor.

        The depth check is applied when a node is dequeued: nodes at or
        beyond maxDepth are neither scanned nor expanded, so the deepest slot
        this can return sits at level maxDepth. Positions are fetched in
        batches, one queue snapshot at a time.

        Returns:
            Slot or None
        """
        queue = deque([sponsor.agentID])
        visited = set()
        loaded = {sponsor.agentID: sponsor}

        while queue:
            if queue[0] not in loaded:
                pending = [agentID for agentID in queue if agentID not in loaded]
                found = self.store.getPositions(pending, pairingLimit)
                loaded.update(found)
                # Remember misses so a dangling pointer is not re-queried
                for agentID in pending:
                    loaded.setdefault(agentID, None)

            currentID = queue.popleft()
            if currentID in visited:
                continue
            visited.add(currentID)

            current = loaded.get(currentID)
            if not current:
                logger.error(
                    f"Slot points to {currentID}, which has no position "
                    f"(pairingLimit={pairingLimit}); skipping"
                )
                continue

            if current.level >= maxDepth:
                continue

            for slot in range(1, pairingLimit + 1):
                childID = current.getChild(slot)
                if not childID:
                    return Slot(
                        parentID=current.agentID,
                        slotIndex=slot,
                        level=current.level + 1,
                        pairingLimit=pairingLimit,
                    )
                queue.append(childID)

        return None
