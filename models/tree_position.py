"""
TreePosition model - one agent's node in a pairing tree.

Trees are partitioned by pairingLimit, not by plan: every plan sharing a
pairing limit shares one placement forest. An agent holds at most one
position per pairing limit, and a filled child slot is never cleared.
"""
from typing import List, Optional

from sqlalchemy import Column, Integer, String, UniqueConstraint, Index
from models.base import Base, AuditMixin

# Widest fan-out the schema supports (child1ID .. child5ID)
MAX_SLOTS = 5

ROOT_POSITION = "root"


def slot_label(slot: int) -> str:
    """Display label for a child slot, e.g. 'child_2'."""
    return f"child_{slot}"


class TreePosition(Base, AuditMixin):
    __tablename__ = 'plan_binary_positions'
    __table_args__ = (
        # One position per agent per pairing forest
        UniqueConstraint('agentID', 'pairingLimit', name='uq_positions_agent_pairing'),
        # A slot can be claimed by a single writer only
        UniqueConstraint('parentID', 'slotIndex', 'pairingLimit', name='uq_positions_parent_slot'),
        Index('ix_positions_pairing_level', 'pairingLimit', 'level'),
    )

    positionID = Column(Integer, primary_key=True, autoincrement=True)

    agentID = Column(String(64), nullable=False, index=True)
    planID = Column(String(64), nullable=False)  # Plan of first placement, metadata only
    pairingLimit = Column(Integer, nullable=False)

    # Tree structure
    parentID = Column(String(64), nullable=True, index=True)  # NULL only for roots
    position = Column(String(16), nullable=False)  # 'root' or 'child_N'
    slotIndex = Column(Integer, nullable=True)  # Slot taken under parent, NULL for roots
    level = Column(Integer, nullable=False)  # root = 1
    treeOwnerID = Column(String(64), nullable=False, index=True)

    # Child slot pointers (agentID of occupant)
    child1ID = Column(String(64), nullable=True)
    child2ID = Column(String(64), nullable=True)
    child3ID = Column(String(64), nullable=True)
    child4ID = Column(String(64), nullable=True)
    child5ID = Column(String(64), nullable=True)

    @property
    def isRoot(self) -> bool:
        return self.parentID is None

    @staticmethod
    def _slotField(slot: int) -> str:
        if not 1 <= slot <= MAX_SLOTS:
            raise ValueError(f"Slot {slot} out of range 1..{MAX_SLOTS}")
        return f"child{slot}ID"

    def getChild(self, slot: int) -> Optional[str]:
        """Return the occupant of a slot, or None if empty."""
        return getattr(self, self._slotField(slot))

    def setChild(self, slot: int, agentID: str) -> None:
        """
        Fill an empty slot.

        Raises:
            ValueError: If the slot is already occupied (slots are never overwritten)
        """
        field = self._slotField(slot)
        current = getattr(self, field)
        if current is not None:
            raise ValueError(
                f"Slot {slot} of {self.agentID} already holds {current}"
            )
        setattr(self, field, agentID)

    def childIDs(self) -> List[Optional[str]]:
        """Slot occupants in ascending slot order, limited to this tree's fan-out."""
        return [self.getChild(slot) for slot in range(1, self.pairingLimit + 1)]

    @property
    def filledSlots(self) -> int:
        return sum(1 for child in self.childIDs() if child)

    @property
    def isPairingComplete(self) -> bool:
        return self.filledSlots >= self.pairingLimit

    def firstEmptySlot(self) -> Optional[int]:
        """Lowest-index empty slot, or None when the node is full."""
        for slot in range(1, self.pairingLimit + 1):
            if not self.getChild(slot):
                return slot
        return None

    def toDict(self) -> dict:
        return {
            "agentID": self.agentID,
            "planID": self.planID,
            "parentID": self.parentID,
            "position": self.position,
            "slotIndex": self.slotIndex,
            "level": self.level,
            "pairingLimit": self.pairingLimit,
            "treeOwnerID": self.treeOwnerID,
            "slots": self.childIDs(),
        }

    def __repr__(self):
        return (
            f"<TreePosition(agentID={self.agentID}, parent={self.parentID}, "
            f"level={self.level}, pairingLimit={self.pairingLimit})>"
        )
