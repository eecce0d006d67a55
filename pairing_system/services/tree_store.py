# pairing_system/services/tree_store.py
"""
Tree store - persistence and queries for tree positions.

Positions are keyed by (agentID, pairingLimit). Every read goes to the
session; nothing is cached between calls, so concurrent writers are always
observed on the next query.
"""
from typing import Dict, List, Optional, Iterable
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from models.tree_position import TreePosition, ROOT_POSITION, slot_label

logger = logging.getLogger(__name__)


class TreeStore:
    """Query and mutation layer for plan_binary_positions."""

    def __init__(self, session: Session):
        self.session = session

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    def getPosition(self, agentID: str, pairingLimit: int) -> Optional[TreePosition]:
        """Position of an agent in the forest for pairingLimit, or None."""
        return self.session.query(TreePosition).filter_by(
            agentID=agentID,
            pairingLimit=pairingLimit
        ).first()

    def lockPosition(self, agentID: str, pairingLimit: int) -> Optional[TreePosition]:
        """
        Load a position with a row lock (SELECT ... FOR UPDATE).

        Writers contending for the same parent's slots serialize here.
        The lock is a no-op on SQLite, where the unique slot constraint
        is the remaining guard.
        """
        return self.session.query(TreePosition).filter_by(
            agentID=agentID,
            pairingLimit=pairingLimit
        ).populate_existing().with_for_update().first()

    def hasPosition(self, agentID: str, pairingLimit: int) -> bool:
        return self.session.query(TreePosition.positionID).filter_by(
            agentID=agentID,
            pairingLimit=pairingLimit
        ).first() is not None

    def getPositions(self, agentIDs: Iterable[str], pairingLimit: int) -> Dict[str, TreePosition]:
        """Batch lookup, keyed by agentID. Missing agents are absent from the result."""
        agentIDs = list(agentIDs)
        if not agentIDs:
            return {}

        rows = self.session.query(TreePosition).filter(
            TreePosition.pairingLimit == pairingLimit,
            TreePosition.agentID.in_(agentIDs)
        ).all()
        return {row.agentID: row for row in rows}

    def getPartition(self, pairingLimit: int) -> List[TreePosition]:
        """All positions of one forest, ordered by level."""
        return self.session.query(TreePosition).filter_by(
            pairingLimit=pairingLimit
        ).order_by(TreePosition.level, TreePosition.positionID).all()

    def getRoots(self, pairingLimit: int) -> List[TreePosition]:
        return self.session.query(TreePosition).filter(
            TreePosition.pairingLimit == pairingLimit,
            TreePosition.parentID.is_(None)
        ).order_by(TreePosition.positionID).all()

    def getPairingLimits(self) -> List[int]:
        """Every pairing limit that has at least one position."""
        rows = self.session.query(TreePosition.pairingLimit).distinct().all()
        return sorted(row[0] for row in rows)

    # ═══════════════════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════════════════

    def insertRoot(self, agentID: str, planID: str, pairingLimit: int) -> TreePosition:
        """Create a root position; the agent owns the new tree."""
        position = TreePosition(
            agentID=agentID,
            planID=planID,
            pairingLimit=pairingLimit,
            parentID=None,
            position=ROOT_POSITION,
            slotIndex=None,
            level=1,
            treeOwnerID=agentID,
        )
        self.session.add(position)
        self.session.flush()
        return position

    def insertChild(
            self,
            agentID: str,
            planID: str,
            parent: TreePosition,
            slotIndex: int
    ) -> TreePosition:
        """
        Create a child position under parent and point the parent's slot at it.

        Both writes are flushed together and commit or roll back as one unit
        with the caller's transaction.

        Raises:
            ValueError: If the parent's slot is already occupied
            sqlalchemy.exc.IntegrityError: If a concurrent writer claimed the
                slot or placed the same agent first
        """
        child = TreePosition(
            agentID=agentID,
            planID=planID,
            pairingLimit=parent.pairingLimit,
            parentID=parent.agentID,
            position=slot_label(slotIndex),
            slotIndex=slotIndex,
            level=parent.level + 1,
            treeOwnerID=parent.treeOwnerID,
        )
        parent.setChild(slotIndex, agentID)
        self.session.add(child)
        self.session.flush()
        return child

    # ═══════════════════════════════════════════════════════════════════════
    # MATERIALIZATION AND STATISTICS
    # ═══════════════════════════════════════════════════════════════════════

    def buildTree(self, agentID: str, pairingLimit: int, maxDepth: int = 50) -> Optional[Dict]:
        """
        Materialize the subtree under agentID as nested dicts.

        Each node is TreePosition.toDict() (slot occupants under 'slots')
        plus a 'children' list of nested nodes, which stops at maxDepth.
        Loads the partition once and walks it with ChainWalker, so a
        corrupted (cyclic) data set cannot loop forever.

        Args:
            agentID: Subtree root
            pairingLimit: Forest to read
            maxDepth: Number of levels below agentID to include

        Returns:
            Nested dict, or None if agentID has no position in this forest
        """
        from pairing_system.utils.chain_walker import ChainWalker

        byAgent = {p.agentID: p for p in self.getPartition(pairingLimit)}
        start = byAgent.get(agentID)
        if not start:
            return None

        walker = ChainWalker(self, pairingLimit, cache=byAgent)
        nodes = {agentID: {**start.toDict(), "children": []}}

        def attach(parent: TreePosition, child: TreePosition, depth: int):
            node = {**child.toDict(), "children": []}
            nodes[child.agentID] = node
            nodes[parent.agentID]["children"].append(node)

        walker.walk_downline(start, attach, max_depth=maxDepth)
        return nodes[agentID]

    def getNetworkStats(self, pairingLimit: int) -> Dict:
        """Headline numbers for one forest."""
        totalAgents, maxLevel = self.session.query(
            func.count(TreePosition.positionID),
            func.coalesce(func.max(TreePosition.level), 0)
        ).filter(TreePosition.pairingLimit == pairingLimit).one()

        positions = self.getPartition(pairingLimit)
        completeNodes = sum(1 for p in positions if p.isPairingComplete)

        return {
            "pairingLimit": pairingLimit,
            "totalAgents": totalAgents,
            "roots": sum(1 for p in positions if p.isRoot),
            "maxLevel": maxLevel,
            "completeNodes": completeNodes,
        }

    def findAnomalies(self, pairingLimit: int) -> List[Dict]:
        """
        Audit one forest for structural violations.

        Detects slot pointers to missing positions, slot values whose
        position names a different parent or slot, agents listed in more
        than one slot, and children whose level is not parent.level + 1.

        Returns:
            List of {"type", "agentID", "details"} dicts, empty when healthy
        """
        positions = self.getPartition(pairingLimit)
        byAgent = {p.agentID: p for p in positions}
        anomalies = []
        seenInSlots: Dict[str, str] = {}

        def report(kind: str, agentID: str, details: str):
            anomalies.append({"type": kind, "agentID": agentID, "details": details})
            logger.error(f"Tree anomaly [{kind}] at {agentID} (pairingLimit={pairingLimit}): {details}")

        for position in positions:
            for slot, childID in enumerate(position.childIDs(), start=1):
                if not childID:
                    continue

                if childID in seenInSlots:
                    report(
                        "duplicate_slot_value", position.agentID,
                        f"{childID} also listed under {seenInSlots[childID]}"
                    )
                seenInSlots[childID] = position.agentID

                child = byAgent.get(childID)
                if not child:
                    report("dangling_slot", position.agentID, f"slot {slot} -> missing {childID}")
                    continue

                if child.parentID != position.agentID or child.slotIndex != slot:
                    report(
                        "parent_mismatch", position.agentID,
                        f"slot {slot} -> {childID}, which records parent "
                        f"{child.parentID} slot {child.slotIndex}"
                    )

                if child.level != position.level + 1:
                    report(
                        "level_mismatch", childID,
                        f"level {child.level}, parent {position.agentID} level {position.level}"
                    )

            if position.parentID is not None:
                parent = byAgent.get(position.parentID)
                if not parent:
                    report("missing_parent", position.agentID, f"parent {position.parentID} not found")
                elif position.slotIndex is None or parent.getChild(position.slotIndex) != position.agentID:
                    report(
                        "unlinked_child", position.agentID,
                        f"parent {position.parentID} slot {position.slotIndex} does not point back"
                    )

        if not anomalies:
            logger.info(f"✓ Forest pairingLimit={pairingLimit} passed audit ({len(positions)} positions)")

        return anomalies
