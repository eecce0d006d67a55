# pairing_system/utils/chain_walker.py
"""
Safe tree walking utilities.
Prevents infinite loops on corrupted data and logs broken links.
"""
from typing import Optional, Callable, Set, List, Dict
import logging

from models.tree_position import TreePosition

logger = logging.getLogger(__name__)


class ChainWalker:
    """
    Safe utilities for walking upline/downline chains of one pairing forest.
    Prevents infinite loops and reports chain integrity problems.
    """

    def __init__(self, store, pairingLimit: int, cache: Optional[Dict[str, TreePosition]] = None):
        """
        Args:
            store: TreeStore used for position lookups
            pairingLimit: Forest to walk
            cache: Optional preloaded {agentID: position} map; lookups
                fall back to the store when an agent is missing from it
        """
        self.store = store
        self.pairingLimit = pairingLimit
        self._cache = cache

    def get_position(self, agentID: str) -> Optional[TreePosition]:
        if self._cache is not None and agentID in self._cache:
            return self._cache[agentID]
        return self.store.getPosition(agentID, self.pairingLimit)

    def walk_upline(
            self,
            start: TreePosition,
            callback: Callable[[TreePosition, int], bool],
            max_depth: Optional[int] = None
    ) -> int:
        """
        Walk from start's parent up to the root, calling callback for each ancestor.

        Args:
            start: Starting position (not passed to callback)
            callback: Function(ancestor, distance) -> continue_walking (bool);
                distance is 1 for the direct parent
            max_depth: Optional limit on ancestors visited

        Returns:
            Number of ancestors processed
        """
        current = start
        distance = 1
        processed = 0
        visited = {start.agentID}

        while current.parentID:
            if max_depth is not None and distance > max_depth:
                logger.error(f"Max depth ({max_depth}) exceeded walking up from {start.agentID}")
                break

            if current.parentID in visited:
                logger.error(f"Cycle detected at {current.parentID} walking up from {start.agentID}")
                break

            parent = self.get_position(current.parentID)
            if not parent:
                logger.error(
                    f"Upline not found: {current.parentID} (parent of {current.agentID}, "
                    f"pairingLimit={self.pairingLimit})"
                )
                break

            visited.add(parent.agentID)

            should_continue = callback(parent, distance)
            processed += 1

            if not should_continue:
                break

            current = parent
            distance += 1

        return processed

    def get_upline_chain(self, start: TreePosition, max_depth: Optional[int] = None) -> List[TreePosition]:
        """
        Get all ancestors of start.

        Returns:
            List of positions from direct parent to root
        """
        chain = []

        def collect(ancestor, distance):
            chain.append(ancestor)
            return True  # Continue

        self.walk_upline(start, collect, max_depth)
        return chain

    def walk_downline(
            self,
            start: TreePosition,
            callback: Callable[[TreePosition, TreePosition, int], None],
            max_depth: int = 50,
            visited: Optional[Set[str]] = None,
            depth: int = 1
    ) -> int:
        """
        Walk the subtree below start depth-first, following slot pointers in slot order.

        Args:
            start: Subtree root (not passed to callback)
            callback: Function(parent, child, depth) for each descendant
            max_depth: Maximum levels below start
            visited: Visited agent IDs (for cycle detection)

        Returns:
            Total number of descendants processed
        """
        if visited is None:
            visited = set()

        if start.agentID in visited:
            logger.error(f"Cycle detected in downline at {start.agentID}")
            return 0

        visited.add(start.agentID)

        if depth > max_depth:
            return 0

        processed = 0

        for childID in start.childIDs():
            if not childID:
                continue

            if childID in visited:
                logger.error(f"Cycle detected: {start.agentID} points back to {childID}")
                continue

            child = self.get_position(childID)
            if not child:
                logger.error(
                    f"Slot of {start.agentID} points to {childID}, which has no position "
                    f"(pairingLimit={self.pairingLimit})"
                )
                continue

            callback(start, child, depth)
            processed += 1

            processed += self.walk_downline(child, callback, max_depth, visited, depth + 1)

        return processed

    def count_downline(self, start: TreePosition, max_depth: int = 50) -> int:
        """Count descendants of start."""
        return self.walk_downline(start, lambda parent, child, depth: None, max_depth)
