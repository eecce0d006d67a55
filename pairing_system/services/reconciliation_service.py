# pairing_system/services/reconciliation_service.py
"""
Reconciliation - re-runs both release triggers over every complete node.

Safe to run at any time: pairing release only touches pending commissions
and max-depth unlock only touches unreleased rewards, so work that already
happened is not repeated.
"""
from typing import Dict, Optional
from sqlalchemy.orm import Session
import logging

from pairing_system.services.max_depth_unlock_service import MaxDepthUnlockService
from pairing_system.services.pairing_release_service import PairingReleaseService
from pairing_system.services.tree_store import TreeStore

logger = logging.getLogger(__name__)


class ReconciliationService:

    def __init__(self, session: Session):
        self.session = session
        self.store = TreeStore(session)
        self.pairingRelease = PairingReleaseService(session)
        self.maxDepthUnlock = MaxDepthUnlockService(session)

    def run(self, pairingLimit: Optional[int] = None, commit: bool = True) -> Dict:
        """
        Re-trigger releases for complete nodes.

        The level passed to the unlock check is the level of the node's
        children, matching what a live placement reports.

        Args:
            pairingLimit: Forest to reconcile, or None for every forest
            commit: Commit when done (rolls back on error either way)

        Returns:
            Stats dict: nodesChecked, commissionsReleased, rewardsUnlocked, anomalies
        """
        limits = [pairingLimit] if pairingLimit is not None else self.store.getPairingLimits()
        stats = {
            "nodesChecked": 0,
            "commissionsReleased": 0,
            "rewardsUnlocked": 0,
            "anomalies": 0,
        }

        try:
            for limit in limits:
                if limit <= 1:
                    continue

                stats["anomalies"] += len(self.store.findAnomalies(limit))

                for position in self.store.getPartition(limit):
                    if not position.isPairingComplete:
                        continue

                    stats["nodesChecked"] += 1
                    stats["commissionsReleased"] += self.pairingRelease.onSlotFilled(
                        position.agentID, limit
                    )
                    stats["rewardsUnlocked"] += self.maxDepthUnlock.onPairingComplete(
                        position.agentID, position.level + 1, limit
                    )

            if commit:
                self.session.commit()

        except Exception:
            self.session.rollback()
            logger.error("Reconciliation failed", exc_info=True)
            raise

        logger.info(
            f"Reconciliation done: {stats['nodesChecked']} complete nodes, "
            f"{stats['commissionsReleased']} commissions released, "
            f"{stats['rewardsUnlocked']} rewards unlocked, "
            f"{stats['anomalies']} anomalies"
        )
        return stats
