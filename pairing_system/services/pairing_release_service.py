# pairing_system/services/pairing_release_service.py
"""
Pairing release - pays out commissions held until a node's slots are all filled.
"""
from sqlalchemy.orm import Session
import logging

from models.commission import Commission, STATUS_PENDING, STATUS_PAID
from pairing_system.services.tree_store import TreeStore
from pairing_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class PairingReleaseService:
    """Release pending commissions generated by a node once its pairing completes."""

    def __init__(self, session: Session):
        self.session = session
        self.store = TreeStore(session)

    def onSlotFilled(self, parentID: str, pairingLimit: int) -> int:
        """
        Re-check parentID's pairing and release its pending commissions if complete.

        Every pending Commission with fromAgentID == parentID becomes paid.
        Running it again finds nothing pending, so repeated calls are no-ops.
        A pairing limit of 1 has no pairing and never releases.

        Does not commit; runs inside the placement transaction.

        Args:
            parentID: Node whose slot was just filled
            pairingLimit: Forest of the node

        Returns:
            Number of commissions released
        """
        if pairingLimit <= 1:
            return 0

        parent = self.store.getPosition(parentID, pairingLimit)
        if not parent:
            logger.warning(f"Parent position {parentID} not found (pairingLimit={pairingLimit})")
            return 0

        filledSlots = parent.filledSlots
        logger.debug(f"Pairing status for {parentID}: {filledSlots}/{pairingLimit} slots filled")

        if filledSlots < pairingLimit:
            return 0

        pending = self.session.query(Commission).filter_by(
            fromAgentID=parentID,
            status=STATUS_PENDING
        ).with_for_update().all()

        if not pending:
            return 0

        paidAt = timeMachine.now
        for commission in pending:
            commission.status = STATUS_PAID
            commission.paidAt = paidAt

        self.session.flush()

        logger.info(
            f"✓ Pairing complete for {parentID}: released {len(pending)} commissions"
        )
        return len(pending)
