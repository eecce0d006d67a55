# pairing_system/services/max_depth_unlock_service.py
"""
Max-depth unlock - releases upline rewards once a downline reaches the plan's depth.

When a node completes its pairing, every ancestor's unreleased locked
reward is checked against its plan's maxDepth. If the level reached is at
least maxDepth, the locked amount is paid out as a level-0 commission and
the reward is marked released, exactly once.
"""
from decimal import Decimal
from typing import Dict, Optional
from sqlalchemy.orm import Session
import logging

from models.commission import Commission, STATUS_PAID
from models.locked_reward import LockedReward
from pairing_system.errors import PlanConfigurationError
from pairing_system.services.plan_settings_service import PlanSettingsService
from pairing_system.services.tree_store import TreeStore
from pairing_system.utils.chain_walker import ChainWalker
from pairing_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class MaxDepthUnlockService:
    """Unlock depth-milestone rewards along the upline of a completed node."""

    def __init__(self, session: Session):
        self.session = session
        self.store = TreeStore(session)
        self.planSettings = PlanSettingsService(session)

    def onPairingComplete(self, agentID: str, agentLevel: int, pairingLimit: int) -> int:
        """
        Walk agentID's upline and unlock rewards whose plan depth has been reached.

        Does nothing unless agentID's own slots are all filled. Released
        rewards are skipped, so re-running for the same event creates no
        further commissions.

        Does not commit; runs inside the placement transaction.

        Args:
            agentID: Node that completed its pairing
            agentLevel: Tree level reached by the event
            pairingLimit: Forest of the node

        Returns:
            Number of rewards unlocked
        """
        position = self.store.getPosition(agentID, pairingLimit)
        if not position:
            logger.warning(f"Position {agentID} not found (pairingLimit={pairingLimit})")
            return 0

        if not position.isPairingComplete:
            logger.debug(
                f"Pairing of {agentID} not complete: "
                f"{position.filledSlots}/{pairingLimit}"
            )
            return 0

        walker = ChainWalker(self.store, pairingLimit)
        upline = walker.get_upline_chain(position)

        if not upline:
            logger.debug(f"No upline for {agentID}")
            return 0

        maxDepthCache: Dict[str, Optional[int]] = {}
        unlocked = 0

        for ancestor in upline:
            rewards = self.session.query(LockedReward).filter_by(
                agentID=ancestor.agentID,
                isReleased=False
            ).with_for_update().all()

            for reward in rewards:
                if reward.planID not in maxDepthCache:
                    try:
                        maxDepthCache[reward.planID] = self.planSettings.getMaxDepth(reward.planID)
                    except PlanConfigurationError as e:
                        logger.error(f"Skipping reward {reward.rewardID} of {ancestor.agentID}: {e}")
                        maxDepthCache[reward.planID] = None
                if maxDepthCache[reward.planID] is None:
                    continue
                maxDepth = maxDepthCache[reward.planID]

                if agentLevel < maxDepth:
                    continue

                self._release(reward, fromAgentID=agentID)
                unlocked += 1

                logger.info(
                    f"✓ Unlocked {reward.lockedAmount} for {ancestor.agentID} "
                    f"(plan {reward.planID}, maxDepth {maxDepth} reached at level {agentLevel})"
                )

        if unlocked:
            self.session.flush()

        return unlocked

    def _release(self, reward: LockedReward, fromAgentID: str) -> Commission:
        """Pay out a locked reward as a level-0 commission and mark it released."""
        now = timeMachine.now
        amount = Decimal(str(reward.lockedAmount))

        commission = Commission(
            agentID=reward.agentID,
            fromAgentID=fromAgentID,
            planID=reward.planID,
            paymentID=None,
            commissionAmount=amount,
            originalAmount=amount,
            level=0,
            status=STATUS_PAID,
            paidAt=now,
            notes=f"Max-depth unlock of reward {reward.rewardID}",
        )
        self.session.add(commission)

        reward.isReleased = True
        reward.releasedAt = now
        return commission
