# pairing_system/services/reward_service.py
"""
Reward service - instant cashback and locked reward sizing on a verified payment.

A payment is split by the plan's cashback percentage: that share is credited
at once as cashback, the remainder is held as a locked reward until a
downline reaches the plan's max depth (see MaxDepthUnlockService).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional
from sqlalchemy.orm import Session
import logging

from models.cashback import AgentCashback
from models.locked_reward import LockedReward
from pairing_system.services.plan_settings_service import PlanSettingsService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")


def _percentOf(amount: Decimal, percentage: Decimal) -> Decimal:
    return (Decimal(str(amount)) * Decimal(str(percentage)) / HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)


class RewardService:
    """Cashback and locked reward bookkeeping. Does not commit."""

    def __init__(self, session: Session):
        self.session = session
        self.planSettings = PlanSettingsService(session)

    def grantInstantCashback(
            self,
            paymentID: str,
            agentID: str,
            planID: str,
            paymentAmount: Decimal
    ) -> Dict:
        """
        Credit cashback for a payment, once.

        Args:
            paymentID: Verified payment
            agentID: Purchasing agent
            planID: Plan purchased
            paymentAmount: Original paid amount

        Returns:
            Dict with success flag, message and the cashback row
        """
        existing = self.session.query(AgentCashback).filter_by(paymentID=paymentID).first()
        if existing:
            logger.debug(f"Cashback for payment {paymentID} already granted")
            return {
                "success": True,
                "alreadyGranted": True,
                "message": "Cashback already granted",
                "cashback": existing,
            }

        percentage = self.planSettings.get(planID).cashbackPercentage
        amount = _percentOf(paymentAmount, percentage)

        cashback = AgentCashback(
            paymentID=paymentID,
            agentID=agentID,
            planID=planID,
            originalAmount=Decimal(str(paymentAmount)),
            cashbackPercentage=percentage,
            cashbackAmount=amount,
            status="credited",
        )
        self.session.add(cashback)
        self.session.flush()

        logger.info(f"✓ Cashback {amount} ({percentage}%) credited to {agentID} for payment {paymentID}")

        return {
            "success": True,
            "alreadyGranted": False,
            "message": f"{amount} cashback credited",
            "cashback": cashback,
        }

    def lockPlanReward(
            self,
            agentID: str,
            planID: str,
            paymentAmount: Decimal
    ) -> Optional[LockedReward]:
        """
        Hold the non-cashback share of a payment as the agent's locked reward.

        Updates the agent's unreleased reward for the plan, or creates one.
        Released rewards are never touched.

        Returns:
            The locked reward, or None if the plan's reward was already released
        """
        settings = self.planSettings.get(planID)
        lockedAmount = _percentOf(paymentAmount, HUNDRED - settings.cashbackPercentage)

        reward = self.session.query(LockedReward).filter_by(
            agentID=agentID,
            planID=planID
        ).order_by(LockedReward.rewardID.desc()).with_for_update().first()

        if reward and reward.isReleased:
            logger.warning(
                f"Reward for {agentID} in plan {planID} already released, not re-locking"
            )
            return None

        if reward is None:
            reward = LockedReward(agentID=agentID, planID=planID, isReleased=False)
            self.session.add(reward)

        reward.lockedAmount = lockedAmount
        reward.pairingLimit = settings.pairingLimit
        self.session.flush()

        logger.info(f"Locked {lockedAmount} for {agentID} in plan {planID}")
        return reward
