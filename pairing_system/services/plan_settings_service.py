# pairing_system/services/plan_settings_service.py
"""
Plan settings lookup - read-only access to a plan's pairing limit and max depth.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
import logging

from models.plan import Plan, PlanChainSettings
from pairing_system.errors import PlanConfigurationError
from pairing_system.config.plans import (
    MIN_PAIRING_LIMIT,
    MAX_PAIRING_LIMIT,
    get_plan_defaults,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanSettings:
    """Resolved settings of one plan."""
    planID: str
    pairingLimit: int
    maxDepth: int
    cashbackPercentage: Decimal
    isConfigured: bool = True


class PlanSettingsService:
    """Resolve plan chain settings, falling back to configured defaults."""

    def __init__(self, session: Session):
        self.session = session
    def get(self, planID: str) -> PlanSettings:
        """
        Get settings for a plan.

        Missing settings rows (or missing columns) fall back to defaults
        so that unconfigured plans still place as binary trees. A configured
        pairingLimit outside the supported fan-out is rejected rather than
        defaulted, so the plan never places into another forest.

        Args:
            planID: Plan identifier

        Returns:
            PlanSettings

        Raises:
            PlanConfigurationError: Configured pairingLimit out of range
        """
        defaults = get_plan_defaults()

        settings = self.session.query(PlanChainSettings).filter_by(planID=planID).first()
        plan = self.session.query(Plan).filter_by(planID=planID).first()

        pairingLimit = settings.pairingLimit if settings else None
        maxDepth = settings.maxDepth if settings and settings.maxDepth else None

        if pairingLimit is not None and not MIN_PAIRING_LIMIT <= pairingLimit <= MAX_PAIRING_LIMIT:
            logger.error(
                f"Plan {planID} has pairingLimit={pairingLimit} outside "
                f"{MIN_PAIRING_LIMIT}..{MAX_PAIRING_LIMIT}"
            )
            raise PlanConfigurationError(planID, pairingLimit)

        cashback = None
        if plan and plan.cashbackPercentage is not None:
            cashback = Decimal(str(plan.cashbackPercentage))

        if settings is None:
            logger.debug(f"Plan {planID} has no chain settings, using defaults")

        return PlanSettings(
            planID=planID,
            pairingLimit=pairingLimit if pairingLimit is not None else defaults["pairingLimit"],
            maxDepth=maxDepth or defaults["maxDepth"],
            cashbackPercentage=cashback if cashback is not None else defaults["cashbackPercentage"],
            isConfigured=settings is not None,
        )

    def getPairingLimit(self, planID: str) -> int:
        return self.get(planID).pairingLimit

    def getMaxDepth(self, planID: str) -> int:
        return self.get(planID).maxDepth

    def getPairingLimits(self, planIDs) -> dict:
        """Map each planID to its pairing limit."""
        return {planID: self.getPairingLimit(planID) for planID in planIDs}
