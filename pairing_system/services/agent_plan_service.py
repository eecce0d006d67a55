# pairing_system/services/agent_plan_service.py
"""
Agent plan ownership - which plans an agent holds and whether they are active.
"""
from typing import List, Optional
from sqlalchemy.orm import Session
import logging

from models.agent_plan import AgentPlan
from pairing_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class AgentPlanService:
    """Plan grants owned by agents."""

    def __init__(self, session: Session):
        self.session = session

    def isActive(self, agentID: str, planID: str) -> bool:
        """True if agentID holds an active grant of planID."""
        grant = self.session.query(AgentPlan).filter_by(
            agentID=agentID,
            planID=planID,
            isActive=True
        ).first()
        return grant is not None

    def getActivePlanIDs(self, agentID: str) -> List[str]:
        rows = self.session.query(AgentPlan.planID).filter_by(
            agentID=agentID,
            isActive=True
        ).all()
        return [row[0] for row in rows]

    def hasActivePlanWithPairingLimit(self, agentID: str, pairingLimit: int) -> bool:
        """
        True if any active plan of agentID places into the pairingLimit forest.

        Sponsors are matched by pairing limit, not by plan: plans with the
        same pairing limit share one forest.
        """
        from pairing_system.services.plan_settings_service import PlanSettingsService

        planIDs = self.getActivePlanIDs(agentID)
        if not planIDs:
            return False

        limits = PlanSettingsService(self.session).getPairingLimits(planIDs)
        return pairingLimit in limits.values()

    def assignPlan(self, agentID: str, planID: str) -> AgentPlan:
        """
        Grant planID to agentID, reactivating an existing grant.

        Does not commit; the caller owns the transaction.

        Returns:
            The active AgentPlan row
        """
        grant = self.session.query(AgentPlan).filter_by(
            agentID=agentID,
            planID=planID
        ).first()

        now = timeMachine.now
        if grant:
            if not grant.isActive:
                logger.info(f"Reactivating plan {planID} for agent {agentID}")
            grant.isActive = True
            grant.purchasedAt = now
        else:
            grant = AgentPlan(
                agentID=agentID,
                planID=planID,
                isActive=True,
                purchasedAt=now
            )
            self.session.add(grant)
            logger.info(f"Plan {planID} assigned to agent {agentID}")

        self.session.flush()
        return grant

    def deactivatePlan(self, agentID: str, planID: str) -> Optional[AgentPlan]:
        grant = self.session.query(AgentPlan).filter_by(
            agentID=agentID,
            planID=planID
        ).first()
        if grant:
            grant.isActive = False
            self.session.flush()
        return grant
