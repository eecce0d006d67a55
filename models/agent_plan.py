"""
AgentPlan model - plan grants owned by agents.
Source of truth for plan ownership checks during placement.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, UniqueConstraint
from models.base import Base, AuditMixin


class AgentPlan(Base, AuditMixin):
    __tablename__ = 'agent_plans'
    __table_args__ = (
        UniqueConstraint('agentID', 'planID', name='uq_agent_plans_agent_plan'),
    )

    agentPlanID = Column(Integer, primary_key=True, autoincrement=True)

    agentID = Column(String(64), nullable=False, index=True)
    planID = Column(String(64), nullable=False, index=True)

    isActive = Column(Boolean, default=True, nullable=False)
    purchasedAt = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<AgentPlan(agentID={self.agentID}, planID={self.planID}, active={self.isActive})>"
