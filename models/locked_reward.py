"""
LockedReward model - reward held until a downline reaches the plan's max depth.
isReleased only ever moves False -> True.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean
from models.base import Base, AuditMixin


class LockedReward(Base, AuditMixin):
    __tablename__ = 'agent_plan_rewards'

    rewardID = Column(Integer, primary_key=True, autoincrement=True)

    agentID = Column(String(64), nullable=False, index=True)
    planID = Column(String(64), nullable=False)
    pairingLimit = Column(Integer, nullable=True)

    lockedAmount = Column(DECIMAL(18, 2), nullable=False, default=0)

    isReleased = Column(Boolean, default=False, nullable=False, index=True)
    releasedAt = Column(DateTime, nullable=True)

    def __repr__(self):
        return (
            f"<LockedReward(rewardID={self.rewardID}, agentID={self.agentID}, "
            f"amount={self.lockedAmount}, released={self.isReleased})>"
        )
