"""
Plan models - compensation plans and their chain settings.
Plans referenced by tree positions must not change their pairing limit:
trees are partitioned by pairing limit, so a change orphans existing placements.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Plan(Base, AuditMixin):
    __tablename__ = 'plans'

    planID = Column(String(64), primary_key=True)
    planName = Column(String, nullable=False)

    price = Column(DECIMAL(12, 2), nullable=True)
    cashbackPercentage = Column(DECIMAL(5, 2), nullable=True)  # Share paid instantly, rest is locked

    isActive = Column(Boolean, default=True)

    # Relationship
    chainSettings = relationship('PlanChainSettings', back_populates='plan', uselist=False)

    def __repr__(self):
        return f"<Plan(planID={self.planID}, name={self.planName}, cashback={self.cashbackPercentage})>"


class PlanChainSettings(Base, AuditMixin):
    __tablename__ = 'plan_chain_settings'

    settingsID = Column(Integer, primary_key=True, autoincrement=True)
    planID = Column(String(64), ForeignKey('plans.planID'), nullable=False, unique=True)

    pairingLimit = Column(Integer, nullable=True)  # Fan-out width, 1-5
    maxDepth = Column(Integer, nullable=True)  # Tree level that unlocks upline rewards

    plan = relationship('Plan', back_populates='chainSettings')

    def __repr__(self):
        return (
            f"<PlanChainSettings(planID={self.planID}, pairingLimit={self.pairingLimit}, "
            f"maxDepth={self.maxDepth})>"
        )
