"""
AgentCashback model - instant cashback credited on a verified payment.
At most one row per payment.
"""
from sqlalchemy import Column, Integer, String, DECIMAL
from models.base import Base, AuditMixin


class AgentCashback(Base, AuditMixin):
    __tablename__ = 'agent_cashbacks'

    cashbackID = Column(Integer, primary_key=True, autoincrement=True)

    paymentID = Column(String(64), nullable=False, unique=True)
    agentID = Column(String(64), nullable=False, index=True)
    planID = Column(String(64), nullable=False)

    originalAmount = Column(DECIMAL(18, 2), nullable=False)
    cashbackPercentage = Column(DECIMAL(5, 2), nullable=False)
    cashbackAmount = Column(DECIMAL(18, 2), nullable=False)

    status = Column(String(16), default="credited")

    def __repr__(self):
        return f"<AgentCashback(paymentID={self.paymentID}, agentID={self.agentID}, amount={self.cashbackAmount})>"
