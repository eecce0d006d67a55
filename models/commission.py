"""
Commission model - ledger of amounts owed to agents.
Rows are created 'pending' by commission calculation; only the pairing
release and max-depth unlock flows move them to 'paid'.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Index
from models.base import Base, AuditMixin

STATUS_PENDING = "pending"
STATUS_PAID = "paid"


class Commission(Base, AuditMixin):
    __tablename__ = 'commissions'
    __table_args__ = (
        Index('ix_commissions_from_status', 'fromAgentID', 'status'),
    )

    commissionID = Column(Integer, primary_key=True, autoincrement=True)

    agentID = Column(String(64), nullable=False, index=True)  # Beneficiary
    fromAgentID = Column(String(64), nullable=False)  # Node whose tree event generated it
    planID = Column(String(64), nullable=False)
    paymentID = Column(String(64), nullable=True)

    commissionAmount = Column(DECIMAL(18, 2), nullable=False)
    originalAmount = Column(DECIMAL(18, 2), nullable=True)
    level = Column(Integer, default=0)  # 0 = max-depth unlock bonus

    status = Column(String(16), default=STATUS_PENDING, nullable=False)  # pending, paid
    paidAt = Column(DateTime, nullable=True)

    notes = Column(String, nullable=True)

    def __repr__(self):
        return (
            f"<Commission(commissionID={self.commissionID}, agentID={self.agentID}, "
            f"from={self.fromAgentID}, amount={self.commissionAmount}, status={self.status})>"
        )
