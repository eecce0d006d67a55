"""
Database models for the pairing engine.
Import all models here for easy access and so metadata sees every table.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Plans and ownership
from models.plan import Plan, PlanChainSettings
from models.agent_plan import AgentPlan

# Tree
from models.tree_position import TreePosition

# Ledger
from models.commission import Commission
from models.locked_reward import LockedReward
from models.cashback import AgentCashback

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Plans
    'Plan',
    'PlanChainSettings',
    'AgentPlan',

    # Tree
    'TreePosition',

    # Ledger
    'Commission',
    'LockedReward',
    'AgentCashback',
]
