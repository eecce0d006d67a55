# tests/conftest.py
"""
Pytest configuration and shared fixtures for the pairing engine tests.

Every test gets a fresh in-memory SQLite database.

Run:
    pytest tests/ -v
"""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Config
from models import (
    Base,
    Plan,
    PlanChainSettings,
    TreePosition,
    Commission,
    LockedReward,
)
from pairing_system.services.agent_plan_service import AgentPlanService
from pairing_system.services.placement_service import PlacementService
from pairing_system.utils.time_machine import timeMachine

# =============================================================================
# INITIALIZE CONFIG
# =============================================================================

if not Config.is_initialized():
    Config.initialize_from_env()

# =============================================================================
# CONSTANTS
# =============================================================================

FROZEN_NOW = datetime(2025, 3, 14, 12, 0, 0)

BINARY_PLAN = {
    'planID': 'plan-binary',
    'pairingLimit': 2,
    'maxDepth': 3,
}


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def test_config():
    """No retry sleeps, deterministic defaults."""
    Config.set(Config.PLACEMENT_RETRY_BASE_DELAY, 0)
    Config.set(Config.PLACEMENT_MAX_ATTEMPTS, 5)
    Config.set(Config.DEFAULT_PAIRING_LIMIT, 2)
    Config.set(Config.DEFAULT_MAX_DEPTH, 50)
    Config.set(Config.DEFAULT_CASHBACK_PERCENTAGE, 20)
    yield


@pytest.fixture(autouse=True)
def frozen_time():
    """Freeze the system clock so paidAt / releasedAt are predictable."""
    timeMachine.setTime(FROZEN_NOW, reason="tests")
    yield FROZEN_NOW
    timeMachine.resetToRealTime()


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create database session for each test."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


# =============================================================================
# FACTORY FIXTURES
# =============================================================================

@pytest.fixture
def make_plan(session):
    """
    Create a plan, optionally with chain settings.

    make_plan('p1', pairingLimit=3, maxDepth=10, cashbackPercentage=25)
    make_plan('bare', settings=False)
    """

    def _make(planID, pairingLimit=2, maxDepth=50, cashbackPercentage=20, settings=True):
        plan = Plan(
            planID=planID,
            planName=f"Plan {planID}",
            price=Decimal("1000.00"),
            cashbackPercentage=Decimal(str(cashbackPercentage)) if cashbackPercentage is not None else None,
            isActive=True,
        )
        session.add(plan)
        if settings:
            session.add(PlanChainSettings(
                planID=planID,
                pairingLimit=pairingLimit,
                maxDepth=maxDepth,
            ))
        session.commit()
        return plan

    return _make


@pytest.fixture
def binary_plan(make_plan):
    """Binary plan with maxDepth=3."""
    return make_plan(**BINARY_PLAN)


@pytest.fixture
def grant(session):
    """Give agents an active grant of a plan: grant('plan', 'A', 'B')."""

    def _grant(planID, *agentIDs):
        service = AgentPlanService(session)
        for agentID in agentIDs:
            service.assignPlan(agentID, planID)
        session.commit()

    return _grant


@pytest.fixture
def placement(session):
    return PlacementService(session)


@pytest.fixture
def place(session, grant, placement):
    """
    Grant the plan and place the agent in one step.

    place('R', 'plan')            -> root
    place('A', 'plan', 'R')       -> under sponsor R
    """

    def _place(agentID, planID, sponsorID=None):
        grant(planID, agentID)
        return placement.placeAgent(agentID, planID, sponsorID)

    return _place


@pytest.fixture
def get_position(session):
    def _get(agentID, pairingLimit=2):
        return session.query(TreePosition).filter_by(
            agentID=agentID,
            pairingLimit=pairingLimit
        ).first()

    return _get


@pytest.fixture
def add_commission(session):
    """Create a pending commission generated by fromAgentID."""

    def _add(fromAgentID, agentID="beneficiary", amount="50.00", planID="plan-binary", status="pending"):
        commission = Commission(
            agentID=agentID,
            fromAgentID=fromAgentID,
            planID=planID,
            commissionAmount=Decimal(amount),
            originalAmount=Decimal(amount),
            level=1,
            status=status,
        )
        session.add(commission)
        session.commit()
        return commission

    return _add


@pytest.fixture
def add_reward(session):
    """Create an unreleased locked reward."""

    def _add(agentID, planID, amount="100.00"):
        reward = LockedReward(
            agentID=agentID,
            planID=planID,
            lockedAmount=Decimal(amount),
            isReleased=False,
        )
        session.add(reward)
        session.commit()
        return reward

    return _add
