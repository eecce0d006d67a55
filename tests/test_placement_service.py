# tests/test_placement_service.py
"""
Tests for PlacementService: preconditions, idempotence, forest sharing,
the end-to-end placement scenario, and conflict / transient retry handling.

Run:
    pytest tests/test_placement_service.py -v
"""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from config import Config
from models import TreePosition, Commission
from pairing_system.errors import (
    PlanNotOwned,
    IncompatibleSponsorPlan,
    SponsorNotInTree,
    MaxDepthReached,
    PlacementRetryExhausted,
    PlacementErrorCode,
)
from pairing_system.services.agent_plan_service import AgentPlanService
from pairing_system.services.placement_resolver import Slot
from pairing_system.services.placement_service import PlacementResult
from pairing_system.services.tree_store import TreeStore


# =============================================================================
# TEST CLASS: Root placement
# =============================================================================

class TestRootPlacement:

    def test_root_created(self, session, binary_plan, place, get_position):
        result = place("R", "plan-binary")

        root = get_position("R")
        assert result.parentID is None
        assert result.position == "root"
        assert root.level == 1
        assert root.parentID is None
        assert root.treeOwnerID == "R"
        assert root.planID == "plan-binary"

        payload = result.toDict()
        assert payload["success"] is True
        assert payload["alreadyPlaced"] is False
        assert not hasattr(PlacementResult, "success")

    def test_root_placement_is_idempotent(self, session, binary_plan, place, placement):
        """
        TEST: Two root placements for the same agent -> exactly one root row.
        """
        place("R", "plan-binary")
        second = placement.placeAgent("R", "plan-binary")

        assert second.alreadyPlaced is True
        rows = session.query(TreePosition).filter_by(agentID="R", pairingLimit=2).all()
        assert len(rows) == 1
        assert rows[0].treeOwnerID == "R"

    def test_roots_in_different_forests(self, session, binary_plan, make_plan, place, get_position):
        make_plan("plan-ternary", pairingLimit=3)

        place("R", "plan-binary")
        place("R", "plan-ternary")

        assert get_position("R", 2) is not None
        assert get_position("R", 3) is not None


# =============================================================================
# TEST CLASS: Preconditions
# =============================================================================

class TestPreconditions:

    def test_plan_not_owned(self, session, binary_plan, placement):
        with pytest.raises(PlanNotOwned) as exc:
            placement.placeAgent("R", "plan-binary")

        assert exc.value.code == PlacementErrorCode.PLAN_NOT_OWNED
        assert session.query(TreePosition).count() == 0

    def test_inactive_grant_is_not_ownership(self, session, binary_plan, grant, placement):
        grant("plan-binary", "R")
        AgentPlanService(session).deactivatePlan("R", "plan-binary")
        session.commit()

        with pytest.raises(PlanNotOwned):
            placement.placeAgent("R", "plan-binary")

    def test_sponsor_without_active_plans(self, session, binary_plan, place, grant, placement):
        place("R", "plan-binary")
        AgentPlanService(session).deactivatePlan("R", "plan-binary")
        session.commit()
        grant("plan-binary", "A")

        with pytest.raises(IncompatibleSponsorPlan):
            placement.placeAgent("A", "plan-binary", "R")

    def test_sponsor_with_different_pairing_limit(self, session, binary_plan, make_plan, place, grant, placement):
        make_plan("plan-ternary", pairingLimit=3)
        place("R", "plan-ternary")
        grant("plan-binary", "A")

        with pytest.raises(IncompatibleSponsorPlan) as exc:
            placement.placeAgent("A", "plan-binary", "R")

        assert exc.value.context["pairingLimit"] == 2

    def test_compatible_sponsor_not_in_tree(self, session, binary_plan, grant, placement):
        grant("plan-binary", "R", "A")

        with pytest.raises(SponsorNotInTree):
            placement.placeAgent("A", "plan-binary", "R")

    def test_business_errors_are_not_retried(self, session, make_plan, place, grant, placement, monkeypatch):
        make_plan("plan-shallow", pairingLimit=2, maxDepth=2)
        place("R", "plan-shallow")
        place("A", "plan-shallow", "R")
        grant("plan-shallow", "X")

        calls = []
        original = placement.resolver.resolve

        def spy(*args):
            calls.append(args)
            return original(*args)

        monkeypatch.setattr(placement.resolver, "resolve", spy)

        with pytest.raises(MaxDepthReached):
            placement.placeAgent("X", "plan-shallow", "A")

        assert len(calls) == 1


# =============================================================================
# TEST CLASS: Idempotence and shared forests
# =============================================================================

class TestIdempotence:

    def test_second_placement_is_noop(self, session, binary_plan, place, placement):
        """
        TEST: PlaceAgent(a, p, s) twice -> one position, second call reports alreadyPlaced.
        """
        place("R", "plan-binary")
        first = place("A", "plan-binary", "R")
        second = placement.placeAgent("A", "plan-binary", "R")

        assert first.alreadyPlaced is False
        assert second.alreadyPlaced is True
        assert second.parentID is None
        assert session.query(TreePosition).filter_by(agentID="A").count() == 1

        root = session.query(TreePosition).filter_by(agentID="R").one()
        assert root.child1ID == "A"
        assert root.child2ID is None

    def test_plans_with_same_pairing_limit_share_forest(self, session, binary_plan, make_plan, place, grant, placement):
        """
        TEST: A second plan with the same pairing limit places into the same forest.
        """
        make_plan("plan-binary-gold", pairingLimit=2, maxDepth=5)
        place("R", "plan-binary")

        # A buys the gold plan; sponsor R only holds the original binary plan
        result = place("A", "plan-binary-gold", "R")
        assert result.parentID == "R"

        # A later buying the original plan is already placed in that forest
        grant("plan-binary", "A")
        again = placement.placeAgent("A", "plan-binary", "R")
        assert again.alreadyPlaced is True
        assert session.query(TreePosition).filter_by(agentID="A").count() == 1


# =============================================================================
# TEST CLASS: End-to-end scenario
# =============================================================================

class TestEndToEnd:

    def test_binary_tree_growth(self, session, binary_plan, place, get_position, add_commission):
        """
        TEST: pairingLimit=2, maxDepth=3.
        R root; A -> R slot 1; B -> R slot 2 (releases R's pairing);
        C -> R is full, spills under A slot 1 at level 3.
        """
        place("R", "plan-binary")
        add_commission("R", agentID="UPLINE")

        a = place("A", "plan-binary", "R")
        assert (a.parentID, a.slotIndex, a.level) == ("R", 1, 2)
        assert a.commissionsReleased == 0

        b = place("B", "plan-binary", "R")
        assert (b.parentID, b.slotIndex, b.level) == ("R", 2, 2)
        assert b.commissionsReleased == 1

        c = place("C", "plan-binary", "R")
        assert (c.parentID, c.slotIndex, c.level) == ("A", 1, 3)

        positionC = get_position("C")
        assert positionC.treeOwnerID == "R"
        assert positionC.position == "child_1"
        assert get_position("A").child1ID == "C"

        commission = session.query(Commission).filter_by(fromAgentID="R").one()
        assert commission.status == "paid"

    def test_slot_exclusivity_after_many_placements(self, session, make_plan, place):
        make_plan("plan-ternary", pairingLimit=3, maxDepth=10)
        place("R", "plan-ternary")
        sponsors = ["R", "R", "R", "R", "A1", "R", "A1", "A2", "R", "A3", "R", "A5"]
        for i, sponsor in enumerate(sponsors, start=1):
            place(f"A{i}", "plan-ternary", sponsor)

        positions = session.query(TreePosition).filter_by(pairingLimit=3).all()
        slotValues = [child for p in positions for child in p.childIDs() if child]

        assert len(positions) == len(sponsors) + 1
        assert len(slotValues) == len(set(slotValues)) == len(sponsors)
        assert TreeStore(session).findAnomalies(3) == []


# =============================================================================
# TEST CLASS: Conflicts and retries
# =============================================================================

class TestConflictRetry:

    def test_stale_slot_is_re_resolved(self, session, binary_plan, place, grant, placement, monkeypatch):
        """
        TEST: Slot taken between resolve and write -> rollback, re-resolve, next slot.
        """
        place("R", "plan-binary")
        place("A", "plan-binary", "R")
        grant("plan-binary", "B")

        original = placement.resolver.resolve
        calls = []

        def stale_then_real(sponsorID, planID):
            calls.append(sponsorID)
            if len(calls) == 1:
                # What a writer that resolved before A committed would see
                return Slot(parentID="R", slotIndex=1, level=2, pairingLimit=2)
            return original(sponsorID, planID)

        monkeypatch.setattr(placement.resolver, "resolve", stale_then_real)

        result = placement.placeAgent("B", "plan-binary", "R")

        assert result.attempts == 2
        assert (result.parentID, result.slotIndex) == ("R", 2)
        root = session.query(TreePosition).filter_by(agentID="R").one()
        assert (root.child1ID, root.child2ID) == ("A", "B")

    def test_unique_constraint_violation_is_retried(self, session, binary_plan, place, grant, placement, monkeypatch):
        place("R", "plan-binary")
        grant("plan-binary", "A")

        original = placement.store.insertChild
        calls = []

        def conflict_once(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise IntegrityError("INSERT INTO plan_binary_positions", {}, Exception("UNIQUE constraint failed"))
            return original(*args, **kwargs)

        monkeypatch.setattr(placement.store, "insertChild", conflict_once)

        result = placement.placeAgent("A", "plan-binary", "R")

        assert result.attempts == 2
        assert session.query(TreePosition).filter_by(agentID="A").count() == 1

    def test_transient_error_backs_off_and_retries(self, session, binary_plan, place, grant, placement, monkeypatch):
        Config.set(Config.PLACEMENT_RETRY_BASE_DELAY, 0.5)
        place("R", "plan-binary")
        grant("plan-binary", "A")

        sleeps = []
        monkeypatch.setattr("pairing_system.services.placement_service.time.sleep", sleeps.append)

        original = placement.store.insertChild
        calls = []

        def flaky(*args, **kwargs):
            calls.append(args)
            if len(calls) <= 2:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return original(*args, **kwargs)

        monkeypatch.setattr(placement.store, "insertChild", flaky)

        result = placement.placeAgent("A", "plan-binary", "R")

        assert result.attempts == 3
        assert sleeps == [0.5, 1.0]
        assert session.query(TreePosition).filter_by(agentID="A").count() == 1

    def test_retry_budget_exhausted(self, session, binary_plan, place, grant, placement, monkeypatch):
        Config.set(Config.PLACEMENT_MAX_ATTEMPTS, 3)
        place("R", "plan-binary")
        grant("plan-binary", "A")

        def always_fail(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("could not serialize access"))

        monkeypatch.setattr(placement.store, "insertChild", always_fail)

        with pytest.raises(PlacementRetryExhausted) as exc:
            placement.placeAgent("A", "plan-binary", "R")

        assert exc.value.attempts == 3
        assert isinstance(exc.value.lastError, OperationalError)
        assert session.query(TreePosition).filter_by(agentID="A").count() == 0
        assert session.query(TreePosition).filter_by(agentID="R").one().child1ID is None

    def test_failed_attempt_leaves_no_partial_write(self, session, binary_plan, place, grant, placement, monkeypatch):
        """
        TEST: A failure after the child row is flushed rolls back both writes.
        """
        Config.set(Config.PLACEMENT_MAX_ATTEMPTS, 1)
        place("R", "plan-binary")
        grant("plan-binary", "A")

        def boom(*args, **kwargs):
            raise OperationalError("UPDATE commissions", {}, Exception("connection lost"))

        monkeypatch.setattr(placement.pairingRelease, "onSlotFilled", boom)

        with pytest.raises(PlacementRetryExhausted):
            placement.placeAgent("A", "plan-binary", "R")

        assert session.query(TreePosition).filter_by(agentID="A").count() == 0
        assert session.query(TreePosition).filter_by(agentID="R").one().child1ID is None
