"""
Pairing system - agent placement into bounded fan-out trees and reward release.
"""

# Services
from pairing_system.services.plan_settings_service import PlanSettingsService, PlanSettings
from pairing_system.services.agent_plan_service import AgentPlanService
from pairing_system.services.tree_store import TreeStore
from pairing_system.services.placement_resolver import PlacementResolver, Slot
from pairing_system.services.placement_service import PlacementService, PlacementResult
from pairing_system.services.pairing_release_service import PairingReleaseService
from pairing_system.services.max_depth_unlock_service import MaxDepthUnlockService
from pairing_system.services.reward_service import RewardService
from pairing_system.services.reconciliation_service import ReconciliationService

# Errors
from pairing_system.errors import (
    PlacementError,
    PlacementErrorCode,
    SponsorNotInTree,
    MaxDepthReached,
    NoAvailablePosition,
    PlanNotOwned,
    IncompatibleSponsorPlan,
    PlacementRetryExhausted,
    PlanConfigurationError,
)

# Utilities
from pairing_system.utils.time_machine import timeMachine

__all__ = [
    # Services
    'PlanSettingsService',
    'PlanSettings',
    'AgentPlanService',
    'TreeStore',
    'PlacementResolver',
    'Slot',
    'PlacementService',
    'PlacementResult',
    'PairingReleaseService',
    'MaxDepthUnlockService',
    'RewardService',
    'ReconciliationService',

    # Errors
    'PlacementError',
    'PlacementErrorCode',
    'SponsorNotInTree',
    'MaxDepthReached',
    'NoAvailablePosition',
    'PlanNotOwned',
    'IncompatibleSponsorPlan',
    'PlacementRetryExhausted',
    'PlanConfigurationError',

    # Utils
    'timeMachine',
]
