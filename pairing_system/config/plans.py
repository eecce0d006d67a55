"""
Plan chain constants and defaults.
Defaults are read from Config so deployments can change them via .env.
"""
from decimal import Decimal
from typing import Dict, Any
import logging

from models.tree_position import MAX_SLOTS

logger = logging.getLogger(__name__)

# Fan-out bounds supported by the position schema
MIN_PAIRING_LIMIT = 1
MAX_PAIRING_LIMIT = MAX_SLOTS

# Fallbacks when neither the plan nor Config provides a value
DEFAULT_PAIRING_LIMIT = 2  # Binary tree
DEFAULT_MAX_DEPTH = 50
DEFAULT_CASHBACK_PERCENTAGE = Decimal("20")


def get_plan_defaults() -> Dict[str, Any]:
    """
    Get defaults applied to plans without chain settings.

    Returns:
        Dict with pairingLimit, maxDepth and cashbackPercentage
    """
    from config import Config

    pairing_limit = int(Config.get(Config.DEFAULT_PAIRING_LIMIT, DEFAULT_PAIRING_LIMIT))
    if not MIN_PAIRING_LIMIT <= pairing_limit <= MAX_PAIRING_LIMIT:
        logger.error(
            f"DEFAULT_PAIRING_LIMIT={pairing_limit} outside "
            f"{MIN_PAIRING_LIMIT}..{MAX_PAIRING_LIMIT}, using {DEFAULT_PAIRING_LIMIT}"
        )
        pairing_limit = DEFAULT_PAIRING_LIMIT

    return {
        "pairingLimit": pairing_limit,
        "maxDepth": int(Config.get(Config.DEFAULT_MAX_DEPTH, DEFAULT_MAX_DEPTH)),
        "cashbackPercentage": Decimal(str(
            Config.get(Config.DEFAULT_CASHBACK_PERCENTAGE, DEFAULT_CASHBACK_PERCENTAGE)
        )),
    }
