#!/usr/bin/env python3
# pairing/pairing.py
"""
Pairing engine - command line entry point.

Usage:
    python pairing.py init-db
    python pairing.py assign-plan AGENT PLAN
    python pairing.py place AGENT PLAN [--sponsor SPONSOR]
    python pairing.py resolve SPONSOR PLAN
    python pairing.py tree AGENT PLAN [--max-depth N]
    python pairing.py stats PLAN
    python pairing.py audit [--pairing-limit N]
    python pairing.py reconcile [--pairing-limit N]
"""
import argparse
import json
import logging
import sys

from config import Config, ConfigurationError
from core.db import get_session, setup_database
from pairing_system import (
    AgentPlanService,
    PlacementService,
    PlanSettingsService,
    ReconciliationService,
    TreeStore,
    PlacementError,
    PlacementRetryExhausted,
)

logger = logging.getLogger(__name__)


def configure_logging():
    """Configure root logging from Config."""
    logging.basicConfig(
        level=getattr(logging, Config.get(Config.LOG_LEVEL, "INFO"), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(Config.get(Config.LOG_FILE, "pairing.log"))
        ]
    )
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def _print(data):
    print(json.dumps(data, indent=2, default=str))


# ═══════════════════════════════════════════════════════════════════════════
# COMMANDS
# ═══════════════════════════════════════════════════════════════════════════

def cmd_init_db(session, args) -> int:
    setup_database()
    print("✓ Database ready")
    return 0


def cmd_assign_plan(session, args) -> int:
    AgentPlanService(session).assignPlan(args.agent, args.plan)
    session.commit()
    print(f"✓ Plan {args.plan} assigned to {args.agent}")
    return 0


def cmd_place(session, args) -> int:
    result = PlacementService(session).placeAgent(args.agent, args.plan, args.sponsor)
    _print(result.toDict())
    return 0


def cmd_resolve(session, args) -> int:
    slot = PlacementService(session).resolvePosition(args.sponsor, args.plan)
    _print({"success": True, "position": slot.toDict()})
    return 0


def cmd_tree(session, args) -> int:
    pairingLimit = PlanSettingsService(session).getPairingLimit(args.plan)
    tree = TreeStore(session).buildTree(args.agent, pairingLimit, maxDepth=args.max_depth)
    if tree is None:
        print(f"Agent {args.agent} has no position in pairing system {pairingLimit}")
        return 1
    _print(tree)
    return 0


def cmd_stats(session, args) -> int:
    pairingLimit = PlanSettingsService(session).getPairingLimit(args.plan)
    _print(TreeStore(session).getNetworkStats(pairingLimit))
    return 0


def cmd_audit(session, args) -> int:
    store = TreeStore(session)
    limits = [args.pairing_limit] if args.pairing_limit else store.getPairingLimits()
    anomalies = []
    for limit in limits:
        anomalies.extend(store.findAnomalies(limit))
    _print({"forests": limits, "anomalies": anomalies})
    return 1 if anomalies else 0


def cmd_reconcile(session, args) -> int:
    _print(ReconciliationService(session).run(args.pairing_limit))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Agent pairing tree engine')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('init-db', help='Create all tables')
    p.set_defaults(handler=cmd_init_db)

    p = sub.add_parser('assign-plan', help='Grant a plan to an agent')
    p.add_argument('agent')
    p.add_argument('plan')
    p.set_defaults(handler=cmd_assign_plan)

    p = sub.add_parser('place', help='Place an agent into the plan tree')
    p.add_argument('agent')
    p.add_argument('plan')
    p.add_argument('--sponsor', help='Sponsor agent (omit to create a root)')
    p.set_defaults(handler=cmd_place)

    p = sub.add_parser('resolve', help='Preview the slot a new agent would get')
    p.add_argument('sponsor')
    p.add_argument('plan')
    p.set_defaults(handler=cmd_resolve)

    p = sub.add_parser('tree', help='Print the subtree under an agent as JSON')
    p.add_argument('agent')
    p.add_argument('plan')
    p.add_argument('--max-depth', type=int, default=50)
    p.set_defaults(handler=cmd_tree)

    p = sub.add_parser('stats', help='Network statistics for a plan forest')
    p.add_argument('plan')
    p.set_defaults(handler=cmd_stats)

    p = sub.add_parser('audit', help='Check forests for structural anomalies')
    p.add_argument('--pairing-limit', type=int)
    p.set_defaults(handler=cmd_audit)

    p = sub.add_parser('reconcile', help='Re-run release triggers over complete nodes')
    p.add_argument('--pairing-limit', type=int)
    p.set_defaults(handler=cmd_reconcile)

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        Config.initialize_from_env()
        Config.validate_critical_keys()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging()

    session = get_session()
    try:
        return args.handler(session, args)
    except PlacementError as e:
        _print(e.toDict())
        return 1
    except PlacementRetryExhausted as e:
        logger.error(str(e))
        return 3
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
