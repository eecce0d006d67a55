#!/usr/bin/env python3
"""
Display a pairing tree.

Shows the hierarchy under an agent (or every root of the forest) with
slot and pairing status indicators.

Usage:
    python scripts/show_tree.py --plan PLAN_ID [--agent AGENT_ID] [--max-depth DEPTH]
"""

import sys
import os
import argparse
from typing import Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session
from pairing_system.services.plan_settings_service import PlanSettingsService
from pairing_system.services.tree_store import TreeStore

import logging

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def render_tree(node: Dict, prefix: str = "", is_last: bool = True, is_top: bool = True) -> List[str]:
    """
    Render a materialized tree (TreeStore.buildTree output) as ASCII lines.

    Pairing status comes from the node's slot occupants, so nodes at the
    depth cut-off still show their real fill. Occupants below the cut-off
    are listed with '…', empty slots with '·' placeholders.
    """
    lines = []

    slots = node["slots"]
    filled = sum(1 for occupant in slots if occupant)
    limit = node["pairingLimit"]
    root_marker = "👑 " if node["parentID"] is None else ""
    status = "✅" if filled >= limit else f"⏳ {filled}/{limit}"
    connector = "" if is_top else ("└─ " if is_last else "├─ ")

    lines.append(f"{prefix}{connector}{root_marker}{node['agentID']} [L{node['level']}] {status}")

    child_prefix = prefix if is_top else prefix + ("    " if is_last else "│   ")
    children_by_slot = {child["slotIndex"]: child for child in node["children"]}

    for slot, occupant in enumerate(slots, start=1):
        last = slot == limit
        branch = "└─ " if last else "├─ "
        child = children_by_slot.get(slot)
        if child:
            lines.extend(render_tree(child, child_prefix, last, is_top=False))
        elif occupant:
            lines.append(f"{child_prefix}{branch}{occupant} …")
        else:
            lines.append(f"{child_prefix}{branch}· (slot {slot} empty)")

    return lines


def print_tree(store: TreeStore, pairing_limit: int, agent_id: Optional[str], max_depth: int):
    """Print the subtree of agent_id, or every tree of the forest."""
    if agent_id:
        starts = [agent_id]
    else:
        starts = [root.agentID for root in store.getRoots(pairing_limit)]

    print("\n" + "=" * 80)
    print(f"PAIRING TREE (pairing limit {pairing_limit})")
    print("=" * 80)
    print("\nLegend:")
    print("  👑 = Tree owner (root)")
    print("  ✅ = Pairing complete")
    print("  ⏳ = Filled / total slots")
    print("  … = Occupied below the depth limit")
    print("\n" + "=" * 80 + "\n")

    for start in starts:
        tree = store.buildTree(start, pairing_limit, maxDepth=max_depth)
        if tree is None:
            print(f"❌ Agent {start} has no position in this forest")
            continue
        print("\n".join(render_tree(tree)))
        print()

    stats = store.getNetworkStats(pairing_limit)
    print("=" * 80)
    print(f"Total agents:    {stats['totalAgents']}")
    print(f"Trees:           {stats['roots']}")
    print(f"Deepest level:   {stats['maxLevel']}")
    print(f"Complete nodes:  {stats['completeNodes']}")
    print("=" * 80 + "\n")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Display pairing tree')
    parser.add_argument('--plan', required=True,
                        help='Plan whose pairing forest to show')
    parser.add_argument('--agent',
                        help='Agent to start from (default: every root)')
    parser.add_argument('--max-depth', type=int, default=50,
                        help='Maximum depth to display')
    args = parser.parse_args()

    # Initialize config
    Config.initialize_from_env()

    session = get_session()
    try:
        pairing_limit = PlanSettingsService(session).getPairingLimit(args.plan)
        print_tree(TreeStore(session), pairing_limit, args.agent, args.max_depth)
    finally:
        session.close()


if __name__ == "__main__":
    main()
