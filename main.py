"""
Palm Fruit Console: end-to-end analytics pipeline.

Runs the pipeline from backend rows (or the simulator) to dashboard-ready
outputs and prints smoke-test summaries.

Usage:
    python main.py            # Supabase when SUPABASE_URL/SUPABASE_KEY are set
    PALM_DEMO_MODE=1 python main.py
"""

import logging
import sys
from pathlib import Path

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from palm_console.config import LOG_FORMAT, load_settings
from palm_console.dashboard import (
    alerts_table,
    build_cards,
    dashboard_from_rows,
    outstanding_table,
    pending_orders_table,
)
from palm_console.formatting import format_currency
from palm_console.kpis import (
    ALERT_ADVANCE_WITHOUT_COLLECTION,
    ALERT_STALE_OUTSTANDING,
    agent_balances,
    aggregate_dashboard,
    compute_totals,
    effective_spend,
)
from palm_console.loaders import all_time, get_client, load_dashboard
from palm_console.reports import build_agent_report
from palm_console.simulator import generate_dataset
from palm_console.transforms import build_frames

logger = logging.getLogger(__name__)


def _scenario_frames(now: pd.Timestamp, with_collection: bool = True) -> dict:
    """One agent: 500 advanced and 120 expenses two days ago.

    with_collection adds a month-old collection worth 56.00 from its items.
    """
    two_days_ago = (now - pd.Timedelta(days=2)).isoformat()
    collection = {
        "id": "c1",
        "agent_id": "a1",
        "collection_date": (now - pd.Timedelta(days=30)).isoformat(),
        "total_amount_spent": 0,
        "items": [
            {"weight_kg": 2, "price_per_kg": 10},
            {"weight_kg": 3, "price_per_kg": 12},
            {"weight_kg": 0, "price_per_kg": 5},
        ],
    }
    rows = {
        "agents": [{"id": "a1", "full_name": "Agent A", "status": "ACTIVE"}],
        "advances": [{"id": "adv1", "agent_id": "a1", "advance_date": two_days_ago, "amount": "500"}],
        "expenses": [{"id": "e1", "agent_id": "a1", "expense_date": two_days_ago, "amount": "120"}],
        "collections": [collection] if with_collection else [],
        "orders": [],
        "payments": [],
    }
    return build_frames(rows)


def main() -> None:
    """Run the full analytics pipeline and print smoke-test outputs."""
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, datefmt="%H:%M:%S")

    print("=" * 70)
    print("  PALM FRUIT CONSOLE: Admin Dashboard")
    print("  Analytics Pipeline Smoke Test")
    print("=" * 70)
    print()

    # ------------------------------------------------------------------
    # 1. Load rows
    # ------------------------------------------------------------------
    print("[ 1 ] LOADING ROWS")
    print("-" * 40)

    now = pd.Timestamp.now(tz="UTC")
    summary = None
    if settings.demo_mode or not settings.backend_configured:
        print("\nSource: simulator")
        rows = generate_dataset(now)
    else:
        print(f"\nSource: {settings.supabase_url}")
        rows, summary = load_dashboard(get_client(settings), all_time())
        print(f"Summary RPC: {'available' if summary else 'unavailable, aggregating rows'}")

    for entity, entity_rows in rows.items():
        print(f"  {entity:12s} {len(entity_rows):5d} rows")

    # ------------------------------------------------------------------
    # 2. Build fact & dimension frames
    # ------------------------------------------------------------------
    print("\n")
    print("[ 2 ] BUILDING FACT & DIMENSION FRAMES")
    print("-" * 40)

    frames = build_frames(rows)
    for name, df in frames.items():
        print(f"\n{name}: {len(df)} rows")
        if not df.empty:
            print(df.head(5).to_string(index=False))

    # ------------------------------------------------------------------
    # 3. Dashboard outputs
    # ------------------------------------------------------------------
    print("\n")
    print("[ 3 ] DASHBOARD OUTPUTS")
    print("-" * 40)

    result = dashboard_from_rows(rows, summary=summary, now=now)
    for section in build_cards(result):
        print(f"\n{section['title']}:")
        for card in section["cards"]:
            print(f"  {card['title']:40s} {card['value']:>18s}  -> {card['route']}")

    print("\nTop Outstanding Agents:")
    print(outstanding_table(result["outstanding_agents"]).to_string(index=False))

    print("\nAlerts:")
    alerts = alerts_table(result["alerts"])
    print(alerts.to_string(index=False) if not alerts.empty else "  none")

    print("\nPending Orders:")
    pending = pending_orders_table(result["pending_orders"])
    print(pending.to_string(index=False) if not pending.empty else "  none")

    print("\nAgent Balances:")
    balances = agent_balances(frames)
    for b in balances.itertuples(index=False):
        print(f"  {b.full_name:20s} {format_currency(b.cash_balance):>16s}")

    # ------------------------------------------------------------------
    # 4. Acceptance criteria verification
    # ------------------------------------------------------------------
    print("\n")
    print("[ 4 ] ACCEPTANCE CRITERIA CHECKS")
    print("-" * 40)

    # Check 1: item breakdown spend with no stored total
    spend = effective_spend(0, [("2", "10"), ("3", "12"), ("0", "5")])
    check1 = f"{spend:.2f}" == "56.00"
    print(f"\n  [{'PASS' if check1 else 'FAIL'}] Breakdown spend = {spend:.2f} (expect 56.00)")

    # Check 2: balance formula
    scenario = _scenario_frames(now)
    totals = compute_totals(scenario)
    check2 = f"{totals['cash_balance']:.2f}" == "324.00"
    print(f"  [{'PASS' if check2 else 'FAIL'}] 500 - (120 + 56) = {totals['cash_balance']:.2f} (expect 324.00)")

    # Check 3: recent advance with no collection in the window
    alert_frames = _scenario_frames(now, with_collection=False)
    kinds = aggregate_dashboard(alert_frames, now=now)["alerts"]["kind"].tolist()
    check3 = kinds.count(ALERT_ADVANCE_WITHOUT_COLLECTION) == 1 and ALERT_STALE_OUTSTANDING not in kinds
    print(f"  [{'PASS' if check3 else 'FAIL'}] Advance 2 days ago, no collections -> alerts {kinds}")

    # Check 4: empty data aggregates to zero
    empty = aggregate_dashboard(build_frames({}), now=now)["totals"]
    check4 = all(v == 0 for v in empty.values())
    print(f"  [{'PASS' if check4 else 'FAIL'}] Empty data totals all zero")

    # Check 5: report balance equals dashboard balance for the same rows
    report = build_agent_report(scenario, "a1", generated_at=now)
    check5 = report.balance == totals["cash_balance"]
    print(f"  [{'PASS' if check5 else 'FAIL'}] Report balance {report.balance:.2f} matches dashboard ({report.balance_label})")

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    print("=" * 70)


if __name__ == "__main__":
    main()
