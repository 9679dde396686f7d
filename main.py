#!/usr/bin/env python3
"""
Trade Copilot - Main Entry Point

Usage:
    python main.py run --owner u1 "Should I buy NVDA?"   # One pipeline run
    python main.py run --owner u1 "..." --output json     # Run as JSON
    python main.py quotes NVDA AAPL MSFT                  # Snapshots in parallel
    python main.py history --owner u1                     # Recent runs
    python main.py stats                                  # Run statistics
    python main.py propose <run_id>                       # Order from a run
    python main.py orders --owner u1 --status proposed    # List orders
    python main.py approve <order_id> --by u1             # Approve
    python main.py reject <order_id> --reason "too risky" # Reject
    python main.py cancel <order_id>                      # Cancel

Proposals are never executed here. Approved orders are handed to the broker
integration, which reports submitted/filled back through OrderLifecycle.
"""
import argparse
import json
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from loguru import logger


def setup_logging():
    """Configure logging."""
    from config.settings import get_settings
    from utils.logger import setup_logger
    settings = get_settings()
    setup_logger(log_dir=settings.log_dir, level=settings.log_level)


def _db():
    from config.settings import get_settings
    from storage.trade_db import TradeDB
    return TradeDB(get_settings().db_path)


def _lifecycle():
    from orders.lifecycle import OrderLifecycle
    return OrderLifecycle(_db())


def _print_run(run):
    print("\n" + "=" * 60)
    print(f"RUN {run.run_id} [{run.status.value}]")
    print("=" * 60)
    print(f"Intent: {run.intent}")
    if run.error:
        print(f"\nError: {run.error}")
    if run.reasoning.technical_signals:
        print("\nTechnical Signals:")
        for s in run.reasoning.technical_signals:
            print(f"  - {s}")
        print(f"\nTrend:     {run.reasoning.trend_analysis}")
        print(f"Sentiment: {run.reasoning.sentiment}")
        print("\nRisk Factors:")
        for r in run.reasoning.risk_factors:
            print(f"  ! {r}")

    p = run.proposal
    if p:
        print(f"\nProposal: {p.action.value} {p.quantity} {p.symbol} "
              f"({p.confidence:.0%} confidence)")
        print(f"  Entry:  ${p.entry_price:.2f}")
        print(f"  Stop:   ${p.stop_loss:.2f}")
        print(f"  Target: ${p.target_price:.2f}")
        print(f"  Window: {p.holding_window}")
    elif run.status.value == "COMPLETED":
        print("\nProposal: HOLD (no trade)")

    for link in run.evidence_links:
        print(f"\nEvidence: {link}")
    print(f"\nDuration: {run.duration_ms:.0f}ms")
    print("=" * 60)


def _print_order(order):
    print(f"{order.id}  {order.status.value:<9}  {order.side.value:<4} {order.quantity:>5} "
          f"{order.symbol:<6} {order.environment.value:<5} "
          f"conf={order.confidence_score if order.confidence_score is not None else '-'}  "
          f"{order.created_at:%Y-%m-%d %H:%M}")


def cmd_run(args):
    """Run the decision pipeline for one intent."""
    from agent.orchestrator import run_pipeline

    run = run_pipeline(args.owner, args.intent)
    if args.output == "json":
        print(json.dumps(run.to_dict(), indent=2, default=str))
    else:
        _print_run(run)
    return 0 if run.status.value == "COMPLETED" else 1


def cmd_quotes(args):
    """Market snapshots for several symbols, fetched in parallel."""
    from agent.orchestrator import build_market_tool

    symbols = [s.upper() for s in args.symbols]
    snapshots = build_market_tool().fetch_many(symbols, max_workers=args.workers)
    for symbol in dict.fromkeys(symbols):
        snap = snapshots.get(symbol)
        if snap is None:
            print(f"{symbol:<6}  unavailable")
            continue
        ind = snap.indicators
        tag = "  [synthetic]" if snap.synthetic else ""
        print(f"{symbol:<6}  ${snap.current_price:>9.2f}  {snap.change_percent:+6.2f}%  "
              f"RSI {ind.rsi:5.1f}  MACD {ind.macd.value:+.2f}{tag}")
    return 0 if len(snapshots) == len(dict.fromkeys(symbols)) else 1


def cmd_history(args):
    """Show recent runs for an owner."""
    runs = _db().get_runs_by_owner(args.owner, limit=args.limit)
    if not runs:
        print(f"No runs for {args.owner}")
        return 0
    for run in runs:
        action = run.proposal.action.value if run.proposal else "-"
        print(f"{run.run_id}  {run.status.value:<9}  {run.symbol or '-':<6} {action:<4}  "
              f"{run.created_at:%Y-%m-%d %H:%M}  {run.intent[:50]}")
    return 0


def cmd_stats(args):
    """Run statistics, optionally for the last N days."""
    from utils.platform import now_utc
    since = now_utc() - timedelta(days=args.days) if args.days else None
    print(json.dumps(_db().get_run_stats(since=since), indent=2))
    return 0


def cmd_propose(args):
    """Create a proposed order from a completed run."""
    from orders.lifecycle import OrderLifecycle
    from orders.models import Environment, OrderType

    db = _db()
    run = db.get_run(args.run_id)
    if run is None:
        print(f"Run {args.run_id} not found")
        return 1
    try:
        order = OrderLifecycle(db).propose_from_run(
            run, environment=Environment(args.env), order_type=OrderType(args.type),
        )
    except ValueError as e:
        print(str(e))
        return 1
    _print_order(order)
    return 0


def cmd_orders(args):
    """List orders."""
    from orders.models import Environment, OrderStatus

    orders = _lifecycle().list(
        owner=args.owner,
        status=OrderStatus(args.status) if args.status else None,
        environment=Environment(args.env) if args.env else None,
        symbol=args.symbol,
        limit=args.limit,
    )
    for order in orders:
        _print_order(order)
    if not orders:
        print("No orders")
    return 0


def _transition(fn, *fn_args):
    from utils.error_handler import InvalidTransition, OrderNotFound
    try:
        order = fn(*fn_args)
    except (InvalidTransition, OrderNotFound, ValueError) as e:
        logger.error(str(e))
        return 1
    _print_order(order)
    return 0


def cmd_approve(args):
    return _transition(_lifecycle().approve, args.order_id, args.by)


def cmd_reject(args):
    return _transition(_lifecycle().reject, args.order_id, args.reason)


def cmd_cancel(args):
    return _transition(_lifecycle().cancel, args.order_id)


def main():
    parser = argparse.ArgumentParser(
        description="Trade Copilot - market analysis and human-approved trade proposals"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the decision pipeline for one intent")
    run_parser.add_argument("intent", type=str, help='Request text (e.g., "Should I buy NVDA?")')
    run_parser.add_argument("--owner", required=True, help="Owner (user) id")
    run_parser.add_argument(
        "--output", "-o",
        choices=["text", "json"],
        default="text",
        help="Output format"
    )

    # Quotes command
    quotes_parser = subparsers.add_parser("quotes", help="Market snapshots for several symbols")
    quotes_parser.add_argument("symbols", nargs="+", help="Tickers (e.g., NVDA AAPL)")
    quotes_parser.add_argument("--workers", type=int, default=4, help="Parallel fetches (default: 4)")

    # History command
    history_parser = subparsers.add_parser("history", help="Recent runs for an owner")
    history_parser.add_argument("--owner", required=True, help="Owner (user) id")
    history_parser.add_argument("--limit", type=int, default=10, help="Max runs (default: 10)")

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Run statistics")
    stats_parser.add_argument("--days", type=int, help="Only runs from the last N days")

    # Propose command
    propose_parser = subparsers.add_parser("propose", help="Create an order from a run's proposal")
    propose_parser.add_argument("run_id", type=str)
    propose_parser.add_argument("--env", choices=["paper", "live"], default="paper")
    propose_parser.add_argument("--type", choices=["MARKET", "LIMIT"], default="MARKET")

    # Orders command
    orders_parser = subparsers.add_parser("orders", help="List orders")
    orders_parser.add_argument("--owner", help="Filter by owner")
    orders_parser.add_argument(
        "--status",
        choices=["proposed", "approved", "submitted", "filled", "rejected", "cancelled", "failed"],
    )
    orders_parser.add_argument("--env", choices=["paper", "live"])
    orders_parser.add_argument("--symbol")
    orders_parser.add_argument("--limit", type=int, default=50)

    # Approve / reject / cancel
    approve_parser = subparsers.add_parser("approve", help="Approve a proposed order")
    approve_parser.add_argument("order_id", type=str)
    approve_parser.add_argument("--by", required=True, help="Approver id")

    reject_parser = subparsers.add_parser("reject", help="Reject a proposed order")
    reject_parser.add_argument("order_id", type=str)
    reject_parser.add_argument("--reason", required=True)

    cancel_parser = subparsers.add_parser("cancel", help="Cancel a non-terminal order")
    cancel_parser.add_argument("order_id", type=str)

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    commands = {
        "run": cmd_run,
        "quotes": cmd_quotes,
        "history": cmd_history,
        "stats": cmd_stats,
        "propose": cmd_propose,
        "orders": cmd_orders,
        "approve": cmd_approve,
        "reject": cmd_reject,
        "cancel": cmd_cancel,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
