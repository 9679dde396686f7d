"""
Tests for orders/lifecycle.py - order state machine over a temp TradeDB.
"""
import threading
from unittest.mock import patch

import pytest

from agent.models import AgentReasoning, AgentRun, AgentStatus, TradeAction, TradeProposal
from orders.lifecycle import OrderLifecycle
from orders.models import (
    ALLOWED_TRANSITIONS, TERMINAL_ORDER_STATES, Environment, Order, OrderSide, OrderStatus,
    OrderType,
)
from utils.error_handler import InvalidTransition, OrderNotFound


def _completed_run(action=TradeAction.BUY, owner="user-1"):
    run = AgentRun(owner_id=owner, intent="Should I buy NVDA?")
    run.reasoning = AgentReasoning(
        technical_signals=["RSI neutral at 55.0", "MACD bullish crossover (positive momentum)"],
        trend_analysis="Strong uptrend - multiple bullish indicators",
        sentiment="Neutral - stable price action",
        risk_factors=["Standard market risk - normal volatility"],
    )
    run.add_evidence("https://finance.yahoo.com/quote/NVDA")
    run.advance(AgentStatus.PROPOSING)
    run.complete(TradeProposal(
        action=action, symbol="NVDA", quantity=10, entry_price=485.23,
        stop_loss=460.97, target_price=533.75, confidence=0.78,
    ))
    return run


@pytest.fixture
def lifecycle(trade_db):
    return OrderLifecycle(trade_db)


@pytest.fixture
def proposed(lifecycle):
    return lifecycle.propose_from_run(_completed_run())


# ============================================
# CREATION
# ============================================

class TestPropose:

    def test_order_from_run(self, lifecycle):
        run = _completed_run()
        order = lifecycle.propose_from_run(run)
        assert order.status == OrderStatus.PROPOSED
        assert order.side == OrderSide.BUY
        assert order.quantity == 10
        assert order.owner == "user-1"
        assert order.agent_run_id == run.run_id
        assert order.confidence_score == 0.78
        assert order.stop_price == 460.97
        assert order.target_price == 533.75
        assert order.limit_price is None
        assert order.environment == Environment.PAPER
        assert order.evidence_links == ["https://finance.yahoo.com/quote/NVDA"]
        assert order.reasoning_summary.startswith("Strong uptrend")

        stored = lifecycle.get(order.id)
        assert stored.to_dict() == order.to_dict()

    def test_limit_order_uses_entry_price(self, lifecycle):
        order = lifecycle.propose_from_run(
            _completed_run(TradeAction.SELL), environment=Environment.LIVE,
            order_type=OrderType.LIMIT,
        )
        assert order.side == OrderSide.SELL
        assert order.limit_price == 485.23
        assert order.environment == Environment.LIVE

    def test_hold_run_cannot_be_proposed(self, lifecycle):
        run = AgentRun(owner_id="u", intent="NVDA?")
        run.advance(AgentStatus.PROPOSING)
        run.complete(None)
        with pytest.raises(ValueError):
            lifecycle.propose_from_run(run)

    def test_error_run_cannot_be_proposed(self, lifecycle):
        run = AgentRun(owner_id="u", intent="??")
        run.fail("Could not identify a stock symbol")
        with pytest.raises(ValueError):
            lifecycle.propose_from_run(run)

    def test_invalid_order_fields(self):
        with pytest.raises(ValueError):
            Order(owner="u", symbol="NVDA", side=OrderSide.BUY, quantity=0)
        with pytest.raises(ValueError):
            Order(owner="u", symbol="NVDA", side=OrderSide.BUY, quantity=1, confidence_score=1.5)


# ============================================
# HAPPY PATH
# ============================================

class TestTransitions:

    def test_full_path_to_filled(self, lifecycle, proposed):
        approved = lifecycle.approve(proposed.id, approver="user-1")
        assert approved.status == OrderStatus.APPROVED
        assert approved.approved_by == "user-1"
        assert approved.approved_at is not None

        submitted = lifecycle.mark_submitted(proposed.id, broker_order_id="BRK-1")
        assert submitted.status == OrderStatus.SUBMITTED
        assert submitted.broker_order_id == "BRK-1"

        filled = lifecycle.mark_filled(proposed.id, fill_price=486.0)
        assert filled.status == OrderStatus.FILLED
        assert filled.filled_price == 486.0
        assert filled.filled_at is not None
        assert filled.updated_at >= proposed.updated_at

    def test_reject_requires_reason(self, lifecycle, proposed):
        with pytest.raises(ValueError):
            lifecycle.reject(proposed.id, reason="  ")
        order = lifecycle.reject(proposed.id, reason="Too risky")
        assert order.status == OrderStatus.REJECTED
        assert order.rejection_reason == "Too risky"

    def test_approve_requires_approver(self, lifecycle, proposed):
        with pytest.raises(ValueError):
            lifecycle.approve(proposed.id, approver="")
        assert lifecycle.get(proposed.id).status == OrderStatus.PROPOSED

    @pytest.mark.parametrize("steps", [[], ["approve"], ["approve", "submit"]])
    def test_cancel_from_non_terminal(self, lifecycle, proposed, steps):
        if "approve" in steps:
            lifecycle.approve(proposed.id, "user-1")
        if "submit" in steps:
            lifecycle.mark_submitted(proposed.id, "BRK-2")
        assert lifecycle.cancel(proposed.id).status == OrderStatus.CANCELLED

    def test_fail_from_any_non_terminal_alerts(self, lifecycle, proposed):
        lifecycle.approve(proposed.id, "user-1")
        with patch("orders.lifecycle.alert_order_failed") as mock_alert:
            order = lifecycle.fail(proposed.id, "broker rejected: insufficient funds")
        assert order.status == OrderStatus.FAILED
        assert order.failure_reason == "broker rejected: insufficient funds"
        mock_alert.assert_called_once()

    def test_live_approval_alerts(self, lifecycle):
        order = lifecycle.propose_from_run(_completed_run(), environment=Environment.LIVE)
        with patch("orders.lifecycle.alert_order_approved") as mock_alert:
            lifecycle.approve(order.id, "user-1")
        mock_alert.assert_called_once()


# ============================================
# REJECTED TRANSITIONS
# ============================================

class TestInvalidTransitions:

    def test_approved_back_to_proposed_rejected(self, lifecycle, trade_db, proposed):
        lifecycle.approve(proposed.id, "user-1")
        with pytest.raises(InvalidTransition):
            lifecycle._transition(proposed.id, OrderStatus.PROPOSED)
        assert trade_db.get(proposed.id).status == OrderStatus.APPROVED

    def test_filled_only_via_submitted(self, lifecycle, proposed):
        with pytest.raises(InvalidTransition):
            lifecycle.mark_filled(proposed.id, 480.0)
        lifecycle.approve(proposed.id, "user-1")
        with pytest.raises(InvalidTransition):
            lifecycle.mark_filled(proposed.id, 480.0)
        assert lifecycle.get(proposed.id).status == OrderStatus.APPROVED

    def test_reject_only_from_proposed(self, lifecycle, proposed):
        lifecycle.approve(proposed.id, "user-1")
        with pytest.raises(InvalidTransition):
            lifecycle.reject(proposed.id, "changed my mind")

    @pytest.mark.parametrize("terminal_via", ["reject", "cancel", "fail", "fill"])
    def test_terminal_states_are_final(self, lifecycle, proposed, terminal_via):
        oid = proposed.id
        if terminal_via == "reject":
            lifecycle.reject(oid, "no")
        elif terminal_via == "cancel":
            lifecycle.cancel(oid)
        elif terminal_via == "fail":
            lifecycle.fail(oid, "error")
        else:
            lifecycle.approve(oid, "u")
            lifecycle.mark_submitted(oid, "B")
            lifecycle.mark_filled(oid, 1.0)

        before = lifecycle.get(oid).to_dict()
        for attempt in (
            lambda: lifecycle.approve(oid, "u"),
            lambda: lifecycle.cancel(oid),
            lambda: lifecycle.fail(oid, "again"),
            lambda: lifecycle.mark_submitted(oid, "B2"),
        ):
            with pytest.raises(InvalidTransition) as exc:
                attempt()
            assert "terminal" in str(exc.value)
        assert lifecycle.get(oid).to_dict() == before

    def test_unknown_order(self, lifecycle):
        with pytest.raises(OrderNotFound):
            lifecycle.approve("does-not-exist", "u")

    def test_graph_has_no_exit_from_terminal(self):
        for status in TERMINAL_ORDER_STATES:
            assert ALLOWED_TRANSITIONS[status] == set()
        assert OrderStatus.PROPOSED not in set().union(*ALLOWED_TRANSITIONS.values())


# ============================================
# CONCURRENCY
# ============================================

class TestConcurrentApproval:

    def test_only_one_approval_succeeds(self, lifecycle, proposed):
        results, errors = [], []
        barrier = threading.Barrier(5)

        def approve(i):
            barrier.wait()
            try:
                results.append(lifecycle.approve(proposed.id, f"approver-{i}"))
            except InvalidTransition as e:
                errors.append(e)

        threads = [threading.Thread(target=approve, args=(i,)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert len(errors) == 4
        assert lifecycle.get(proposed.id).approved_by == results[0].approved_by

    def test_stale_compare_and_set_is_refused(self, lifecycle, trade_db, proposed):
        """Another writer moves the order between read and write."""
        real_update = trade_db.update

        def racing_update(order_id, expected, new, fields=None):
            real_update(order_id, OrderStatus.PROPOSED, OrderStatus.CANCELLED)
            return real_update(order_id, expected, new, fields)

        with patch.object(trade_db, "update", side_effect=racing_update):
            with pytest.raises(InvalidTransition) as exc:
                lifecycle.approve(proposed.id, "user-1")
        assert exc.value.current == "cancelled"
        assert lifecycle.get(proposed.id).status == OrderStatus.CANCELLED


# ============================================
# QUERIES
# ============================================

class TestQueries:

    def test_list_filters_newest_first(self, lifecycle):
        a = lifecycle.propose_from_run(_completed_run(owner="alice"))
        b = lifecycle.propose_from_run(_completed_run(owner="alice"), environment=Environment.LIVE)
        lifecycle.propose_from_run(_completed_run(owner="bob"))
        lifecycle.approve(a.id, "alice")

        assert [o.id for o in lifecycle.list(owner="alice")] == [b.id, a.id]
        assert [o.id for o in lifecycle.list(owner="alice", status=OrderStatus.APPROVED)] == [a.id]
        assert [o.id for o in lifecycle.list(environment=Environment.LIVE)] == [b.id]
        assert len(lifecycle.list(symbol="nvda")) == 3
        assert len(lifecycle.list(limit=2)) == 2
