"""
Order Lifecycle - the only path by which an order changes status.

Every transition is checked against the status graph in orders.models and
then written as a compare-and-set on the current status. If another writer
moved the order first, the write is refused and InvalidTransition is raised
with the status actually found. Nothing is ever silently ignored.

submitted and filled are recorded from broker notifications; this module
only persists the resulting state and fill data.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from agent.models import AgentRun, AgentStatus
from orders.models import (
    Environment, Order, OrderSide, OrderStatus, OrderType, can_transition,
)
from storage.base import BaseOrderStore
from utils.alerts import alert_order_approved, alert_order_failed
from utils.error_handler import InvalidTransition, OrderNotFound
from utils.logger import audit_log
from utils.platform import now_utc


class OrderLifecycle:
    """
    Order state machine over an order store.

    Usage:
        lifecycle = OrderLifecycle(TradeDB())
        order = lifecycle.propose_from_run(run, owner="u1")
        lifecycle.approve(order.id, approver="u1")
    """

    def __init__(self, store: BaseOrderStore):
        self.store = store

    # ============================================
    # CREATION
    # ============================================

    def propose_from_run(self, run: AgentRun, owner: Optional[str] = None,
                         environment: Environment = Environment.PAPER,
                         order_type: OrderType = OrderType.MARKET) -> Order:
        """Create a proposed order from a completed run's BUY/SELL proposal."""
        if run.status != AgentStatus.COMPLETED or run.proposal is None:
            raise ValueError(f"Run {run.run_id} has no trade proposal to turn into an order")

        proposal = run.proposal
        order = Order(
            owner=owner or run.owner_id,
            symbol=proposal.symbol,
            side=OrderSide(proposal.action.value),
            quantity=proposal.quantity,
            order_type=order_type,
            environment=Environment(environment),
            agent_run_id=run.run_id,
            confidence_score=proposal.confidence,
            reasoning_summary=run.reasoning.summary(),
            evidence_links=list(run.evidence_links),
            limit_price=proposal.entry_price if order_type == OrderType.LIMIT else None,
            stop_price=proposal.stop_loss,
            target_price=proposal.target_price,
        )
        self.store.create(order)
        audit_log(
            "ORDER_PROPOSED",
            order_id=order.id, owner=order.owner, symbol=order.symbol,
            side=order.side.value, qty=order.quantity, env=order.environment.value,
            run_id=run.run_id, confidence=order.confidence_score,
        )
        return order

    # ============================================
    # TRANSITIONS
    # ============================================

    def _transition(self, order_id: str, target: OrderStatus,
                    fields: Optional[Dict[str, Any]] = None, actor: str = "system") -> Order:
        order = self.get(order_id)
        current = order.status

        if not can_transition(current, target):
            reason = "order is terminal" if order.is_terminal else "not allowed"
            raise InvalidTransition(order_id, current.value, target.value, reason)

        if not self.store.update(order_id, current, target, fields):
            latest = self.store.get(order_id)
            found = latest.status.value if latest else None
            logger.warning(
                f"Order {order_id}: concurrent update, expected {current.value} found {found}"
            )
            raise InvalidTransition(
                order_id, found, target.value, f"status changed from {current.value}"
            )

        audit_log(
            "ORDER_TRANSITION",
            order_id=order_id, symbol=order.symbol, actor=actor,
            from_status=current.value, to_status=target.value,
            **{k: v for k, v in (fields or {}).items() if not isinstance(v, datetime)},
        )
        logger.info(f"Order {order_id} {order.symbol}: {current.value} -> {target.value}")
        return self.get(order_id)

    def approve(self, order_id: str, approver: str) -> Order:
        if not approver:
            raise ValueError("approve requires an approver id")
        order = self._transition(
            order_id, OrderStatus.APPROVED,
            {"approved_by": approver, "approved_at": now_utc()},
            actor=approver,
        )
        if order.environment == Environment.LIVE:
            alert_order_approved(
                order.id, order.symbol, order.side.value, order.quantity,
                order.environment.value, approver,
            )
        return order

    def reject(self, order_id: str, reason: str, actor: str = "user") -> Order:
        if not reason or not reason.strip():
            raise ValueError("reject requires a reason")
        return self._transition(
            order_id, OrderStatus.REJECTED, {"rejection_reason": reason.strip()}, actor=actor,
        )

    def mark_submitted(self, order_id: str, broker_order_id: str) -> Order:
        return self._transition(
            order_id, OrderStatus.SUBMITTED, {"broker_order_id": broker_order_id}, actor="broker",
        )

    def mark_filled(self, order_id: str, fill_price: float,
                    filled_at: Optional[datetime] = None) -> Order:
        if fill_price <= 0:
            raise ValueError(f"fill_price must be positive, got {fill_price}")
        return self._transition(
            order_id, OrderStatus.FILLED,
            {"filled_price": fill_price, "filled_at": filled_at or now_utc()},
            actor="broker",
        )

    def cancel(self, order_id: str, actor: str = "user") -> Order:
        return self._transition(order_id, OrderStatus.CANCELLED, actor=actor)

    def fail(self, order_id: str, reason: str) -> Order:
        order = self._transition(
            order_id, OrderStatus.FAILED, {"failure_reason": reason}, actor="system",
        )
        alert_order_failed(order.id, order.symbol, reason)
        return order

    # ============================================
    # QUERIES
    # ============================================

    def get(self, order_id: str) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list(self, owner: Optional[str] = None, status: Optional[OrderStatus] = None,
             environment: Optional[Environment] = None, symbol: Optional[str] = None,
             limit: Optional[int] = None) -> List[Order]:
        return self.store.list(owner=owner, status=status, environment=environment,
                               symbol=symbol, limit=limit)
