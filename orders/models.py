"""
Order model and status graph.

proposed -> approved -> submitted -> filled
proposed -> rejected
{proposed, approved, submitted} -> cancelled
any non-terminal -> failed

filled, rejected, cancelled and failed are terminal.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from utils.platform import now_utc


class OrderStatus(Enum):
    PROPOSED = 'proposed'
    APPROVED = 'approved'
    SUBMITTED = 'submitted'
    FILLED = 'filled'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class OrderSide(Enum):
    BUY = 'BUY'
    SELL = 'SELL'


class OrderType(Enum):
    MARKET = 'MARKET'
    LIMIT = 'LIMIT'
    STOP = 'STOP'
    STOP_LIMIT = 'STOP_LIMIT'


class Environment(Enum):
    PAPER = 'paper'
    LIVE = 'live'


TERMINAL_ORDER_STATES = {
    OrderStatus.FILLED, OrderStatus.REJECTED, OrderStatus.CANCELLED, OrderStatus.FAILED,
}

ALLOWED_TRANSITIONS = {
    OrderStatus.PROPOSED: {
        OrderStatus.APPROVED, OrderStatus.REJECTED, OrderStatus.CANCELLED, OrderStatus.FAILED,
    },
    OrderStatus.APPROVED: {OrderStatus.SUBMITTED, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.SUBMITTED: {OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.FILLED: set(),
    OrderStatus.REJECTED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.FAILED: set(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class Order:
    """Tracked order, created from a BUY/SELL proposal."""
    owner: str
    symbol: str
    side: OrderSide
    quantity: int
    order_type: OrderType = OrderType.MARKET
    status: OrderStatus = OrderStatus.PROPOSED
    environment: Environment = Environment.PAPER
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    agent_run_id: Optional[str] = None
    confidence_score: Optional[float] = None
    reasoning_summary: str = ""
    evidence_links: List[str] = field(default_factory=list)
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    target_price: Optional[float] = None
    broker_order_id: Optional[str] = None
    filled_price: Optional[float] = None
    filled_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    proposed_at: datetime = field(default_factory=now_utc)
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Order quantity must be positive, got {self.quantity}")
        if self.confidence_score is not None and not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError(f"confidence_score must be in [0, 1], got {self.confidence_score}")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATES

    def to_dict(self) -> Dict[str, Any]:
        def iso(dt: Optional[datetime]) -> Optional[str]:
            return dt.isoformat() if dt else None

        return {
            "id": self.id,
            "owner": self.owner,
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "order_type": self.order_type.value,
            "status": self.status.value,
            "environment": self.environment.value,
            "agent_run_id": self.agent_run_id,
            "confidence_score": self.confidence_score,
            "reasoning_summary": self.reasoning_summary,
            "evidence_links": list(self.evidence_links),
            "limit_price": self.limit_price,
            "stop_price": self.stop_price,
            "target_price": self.target_price,
            "broker_order_id": self.broker_order_id,
            "filled_price": self.filled_price,
            "filled_at": iso(self.filled_at),
            "approved_by": self.approved_by,
            "approved_at": iso(self.approved_at),
            "rejection_reason": self.rejection_reason,
            "failure_reason": self.failure_reason,
            "proposed_at": iso(self.proposed_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
