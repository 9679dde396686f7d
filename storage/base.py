"""
Persistence interfaces for agent runs and orders.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from agent.models import AgentRun
from orders.models import Order, OrderStatus


class BaseTraceRecorder(ABC):
    """Append-only store of agent runs, keyed by run_id.

    A run is written once when it starts and updated once when it reaches a
    terminal status. Raises TraceWriteError when a write fails.
    """

    @abstractmethod
    def start_run(self, run: AgentRun) -> None:
        ...

    @abstractmethod
    def finish_run(self, run: AgentRun) -> None:
        ...

    @abstractmethod
    def get_run(self, run_id: str) -> Optional[AgentRun]:
        ...

    @abstractmethod
    def get_runs_by_owner(self, owner_id: str, limit: int = 10) -> List[AgentRun]:
        """Newest first."""
        ...

    def get_latest_run(self, owner_id: str) -> Optional[AgentRun]:
        runs = self.get_runs_by_owner(owner_id, limit=1)
        return runs[0] if runs else None

    @abstractmethod
    def get_run_stats(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        ...


class BaseOrderStore(ABC):
    """Order persistence with conditional (compare-and-set) status updates."""

    @abstractmethod
    def create(self, order: Order) -> None:
        ...

    @abstractmethod
    def update(self, order_id: str, expected_status: OrderStatus,
               new_status: OrderStatus, fields: Optional[Dict[str, Any]] = None) -> bool:
        """Apply the update only if the order is still at expected_status.

        Returns True when the write happened, False when the status had moved.
        """
        ...

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def list(self, owner: Optional[str] = None, status: Optional[OrderStatus] = None,
             environment: Optional[str] = None, symbol: Optional[str] = None,
             limit: Optional[int] = None) -> List[Order]:
        """Newest first."""
        ...
