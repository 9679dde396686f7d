"""
Trade Database - SQLite persistence for agent runs and orders.

agent_runs is the trace: one row per run, inserted when the run starts and
updated exactly once when it reaches a terminal status.
orders holds the order lifecycle. Status changes go through update(), a
compare-and-set on the current status, so two concurrent approvals cannot
both succeed.
"""
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from agent.models import TERMINAL_RUN_STATES, AgentRun
from orders.models import Environment, Order, OrderSide, OrderStatus, OrderType
from storage.base import BaseOrderStore, BaseTraceRecorder
from utils.error_handler import TraceWriteError
from utils.platform import check_disk_space, now_utc


DB_PATH = Path(__file__).parent.parent / "data" / "trade_copilot.db"

SCHEMA_VERSION = 1

_ORDER_COLUMNS = (
    "id", "owner", "symbol", "side", "quantity", "order_type", "status",
    "environment", "agent_run_id", "confidence_score", "reasoning_summary",
    "evidence_links", "limit_price", "stop_price", "target_price",
    "broker_order_id", "filled_price", "filled_at", "approved_by", "approved_at",
    "rejection_reason", "failure_reason", "proposed_at", "created_at", "updated_at",
)

# Columns a status update may touch besides status/updated_at
_UPDATABLE_ORDER_COLUMNS = {
    "broker_order_id", "filled_price", "filled_at", "approved_by", "approved_at",
    "rejection_reason", "failure_reason", "limit_price",
}

_TERMINAL_RUN_VALUES = tuple(s.value for s in TERMINAL_RUN_STATES)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return json.dumps(value)
    return value


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class TradeDB(BaseTraceRecorder, BaseOrderStore):
    """
    SQLite-backed trace recorder and order store.

    Stores:
    - agent_runs: full run trace as JSON plus queryable columns
    - orders: order lifecycle rows
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        if not check_disk_space(self.db_path.parent, min_mb=50):
            logger.critical(f"LOW DISK SPACE: Less than 50MB free at {self.db_path.parent}")

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(str(self.db_path), timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        with self._conn() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS agent_runs (
                    run_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    intent TEXT NOT NULL,
                    status TEXT NOT NULL,
                    symbol TEXT,
                    action TEXT,
                    confidence REAL,
                    has_proposal INTEGER DEFAULT 0,
                    error TEXT,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    completed_at TEXT
                );

                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    quantity INTEGER NOT NULL CHECK (quantity > 0),
                    order_type TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'proposed',
                    environment TEXT NOT NULL DEFAULT 'paper',
                    agent_run_id TEXT,
                    confidence_score REAL CHECK (confidence_score BETWEEN 0 AND 1),
                    reasoning_summary TEXT,
                    evidence_links TEXT,
                    limit_price REAL,
                    stop_price REAL,
                    target_price REAL,
                    broker_order_id TEXT,
                    filled_price REAL,
                    filled_at TEXT,
                    approved_by TEXT,
                    approved_at TEXT,
                    rejection_reason TEXT,
                    failure_reason TEXT,
                    proposed_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_runs_owner ON agent_runs(owner_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_orders_owner_status ON orders(owner, status);
                CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at);
            """)
            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                (SCHEMA_VERSION, now_utc().isoformat()),
            )
        logger.info(f"[DB] Trade database ready: {self.db_path}")

    # ============================================
    # AGENT RUNS (trace)
    # ============================================

    @staticmethod
    def _run_row(run: AgentRun) -> Dict[str, Any]:
        proposal = run.proposal
        return {
            "run_id": run.run_id,
            "owner_id": run.owner_id,
            "intent": run.intent,
            "status": run.status.value,
            "symbol": run.symbol,
            "action": proposal.action.value if proposal else None,
            "confidence": proposal.confidence if proposal else None,
            "has_proposal": 1 if proposal else 0,
            "error": run.error,
            "payload": json.dumps(run.to_dict()),
            "created_at": run.created_at.isoformat(),
            "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        }

    def _insert_run(self, conn, row: Dict[str, Any]):
        cols = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        conn.execute(f"INSERT INTO agent_runs ({cols}) VALUES ({marks})", tuple(row.values()))

    def start_run(self, run: AgentRun) -> None:
        try:
            with self._conn() as conn:
                self._insert_run(conn, self._run_row(run))
            logger.debug(f"[DB] Run started: {run.run_id}")
        except sqlite3.Error as e:
            raise TraceWriteError(f"Failed to record run start: {e}", run.run_id) from e

    def finish_run(self, run: AgentRun) -> None:
        """Terminal update. A run that was never started is inserted whole."""
        if not run.is_terminal:
            raise TraceWriteError(
                f"Run is {run.status.value}, only terminal runs can be finished", run.run_id
            )

        row = self._run_row(run)
        try:
            with self._conn() as conn:
                placeholders = ", ".join("?" for _ in _TERMINAL_RUN_VALUES)
                cur = conn.execute(f"""
                    UPDATE agent_runs SET
                        status=?, symbol=?, action=?, confidence=?, has_proposal=?,
                        error=?, payload=?, completed_at=?
                    WHERE run_id=? AND status NOT IN ({placeholders})
                """, (
                    row["status"], row["symbol"], row["action"], row["confidence"],
                    row["has_proposal"], row["error"], row["payload"], row["completed_at"],
                    run.run_id, *_TERMINAL_RUN_VALUES,
                ))
                if cur.rowcount == 0:
                    exists = conn.execute(
                        "SELECT 1 FROM agent_runs WHERE run_id=?", (run.run_id,)
                    ).fetchone()
                    if exists:
                        raise TraceWriteError("Run already finalized", run.run_id)
                    self._insert_run(conn, row)
            logger.debug(f"[DB] Run finished: {run.run_id} ({run.status.value})")
        except sqlite3.Error as e:
            raise TraceWriteError(f"Failed to record run result: {e}", run.run_id) from e

    def get_run(self, run_id: str) -> Optional[AgentRun]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT payload FROM agent_runs WHERE run_id=?", (run_id,)
            ).fetchone()
        return AgentRun.from_dict(json.loads(row["payload"])) if row else None

    def get_runs_by_owner(self, owner_id: str, limit: int = 10) -> List[AgentRun]:
        with self._conn() as conn:
            rows = conn.execute("""
                SELECT payload FROM agent_runs WHERE owner_id=?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
            """, (owner_id, limit)).fetchall()
        return [AgentRun.from_dict(json.loads(r["payload"])) for r in rows]

    def get_run_stats(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Totals over all runs, or runs created at or after `since`."""
        where, params = "", ()
        if since is not None:
            where, params = "WHERE created_at >= ?", (since.isoformat(),)
        with self._conn() as conn:
            row = conn.execute(f"""
                SELECT
                    COUNT(*) AS total_runs,
                    COALESCE(SUM(has_proposal), 0) AS runs_with_proposals,
                    AVG(confidence) AS avg_confidence,
                    COUNT(DISTINCT owner_id) AS unique_owners,
                    COALESCE(SUM(CASE WHEN status='ERROR' THEN 1 ELSE 0 END), 0) AS error_runs
                FROM agent_runs {where}
            """, params).fetchone()
        avg = row["avg_confidence"]
        return {
            "total_runs": row["total_runs"],
            "runs_with_proposals": row["runs_with_proposals"],
            "average_confidence": round(avg, 2) if avg is not None else 0.0,
            "unique_owners": row["unique_owners"],
            "error_runs": row["error_runs"],
        }

    # ============================================
    # ORDERS
    # ============================================

    @staticmethod
    def _row_to_order(row: sqlite3.Row) -> Order:
        return Order(
            id=row["id"],
            owner=row["owner"],
            symbol=row["symbol"],
            side=OrderSide(row["side"]),
            quantity=row["quantity"],
            order_type=OrderType(row["order_type"]),
            status=OrderStatus(row["status"]),
            environment=Environment(row["environment"]),
            agent_run_id=row["agent_run_id"],
            confidence_score=row["confidence_score"],
            reasoning_summary=row["reasoning_summary"] or "",
            evidence_links=json.loads(row["evidence_links"]) if row["evidence_links"] else [],
            limit_price=row["limit_price"],
            stop_price=row["stop_price"],
            target_price=row["target_price"],
            broker_order_id=row["broker_order_id"],
            filled_price=row["filled_price"],
            filled_at=_parse_dt(row["filled_at"]),
            approved_by=row["approved_by"],
            approved_at=_parse_dt(row["approved_at"]),
            rejection_reason=row["rejection_reason"],
            failure_reason=row["failure_reason"],
            proposed_at=_parse_dt(row["proposed_at"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def create(self, order: Order) -> None:
        if order.status != OrderStatus.PROPOSED:
            raise ValueError(f"Orders are created as proposed, got {order.status.value}")
        values = order.to_dict()
        cols = ", ".join(_ORDER_COLUMNS)
        marks = ", ".join("?" for _ in _ORDER_COLUMNS)
        with self._conn() as conn:
            conn.execute(
                f"INSERT INTO orders ({cols}) VALUES ({marks})",
                tuple(_to_db(values[c]) for c in _ORDER_COLUMNS),
            )
        logger.info(f"[DB] Order created: {order.id} {order.side.value} {order.quantity} {order.symbol}")

    def update(self, order_id: str, expected_status: OrderStatus,
               new_status: OrderStatus, fields: Optional[Dict[str, Any]] = None) -> bool:
        fields = dict(fields or {})
        unknown = set(fields) - _UPDATABLE_ORDER_COLUMNS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        fields["status"] = new_status
        fields["updated_at"] = now_utc()
        assignments = ", ".join(f"{k}=?" for k in fields)
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE orders SET {assignments} WHERE id=? AND status=?",
                (*(_to_db(v) for v in fields.values()), order_id, expected_status.value),
            )
            updated = cur.rowcount == 1
        if updated:
            logger.debug(f"[DB] Order {order_id}: {expected_status.value} -> {new_status.value}")
        return updated

    def get(self, order_id: str) -> Optional[Order]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM orders WHERE id=?", (order_id,)).fetchone()
        return self._row_to_order(row) if row else None

    def list(self, owner: Optional[str] = None, status: Optional[OrderStatus] = None,
             environment: Optional[str] = None, symbol: Optional[str] = None,
             limit: Optional[int] = None) -> List[Order]:
        clauses, params = [], []
        if owner:
            clauses.append("owner=?")
            params.append(owner)
        if status:
            clauses.append("status=?")
            params.append(_to_db(status))
        if environment:
            clauses.append("environment=?")
            params.append(_to_db(environment))
        if symbol:
            clauses.append("symbol=?")
            params.append(symbol.upper())

        query = "SELECT * FROM orders"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_order(r) for r in rows]
