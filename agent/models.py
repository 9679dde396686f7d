"""
Agent run data model.

An AgentRun moves ANALYZING -> PROPOSING -> COMPLETED, or to ERROR from any
non-terminal state. COMPLETED and ERROR are terminal: once reached, the run
accepts no further changes.
"""
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from utils.platform import now_utc


class AgentStatus(str, Enum):
    ANALYZING = "ANALYZING"
    PROPOSING = "PROPOSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


TERMINAL_RUN_STATES = {AgentStatus.COMPLETED, AgentStatus.ERROR}

_RUN_TRANSITIONS = {
    AgentStatus.ANALYZING: {AgentStatus.PROPOSING, AgentStatus.ERROR},
    AgentStatus.PROPOSING: {AgentStatus.COMPLETED, AgentStatus.ERROR},
    AgentStatus.COMPLETED: set(),
    AgentStatus.ERROR: set(),
}


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass
class ToolInvocation:
    """One recorded step of calling an external capability within a run."""
    tool: str
    symbol: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] = field(default_factory=dict)
    cache_hit: bool = False
    duration_ms: float = 0.0
    data_source: str = "yahoo_finance"
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolInvocation":
        data = dict(data)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


@dataclass
class AgentReasoning:
    technical_signals: List[str] = field(default_factory=list)
    trend_analysis: str = ""
    sentiment: str = ""
    risk_factors: List[str] = field(default_factory=list)

    def summary(self, max_signals: int = 3) -> str:
        """One-line digest used as an order's reasoning summary."""
        parts = [self.trend_analysis] + self.technical_signals[:max_signals]
        return "; ".join(p for p in parts if p)


@dataclass(frozen=True)
class TradeProposal:
    """Candidate BUY/SELL trade awaiting human approval. HOLD never has one."""
    action: TradeAction
    symbol: str
    quantity: int
    entry_price: float
    stop_loss: float
    target_price: float
    confidence: float
    holding_window: str = "3-7 days"

    def __post_init__(self):
        if self.action == TradeAction.HOLD:
            raise ValueError("HOLD carries no trade proposal")
        if self.quantity <= 0:
            raise ValueError(f"quantity must be positive, got {self.quantity}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    @property
    def risk_reward_ratio(self) -> float:
        risk = abs(self.entry_price - self.stop_loss)
        if risk == 0:
            return 0.0
        return round(abs(self.target_price - self.entry_price) / risk, 2)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["action"] = self.action.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeProposal":
        data = dict(data)
        data["action"] = TradeAction(data["action"])
        return cls(**data)


@dataclass
class AgentRun:
    """One full execution of the decision pipeline for one user intent."""
    owner_id: str
    intent: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: AgentStatus = AgentStatus.ANALYZING
    tool_invocations: List[ToolInvocation] = field(default_factory=list)
    reasoning: AgentReasoning = field(default_factory=AgentReasoning)
    proposal: Optional[TradeProposal] = None
    evidence_links: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_category: Optional[str] = None
    agent_response: str = ""
    duration_ms: float = 0.0
    created_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATES

    @property
    def symbol(self) -> Optional[str]:
        if self.proposal is not None:
            return self.proposal.symbol
        if self.tool_invocations:
            return self.tool_invocations[0].symbol
        return None

    def _check_mutable(self):
        if self.is_terminal:
            raise ValueError(f"Run {self.run_id} is {self.status.value} and immutable")

    def advance(self, status: AgentStatus):
        """Move to `status`; only forward transitions are accepted."""
        if status not in _RUN_TRANSITIONS[self.status]:
            raise ValueError(
                f"Run {self.run_id}: invalid transition {self.status.value} -> {status.value}"
            )
        self.status = status
        if status in TERMINAL_RUN_STATES:
            self.completed_at = now_utc()
            self.duration_ms = round(
                (self.completed_at - self.created_at).total_seconds() * 1000, 1
            )

    def record(self, invocation: ToolInvocation):
        self._check_mutable()
        self.tool_invocations.append(invocation)

    def add_evidence(self, link: str):
        self._check_mutable()
        if link not in self.evidence_links:
            self.evidence_links.append(link)

    def complete(self, proposal: Optional[TradeProposal]):
        """Terminal success. proposal is None for HOLD."""
        self._check_mutable()
        self.proposal = proposal
        self.advance(AgentStatus.COMPLETED)

    def fail(self, error: str, category: Optional[str] = None):
        """Terminal failure. Any partial proposal is discarded."""
        self._check_mutable()
        self.proposal = None
        self.error = error
        self.error_category = category
        self.advance(AgentStatus.ERROR)

    def tool_calls(self, tool: str) -> List[ToolInvocation]:
        return [t for t in self.tool_invocations if t.tool == tool]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "owner_id": self.owner_id,
            "intent": self.intent,
            "status": self.status.value,
            "tool_invocations": [t.to_dict() for t in self.tool_invocations],
            "reasoning": asdict(self.reasoning),
            "proposal": self.proposal.to_dict() if self.proposal else None,
            "evidence_links": list(self.evidence_links),
            "error": self.error,
            "error_category": self.error_category,
            "agent_response": self.agent_response,
            "duration_ms": self.duration_ms,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentRun":
        return cls(
            run_id=data["run_id"],
            owner_id=data["owner_id"],
            intent=data["intent"],
            status=AgentStatus(data["status"]),
            tool_invocations=[ToolInvocation.from_dict(t) for t in data.get("tool_invocations", [])],
            reasoning=AgentReasoning(**(data.get("reasoning") or {})),
            proposal=TradeProposal.from_dict(data["proposal"]) if data.get("proposal") else None,
            evidence_links=list(data.get("evidence_links") or []),
            error=data.get("error"),
            error_category=data.get("error_category"),
            agent_response=data.get("agent_response") or "",
            duration_ms=data.get("duration_ms") or 0.0,
            created_at=datetime.fromisoformat(data["created_at"]),
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
        )
