"""
Agent Orchestrator - the Think -> Act -> Observe loop for one user intent.

Steps per run:
1. Extract a ticker from the intent (fail fast, no external calls)
2. Market data: cache first, source on miss          -> ToolInvocation
3. Indicators + signal analysis                      -> ToolInvocation
4. One reasoning engine call with the assembled context
5. Parse the reply (JSON schema first, text fallback)
6. BUY/SELL -> TradeProposal, HOLD -> no proposal
7. Persist the run, on every terminal status

Status: ANALYZING -> PROPOSING -> COMPLETED, or ERROR from either.
Any failure in steps 1-6 ends the run at ERROR with the message captured.
No automatic retries. Each external call is bounded by call_timeout_seconds.
A trace write failure is logged and alerted but never changes the run.
"""
import threading
import time
from dataclasses import asdict
from typing import Optional

from loguru import logger

from agent.models import AgentReasoning, AgentRun, AgentStatus, TradeAction, TradeProposal
from agent.prompts import build_messages
from agent.response_parser import ParsedReply, parse_reply
from agent.symbols import extract_symbol
from agent.tools import MarketDataTool, TechnicalAnalysisTool
from config.settings import Settings, get_settings
from providers.base import BaseLLMProvider, MarketSnapshot
from storage.base import BaseTraceRecorder
from utils.alerts import alert_trace_write_failed
from utils.error_handler import (
    ErrorCategory,
    MarketDataUnavailable,
    ReasoningEngineError,
    SymbolNotIdentified,
    TradingException,
    TraceWriteError,
    categorize_exception,
)
from utils.logger import audit_log
from utils.platform import call_with_timeout


HOLDING_WINDOW = "3-7 days"

# (stop_loss, target) multipliers on the current price
PRICE_LEVELS = {
    TradeAction.BUY: (0.95, 1.10),
    TradeAction.SELL: (1.05, 0.90),
}

EVIDENCE_URL = "https://finance.yahoo.com/quote/{symbol}"


def build_proposal(parsed: ParsedReply, snapshot: MarketSnapshot) -> Optional[TradeProposal]:
    """TradeProposal for BUY/SELL at the snapshot price. None for HOLD."""
    if parsed.action == TradeAction.HOLD:
        return None

    price = snapshot.current_price
    stop_mult, target_mult = PRICE_LEVELS[parsed.action]
    return TradeProposal(
        action=parsed.action,
        symbol=snapshot.symbol,
        quantity=parsed.quantity,
        entry_price=price,
        stop_loss=round(price * stop_mult, 2),
        target_price=round(price * target_mult, 2),
        confidence=parsed.confidence,
        holding_window=HOLDING_WINDOW,
    )


class AgentOrchestrator:
    """
    Runs the decision pipeline.

    All collaborators are passed in; nothing is looked up globally, so tests
    can hand in fakes for the source, engine and trace recorder.
    """

    def __init__(
        self,
        market_tool: MarketDataTool,
        llm: BaseLLMProvider,
        trace_recorder: Optional[BaseTraceRecorder] = None,
        analysis_tool: Optional[TechnicalAnalysisTool] = None,
        settings: Optional[Settings] = None,
    ):
        self.market_tool = market_tool
        self.llm = llm
        self.trace_recorder = trace_recorder
        self.analysis_tool = analysis_tool or TechnicalAnalysisTool()
        self.settings = settings or get_settings()

    # ============================================
    # ENTRY POINT
    # ============================================

    def run(self, owner_id: str, intent_text: str, run_id: Optional[str] = None) -> AgentRun:
        """Execute one run. Always returns a terminal AgentRun; never raises for pipeline errors."""
        run = AgentRun(owner_id=owner_id, intent=intent_text)
        if run_id:
            run.run_id = run_id

        logger.info(f"[{run.run_id}] Starting run for {owner_id}: \"{intent_text}\"")
        self._trace("start", run)

        try:
            self._execute(run)
        except Exception as e:
            self._fail(run, e)

        self._trace("finish", run)
        audit_log(
            "RUN_FINISHED",
            run_id=run.run_id, owner=run.owner_id, status=run.status.value,
            symbol=run.symbol,
            action=run.proposal.action.value if run.proposal else None,
            duration_ms=run.duration_ms,
        )
        return run

    # ============================================
    # PIPELINE STEPS
    # ============================================

    def _execute(self, run: AgentRun):
        rid = run.run_id

        # 1. Symbol
        symbol = extract_symbol(run.intent)
        logger.info(f"[{rid}] Identified symbol: {symbol}")

        # 2. Market data
        snapshot, invocation = self.market_tool.get_market_data(symbol)
        run.record(invocation)
        run.add_evidence(EVIDENCE_URL.format(symbol=symbol))
        if snapshot is None:
            raise MarketDataUnavailable(
                f"Market data fetch failed: {invocation.error}",
                symbol=symbol, source=invocation.data_source,
            )
        logger.info(
            f"[{rid}] Market data {symbol} @ {snapshot.current_price} "
            f"(cache_hit={invocation.cache_hit}, {invocation.duration_ms}ms)"
        )
        if snapshot.synthetic:
            logger.warning(f"[{rid}] {symbol} snapshot is SYNTHETIC demo data")

        # 3. Technical analysis
        analysis, invocation = self.analysis_tool.analyze(snapshot)
        run.record(invocation)
        if analysis is None:
            raise TradingException(
                f"Technical analysis failed: {invocation.error}", ErrorCategory.DATA
            )
        run.reasoning = AgentReasoning(**asdict(analysis))

        # 4. Reasoning engine
        messages = build_messages(run.intent, symbol, snapshot, analysis)
        reply = self._ask(rid, messages)
        run.agent_response = reply

        # 5. Parse
        parsed = parse_reply(reply, default_quantity=self.settings.default_quantity)
        run.advance(AgentStatus.PROPOSING)
        logger.info(
            f"[{rid}] Parsed {parsed.action.value} conf={parsed.confidence:.2f} "
            f"qty={parsed.quantity} ({'structured' if parsed.structured else 'text'})"
        )

        # 6. Proposal
        proposal = build_proposal(parsed, snapshot)
        run.complete(proposal)
        logger.info(f"[{rid}] Run completed in {run.duration_ms}ms")

    def _ask(self, rid: str, messages) -> str:
        logger.info(f"[{rid}] Calling reasoning engine ({self.llm.name})...")
        start = time.perf_counter()
        try:
            reply = call_with_timeout(
                lambda: self.llm.complete(
                    messages,
                    temperature=self.settings.llm_temperature,
                    max_tokens=self.settings.llm_max_tokens,
                    json_mode=self.settings.structured_output,
                ),
                timeout_seconds=self.settings.call_timeout_seconds,
                label="reasoning engine call",
            )
        except Exception as e:
            raise ReasoningEngineError(
                f"Reasoning engine call failed: {e}", categorize_exception(e)
            ) from e

        if not reply or not reply.strip():
            raise ReasoningEngineError("Reasoning engine returned an empty reply")

        logger.info(f"[{rid}] Reasoning engine replied in {(time.perf_counter() - start) * 1000:.0f}ms")
        return reply

    def _fail(self, run: AgentRun, error: Exception):
        category = categorize_exception(error)
        message = error.message if isinstance(error, TradingException) else str(error)
        if isinstance(error, SymbolNotIdentified):
            run.agent_response = f"Error: {message}"
            logger.warning(f"[{run.run_id}] {message}")
        else:
            logger.error(f"[{run.run_id}] Run failed ({category.value}): {message}")
        run.fail(message or type(error).__name__, category.value)

    # ============================================
    # TRACE
    # ============================================

    def _trace(self, stage: str, run: AgentRun):
        if self.trace_recorder is None:
            return
        try:
            if stage == "start":
                self.trace_recorder.start_run(run)
            else:
                self.trace_recorder.finish_run(run)
        except Exception as e:
            if not isinstance(e, TraceWriteError):
                e = TraceWriteError(str(e), run.run_id)
            logger.critical(f"[{run.run_id}] Trace write failed at {stage}: {e.message}")
            alert_trace_write_failed(run.run_id, e.message)


# ============================================
# MODULE-LEVEL ENTRY POINT
# ============================================

_default_orchestrator: Optional[AgentOrchestrator] = None
_default_lock = threading.Lock()


def build_market_tool(settings: Optional[Settings] = None) -> MarketDataTool:
    """Market data tool over the configured source with a fresh cache."""
    from providers.cache import MarketDataCache
    from providers.price import get_market_data_source

    settings = settings or get_settings()
    return MarketDataTool(
        cache=MarketDataCache(ttl_minutes=settings.market_cache_ttl_minutes),
        source=get_market_data_source(settings),
        macd_smoothing=settings.macd_smoothing,
    )


def build_orchestrator(settings: Optional[Settings] = None) -> AgentOrchestrator:
    """Wire the production collaborators from settings."""
    from providers.llm import get_llm_provider
    from storage.trade_db import TradeDB

    settings = settings or get_settings()
    return AgentOrchestrator(
        market_tool=build_market_tool(settings),
        llm=get_llm_provider(settings),
        trace_recorder=TradeDB(settings.db_path),
        settings=settings,
    )


def run_pipeline(owner_id: str, intent_text: str,
                 orchestrator: Optional[AgentOrchestrator] = None) -> AgentRun:
    """Run the pipeline for one intent; builds the default orchestrator on first use."""
    global _default_orchestrator
    if orchestrator is None:
        with _default_lock:
            if _default_orchestrator is None:
                _default_orchestrator = build_orchestrator()
            orchestrator = _default_orchestrator
    return orchestrator.run(owner_id, intent_text)
