"""
Agent module - trade decision pipeline.

    from agent.orchestrator import AgentOrchestrator, run_pipeline
"""
from agent.models import AgentRun, AgentStatus, ToolInvocation, TradeAction, TradeProposal
