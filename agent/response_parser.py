"""
Reasoning engine reply parsing.

Primary path: the reply is a JSON object validated against ProposalOutput.
Legacy fallback: free text scanned for `Action:`, `Confidence:` and
`Quantity:` tokens. Neither path raises; missing fields take defaults
(HOLD, confidence 0.5, the configured quantity).
"""
import json
import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from agent.models import TradeAction


DEFAULT_CONFIDENCE = 0.5
DEFAULT_QUANTITY = 10

_ACTION_RE = re.compile(r"Action:\s*\**\s*(BUY|SELL|HOLD)", re.IGNORECASE)
_CONFIDENCE_RE = re.compile(r"Confidence:\s*\**\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_QUANTITY_RE = re.compile(r"Quantity:\s*\**\s*(\d+)", re.IGNORECASE)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class ProposalOutput(BaseModel):
    """Structured reply schema requested from the reasoning engine."""
    model_config = ConfigDict(extra="ignore")

    action: TradeAction
    confidence: Optional[float] = None
    quantity: Optional[int] = None
    rationale: str = ""

    @field_validator("action", mode="before")
    @classmethod
    def upper_action(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


@dataclass(frozen=True)
class ParsedReply:
    action: TradeAction
    confidence: float
    quantity: int
    structured: bool
    rationale: str = ""


def normalize_confidence(value: Optional[float]) -> float:
    """Values above 1 are read as percentages; the result is clamped to [0, 1]."""
    if value is None:
        return DEFAULT_CONFIDENCE
    value = float(value)
    if value > 1:
        value = value / 100
    return round(min(max(value, 0.0), 1.0), 4)


def _normalize_quantity(value: Optional[int], default: int) -> int:
    if value is None or value < 1:
        return default
    return int(value)


def _parse_structured(text: str) -> Optional[ProposalOutput]:
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return None
    try:
        return ProposalOutput.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.debug(f"Structured reply rejected, falling back to text parse: {e}")
        return None


def _parse_legacy(text: str, default_quantity: int) -> ParsedReply:
    action_match = _ACTION_RE.search(text)
    action = TradeAction(action_match.group(1).upper()) if action_match else TradeAction.HOLD

    confidence_match = _CONFIDENCE_RE.search(text)
    confidence = normalize_confidence(
        float(confidence_match.group(1)) if confidence_match else None
    )

    quantity_match = _QUANTITY_RE.search(text)
    quantity = _normalize_quantity(
        int(quantity_match.group(1)) if quantity_match else None, default_quantity
    )

    return ParsedReply(action=action, confidence=confidence, quantity=quantity,
                       structured=False)


def parse_reply(text: str, default_quantity: int = DEFAULT_QUANTITY) -> ParsedReply:
    """Parse a reasoning engine reply into action, confidence and quantity."""
    text = text or ""
    output = _parse_structured(text)
    if output is None:
        return _parse_legacy(text, default_quantity)

    return ParsedReply(
        action=output.action,
        confidence=normalize_confidence(output.confidence),
        quantity=_normalize_quantity(output.quantity, default_quantity),
        structured=True,
        rationale=output.rationale,
    )
