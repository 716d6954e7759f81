"""The reasoning step that turns a market into a Decision.

The orchestrator only depends on the ``Classifier`` protocol. The
pydantic-ai implementation asks an LLM for structured output using each
agent's persona; free-text replies are parsed by ``parse_ai_response``.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Protocol

from pydantic import ValidationError
from pydantic_ai import Agent

from arena.models import CachedMarket
from arena.roster import AgentProfile

from .models import Decision
from .prompts import build_market_prompt

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_PREDICTION_LINE = re.compile(r"PREDICTION:\s*(YES|NO)", re.IGNORECASE)
_CONFIDENCE_LINE = re.compile(r"CONFIDENCE:\s*([0-9]*\.?[0-9]+)\s*(%?)", re.IGNORECASE)
_REASONING_LINE = re.compile(r"REASONING:\s*(.+)", re.IGNORECASE | re.DOTALL)


class Classifier(Protocol):
    async def classify(self, agent: AgentProfile, market: CachedMarket) -> Decision: ...


def _clamp_confidence(value: float) -> float:
    if value > 1:
        value = value / 100
    return max(0.5, min(1.0, value))


def parse_ai_response(text: str) -> Decision | None:
    """Extract a Decision from a model reply.

    Tries an embedded JSON object first, then ``PREDICTION:`` /
    ``CONFIDENCE:`` / ``REASONING:`` lines. Returns None if no direction
    can be found.
    """
    match = _JSON_OBJECT.search(text)
    if match:
        try:
            data = json.loads(match.group(0))
            prediction = str(data.get("prediction", "")).upper()
            if prediction in ("YES", "NO"):
                return Decision(
                    prediction=prediction,
                    confidence=_clamp_confidence(float(data.get("confidence", 0.5))),
                    reasoning=str(data.get("reasoning", "")).strip(),
                )
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.debug(f"JSON parse failed, falling back to line format: {e}")

    prediction_match = _PREDICTION_LINE.search(text)
    if not prediction_match:
        return None

    confidence = 0.5
    confidence_match = _CONFIDENCE_LINE.search(text)
    if confidence_match:
        confidence = _clamp_confidence(float(confidence_match.group(1)))

    reasoning_match = _REASONING_LINE.search(text)
    reasoning = reasoning_match.group(1).strip() if reasoning_match else text.strip()

    return Decision(
        prediction=prediction_match.group(1).upper(),
        confidence=confidence,
        reasoning=reasoning[:2000],
    )


class PydanticAIClassifier:
    """Asks an LLM, in the agent's persona, for a structured Decision."""

    def __init__(self, model: str = "", api_key: str = "", temperature: float = 0.7):
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self._agents: dict[str, Agent[None, Decision]] = {}

    def _get_agent(self, profile: AgentProfile) -> Agent[None, Decision]:
        if profile.id not in self._agents:
            if self.api_key:
                os.environ.setdefault("OPENAI_API_KEY", self.api_key)
            self._agents[profile.id] = Agent(
                model=self.model_for(profile),
                output_type=Decision,
                system_prompt=profile.system_prompt,
                model_settings={"temperature": self.temperature},
                retries=2,
            )
        return self._agents[profile.id]

    def model_for(self, profile: AgentProfile) -> str:
        """The pydantic-ai model string for an agent; ``model`` overrides the roster."""
        if self.model:
            return self.model
        if ":" in profile.model:
            return profile.model
        return f"openai:{profile.model}"

    async def classify(self, agent: AgentProfile, market: CachedMarket) -> Decision:
        result = await self._get_agent(agent).run(build_market_prompt(market))
        return result.output


class StaticClassifier:
    """Returns canned decisions; used offline and in tests.

    Decisions are looked up by (agent_id, market_id), then market_id, then
    fall back to ``default``.
    """

    def __init__(
        self,
        decisions: dict[tuple[str, str] | str, Decision] | None = None,
        default: Decision | None = None,
    ):
        self.decisions = decisions or {}
        self.default = default
        self.calls: list[tuple[str, str]] = []

    async def classify(self, agent: AgentProfile, market: CachedMarket) -> Decision:
        self.calls.append((agent.id, market.polymarket_id))
        decision = (
            self.decisions.get((agent.id, market.polymarket_id))
            or self.decisions.get(market.polymarket_id)
            or self.default
        )
        if decision is None:
            raise LookupError(f"No decision for {agent.id} on {market.polymarket_id}")
        return decision


class TextClassifier:
    """Adapts a free-text completion function through ``parse_ai_response``."""

    def __init__(self, complete):
        self.complete = complete

    async def classify(self, agent: AgentProfile, market: CachedMarket) -> Decision:
        text = await self.complete(agent.system_prompt, build_market_prompt(market))
        try:
            decision = parse_ai_response(text)
        except ValidationError as e:
            raise ValueError(f"Malformed reply from {agent.id}: {e}") from e
        if decision is None:
            raise ValueError(f"No prediction found in reply from {agent.id}")
        return decision
