"""LLM-backed decision oracle using agno structured output"""

from __future__ import annotations

from typing import Any, Optional, Type

from agno.agent import Agent
from loguru import logger
from pydantic import BaseModel, ValidationError

from flipedge.adapters.models.factory import create_model_with_provider

from ..constants import DEFAULT_ORACLE_MODEL, DEFAULT_ORACLE_PROVIDER
from ..models import HoldDecision, HoldVerdict, Position, TradeDecision
from .interfaces import DecisionOracle
from .prompts import build_hold_prompt, build_trade_prompt

TRADE_TEMPERATURE = 0.5
HOLD_TEMPERATURE = 0.2


class LlmDecisionOracle(DecisionOracle):
    """DecisionOracle over any provider supported by the model factory.

    Each call wraps a model in an `agno.agent.Agent` with `output_schema`
    set to the expected decision schema and awaits `agent.arun(prompt)`.
    Unparseable or empty output yields None; provider errors propagate.
    """

    def __init__(
        self,
        provider: str = DEFAULT_ORACLE_PROVIDER,
        model_id: Optional[str] = DEFAULT_ORACLE_MODEL,
        api_key: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.model_id = model_id
        self._api_key = api_key

    def _build_agent(self, schema: Type[BaseModel], temperature: float) -> Agent:
        model = create_model_with_provider(
            provider=self.provider,
            model_id=self.model_id,
            api_key=self._api_key,
            temperature=temperature,
        )
        return Agent(model=model, output_schema=schema, markdown=False)

    async def _ask(
        self, schema: Type[BaseModel], prompt: str, temperature: float
    ) -> Optional[Any]:
        agent = self._build_agent(schema, temperature)
        response = await agent.arun(prompt)
        content = getattr(response, "content", None)
        if not content:
            logger.warning("Received empty response from model for {}", schema.__name__)
            return None
        if isinstance(content, schema):
            return content
        try:
            if isinstance(content, str):
                return schema.model_validate_json(content)
            return schema.model_validate(content)
        except ValidationError as exc:
            logger.warning(
                "Invalid {} structure in model response: {}", schema.__name__, exc
            )
            return None

    async def get_trade_decision(
        self, prompt: str, market_context: str
    ) -> Optional[TradeDecision]:
        decision = await self._ask(
            TradeDecision, build_trade_prompt(prompt, market_context), TRADE_TEMPERATURE
        )
        if decision is not None:
            logger.debug(
                "Trade decision: {} ({}) {}",
                decision.symbol,
                decision.confidence.value,
                decision.reason,
            )
        return decision

    async def get_hold_decision(
        self, prompt: str, position: Position, market_context: str
    ) -> Optional[HoldVerdict]:
        decision = await self._ask(
            HoldDecision,
            build_hold_prompt(prompt, position, market_context),
            HOLD_TEMPERATURE,
        )
        if decision is None:
            return None
        logger.bind(agent_id=position.agent_id).info(
            "Hold/Close decision: {}. Reason: {}", decision.decision.value, decision.reason
        )
        return decision.decision
