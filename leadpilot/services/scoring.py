"""Lead scoring collaborators for scraped listings.

A ScoringAdapter turns a normalized listing into a 0-100 lead score. The
ScoringService runs it through ResilientCaller and caches results; failures
propagate so the orchestrator can persist the listing with a null score.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import structlog

from leadpilot.config import settings
from leadpilot.core.context import RunContext
from leadpilot.core.exceptions import UpstreamTransientError
from leadpilot.core.retry import ResilientCaller
from leadpilot.services.cache_service import ContentCache, normalize_input
from leadpilot.services.llm_client import LLMClient, get_llm_client

logger = structlog.get_logger(__name__)

SCORE_NAMESPACE = "lead_score"


def clamp_score(value: Any) -> int:
    """Coerce a model-provided score into an int in [0, 100]."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise UpstreamTransientError(f"Scorer returned a non-numeric score: {value!r}")
    if not math.isfinite(score):
        raise UpstreamTransientError(f"Scorer returned a non-finite score: {value!r}")
    return max(0, min(100, int(score)))


@dataclass
class ScoreResult:
    """Lead score with the reasoning behind it."""

    score: int
    reasoning: str = ""
    signals: Dict[str, bool] = field(default_factory=dict)
    source: str = "llm"

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "reasoning": self.reasoning,
            "signals": dict(self.signals),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScoreResult":
        return cls(
            score=int(data["score"]),
            reasoning=data.get("reasoning", ""),
            signals=dict(data.get("signals") or {}),
            source=data.get("source", "llm"),
        )


class ScoringAdapter(Protocol):
    """Anything that can score a normalized listing."""

    name: str

    async def score(self, listing: Dict[str, Any], ctx: RunContext) -> ScoreResult:
        ...


SYSTEM_PROMPT = """You are a real-estate lead analyst. Score property listings from 0 to 100:

1. Quick-sale potential (40 points): urgency signals ("vendita immediata", "urgente",
   "svendita", "must sell"), sale motives (relocation, inheritance), price below the area.
2. Property quality (30 points): premium features, renovated, high energy class, prime area.
3. Investment potential (20 points): expected ROI, growing area, rentability.
4. Listing completeness (10 points): detailed description, photos, complete data.

Reply ONLY with a JSON object:
{"leadScore": <0-100>, "reasoning": "<max 100 chars>",
 "signals": {"underpriced": bool, "urgent": bool, "high_quality": bool, "good_location": bool}}"""


class LLMScoringAdapter:
    """Scores listings with a JSON-mode chat completion."""

    name = "llm"

    def __init__(self, client: LLMClient):
        self.client = client

    async def score(self, listing: Dict[str, Any], ctx: RunContext) -> ScoreResult:
        features = ", ".join(listing.get("features") or []) or "not specified"
        price = listing.get("price")
        price_text = f"{price:,.0f} {listing.get('currency') or ''}".strip() if price else "not specified"
        user_prompt = (
            f"Title: {listing.get('title') or 'n/a'}\n"
            f"Price: {price_text}\n"
            f"Location: {listing.get('location') or 'n/a'}\n"
            f"Type: {listing.get('property_type') or 'not specified'}\n"
            f"Surface: {listing.get('surface_sqm') or 'n/a'} m2, rooms: {listing.get('rooms') or 'n/a'}\n"
            f"Description: {(listing.get('description') or '')[:1000]}\n"
            f"Features: {features}"
        )
        reply = await self.client.chat_json(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.3,
            max_tokens=300,
        )
        raw_score = reply.get("leadScore", reply.get("lead_score", reply.get("score")))
        signals = reply.get("signals") if isinstance(reply.get("signals"), dict) else {}
        return ScoreResult(
            score=clamp_score(raw_score),
            reasoning=str(reply.get("reasoning", ""))[:200],
            signals={k: v is True for k, v in signals.items()},
            source=self.name,
        )


class HeuristicScoringAdapter:
    """Keyword scorer used when no LLM provider is configured."""

    name = "heuristic"

    BASE_SCORE = 50
    URGENCY_KEYWORDS = ("urgent", "immediat", "must sell", "deve vendere")
    UNDERPRICED_KEYWORDS = ("svendit", "sotto", "below market", "price reduced", "ribassato")

    async def score(self, listing: Dict[str, Any], ctx: RunContext) -> ScoreResult:
        text = " ".join(
            str(listing.get(k) or "") for k in ("title", "description")
        ).lower() + " " + " ".join(listing.get("features") or []).lower()

        urgent = any(k in text for k in self.URGENCY_KEYWORDS)
        underpriced = any(k in text for k in self.UNDERPRICED_KEYWORDS)
        score = self.BASE_SCORE + (20 if urgent else 0) + (15 if underpriced else 0)

        return ScoreResult(
            score=min(100, score),
            reasoning="Keyword analysis",
            signals={"urgent": urgent, "underpriced": underpriced},
            source=self.name,
        )


class ScoringService:
    """Runs a ScoringAdapter through ResilientCaller with result caching.

    Args:
        adapter: The scoring collaborator
        caller: ResilientCaller (default: LLM timeout and retry settings)
        cache: Optional ContentCache; scores are cached under "lead_score"
    """

    def __init__(
        self,
        adapter: ScoringAdapter,
        caller: Optional[ResilientCaller] = None,
        cache: Optional[ContentCache] = None,
    ):
        self.adapter = adapter
        self.caller = caller or ResilientCaller(
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=settings.LLM_MAX_RETRIES,
        )
        self.cache = cache
        self.logger = logger.bind(service="scoring_service", adapter=adapter.name)

    async def score(self, listing: Dict[str, Any], ctx: Optional[RunContext] = None) -> ScoreResult:
        """Score one normalized listing.

        Raises:
            LeadPilotError: Classified failure once retries are exhausted
        """
        ctx = ctx or RunContext()
        cache_input = normalize_input({"adapter": self.adapter.name, **listing})

        if self.cache is not None:
            cached = await self.cache.get(SCORE_NAMESPACE, cache_input)
            if cached is not None:
                return ScoreResult.from_dict(cached)

        result = await self.caller.call(
            lambda run_ctx: self.adapter.score(listing, run_ctx),
            ctx,
            name=f"score_{self.adapter.name}",
        )

        if self.cache is not None:
            await self.cache.set(SCORE_NAMESPACE, cache_input, result.to_dict())
        return result


def build_scoring_service(
    client: Optional[LLMClient] = None,
    cache: Optional[ContentCache] = None,
) -> ScoringService:
    """LLM scoring when a provider key is configured, keyword scoring otherwise."""
    client = client or get_llm_client()
    if client.configured:
        adapter: ScoringAdapter = LLMScoringAdapter(client)
    else:
        logger.warning("llm_not_configured_using_heuristic_scoring")
        adapter = HeuristicScoringAdapter()
    return ScoringService(adapter, cache=cache)
