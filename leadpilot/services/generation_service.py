"""AI content generation behind rate limits and the content cache.

Request flow for every namespace:
burst check (user, then IP) -> cache lookup -> plan quota (cache misses
only) -> LLM call through ResilientCaller -> cache store.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from leadpilot.config import settings
from leadpilot.core.context import RunContext
from leadpilot.core.exceptions import QuotaError, UpstreamTransientError, ValidationError
from leadpilot.core.retry import ResilientCaller
from leadpilot.services.cache_service import ContentCache, get_content_cache, normalize_input
from leadpilot.services.llm_client import LLMClient, get_llm_client
from leadpilot.services.rate_limiter import (
    TIER_BURST,
    TIER_QUOTA,
    RateLimiter,
    RateLimitResult,
    get_rate_limiter,
)

logger = structlog.get_logger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "it": "Italian",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "nl": "Dutch",
    "ru": "Russian",
    "zh": "Chinese",
    "ar": "Arabic",
}


def _titles_prompt(data: Dict[str, Any]) -> List[Dict[str, str]]:
    details = [
        f"Transaction: {data.get('transaction_type', 'sale')}",
        f"Property type: {data['property_type']}",
        f"Location: {data['location']}",
    ]
    for label, key in (("Price", "price"), ("Surface", "surface"), ("Rooms", "rooms")):
        if data.get(key):
            details.append(f"{label}: {data[key]}")
    details.append(f"Key points: {data['key_points']}")

    return [
        {
            "role": "system",
            "content": (
                "You write real-estate listing titles. Reply with JSON: "
                '{"titles": [5 strings, each under 80 characters]}. '
                f"Tone: {data.get('tone', 'professional')}."
            ),
        },
        {"role": "user", "content": "\n".join(details)},
    ]


def _hashtags_prompt(data: Dict[str, Any]) -> List[Dict[str, str]]:
    language = "Italian and English" if data.get("market", "italy") == "italy" else "English"
    return [
        {
            "role": "system",
            "content": (
                "You are a real-estate social media strategist. Reply with JSON: "
                '{"hashtags": {"primary": [...], "location": [...], "niche": [...]}, "tips": [...]} '
                f"using {language} hashtags, 25 in total, each starting with '#'. "
                f"Tone: {data.get('tone', 'professional')}."
            ),
        },
        {
            "role": "user",
            "content": (
                f"Property: {data['property_type']}\n"
                f"Location: {data['location']}\n"
                f"Strengths: {data['strengths']}\n"
                f"Price: {data['price']}"
            ),
        },
    ]


def _translate_prompt(data: Dict[str, Any]) -> List[Dict[str, str]]:
    language = LANGUAGE_NAMES.get(data["target_language"], data["target_language"])
    body = f"Title: {data['title']}\n\nDescription: {data['description']}"
    if data.get("features"):
        body += f"\n\nFeatures: {data['features']}"
    return [
        {
            "role": "system",
            "content": (
                f"Translate real-estate listings into {language}, adapting measurements and "
                "idioms for local buyers rather than translating word by word. Reply with JSON: "
                '{"title": str, "description": str, "features": str|null}. '
                f"Register: {data.get('tone', 'standard')}."
            ),
        },
        {"role": "user", "content": body},
    ]


def _require_keys(*keys: str) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    def check(reply: Dict[str, Any]) -> Dict[str, Any]:
        missing = [k for k in keys if k not in reply]
        if missing:
            raise UpstreamTransientError(f"LLM reply is missing {', '.join(missing)}")
        return reply

    return check


# namespace -> (prompt builder, reply validator, burst category, temperature)
NAMESPACES: Dict[str, Tuple[Callable, Callable, str, float]] = {
    "titles": (_titles_prompt, _require_keys("titles"), "ai-generation", 0.8),
    "hashtags": (_hashtags_prompt, _require_keys("hashtags"), "ai-generation", 0.7),
    "translate": (_translate_prompt, _require_keys("title", "description"), "ai-expensive", 0.3),
}


class GenerationService:
    """Generates listing content for one user request.

    Args:
        llm: LLM client
        rate_limiter: Admission control for burst and quota tiers
        cache: Content cache keyed by namespace and normalized input
        caller: ResilientCaller for the LLM hop
    """

    def __init__(
        self,
        llm: LLMClient,
        rate_limiter: RateLimiter,
        cache: ContentCache,
        caller: Optional[ResilientCaller] = None,
    ):
        self.llm = llm
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.caller = caller or ResilientCaller(
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=settings.LLM_MAX_RETRIES,
        )
        self.logger = logger.bind(service="generation_service")

    @staticmethod
    def _reject(result: RateLimitResult, tier: str, default_message: str) -> QuotaError:
        return QuotaError(result.message or default_message, tier=tier, retry_after=result.retry_after)

    async def generate(
        self,
        namespace: str,
        data: Dict[str, Any],
        user_id: str,
        plan: str,
        client_ip: Optional[str] = None,
        ctx: Optional[RunContext] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """Produce content for a namespace, serving repeats from the cache.

        Args:
            namespace: "titles", "hashtags" or "translate"
            data: Validated request fields
            user_id: Caller identity
            plan: Caller's subscription plan
            client_ip: Caller IP for the per-IP burst tier
            ctx: Run context carrying the request deadline

        Returns:
            Tuple of (generated content, served_from_cache)

        Raises:
            ValidationError: Unknown namespace
            QuotaError: Burst or plan quota exceeded
            LeadPilotError: Classified LLM failure
        """
        if namespace not in NAMESPACES:
            raise ValidationError(f"Unknown generation namespace '{namespace}'")
        build_prompt, validate_reply, category, temperature = NAMESPACES[namespace]

        burst = await self.rate_limiter.check(user_id, TIER_BURST, category=category)
        if not burst.allowed:
            raise self._reject(burst, TIER_BURST, "Too many requests. Please slow down.")

        if client_ip:
            ip_burst = await self.rate_limiter.check(f"ip:{client_ip}", TIER_BURST, category="ip")
            if not ip_burst.allowed:
                raise self._reject(ip_burst, TIER_BURST, "Too many requests from this address.")

        cache_input = normalize_input(data)
        cached = await self.cache.get(namespace, cache_input)
        if cached is not None:
            self.logger.info("generation_cache_hit", namespace=namespace, user_id=user_id)
            return cached, True

        quota = await self.rate_limiter.check(f"user:{user_id}", TIER_QUOTA, plan=plan)
        if not quota.allowed:
            raise self._reject(
                quota,
                TIER_QUOTA,
                f"Monthly generation quota reached for the {plan} plan.",
            )

        messages = build_prompt(data)

        async def _generate(run_ctx: RunContext) -> Dict[str, Any]:
            reply = await self.llm.chat_json(messages, temperature=temperature)
            return validate_reply(reply)

        content = await self.caller.call(
            _generate,
            ctx or RunContext.with_timeout(settings.LLM_TIMEOUT_SECONDS * 2, label=namespace),
            name=f"generate_{namespace}",
        )

        await self.cache.set(namespace, cache_input, content)
        self.logger.info(
            "generation_completed",
            namespace=namespace,
            user_id=user_id,
            quota_remaining=quota.remaining,
        )
        return content, False


_generation_service: Optional[GenerationService] = None


def get_generation_service() -> GenerationService:
    """Get or create the global generation service."""
    global _generation_service

    if _generation_service is None:
        _generation_service = GenerationService(
            llm=get_llm_client(),
            rate_limiter=get_rate_limiter(),
            cache=get_content_cache(),
        )

    return _generation_service
