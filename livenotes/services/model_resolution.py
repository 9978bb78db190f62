from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .providers import (
    DEFAULT_MODELS,
    PREFERRED_MODELS,
    CompletionRequest,
    ModelProvider,
    Provider,
    normalize_model_name,
)


def pick_model(
    available: Sequence[str],
    requested: Optional[str],
    preferred: Sequence[str],
    fallback_default: str,
) -> str:
    """Requested if available, else first preferred that is available, else first available, else default."""
    names = [n for n in (normalize_model_name(a) for a in available) if n]
    req = normalize_model_name(requested or "")
    if req and req in names:
        return req
    for p in preferred:
        if p in names:
            return p
    if names:
        return names[0]
    return fallback_default


@dataclass
class AICallContext:
    """Per-chunk call context. Never persisted; ``model`` may change after a fallback."""

    provider: Provider
    api_key: str
    model: str

    def __repr__(self) -> str:  # keep keys out of logs
        return f"AICallContext(provider={self.provider.value!r}, model={self.model!r})"


@dataclass
class _CacheEntry:
    fetched_at: float
    models: List[str] = field(default_factory=list)


class ModelResolver:
    """Maps requested model names onto models a provider actually serves.

    Listings are cached per (provider, api key) for ``ttl_seconds``. The clock
    is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        providers: Dict[Provider, ModelProvider],
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.providers = providers
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.logger = logging.getLogger("livenotes.models")
        self._cache: Dict[Tuple[Provider, str], _CacheEntry] = {}

    def provider(self, provider: Provider) -> ModelProvider:
        return self.providers[provider]

    def list_models(self, provider: Provider, api_key: str) -> List[str]:
        impl = self.providers[provider]
        if not impl.supports_listing:
            return []
        key = (provider, api_key)
        now = self.clock()
        entry = self._cache.get(key)
        if entry is not None and entry.models and now - entry.fetched_at < self.ttl_seconds:
            return list(entry.models)
        models = impl.list_models(api_key)
        self._cache[key] = _CacheEntry(fetched_at=now, models=list(models))
        self.logger.info("model listing refreshed provider=%s count=%d", provider.value, len(models))
        return list(models)

    def invalidate(self, provider: Provider, api_key: str) -> None:
        self._cache.pop((provider, api_key), None)

    def resolve(self, provider: Provider, api_key: str, requested: Optional[str]) -> str:
        impl = self.providers[provider]
        if not impl.supports_listing:
            return normalize_model_name(requested or "") or PREFERRED_MODELS[provider][0]
        available = self.list_models(provider, api_key)
        return pick_model(available, requested, PREFERRED_MODELS[provider], DEFAULT_MODELS[provider])

    def resolve_fallback(self, provider: Provider, api_key: str, failed_model: str) -> Optional[str]:
        """A freshly resolved model other than ``failed_model``, or None if there is none."""
        failed = normalize_model_name(failed_model)
        impl = self.providers[provider]
        if impl.supports_listing:
            self.invalidate(provider, api_key)
            available = [m for m in self.list_models(provider, api_key) if normalize_model_name(m) != failed]
            if not available:
                return None
            return pick_model(available, None, PREFERRED_MODELS[provider], DEFAULT_MODELS[provider])
        for candidate in PREFERRED_MODELS[provider]:
            if candidate != failed:
                return candidate
        return None

    def complete(self, ctx: AICallContext, req: CompletionRequest) -> str:
        """One completion on ``ctx.model``; an unknown model raises ``ModelNotFoundError``.

        The caller owns the single fallback retry (see ``resolve_fallback``) so
        that the retry goes through the rate limiter like any other call.
        """
        return self.providers[ctx.provider].complete_text(ctx.api_key, ctx.model, req)
