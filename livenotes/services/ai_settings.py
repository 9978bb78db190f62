from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..errors import ConfigError, SynthesisError
from .model_resolution import AICallContext, ModelResolver
from .providers import DEFAULT_PROVIDER, Provider, normalize_model_name


@dataclass
class AiSettings:
    """Effective AI settings snapshot: stored values over environment defaults."""

    enabled: bool = False
    provider: Provider = DEFAULT_PROVIDER
    keys: Dict[Provider, str] = field(default_factory=dict)
    models: Dict[Provider, str] = field(default_factory=dict)

    @property
    def api_key(self) -> str:
        return self.keys.get(self.provider, "")

    @property
    def model(self) -> str:
        return self.models.get(self.provider, "")


def _env_keys(settings: Any) -> Dict[Provider, str]:
    return {
        Provider.GEMINI: (getattr(settings, "gemini_api_key", "") or "").strip(),
        Provider.OPENAI: (getattr(settings, "openai_api_key", "") or "").strip(),
        Provider.ANTHROPIC: (getattr(settings, "anthropic_api_key", "") or "").strip(),
    }


def _str_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): v.strip() for k, v in value.items() if isinstance(v, str) and v.strip()}


def build_ai_settings(stored: Optional[Dict[str, Any]], settings: Any) -> AiSettings:
    stored = stored if isinstance(stored, dict) else {}
    env_keys = _env_keys(settings)
    stored_keys = _str_map(stored.get("apiKeys"))
    stored_models = _str_map(stored.get("models"))
    legacy_key = stored.get("apiKey") if isinstance(stored.get("apiKey"), str) else ""
    legacy_model = stored.get("model") if isinstance(stored.get("model"), str) else ""

    keys: Dict[Provider, str] = {}
    models: Dict[Provider, str] = {}
    for p in Provider:
        key = stored_keys.get(p.value, "")
        if not key and p is Provider.GEMINI:
            key = legacy_key.strip()
        keys[p] = key or env_keys[p]
        model = stored_models.get(p.value, "")
        if not model and p is Provider.GEMINI:
            model = legacy_model
        models[p] = normalize_model_name(model)

    enabled = stored.get("enabled")
    default_provider = Provider.parse(getattr(settings, "ai_provider", ""), DEFAULT_PROVIDER)
    return AiSettings(
        enabled=bool(enabled) if isinstance(enabled, bool) else bool(getattr(settings, "ai_enabled", False)),
        provider=Provider.parse(stored.get("provider"), default_provider) or DEFAULT_PROVIDER,
        keys=keys,
        models=models,
    )


def merge_saved_settings(stored: Optional[Dict[str, Any]], update: Dict[str, Any]) -> Dict[str, Any]:
    """Fold a client update into the stored record. A blank key never erases a stored one."""
    out: Dict[str, Any] = dict(stored or {})
    if update.get("enabled") is not None:
        out["enabled"] = bool(update["enabled"])
    if update.get("provider") is not None:
        provider = Provider.parse(update["provider"])
        if provider is not None:
            out["provider"] = provider.value

    keys = dict(_str_map(out.get("apiKeys")))
    for name, key in _str_map(update.get("apiKeys")).items():
        provider = Provider.parse(name)
        if provider is not None:
            keys[provider.value] = key
    out["apiKeys"] = keys

    models = dict(_str_map(out.get("models")))
    for name, model in _str_map(update.get("models")).items():
        provider = Provider.parse(name)
        if provider is not None:
            models[provider.value] = normalize_model_name(model)
    out["models"] = models
    return out


def settings_view(ai: AiSettings) -> Dict[str, Any]:
    return {
        "enabled": ai.enabled,
        "provider": ai.provider.value,
        "activeModel": ai.model or None,
        "models": {p.value: m for p, m in ai.models.items() if m},
        "keyConfigured": {p.value: bool(ai.keys.get(p)) for p in Provider},
    }


async def resolve_call_context(
    resolver: ModelResolver,
    provider: Provider,
    api_key: str,
    requested: Optional[str],
) -> AICallContext:
    try:
        model = await asyncio.to_thread(resolver.resolve, provider, api_key, requested)
    except SynthesisError as e:
        e.stage = e.stage or "resolve"
        e.provider = e.provider or provider.value
        raise
    return AICallContext(provider=provider, api_key=api_key, model=model)


async def probe_provider(
    pipeline: Any,
    ai: AiSettings,
    provider: Optional[Provider] = None,
    api_key: Optional[str] = None,
) -> Dict[str, str]:
    """Send the probe prompt through ``pipeline`` and report which model answered."""
    provider = provider or ai.provider
    key = (api_key or "").strip() or ai.keys.get(provider, "")
    if not key:
        raise ConfigError(f"No API key configured for {provider.value}.", stage="precheck", provider=provider.value)
    ctx = await resolve_call_context(pipeline.resolver, provider, key, ai.models.get(provider))
    await pipeline.probe(ctx)
    return {"provider": provider.value, "model": ctx.model}
