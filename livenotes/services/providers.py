from __future__ import annotations

import json
import os
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib import error, parse, request

from ..errors import ModelNotFoundError, ProviderError


class Provider(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @classmethod
    def parse(cls, value: Any, default: Optional["Provider"] = None) -> Optional["Provider"]:
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default


DEFAULT_PROVIDER = Provider.GEMINI

DEFAULT_MODELS: Dict[Provider, str] = {
    Provider.GEMINI: "gemini-2.0-flash",
    Provider.OPENAI: "gpt-4o-mini",
    Provider.ANTHROPIC: "claude-3-5-haiku-latest",
}

PREFERRED_MODELS: Dict[Provider, List[str]] = {
    Provider.GEMINI: [
        "gemini-2.5-flash",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-1.5-flash",
        "gemini-1.5-pro",
    ],
    Provider.OPENAI: ["gpt-4.1-mini", "gpt-4o-mini", "gpt-4o"],
    Provider.ANTHROPIC: [
        "claude-3-5-haiku-latest",
        "claude-3-5-sonnet-latest",
        "claude-3-7-sonnet-latest",
    ],
}

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
OPENAI_API_BASE = "https://api.openai.com/v1"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"


def normalize_model_name(name: Any) -> str:
    if not isinstance(name, str):
        return ""
    name = name.strip()
    if name.startswith("models/"):
        name = name[len("models/"):]
    return name.strip()


@dataclass(frozen=True)
class CompletionRequest:
    system_prompt: str
    user_prompt: str
    temperature: float = 0.2
    json_mode: bool = False


class HttpStatusError(Exception):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"HTTP {status}: {body[:400]}")
        self.status = status
        self.body = body


def _ssl_context() -> ssl.SSLContext:
    # Tolerate environments with custom SSL; allow opt-out verify
    if os.getenv("LIVENOTES_SSL_NO_VERIFY"):
        return ssl._create_unverified_context()  # type: ignore[attr-defined]
    return ssl.create_default_context()


def _http_json(
    url: str,
    *,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    data: Optional[Dict[str, Any]] = None,
    timeout: int = 60,
) -> Dict[str, Any]:
    body = json.dumps(data).encode("utf-8") if data is not None else None
    hdrs = {"User-Agent": "livenotes-worker/0.3 python-urllib", **(headers or {})}
    if body is not None:
        hdrs.setdefault("Content-Type", "application/json")
    req = request.Request(url, data=body, headers=hdrs, method=method)
    try:
        with request.urlopen(req, context=_ssl_context(), timeout=timeout) as resp:
            raw = resp.read()
            return json.loads(raw.decode("utf-8"))
    except error.HTTPError as e:
        try:
            payload = e.read().decode("utf-8", errors="replace")
        except OSError:
            payload = str(e)
        raise HttpStatusError(e.code, payload) from e


class ModelProvider:
    """One provider variant: text completion plus optional model listing."""

    name: Provider
    supports_listing = False

    def __init__(self, timeout: int = 60) -> None:
        self.timeout = timeout

    def complete_text(self, api_key: str, model: str, req: CompletionRequest) -> str:
        raise NotImplementedError

    def list_models(self, api_key: str) -> List[str]:
        return []

    def _status_error(self, exc: HttpStatusError, model: str) -> ProviderError:
        msg = f"{self.label} API {exc.status} ({model}): {exc.body[:400]}"
        if exc.status == 404:
            return ModelNotFoundError(msg, status=404, provider=self.name.value)
        return ProviderError(msg, status=exc.status, provider=self.name.value)

    def _transport_error(self, exc: Exception, model: str) -> ProviderError:
        return ProviderError(f"{self.label} request failed ({model}): {exc}", provider=self.name.value)

    def _require_text(self, text: str) -> str:
        if not text:
            raise ProviderError(f"{self.label} returned no text output.", provider=self.name.value)
        return text

    @property
    def label(self) -> str:
        return {"gemini": "Gemini", "openai": "OpenAI", "anthropic": "Anthropic"}[self.name.value]


def extract_gemini_text(data: Any) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    if not isinstance(parts, list):
        return ""
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)).strip()


def extract_openai_text(content: Any) -> str:
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        out: List[str] = []
        for item in content:
            if isinstance(item, str):
                out.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                out.append(item["text"])
            elif isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("value"), str):
                out.append(item["value"])
        return "".join(out).strip()
    return ""


def extract_anthropic_text(data: Any) -> str:
    parts = data.get("content") if isinstance(data, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(
        p["text"] for p in parts
        if isinstance(p, dict) and p.get("type") == "text" and isinstance(p.get("text"), str)
    ).strip()


class GeminiProvider(ModelProvider):
    name = Provider.GEMINI
    supports_listing = True

    def complete_text(self, api_key: str, model: str, req: CompletionRequest) -> str:
        model = normalize_model_name(model) or DEFAULT_MODELS[self.name]
        url = f"{GEMINI_API_BASE}/{parse.quote(model)}:generateContent?key={parse.quote(api_key)}"
        gen_cfg: Dict[str, Any] = {"temperature": req.temperature}
        if req.json_mode:
            gen_cfg["responseMimeType"] = "application/json"
        payload = {
            "systemInstruction": {"parts": [{"text": req.system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": req.user_prompt}]}],
            "generationConfig": gen_cfg,
        }
        try:
            res = _http_json(url, method="POST", data=payload, timeout=self.timeout)
        except HttpStatusError as e:
            raise self._status_error(e, model) from e
        except (OSError, ValueError) as e:
            raise self._transport_error(e, model) from e
        return self._require_text(extract_gemini_text(res))

    def list_models(self, api_key: str) -> List[str]:
        url = f"{GEMINI_API_BASE}?key={parse.quote(api_key)}"
        try:
            res = _http_json(url, timeout=self.timeout)
        except HttpStatusError as e:
            raise ProviderError(
                f"Gemini ListModels failed ({e.status}): {e.body[:300]}", status=e.status, provider=self.name.value
            ) from e
        except (OSError, ValueError) as e:
            raise self._transport_error(e, "ListModels") from e
        names: List[str] = []
        for m in res.get("models") or []:
            if not isinstance(m, dict) or "generateContent" not in (m.get("supportedGenerationMethods") or []):
                continue
            name = normalize_model_name(m.get("name"))
            if name:
                names.append(name)
        return names


class OpenAIProvider(ModelProvider):
    name = Provider.OPENAI
    supports_listing = True

    def __init__(self, timeout: int = 60, base_url: Optional[str] = None) -> None:
        super().__init__(timeout)
        self.base_url = (base_url or os.getenv("OPENAI_API_BASE") or OPENAI_API_BASE).rstrip("/")

    def complete_text(self, api_key: str, model: str, req: CompletionRequest) -> str:
        model = model or DEFAULT_MODELS[self.name]
        try:
            return self._chat(api_key, model, req, json_mode=req.json_mode)
        except ProviderError as e:
            # some models reject response_format; retry once in plain mode
            if req.json_mode and e.status == 400:
                return self._chat(api_key, model, req, json_mode=False)
            raise

    def _chat(self, api_key: str, model: str, req: CompletionRequest, json_mode: bool) -> str:
        payload: Dict[str, Any] = {
            "model": model,
            "temperature": req.temperature,
            "messages": [
                {"role": "system", "content": req.system_prompt},
                {"role": "user", "content": req.user_prompt},
            ],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        try:
            res = _http_json(
                f"{self.base_url}/chat/completions",
                method="POST",
                headers={"Authorization": f"Bearer {api_key}"},
                data=payload,
                timeout=self.timeout,
            )
        except HttpStatusError as e:
            raise self._status_error(e, model) from e
        except (OSError, ValueError) as e:
            raise self._transport_error(e, model) from e
        choices = res.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content", "")
        return self._require_text(extract_openai_text(content))

    def list_models(self, api_key: str) -> List[str]:
        try:
            res = _http_json(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self.timeout,
            )
        except HttpStatusError as e:
            raise ProviderError(
                f"OpenAI ListModels failed ({e.status}): {e.body[:300]}", status=e.status, provider=self.name.value
            ) from e
        except (OSError, ValueError) as e:
            raise self._transport_error(e, "ListModels") from e
        return [
            m["id"].strip() for m in res.get("data") or []
            if isinstance(m, dict) and isinstance(m.get("id"), str) and m["id"].strip()
        ]


class AnthropicProvider(ModelProvider):
    name = Provider.ANTHROPIC

    def complete_text(self, api_key: str, model: str, req: CompletionRequest) -> str:
        model = model or DEFAULT_MODELS[self.name]
        payload = {
            "model": model,
            "max_tokens": 2048,
            "temperature": req.temperature,
            "system": req.system_prompt,
            "messages": [{"role": "user", "content": req.user_prompt}],
        }
        try:
            res = _http_json(
                ANTHROPIC_MESSAGES_URL,
                method="POST",
                headers={"x-api-key": api_key, "anthropic-version": "2023-06-01"},
                data=payload,
                timeout=self.timeout,
            )
        except HttpStatusError as e:
            raise self._status_error(e, model) from e
        except (OSError, ValueError) as e:
            raise self._transport_error(e, model) from e
        return self._require_text(extract_anthropic_text(res))


def build_providers(timeout: int = 60) -> Dict[Provider, ModelProvider]:
    return {
        Provider.GEMINI: GeminiProvider(timeout),
        Provider.OPENAI: OpenAIProvider(timeout),
        Provider.ANTHROPIC: AnthropicProvider(timeout),
    }
