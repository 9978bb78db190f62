import pytest

from livenotes.errors import ModelNotFoundError, ProviderError
from livenotes.services import providers
from livenotes.services.providers import (
    AnthropicProvider,
    CompletionRequest,
    GeminiProvider,
    HttpStatusError,
    OpenAIProvider,
    Provider,
    extract_anthropic_text,
    extract_gemini_text,
    extract_openai_text,
)

JSON_REQ = CompletionRequest("sys", "user", temperature=0.05, json_mode=True)


def test_extractors():
    gemini = {"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "world"}]}}]}
    assert extract_gemini_text(gemini) == "Hello world"
    assert extract_gemini_text({"candidates": []}) == ""
    assert extract_openai_text("  plain  ") == "plain"
    assert extract_openai_text([{"type": "text", "text": "a"}, "b"]) == "ab"
    assert extract_openai_text(None) == ""
    anthropic = {"content": [{"type": "text", "text": "x"}, {"type": "tool_use"}, {"type": "text", "text": "y"}]}
    assert extract_anthropic_text(anthropic) == "xy"


def test_provider_parse():
    assert Provider.parse(" OpenAI ") is Provider.OPENAI
    assert Provider.parse("bogus") is None
    assert Provider.parse("bogus", Provider.GEMINI) is Provider.GEMINI


def test_gemini_request_shape_and_listing(monkeypatch):
    seen = []

    def fake_http(url, **kwargs):
        seen.append((url, kwargs))
        if url.endswith(":generateContent?key=k"):
            return {"candidates": [{"content": {"parts": [{"text": "{}"}]}}]}
        return {
            "models": [
                {"name": "models/gemini-2.0-flash", "supportedGenerationMethods": ["generateContent"]},
                {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
            ]
        }

    monkeypatch.setattr(providers, "_http_json", fake_http)
    gemini = GeminiProvider()

    assert gemini.complete_text("k", "models/gemini-2.0-flash", JSON_REQ) == "{}"
    url, kwargs = seen[0]
    assert "/gemini-2.0-flash:generateContent" in url
    assert kwargs["data"]["generationConfig"] == {"temperature": 0.05, "responseMimeType": "application/json"}
    assert kwargs["data"]["systemInstruction"] == {"parts": [{"text": "sys"}]}

    assert gemini.list_models("k") == ["gemini-2.0-flash"]


def test_openai_retries_without_json_mode_on_400(monkeypatch):
    formats = []

    def fake_http(url, **kwargs):
        formats.append(kwargs["data"].get("response_format"))
        if "response_format" in kwargs["data"]:
            raise HttpStatusError(400, "response_format not supported")
        return {"choices": [{"message": {"content": '{"sections": []}'}}]}

    monkeypatch.setattr(providers, "_http_json", fake_http)
    text = OpenAIProvider(base_url="https://example.test/v1").complete_text("k", "gpt-4o-mini", JSON_REQ)

    assert text == '{"sections": []}'
    assert formats == [{"type": "json_object"}, None]


def test_not_found_and_empty_output(monkeypatch):
    def not_found(url, **kwargs):
        raise HttpStatusError(404, "model missing")

    monkeypatch.setattr(providers, "_http_json", not_found)
    with pytest.raises(ModelNotFoundError) as exc:
        AnthropicProvider().complete_text("k", "claude-x", JSON_REQ)
    assert exc.value.status == 404

    monkeypatch.setattr(providers, "_http_json", lambda url, **kwargs: {"content": []})
    with pytest.raises(ProviderError, match="Anthropic returned no text output."):
        AnthropicProvider().complete_text("k", "claude-x", JSON_REQ)


def test_transport_failure_is_a_provider_error(monkeypatch):
    def boom(url, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(providers, "_http_json", boom)
    with pytest.raises(ProviderError) as exc:
        GeminiProvider().complete_text("k", "gemini-2.0-flash", JSON_REQ)
    assert exc.value.status is None
    assert "connection refused" in exc.value.message
