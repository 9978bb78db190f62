from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AiSettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: Optional[bool] = None
    provider: Optional[str] = Field(default=None, description="gemini|openai|anthropic")
    api_keys: Dict[str, str] = Field(default_factory=dict, alias="apiKeys", description="Per-provider keys; blank keeps the stored key")
    models: Dict[str, str] = Field(default_factory=dict, description="Per-provider model names")


class AiSettingsView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool
    provider: str
    active_model: Optional[str] = Field(default=None, alias="activeModel")
    models: Dict[str, str] = Field(default_factory=dict)
    key_configured: Dict[str, bool] = Field(default_factory=dict, alias="keyConfigured")


class ProviderTestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: Optional[str] = None
    api_key: Optional[str] = Field(default=None, alias="apiKey")


class ProviderTestResponse(BaseModel):
    ok: bool = True
    provider: str
    model: str
