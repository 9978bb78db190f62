from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..models.ai_settings import AiSettingsUpdate, AiSettingsView, ProviderTestRequest, ProviderTestResponse
from ..services.ai_settings import merge_saved_settings, probe_provider, settings_view
from ..services.providers import Provider
from ..state import State, get_state

router = APIRouter(tags=["ai-settings"])


@router.get("/ai_settings", response_model=AiSettingsView)
async def v1_get_ai_settings(state: State = Depends(get_state)):
    return settings_view(state.ai_settings())


@router.post("/ai_settings", response_model=AiSettingsView)
async def v1_save_ai_settings(payload: AiSettingsUpdate, state: State = Depends(get_state)):
    # an unknown provider keeps the stored one
    record = merge_saved_settings(state.ai_store.load(), payload.model_dump(by_alias=True))
    state.ai_store.save(record)
    return settings_view(state.ai_settings())


@router.post("/ai_settings/test", response_model=ProviderTestResponse)
async def v1_test_ai_provider(payload: ProviderTestRequest, state: State = Depends(get_state)):
    provider = None
    if payload.provider:
        provider = Provider.parse(payload.provider)
        if provider is None:
            raise HTTPException(status_code=400, detail=f"Unknown provider: {payload.provider}")
    result = await probe_provider(state.pipeline, state.ai_settings(), provider, payload.api_key)
    return ProviderTestResponse(**result)
