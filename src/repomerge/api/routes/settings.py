"""Per-user settings endpoints."""

from fastapi import APIRouter

from repomerge.api.dependencies import StateStoreDep
from repomerge.api.models import APIResponse, SettingsResponse, SettingsUpdate

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/{user_id}", response_model=APIResponse[SettingsResponse])
def get_settings(user_id: str, store: StateStoreDep) -> APIResponse[SettingsResponse]:
    """Get a user's last-used configuration (null when none is stored)."""
    return APIResponse(data=SettingsResponse(user_id=user_id, settings=store.get_settings(user_id)))


@router.put("/{user_id}", response_model=APIResponse[SettingsResponse])
def save_settings(
    user_id: str,
    request: SettingsUpdate,
    store: StateStoreDep,
) -> APIResponse[SettingsResponse]:
    """Replace a user's stored configuration."""
    saved = store.save_settings(user_id, request.settings)
    return APIResponse(data=SettingsResponse(user_id=user_id, settings=saved))
