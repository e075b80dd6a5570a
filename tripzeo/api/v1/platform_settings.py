"""Platform rate settings endpoints (admin only)."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripzeo.api.deps import get_current_admin, get_db, get_settings_service
from tripzeo.models.user import User
from tripzeo.schemas.settings import PlatformSettingResponse, PlatformSettingUpdate
from tripzeo.services.settings_service import SettingsService

router = APIRouter()


@router.get("", response_model=list[PlatformSettingResponse])
async def get_platform_settings(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SettingsService, Depends(get_settings_service)],
) -> list[PlatformSettingResponse]:
    items = await service.list_settings(db)
    return [PlatformSettingResponse(**item) for item in items]


@router.put("/{key}", response_model=PlatformSettingResponse)
async def update_platform_setting(
    key: str,
    request: PlatformSettingUpdate,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[SettingsService, Depends(get_settings_service)],
) -> PlatformSettingResponse:
    """Change one rate. Bookings already approved keep the rates they stored."""
    setting = await service.update_setting(
        db, current_user, key, request.value, description=request.description
    )
    return PlatformSettingResponse(
        key=setting.key,
        value=setting.value,
        description=setting.description,
        version=setting.version,
        updated_at=setting.updated_at,
    )
