from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..schemas import Profile
from ..supabase import PROFILE_FIELDS, AuthContext, get_auth_context

router = APIRouter(prefix="/api/v1", tags=["profile"])


class UpdateProfilePayload(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None


@router.get("/profile", response_model=Profile)
async def get_profile_endpoint(auth: AuthContext = Depends(get_auth_context)) -> Profile:
    return Profile.model_validate(auth.profile)


@router.patch("/profile", response_model=Profile)
async def update_profile_endpoint(
    payload: UpdateProfilePayload,
    auth: AuthContext = Depends(get_auth_context),
) -> Profile:
    updates: dict = {}
    if "full_name" in payload.model_fields_set:
        full_name = (payload.full_name or "").strip()
        if not full_name:
            raise HTTPException(status_code=400, detail="full_name cannot be empty")
        updates["full_name"] = full_name
    if "phone" in payload.model_fields_set:
        updates["phone"] = (payload.phone or "").strip() or None
    if not updates:
        return Profile.model_validate(auth.profile)
    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    rows = await auth.supabase.update(
        "profiles",
        updates,
        params={"id": f"eq.{auth.user_id}", "select": PROFILE_FIELDS},
    )
    row = rows[0] if rows else {**auth.profile, **updates}
    return Profile.model_validate(row)
