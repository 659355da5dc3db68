from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..children import (
    CHILD_FIELDS,
    child_from_row,
    fetch_child_row,
    generate_child_tags,
    utc_today,
)
from ..schemas import Child
from ..supabase import AuthContext, get_auth_context, parse_uuid, require_admin

router = APIRouter(prefix="/api/v1", tags=["children"])
logger = logging.getLogger(__name__)


class CreateChildPayload(BaseModel):
    name: str = Field(..., min_length=1)
    birth_date: date
    medical_notes: Optional[str] = None
    has_disability: bool = False
    emergency_contact: Optional[str] = None


class ChildWithParent(Child):
    parent: Optional[Dict[str, Any]] = None


@router.post("/children", response_model=Child)
async def create_child_endpoint(
    payload: CreateChildPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> Child:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    today = utc_today()
    if payload.birth_date > today:
        raise HTTPException(status_code=400, detail="birth_date cannot be in the future")
    now = datetime.now(timezone.utc).isoformat()
    rows = await auth.supabase.insert(
        "children",
        {
            "parent_id": auth.user_id,
            "name": name,
            "birth_date": payload.birth_date.isoformat(),
            "medical_notes": (payload.medical_notes or "").strip() or None,
            "has_disability": payload.has_disability,
            "emergency_contact": payload.emergency_contact,
            "tags": generate_child_tags(payload.birth_date, payload.has_disability, today),
            "visits": 0,
            "created_at": now,
            "updated_at": now,
        },
    )
    if not rows:
        raise HTTPException(status_code=502, detail="Child insert returned no row.")
    child = child_from_row(rows[0], today)
    logger.info("child registered", extra={"child_id": child.id, "parent_id": auth.user_id})
    return child


@router.get("/children", response_model=List[Child])
async def list_children_endpoint(auth: AuthContext = Depends(get_auth_context)) -> List[Child]:
    rows = await auth.supabase.select(
        "children",
        params={
            "select": CHILD_FIELDS,
            "parent_id": f"eq.{auth.user_id}",
            "order": "created_at.desc",
        },
    )
    return [child_from_row(row) for row in rows]


@router.get("/children/{child_id}", response_model=Child)
async def get_child_endpoint(
    child_id: str,
    auth: AuthContext = Depends(get_auth_context),
) -> Child:
    child_uuid = parse_uuid(child_id, "child_id")
    row = await fetch_child_row(
        auth.supabase,
        child_uuid,
        parent_id=None if auth.is_admin else auth.user_id,
    )
    return child_from_row(row)


@router.get("/admin/children", response_model=List[ChildWithParent])
async def admin_list_children_endpoint(
    auth: AuthContext = Depends(require_admin),
) -> List[ChildWithParent]:
    rows = await auth.supabase.select(
        "children",
        params={
            "select": f"{CHILD_FIELDS},profiles(full_name,email,phone)",
            "order": "created_at.desc",
        },
    )
    result: List[ChildWithParent] = []
    for row in rows:
        child = child_from_row(row)
        result.append(ChildWithParent(**child.model_dump(), parent=row.get("profiles")))
    return result
