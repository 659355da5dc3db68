from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..children import fetch_child_row
from ..schemas import AlertStatus, EmergencyAlert
from ..supabase import AuthContext, get_auth_context, parse_uuid, require_admin

router = APIRouter(prefix="/api/v1", tags=["alerts"])
logger = logging.getLogger(__name__)

ALERT_FIELDS = "id,child_id,type,message,operator_id,status,created_at,resolved_at"


class CreateAlertPayload(BaseModel):
    child_id: str
    type: str = Field(..., min_length=1, description="e.g. medical emergency, session ending")
    message: Optional[str] = None


@router.post("/admin/alerts", response_model=EmergencyAlert)
async def create_alert_endpoint(
    payload: CreateAlertPayload,
    auth: AuthContext = Depends(require_admin),
) -> EmergencyAlert:
    child_uuid = parse_uuid(payload.child_id, "child_id")
    child_row = await fetch_child_row(auth.supabase, child_uuid)
    alert_type = payload.type.strip()
    if not alert_type:
        raise HTTPException(status_code=400, detail="type is required")
    text = (payload.message or "").strip() or f"{alert_type} alert for {child_row['name']}"
    rows = await auth.supabase.insert(
        "emergency_alerts",
        {
            "child_id": child_uuid,
            "type": alert_type,
            "message": text,
            "operator_id": auth.user_id,
            "status": AlertStatus.ACTIVE.value,
            "created_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    if not rows:
        raise HTTPException(status_code=502, detail="Alert insert returned no row.")
    alert = EmergencyAlert.model_validate(rows[0])
    logger.warning(
        "emergency alert raised",
        extra={
            "alert_id": alert.id,
            "child_id": child_uuid,
            "parent_id": child_row.get("parent_id"),
            "alert_type": alert_type,
            "operator_id": auth.user_id,
        },
    )
    return alert


@router.post("/admin/alerts/{alert_id}/resolve", response_model=EmergencyAlert)
async def resolve_alert_endpoint(
    alert_id: str,
    auth: AuthContext = Depends(require_admin),
) -> EmergencyAlert:
    alert_uuid = parse_uuid(alert_id, "alert_id")
    updated = await auth.supabase.update(
        "emergency_alerts",
        {
            "status": AlertStatus.RESOLVED.value,
            "resolved_at": datetime.now(timezone.utc).isoformat(),
        },
        params={"id": f"eq.{alert_uuid}", "status": f"eq.{AlertStatus.ACTIVE.value}"},
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Active alert not found")
    logger.info("emergency alert resolved", extra={"alert_id": alert_uuid})
    return EmergencyAlert.model_validate(updated[0])


@router.get("/alerts", response_model=List[EmergencyAlert])
async def list_alerts_endpoint(
    status: Optional[AlertStatus] = Query(None, description="Optional status filter"),
    auth: AuthContext = Depends(get_auth_context),
) -> List[EmergencyAlert]:
    children = await auth.supabase.select(
        "children",
        params={"select": "id", "parent_id": f"eq.{auth.user_id}"},
    )
    child_ids = [row["id"] for row in children if row.get("id")]
    if not child_ids:
        return []
    params = {
        "select": ALERT_FIELDS,
        "child_id": f"in.({','.join(child_ids)})",
        "order": "created_at.desc",
    }
    if status is not None:
        params["status"] = f"eq.{status.value}"
    rows = await auth.supabase.select("emergency_alerts", params=params)
    return [EmergencyAlert.model_validate(row) for row in rows]
