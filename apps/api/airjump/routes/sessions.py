from __future__ import annotations

from typing import List

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from ..children import fetch_child_row
from ..config import CONFIG
from ..schemas import QRSession, ScanResult, SessionWithChild
from ..sessions import (
    check_in,
    check_out,
    get_session_row,
    issue_session,
    list_active_children,
    list_recent_visits,
    scan,
    session_from_row,
    validate_token,
)
from ..supabase import AuthContext, get_auth_context, parse_uuid, require_admin
from ..tokens import render_qr_png

router = APIRouter(prefix="/api/v1", tags=["sessions"])
logger = logging.getLogger(__name__)


class IssueSessionPayload(BaseModel):
    use_free_entry: bool = False


class ScanPayload(BaseModel):
    token: str = Field(..., min_length=1)


@router.post("/children/{child_id}/qr", response_model=QRSession)
async def issue_session_endpoint(
    child_id: str,
    payload: IssueSessionPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> QRSession:
    child_uuid = parse_uuid(child_id, "child_id")
    child_row = await fetch_child_row(auth.supabase, child_uuid, parent_id=auth.user_id)
    return await issue_session(
        auth.supabase,
        child_row,
        config=CONFIG,
        use_free_entry=payload.use_free_entry,
    )


@router.get("/sessions/{session_id}/qr.png")
async def session_qr_image_endpoint(
    session_id: str,
    auth: AuthContext = Depends(get_auth_context),
) -> Response:
    session_uuid = parse_uuid(session_id, "session_id")
    session = session_from_row(await get_session_row(auth.supabase, session_uuid))
    if not auth.is_admin and session.parent_id != auth.user_id:
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(content=render_qr_png(session.token), media_type="image/png")


@router.post("/admin/scan/validate", response_model=ScanResult)
async def validate_scan_endpoint(
    payload: ScanPayload,
    auth: AuthContext = Depends(require_admin),
) -> ScanResult:
    return await validate_token(auth.supabase, payload.token)


@router.post("/admin/scan", response_model=ScanResult)
async def scan_endpoint(
    payload: ScanPayload,
    auth: AuthContext = Depends(require_admin),
) -> ScanResult:
    logger.info("scan received", extra={"operator_id": auth.user_id})
    return await scan(auth.supabase, payload.token, seals_per_reward=CONFIG.seals_per_reward)


@router.post("/admin/sessions/{session_id}/check-in", response_model=QRSession)
async def check_in_endpoint(
    session_id: str,
    auth: AuthContext = Depends(require_admin),
) -> QRSession:
    return await check_in(auth.supabase, parse_uuid(session_id, "session_id"))


@router.post("/admin/sessions/{session_id}/check-out", response_model=QRSession)
async def check_out_endpoint(
    session_id: str,
    auth: AuthContext = Depends(require_admin),
) -> QRSession:
    return await check_out(
        auth.supabase,
        parse_uuid(session_id, "session_id"),
        seals_per_reward=CONFIG.seals_per_reward,
    )


@router.get("/admin/sessions/active", response_model=List[SessionWithChild])
async def list_active_endpoint(
    auth: AuthContext = Depends(require_admin),
) -> List[SessionWithChild]:
    return await list_active_children(auth.supabase)


@router.get("/admin/visits", response_model=List[SessionWithChild])
async def list_visits_endpoint(
    auth: AuthContext = Depends(require_admin),
) -> List[SessionWithChild]:
    return await list_recent_visits(auth.supabase, limit=CONFIG.recent_visits_limit)
