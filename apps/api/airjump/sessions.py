"""QR entry sessions: issuing, scanning, and the check-in/check-out flip.

A session row starts pending (``is_active`` false, no ``entry_time``), becomes
active on check-in and is closed on check-out (``exit_time`` set). Each flip is
a PATCH filtered on the state it expects, so a repeated or concurrent scan
matches zero rows and is reported as a conflict instead of flipping twice.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

from .children import CHILD_FIELDS, child_from_row
from .config import AppConfig
from .loyalty import add_seal, redeem_free_entry, restore_free_entry
from .schemas import QRSession, ScanAction, ScanRejection, ScanResult, SessionWithChild
from .supabase import SupabaseClient
from .tokens import compute_expiry, generate_qr_token, is_expired, normalize_token, validate_token_format

logger = logging.getLogger(__name__)

SESSION_FIELDS = (
    "id,child_id,parent_id,token,is_active,is_free,has_disability,entry_time,exit_time,"
    "expires_at,created_at"
)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def session_from_row(row: Dict[str, Any]) -> QRSession:
    data = {key: value for key, value in row.items() if key != "children"}
    return QRSession.model_validate(data)


def classify_scan(
    session: QRSession,
    now: Optional[datetime] = None,
) -> Tuple[Optional[ScanRejection], Optional[ScanAction]]:
    """Decide what a scan of ``session`` means right now.

    A child already inside can always be checked out, even once the token has
    expired; only pending sessions are subject to the expiry window.
    """

    if session.exit_time is not None:
        return ScanRejection.CLOSED, None
    if session.is_active:
        return None, ScanAction.CHECK_OUT
    if is_expired(session.expires_at, _now(now)):
        return ScanRejection.EXPIRED, None
    return None, ScanAction.CHECK_IN


async def issue_session(
    supabase: SupabaseClient,
    child_row: Dict[str, Any],
    *,
    config: AppConfig,
    use_free_entry: bool = False,
    now: Optional[datetime] = None,
) -> QRSession:
    issued_at = _now(now)
    has_disability = bool(child_row.get("has_disability"))
    parent_id = child_row["parent_id"]
    redeemed = use_free_entry and not has_disability
    if redeemed:
        await redeem_free_entry(supabase, parent_id)
    is_free = has_disability or redeemed

    token = generate_qr_token(child_row["id"], config.token_secret, issued_at=issued_at)
    expires_at = compute_expiry(issued_at, config.token_ttl_minutes)
    try:
        rows = await supabase.insert(
            "qr_sessions",
            {
                "child_id": child_row["id"],
                "parent_id": parent_id,
                "token": token,
                "is_active": False,
                "is_free": is_free,
                "has_disability": has_disability,
                "expires_at": expires_at.isoformat(),
                "created_at": issued_at.isoformat(),
            },
        )
        if not rows:
            raise HTTPException(status_code=502, detail="Session insert returned no row.")
    except Exception:
        if redeemed:
            await restore_free_entry(supabase, parent_id)
        raise
    session = session_from_row(rows[0])
    logger.info(
        "qr session issued",
        extra={
            "session_id": session.id,
            "child_id": session.child_id,
            "is_free": session.is_free,
            "expires_at": session.expires_at.isoformat(),
        },
    )
    return session


async def get_session_row(supabase: SupabaseClient, session_id: str) -> Dict[str, Any]:
    rows = await supabase.select(
        "qr_sessions",
        params={"select": SESSION_FIELDS, "id": f"eq.{session_id}", "limit": "1"},
    )
    if not rows:
        raise HTTPException(status_code=404, detail="Session not found")
    return rows[0]


async def validate_token(
    supabase: SupabaseClient,
    raw_token: str,
    now: Optional[datetime] = None,
) -> ScanResult:
    token = normalize_token(raw_token)
    if not validate_token_format(token):
        logger.warning("scan rejected", extra={"reason": ScanRejection.INVALID_FORMAT.value})
        return ScanResult(valid=False, reason=ScanRejection.INVALID_FORMAT)

    rows = await supabase.select(
        "qr_sessions",
        params={
            "select": f"{SESSION_FIELDS},children({CHILD_FIELDS})",
            "token": f"eq.{token}",
            "order": "created_at.desc",
            "limit": "1",
        },
    )
    if not rows:
        logger.warning("scan rejected", extra={"reason": ScanRejection.NOT_FOUND.value})
        return ScanResult(valid=False, reason=ScanRejection.NOT_FOUND)

    row = rows[0]
    session = session_from_row(row)
    rejection, action = classify_scan(session, now)
    if rejection:
        logger.warning(
            "scan rejected",
            extra={"reason": rejection.value, "session_id": session.id},
        )
        return ScanResult(valid=False, reason=rejection, session=session)

    child_row = row.get("children")
    child = child_from_row(child_row) if child_row else None
    return ScanResult(valid=True, action=action, session=session, child=child)


async def check_in(
    supabase: SupabaseClient,
    session_id: str,
    now: Optional[datetime] = None,
) -> QRSession:
    current = session_from_row(await get_session_row(supabase, session_id))
    if current.exit_time is not None:
        raise HTTPException(status_code=409, detail="Session already closed.")
    if current.is_active:
        raise HTTPException(status_code=409, detail="Child already checked in.")
    entry_time = _now(now)
    if is_expired(current.expires_at, entry_time):
        raise HTTPException(status_code=410, detail="QR code expired.")

    open_sessions = await supabase.select(
        "qr_sessions",
        params={
            "select": "id",
            "child_id": f"eq.{current.child_id}",
            "is_active": "eq.true",
            "limit": "1",
        },
    )
    if open_sessions:
        raise HTTPException(status_code=409, detail="Child already has an active session.")

    updated = await supabase.update(
        "qr_sessions",
        {"is_active": True, "entry_time": entry_time.isoformat()},
        params={
            "id": f"eq.{session_id}",
            "is_active": "eq.false",
            "entry_time": "is.null",
        },
    )
    if not updated:
        raise HTTPException(status_code=409, detail="Session changed during check-in.")
    session = session_from_row(updated[0])
    logger.info(
        "child checked in",
        extra={"session_id": session.id, "child_id": session.child_id},
    )
    return session


async def _increment_visits(supabase: SupabaseClient, child_id: str) -> None:
    rows = await supabase.select(
        "children",
        params={"select": "id,visits", "id": f"eq.{child_id}", "limit": "1"},
    )
    if not rows:
        return
    visits = (rows[0].get("visits") or 0) + 1
    await supabase.update(
        "children",
        {"visits": visits, "updated_at": datetime.now(timezone.utc).isoformat()},
        params={"id": f"eq.{child_id}"},
    )


async def check_out(
    supabase: SupabaseClient,
    session_id: str,
    *,
    seals_per_reward: int = 10,
    now: Optional[datetime] = None,
) -> QRSession:
    current = session_from_row(await get_session_row(supabase, session_id))
    if not current.is_active:
        detail = "Session already closed." if current.exit_time else "Child is not checked in."
        raise HTTPException(status_code=409, detail=detail)

    exit_time = _now(now)
    updated = await supabase.update(
        "qr_sessions",
        {"is_active": False, "exit_time": exit_time.isoformat()},
        params={"id": f"eq.{session_id}", "is_active": "eq.true"},
    )
    if not updated:
        raise HTTPException(status_code=409, detail="Session changed during check-out.")
    session = session_from_row(updated[0])
    logger.info(
        "child checked out",
        extra={"session_id": session.id, "child_id": session.child_id},
    )

    await _increment_visits(supabase, session.child_id)
    if not session.is_free and session.parent_id:
        await add_seal(supabase, session.parent_id, seals_per_reward=seals_per_reward)
    return session


async def scan(
    supabase: SupabaseClient,
    raw_token: str,
    *,
    seals_per_reward: int = 10,
    now: Optional[datetime] = None,
) -> ScanResult:
    """Validate a token and perform the check-in or check-out it implies."""

    result = await validate_token(supabase, raw_token, now)
    if not result.valid or result.session is None:
        return result
    if result.action == ScanAction.CHECK_IN:
        session = await check_in(supabase, result.session.id, now)
    else:
        session = await check_out(
            supabase, result.session.id, seals_per_reward=seals_per_reward, now=now
        )
    return result.model_copy(update={"session": session})


def _join_child(rows: List[Dict[str, Any]]) -> List[SessionWithChild]:
    joined: List[SessionWithChild] = []
    for row in rows:
        child_row = row.get("children")
        if not child_row:
            continue
        joined.append(
            SessionWithChild(session=session_from_row(row), child=child_from_row(child_row))
        )
    return joined


async def list_active_children(supabase: SupabaseClient) -> List[SessionWithChild]:
    rows = await supabase.select(
        "qr_sessions",
        params={
            "select": f"{SESSION_FIELDS},children({CHILD_FIELDS})",
            "is_active": "eq.true",
            "order": "entry_time.asc",
        },
    )
    return _join_child(rows)


async def list_recent_visits(supabase: SupabaseClient, limit: int = 50) -> List[SessionWithChild]:
    rows = await supabase.select(
        "qr_sessions",
        params={
            "select": f"{SESSION_FIELDS},children({CHILD_FIELDS})",
            "entry_time": "not.is.null",
            "order": "entry_time.desc",
            "limit": str(limit),
        },
    )
    return _join_child(rows)
