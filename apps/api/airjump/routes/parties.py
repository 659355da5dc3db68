from __future__ import annotations

import datetime as dt
from datetime import datetime, timezone
from typing import Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..children import utc_today
from ..config import CONFIG, AppConfig, PartyPackage
from ..schemas import PartyBooking, PartyStatus
from ..supabase import AuthContext, get_auth_context, parse_uuid, require_admin

router = APIRouter(prefix="/api/v1", tags=["parties"])
logger = logging.getLogger(__name__)

PARTY_FIELDS = (
    "id,parent_id,child_name,date,time,guests,package_type,total_price,notes,status,"
    "created_at,updated_at"
)


class CreatePartyPayload(BaseModel):
    child_name: str = Field(..., min_length=1)
    date: dt.date
    time: str
    guests: int = Field(..., ge=1)
    package_type: str
    notes: Optional[str] = None


ADMIN_PARTY_STATUSES = (PartyStatus.CONFIRMED, PartyStatus.CANCELLED)


class UpdatePartyStatusPayload(BaseModel):
    status: PartyStatus


def quote_party(package_type: str, guests: int, time_slot: str, config: AppConfig) -> float:
    """Price a booking request, raising ValueError when it cannot be booked."""

    package = config.party_packages.get(package_type)
    if package is None:
        raise ValueError(f"Unknown package '{package_type}'")
    if time_slot not in config.party_time_slots:
        raise ValueError(f"Unavailable time slot '{time_slot}'")
    if guests < 1:
        raise ValueError("guests must be at least 1")
    if guests > package.max_guests:
        raise ValueError(
            f"Package '{package_type}' allows at most {package.max_guests} guests"
        )
    return package.price


@router.get("/parties/packages", response_model=Dict[str, PartyPackage])
async def list_packages_endpoint() -> Dict[str, PartyPackage]:
    return CONFIG.party_packages


@router.post("/parties", response_model=PartyBooking)
async def create_party_endpoint(
    payload: CreatePartyPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> PartyBooking:
    child_name = payload.child_name.strip()
    if not child_name:
        raise HTTPException(status_code=400, detail="child_name is required")
    if payload.date < utc_today():
        raise HTTPException(status_code=400, detail="date cannot be in the past")
    try:
        total_price = quote_party(payload.package_type, payload.guests, payload.time, CONFIG)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    now = datetime.now(timezone.utc).isoformat()
    rows = await auth.supabase.insert(
        "party_bookings",
        {
            "parent_id": auth.user_id,
            "child_name": child_name,
            "date": payload.date.isoformat(),
            "time": payload.time,
            "guests": payload.guests,
            "package_type": payload.package_type,
            "total_price": total_price,
            "notes": payload.notes,
            "status": PartyStatus.PENDING.value,
            "created_at": now,
            "updated_at": now,
        },
    )
    if not rows:
        raise HTTPException(status_code=502, detail="Party insert returned no row.")
    booking = PartyBooking.model_validate(rows[0])
    logger.info(
        "party booked",
        extra={"booking_id": booking.id, "package_type": booking.package_type},
    )
    return booking


@router.get("/parties", response_model=List[PartyBooking])
async def list_parties_endpoint(
    auth: AuthContext = Depends(get_auth_context),
) -> List[PartyBooking]:
    rows = await auth.supabase.select(
        "party_bookings",
        params={
            "select": PARTY_FIELDS,
            "parent_id": f"eq.{auth.user_id}",
            "order": "date.asc",
        },
    )
    return [PartyBooking.model_validate(row) for row in rows]


@router.post("/parties/{booking_id}/cancel", response_model=PartyBooking)
async def cancel_party_endpoint(
    booking_id: str,
    auth: AuthContext = Depends(get_auth_context),
) -> PartyBooking:
    booking_uuid = parse_uuid(booking_id, "booking_id")
    updated = await auth.supabase.update(
        "party_bookings",
        {
            "status": PartyStatus.CANCELLED.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
        params={
            "id": f"eq.{booking_uuid}",
            "parent_id": f"eq.{auth.user_id}",
            "status": f"eq.{PartyStatus.PENDING.value}",
        },
    )
    if not updated:
        raise HTTPException(status_code=409, detail="Only pending bookings can be cancelled")
    return PartyBooking.model_validate(updated[0])


@router.get("/admin/parties", response_model=List[PartyBooking])
async def admin_list_parties_endpoint(
    status: Optional[PartyStatus] = Query(None, description="Optional status filter"),
    auth: AuthContext = Depends(require_admin),
) -> List[PartyBooking]:
    params = {"select": PARTY_FIELDS, "order": "date.asc"}
    if status is not None:
        params["status"] = f"eq.{status.value}"
    rows = await auth.supabase.select("party_bookings", params=params)
    return [PartyBooking.model_validate(row) for row in rows]


@router.patch("/admin/parties/{booking_id}", response_model=PartyBooking)
async def admin_update_party_endpoint(
    booking_id: str,
    payload: UpdatePartyStatusPayload,
    auth: AuthContext = Depends(require_admin),
) -> PartyBooking:
    booking_uuid = parse_uuid(booking_id, "booking_id")
    if payload.status not in ADMIN_PARTY_STATUSES:
        raise HTTPException(status_code=400, detail="status must be confirmed or cancelled")
    updated = await auth.supabase.update(
        "party_bookings",
        {
            "status": payload.status.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
        params={"id": f"eq.{booking_uuid}"},
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Booking not found")
    logger.info(
        "party status changed",
        extra={"booking_id": booking_uuid, "status": payload.status.value},
    )
    return PartyBooking.model_validate(updated[0])
