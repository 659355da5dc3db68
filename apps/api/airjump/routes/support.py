from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..schemas import SupportTicket, TicketPriority, TicketStatus, TicketType
from ..supabase import AuthContext, get_auth_context, parse_uuid, require_admin

router = APIRouter(prefix="/api/v1", tags=["support"])

TICKET_FIELDS = "id,parent_id,type,subject,description,priority,status,created_at,updated_at"

DEFAULT_PRIORITY = {
    TicketType.DOUBT: TicketPriority.MEDIUM,
    TicketType.SUGGESTION: TicketPriority.MEDIUM,
    TicketType.COMPLAINT: TicketPriority.HIGH,
}


class CreateTicketPayload(BaseModel):
    type: TicketType
    subject: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class UpdateTicketPayload(BaseModel):
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None


@router.post("/support/tickets", response_model=SupportTicket)
async def create_ticket_endpoint(
    payload: CreateTicketPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> SupportTicket:
    subject = payload.subject.strip()
    description = payload.description.strip()
    if not subject or not description:
        raise HTTPException(status_code=400, detail="subject and description are required")
    now = datetime.now(timezone.utc).isoformat()
    rows = await auth.supabase.insert(
        "support_tickets",
        {
            "parent_id": auth.user_id,
            "type": payload.type.value,
            "subject": subject,
            "description": description,
            "priority": DEFAULT_PRIORITY[payload.type].value,
            "status": TicketStatus.OPEN.value,
            "created_at": now,
            "updated_at": now,
        },
    )
    if not rows:
        raise HTTPException(status_code=502, detail="Ticket insert returned no row.")
    return SupportTicket.model_validate(rows[0])


@router.get("/support/tickets", response_model=List[SupportTicket])
async def list_tickets_endpoint(
    auth: AuthContext = Depends(get_auth_context),
) -> List[SupportTicket]:
    rows = await auth.supabase.select(
        "support_tickets",
        params={
            "select": TICKET_FIELDS,
            "parent_id": f"eq.{auth.user_id}",
            "order": "created_at.desc",
        },
    )
    return [SupportTicket.model_validate(row) for row in rows]


@router.get("/admin/support/tickets", response_model=List[SupportTicket])
async def admin_list_tickets_endpoint(
    status: Optional[TicketStatus] = Query(None, description="Optional status filter"),
    auth: AuthContext = Depends(require_admin),
) -> List[SupportTicket]:
    params = {"select": TICKET_FIELDS, "order": "created_at.desc"}
    if status is not None:
        params["status"] = f"eq.{status.value}"
    rows = await auth.supabase.select("support_tickets", params=params)
    return [SupportTicket.model_validate(row) for row in rows]


@router.patch("/admin/support/tickets/{ticket_id}", response_model=SupportTicket)
async def admin_update_ticket_endpoint(
    ticket_id: str,
    payload: UpdateTicketPayload,
    auth: AuthContext = Depends(require_admin),
) -> SupportTicket:
    ticket_uuid = parse_uuid(ticket_id, "ticket_id")
    updates: dict = {}
    if payload.status is not None:
        updates["status"] = payload.status.value
    if payload.priority is not None:
        updates["priority"] = payload.priority.value
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update")
    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    updated = await auth.supabase.update(
        "support_tickets",
        updates,
        params={"id": f"eq.{ticket_uuid}"},
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return SupportTicket.model_validate(updated[0])
