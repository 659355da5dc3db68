"""Punch-card loyalty program: one seal per paid visit, a free entry per full card."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Tuple

from fastapi import HTTPException

from .schemas import LoyaltyProgram
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)

LOYALTY_FIELDS = "id,parent_id,seals,free_entries,last_updated"


def apply_seal(seals: int, free_entries: int, seals_per_reward: int = 10) -> Tuple[int, int]:
    """Add one seal and convert a completed card into a free entry."""

    if seals_per_reward < 1:
        raise ValueError("seals_per_reward must be positive")
    total = seals + 1
    return total % seals_per_reward, free_entries + total // seals_per_reward


async def get_or_create_program(supabase: SupabaseClient, parent_id: str) -> LoyaltyProgram:
    rows = await supabase.select(
        "loyalty_programs",
        params={"select": LOYALTY_FIELDS, "parent_id": f"eq.{parent_id}", "limit": "1"},
    )
    if rows:
        return LoyaltyProgram.model_validate(rows[0])
    created = await supabase.insert(
        "loyalty_programs",
        {
            "parent_id": parent_id,
            "seals": 0,
            "free_entries": 0,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        },
    )
    logger.info("loyalty program created", extra={"parent_id": parent_id})
    if created:
        return LoyaltyProgram.model_validate(created[0])
    return LoyaltyProgram(parent_id=parent_id)


async def _write_balance(
    supabase: SupabaseClient,
    parent_id: str,
    adjust: Callable[[LoyaltyProgram], Tuple[int, int]],
    *,
    attempts: int = 2,
) -> Tuple[LoyaltyProgram, LoyaltyProgram]:
    """Apply ``adjust`` to the stored counts, guarded on the values it was computed from.

    A lost race re-reads the row and tries again; after ``attempts`` the caller gets a 409.
    Returns the program as read and as written.
    """

    for _ in range(attempts):
        program = await get_or_create_program(supabase, parent_id)
        seals, free_entries = adjust(program)
        updated = await supabase.update(
            "loyalty_programs",
            {
                "seals": seals,
                "free_entries": free_entries,
                "last_updated": datetime.now(timezone.utc).isoformat(),
            },
            params={
                "parent_id": f"eq.{parent_id}",
                "seals": f"eq.{program.seals}",
                "free_entries": f"eq.{program.free_entries}",
            },
        )
        if updated:
            return program, LoyaltyProgram.model_validate(updated[0])
        logger.info("loyalty balance changed during update", extra={"parent_id": parent_id})
    raise HTTPException(status_code=409, detail="Loyalty balance changed; try again.")


async def add_seal(
    supabase: SupabaseClient,
    parent_id: str,
    *,
    seals_per_reward: int = 10,
) -> LoyaltyProgram:
    before, after = await _write_balance(
        supabase,
        parent_id,
        lambda program: apply_seal(program.seals, program.free_entries, seals_per_reward),
    )
    logger.info(
        "loyalty seal added",
        extra={
            "parent_id": parent_id,
            "seals": after.seals,
            "free_entries": after.free_entries,
            "reward_earned": after.free_entries > before.free_entries,
        },
    )
    return after


async def restore_free_entry(supabase: SupabaseClient, parent_id: str) -> LoyaltyProgram:
    """Give back an entry redeemed for a session that was never created."""

    _, after = await _write_balance(
        supabase,
        parent_id,
        lambda program: (program.seals, program.free_entries + 1),
    )
    logger.info("free entry restored", extra={"parent_id": parent_id})
    return after


async def redeem_free_entry(supabase: SupabaseClient, parent_id: str) -> LoyaltyProgram:
    program = await get_or_create_program(supabase, parent_id)
    if program.free_entries < 1:
        raise HTTPException(status_code=409, detail="No free entries available.")
    # Guarded on the balance read above; a concurrent redemption leaves zero rows updated.
    updated = await supabase.update(
        "loyalty_programs",
        {
            "free_entries": program.free_entries - 1,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        },
        params={
            "parent_id": f"eq.{parent_id}",
            "free_entries": f"eq.{program.free_entries}",
        },
    )
    if not updated:
        raise HTTPException(status_code=409, detail="Free entry balance changed; try again.")
    logger.info("free entry redeemed", extra={"parent_id": parent_id})
    return LoyaltyProgram.model_validate(updated[0])
