from __future__ import annotations

from fastapi import APIRouter, Depends

from ..config import CONFIG
from ..loyalty import get_or_create_program
from ..schemas import LoyaltyProgram
from ..supabase import AuthContext, get_auth_context

router = APIRouter(prefix="/api/v1", tags=["loyalty"])


class LoyaltyCard(LoyaltyProgram):
    seals_per_reward: int
    seals_to_next_reward: int


@router.get("/loyalty", response_model=LoyaltyCard)
async def get_loyalty_endpoint(auth: AuthContext = Depends(get_auth_context)) -> LoyaltyCard:
    program = await get_or_create_program(auth.supabase, auth.user_id)
    return LoyaltyCard(
        **program.model_dump(),
        seals_per_reward=CONFIG.seals_per_reward,
        seals_to_next_reward=CONFIG.seals_per_reward - program.seals,
    )
