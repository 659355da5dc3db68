"""Age and safety-tag derivation for registered children."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from .schemas import Child, ChildTag
from .supabase import SupabaseClient

UNDER_FIVE_AGE = 5
ADULT_AGE = 18

CHILD_FIELDS = (
    "id,parent_id,name,birth_date,medical_notes,has_disability,emergency_contact,"
    "tags,visits,created_at,updated_at"
)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _as_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def calculate_age(birth_date: date | datetime | str, today: Optional[date] = None) -> int:
    """Return whole years since ``birth_date``, counting a birthday only once reached."""

    birth = _as_date(birth_date)
    today = today or utc_today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def generate_child_tags(
    birth_date: date | datetime | str,
    has_disability: bool,
    today: Optional[date] = None,
) -> List[str]:
    age = calculate_age(birth_date, today)
    tags: List[str] = []
    if has_disability:
        tags.append(ChildTag.DISABILITY.value)
    if age < UNDER_FIVE_AGE:
        tags.append(ChildTag.UNDER_FIVE.value)
    if age < ADULT_AGE:
        tags.append(ChildTag.MINOR.value)
    return tags


def child_from_row(row: Dict[str, Any], today: Optional[date] = None) -> Child:
    """Build a Child, re-deriving tags so a birthday since registration is reflected."""

    data = dict(row)
    data.pop("profiles", None)
    birth_date = _as_date(data["birth_date"])
    data["birth_date"] = birth_date
    data["tags"] = generate_child_tags(birth_date, bool(data.get("has_disability")), today)
    data["age"] = calculate_age(birth_date, today)
    data["visits"] = data.get("visits") or 0
    return Child.model_validate(data)


async def fetch_child_row(
    supabase: SupabaseClient,
    child_id: str,
    *,
    parent_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Load one child row, scoped to ``parent_id`` when given; 404 when not visible."""

    params = {"select": CHILD_FIELDS, "id": f"eq.{child_id}", "limit": "1"}
    if parent_id:
        params["parent_id"] = f"eq.{parent_id}"
    rows = await supabase.select("children", params=params)
    if not rows:
        raise HTTPException(status_code=404, detail="Child not found")
    return rows[0]
