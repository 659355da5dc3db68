"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class PartyPackage(BaseModel):
    """Bookable party package with its flat price and guest capacity."""

    label: str
    price: float = Field(..., ge=0)
    max_guests: int = Field(..., ge=1)
    duration_minutes: int = Field(..., ge=30)


DEFAULT_PARTY_PACKAGES: Dict[str, PartyPackage] = {
    "basic": PartyPackage(label="Basic", price=299, max_guests=10, duration_minutes=60),
    "standard": PartyPackage(label="Standard", price=449, max_guests=15, duration_minutes=90),
    "premium": PartyPackage(label="Premium", price=649, max_guests=20, duration_minutes=120),
    "deluxe": PartyPackage(label="Deluxe", price=899, max_guests=25, duration_minutes=150),
}


class AppConfig(BaseModel):
    """Strongly typed venue configuration loaded from config.json."""

    venue_name: str = Field(default="Air Jump")
    token_secret: str = Field(default="air-jump-secret-key")
    token_ttl_minutes: int = Field(default=120, ge=1)
    seals_per_reward: int = Field(default=10, ge=1)
    recent_visits_limit: int = Field(default=50, ge=1)
    party_packages: Dict[str, PartyPackage] = Field(
        default_factory=lambda: dict(DEFAULT_PARTY_PACKAGES)
    )
    party_time_slots: List[str] = Field(
        default_factory=lambda: ["14:00", "15:00", "16:00", "17:00", "18:00"]
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:19006",
        ]
    )


def _config_path() -> Path:
    return Path(os.getenv("AIRJUMP_CONFIG", Path(__file__).resolve().parents[1] / "config.json"))


def load_config() -> AppConfig:
    """Load configuration from config.json, falling back to defaults when absent."""

    config_file = _config_path()
    contents: Dict[str, Any] = {}
    if config_file.exists():
        contents = json.loads(config_file.read_text())
    secret = os.getenv("AIRJUMP_TOKEN_SECRET")
    if secret:
        contents["token_secret"] = secret
    return AppConfig(**contents)


CONFIG = load_config()
