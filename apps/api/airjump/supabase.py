"""Supabase access for the API: caller identity and PostgREST table calls.

Every request runs with the caller's own JWT so row-level security decides what
a parent can see; staff are recognised by ``profiles.role``.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
import jwt
from fastapi import Depends, Header, HTTPException
from jwt import PyJWKClient

logger = logging.getLogger(__name__)

PROFILE_FIELDS = "id,email,full_name,phone,role,created_at,updated_at"

REST_TIMEOUT = 15.0
AUTH_TIMEOUT = 10.0

# Postgres error codes surfaced by PostgREST in the ``code`` field.
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"


@dataclass(frozen=True)
class SupabaseSettings:
    url: str
    anon_key: str
    jwks_url: str
    jwt_secret: Optional[str]
    jwt_audience: Optional[str]

    @classmethod
    def from_env(cls) -> "SupabaseSettings":
        url = os.getenv("SUPABASE_URL")
        anon_key = os.getenv("SUPABASE_ANON_KEY")
        if not url or not anon_key:
            raise RuntimeError("Missing SUPABASE_URL/SUPABASE_ANON_KEY for API access.")
        url = url.rstrip("/")
        return cls(
            url=url,
            anon_key=anon_key,
            jwks_url=os.getenv("SUPABASE_JWKS_URL") or f"{url}/auth/v1/keys",
            jwt_secret=os.getenv("SUPABASE_JWT_SECRET") or None,
            jwt_audience=os.getenv("SUPABASE_JWT_AUD", "authenticated") or None,
        )


@lru_cache
def get_settings() -> SupabaseSettings:
    return SupabaseSettings.from_env()


@lru_cache
def _jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url)


def _parse_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization token.")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        raise HTTPException(status_code=401, detail="Invalid authorization token.")
    return token.strip()


def parse_uuid(value: Optional[str], label: str) -> str:
    if not value:
        raise HTTPException(status_code=400, detail=f"Missing {label}.")
    try:
        return str(UUID(value))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}.") from exc


def _postgrest_error(resp: httpx.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {"message": resp.text or "<empty response>"}
    return body if isinstance(body, dict) else {"message": str(body)}


def raise_for_postgrest(resp: httpx.Response, action: str, table: str) -> None:
    """Translate a failed PostgREST call into the API's HTTP error."""

    if resp.status_code < 400:
        return
    error = _postgrest_error(resp)
    code = error.get("code")
    message = error.get("message") or ""
    logger.error(
        "supabase request failed",
        extra={"action": action, "table": table, "status": resp.status_code, "pg_code": code},
    )
    if code == UNIQUE_VIOLATION:
        raise HTTPException(status_code=409, detail=f"Conflicts with an existing {table} row.")
    if code in (FOREIGN_KEY_VIOLATION, CHECK_VIOLATION):
        raise HTTPException(status_code=400, detail=f"Rejected by {table} constraints: {message}")
    if resp.status_code in (401, 403):
        raise HTTPException(status_code=resp.status_code, detail="Not allowed by row-level security.")
    status = resp.status_code if resp.status_code < 500 else 502
    raise HTTPException(
        status_code=status,
        detail=f"Supabase {action} on {table} failed: status={resp.status_code}, body={message}",
    )


def _decode_rs256(token: str, settings: SupabaseSettings) -> Optional[Dict[str, Any]]:
    try:
        signing_key = _jwks_client(settings.jwks_url).get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.jwt_audience,
            options={"verify_aud": bool(settings.jwt_audience)},
        )
    except jwt.PyJWTError:
        # Projects on the legacy HS256 secret have no JWKS entry.
        return None


def _decode_hs256(token: str, settings: SupabaseSettings) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            options={"verify_aud": bool(settings.jwt_audience)},
        )
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid or expired token.") from exc


async def _lookup_auth_user(token: str, settings: SupabaseSettings) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=AUTH_TIMEOUT) as client:
        resp = await client.get(
            f"{settings.url}/auth/v1/user",
            headers={"Authorization": f"Bearer {token}", "apikey": settings.anon_key},
        )
    data = resp.json() if resp.status_code < 400 and resp.content else {}
    if not data.get("id"):
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    return {"sub": data["id"], "email": data.get("email")}


async def _verify_access_token(token: str) -> Dict[str, Any]:
    """Return JWT claims, trying JWKS, then the shared secret, then Supabase Auth itself."""

    settings = get_settings()
    claims = _decode_rs256(token, settings)
    if claims is not None:
        return claims
    if settings.jwt_secret:
        return _decode_hs256(token, settings)
    return await _lookup_auth_user(token, settings)


@dataclass
class SupabaseClient:
    base_url: str
    anon_key: str
    access_token: str

    @classmethod
    def for_token(cls, settings: SupabaseSettings, access_token: str) -> "SupabaseClient":
        return cls(base_url=settings.url, anon_key=settings.anon_key, access_token=access_token)

    async def _send(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"
            # Writes echo the touched rows; an empty list means a guarded filter matched nothing.
            headers["Prefer"] = "return=representation"
        async with httpx.AsyncClient(timeout=REST_TIMEOUT) as client:
            resp = await client.request(
                method,
                f"{self.base_url}/rest/v1/{table}",
                params=params,
                json=payload,
                headers=headers,
            )
        raise_for_postgrest(resp, method.lower(), table)
        return resp.json() if resp.content else []

    async def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._send("GET", table, params=params)

    async def insert(
        self,
        table: str,
        payload: Dict[str, Any],
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        return await self._send("POST", table, params=params, payload=payload)

    async def update(
        self,
        table: str,
        payload: Dict[str, Any],
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        return await self._send("PATCH", table, params=params, payload=payload)



@dataclass
class AuthContext:
    user_id: str
    user_email: Optional[str]
    role: str
    access_token: str
    supabase: SupabaseClient
    profile: Dict[str, Any]

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_auth_context(
    authorization: Optional[str] = Header(None),
) -> AuthContext:
    token = _parse_bearer_token(authorization)
    payload = await _verify_access_token(token)
    user_id = parse_uuid(payload.get("sub"), "user_id")
    user_email = payload.get("email")

    supabase = SupabaseClient.for_token(get_settings(), token)

    profiles = await supabase.select(
        "profiles",
        params={"select": PROFILE_FIELDS, "id": f"eq.{user_id}", "limit": "1"},
    )
    if not profiles:
        raise HTTPException(status_code=403, detail="Profile not found for user.")
    profile = profiles[0]

    return AuthContext(
        user_id=user_id,
        user_email=user_email or profile.get("email"),
        role=profile.get("role") or "parent",
        access_token=token,
        supabase=supabase,
        profile=profile,
    )


async def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not auth.is_admin:
        logger.warning("admin route denied", extra={"user_id": auth.user_id, "role": auth.role})
        raise HTTPException(status_code=403, detail="Admin access required.")
    return auth
