"""
contract_conduit.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Convert a bearer token into a typed `Principal`.
- Enforce roles via reusable dependency factories.
- Hide rows the caller does not own behind a 404.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

from contract_conduit.api.deps import settings_dep
from contract_conduit.auth.jwt import JwtConfig, JwtValidationError, decode_and_validate
from contract_conduit.auth.models import Principal
from contract_conduit.settings import Settings

_bearer = HTTPBearer(auto_error=False)


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(settings_dep),
) -> Principal:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    try:
        payload = decode_and_validate(cfg=JwtConfig.from_settings(settings), token=creds.credentials)
    except JwtValidationError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}") from e

    subject = str(payload.get("sub", ""))
    roles_raw = payload.get("roles", [])
    if not subject:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    if not isinstance(roles_raw, list):
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token roles")

    email = payload.get("email")
    return Principal(
        subject=subject,
        roles=frozenset(str(r) for r in roles_raw),
        email=str(email) if email else None,
    )


def require_roles(*required: str):
    required_set = frozenset(required)

    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        # Admin bypasses role checks.
        if principal.is_admin:
            return principal
        if not required_set.issubset(principal.roles):
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Insufficient role")
        return principal

    return _dep


def ensure_owner(principal: Principal, owner_id: str | None, *, what: str) -> None:
    # 404 rather than 403 so foreign ids are indistinguishable from missing ones.
    if not principal.owns(owner_id):
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=f"{what} not found")


# --- Module Notes -----------------------------------------------------------
# Transactions and coordinators are team-wide; CMAs, templates, agent profile and
# resources are owner-scoped through `ensure_owner` or by querying on `subject`.
