"""
Actor identity for service calls.

Authentication itself happens upstream (gateway or session layer); it
forwards the verified user through the ``X-User-Id`` and ``X-User-Role``
headers. Routes turn those headers into an ``AuthenticatedActor`` that is
passed explicitly into every service function.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from jobportal.errors import AuthenticationError, AuthorizationError

ROLE_EMPLOYER = "employer"
ROLE_CANDIDATE = "candidate"


@dataclass(frozen=True)
class AuthenticatedActor:
    """The user on whose behalf an operation runs."""
    id: str
    role: str


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> AuthenticatedActor:
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Authentication required")
    role = (x_user_role or "").strip().lower()
    if role not in (ROLE_EMPLOYER, ROLE_CANDIDATE):
        raise AuthenticationError("Unknown user role")
    return AuthenticatedActor(id=x_user_id.strip(), role=role)


def require_employer(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> AuthenticatedActor:
    actor = get_actor(x_user_id, x_user_role)
    if actor.role != ROLE_EMPLOYER:
        raise AuthorizationError("Employer access required")
    return actor


def require_candidate(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> AuthenticatedActor:
    actor = get_actor(x_user_id, x_user_role)
    if actor.role != ROLE_CANDIDATE:
        raise AuthorizationError("Candidate access required")
    return actor
