"""API dependencies - authentication and authorization"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from audit_trail.core.correlation import bind_actor
from audit_trail.core.exceptions import AuthenticationError, AuthorizationError
from audit_trail.core.security import decode_access_token

AUDIT_READER_ROLES = ("admin", "auditor")

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """Authenticated caller as described by its token claims."""

    subject: str
    role: Optional[str] = None
    username: Optional[str] = None


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Resolve the caller from its bearer token and bind it as the audit actor.

    Raises:
        AuthenticationError: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")

    bind_actor(str(subject))
    return Principal(subject=str(subject), role=payload.get("role"), username=payload.get("username"))


def get_current_auditor(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    Require a role allowed to read the audit trail

    Raises:
        AuthorizationError: If the caller is neither admin nor auditor
    """
    if principal.role not in AUDIT_READER_ROLES:
        raise AuthorizationError("Audit trail access required")
    return principal
