from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from siem_correlator.core.config import settings

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    subject: str
    role: Optional[str] = None


def create_access_token(subject: str, role: str) -> str:
    return jwt.encode({"sub": subject, "role": role}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _forbidden() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None:
        raise _forbidden()
    try:
        payload = jwt.decode(
            credentials.credentials, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise _forbidden()

    subject = payload.get("sub")
    if subject is None:
        raise _forbidden()
    return Principal(subject=subject, role=payload.get("role"))


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Unauthenticated and non-admin callers both get 403."""
    if principal.role != settings.ADMIN_ROLE:
        raise _forbidden()
    return principal
