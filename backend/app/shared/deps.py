# app/shared/deps.py
"""
Dépendances FastAPI réutilisables dans tous les routers.
Injectées via Depends() — jamais appelées directement.

L'émission des tokens est externe : on ne fait que vérifier la signature
et lire les claims (sub = user id, tid = tenant id, role).
"""
from dataclasses import dataclass
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import decode_token
from app.shared.enums import PrincipalRole

bearer = HTTPBearer()


@dataclass
class Principal:
    id:        str
    tenant_id: str
    role:      PrincipalRole

    @property
    def is_admin(self) -> bool:
        return self.role == PrincipalRole.ADMIN


async def _get_principal_from_token(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer)],
) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Token invalide ou expiré",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
        user_id = payload.get("sub")
        tenant_id = payload.get("tid")
        if user_id is None or tenant_id is None:
            raise credentials_exception
        role = PrincipalRole(payload.get("role", PrincipalRole.MEMBER.value))
    except (JWTError, ValueError):
        raise credentials_exception

    return Principal(id=str(user_id), tenant_id=str(tenant_id), role=role)


# ── Deps publiques ─────────────────────────────────────────

async def get_current_user(
    principal: Annotated[Principal, Depends(_get_principal_from_token)],
) -> Principal:
    """Utilisateur authentifié (tout rôle)."""
    return principal


async def get_current_admin(
    principal: Annotated[Principal, Depends(_get_principal_from_token)],
) -> Principal:
    """Exige le rôle admin du tenant."""
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Accès administrateur requis")
    return principal


# ── Aliases Annotated ──────────────────────────────────────

DbDep    = Annotated[AsyncSession, Depends(get_db)]
UserDep  = Annotated[Principal, Depends(get_current_user)]
AdminDep = Annotated[Principal, Depends(get_current_admin)]
