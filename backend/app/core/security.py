# backend/app/core/security.py
"""
Décodage des JWT émis par le service d'authentification externe.

Claims attendus : sub (user id), tid (tenant id), role.
"""
from jose import jwt

from app.core.config import settings


def decode_token(token: str) -> dict:
    """Lève jose.JWTError si la signature ou l'expiration est invalide."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def create_access_token(data: dict) -> str:
    """Utilisé par les scripts d'admin et les tests, pas d'expiration imposée ici."""
    return jwt.encode(dict(data), settings.SECRET_KEY, algorithm=settings.ALGORITHM)
