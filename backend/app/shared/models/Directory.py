# app/shared/models/Directory.py
"""
Miroir lecture seule de l'annuaire (tenants, membres, équipe principale).

Propriété du service d'annuaire externe — le moteur Pulse ne fait que lire.
"""
import uuid

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from app.core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Tenant(Base):
    __tablename__ = "tenants"

    id   = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)

    # Seuil k-anonymat propre au tenant (None → PULSE_DEFAULT_ANON_THRESHOLD)
    anon_threshold = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<Tenant slug={self.slug}>"


class Member(Base):
    __tablename__ = "members"

    id              = Column(String(36), primary_key=True, default=_uuid)
    tenant_id       = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    email           = Column(String, nullable=False)
    primary_team_id = Column(String(36), nullable=True)
    is_active       = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Member id={self.id} tenant={self.tenant_id}>"
