# app/shared/models/__init__.py
"""
Point d'entrée unique pour tous les modèles SQLAlchemy.

TOUJOURS importer les modèles depuis ce fichier :
  from app.shared.models import PulseInvite, PulseResponse, ...

→ Garantit que tous les modèles sont enregistrés dans Base.metadata
  avant la création des tables (Alembic, create_all).
"""

from app.shared.models.Directory import Tenant, Member
from app.shared.models.Pulse import (
    PulseQuestion, PulseCohort, PulseCohortMember, PulseSchedule,
    PulseInvite, PulseResponse, PulseDispatchRun,
)

__all__ = [
    # Annuaire (lecture seule)
    "Tenant", "Member",
    # Pulse
    "PulseQuestion",
    "PulseCohort",
    "PulseCohortMember",
    "PulseSchedule",
    "PulseInvite",
    "PulseResponse",
    "PulseDispatchRun",
]
