# app/shared/enums.py
"""
Toutes les énumérations du moteur Pulse.

Source unique de vérité pour les échelles, cadences et statuts.
Importé par les modèles, schemas, services et engine.
"""

from enum import Enum

class PrincipalRole(str, Enum):
    MEMBER = "member"
    ADMIN  = "admin"


class PulseScale(str, Enum):
    LIKERT_1_5 = "LIKERT_1_5"
    NPS_0_10   = "NPS_0_10"

    @property
    def bounds(self) -> tuple:
        """(min, max) inclusifs."""
        return (1, 5) if self is PulseScale.LIKERT_1_5 else (0, 10)

    @property
    def scores(self) -> range:
        low, high = self.bounds
        return range(low, high + 1)


class PulseCadence(str, Enum):
    WEEKLY   = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY  = "monthly"


class ResponseStatus(str, Enum):
    """Résultat taggé du Response Ledger, jamais d'exception pour ces cas."""
    ACCEPTED          = "accepted"
    INVALID_TOKEN     = "invalid_token"
    ALREADY_RESPONDED = "already_responded"
    EXPIRED_TOKEN     = "expired_token"
    INVALID_SCORE     = "invalid_score"


class DispatchStatus(str, Enum):
    DISPATCHED          = "dispatched"
    NO_SCHEDULE         = "no_schedule"
    DISABLED            = "disabled"
    NOT_DUE             = "not_due"
    ALREADY_DISPATCHED  = "already_dispatched"
    NO_ACTIVE_QUESTIONS = "no_active_questions"
    NO_MEMBERS          = "no_members"      # cohorte vide ou déjà invitée sur la période
    FAILED              = "failed"          # erreur storage pendant le dispatch
