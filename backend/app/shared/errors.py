# app/shared/errors.py
"""
Exceptions transverses.

Les refus utilisateur (token invalide, expiré, déjà utilisé, score hors
échelle) ne sont PAS des exceptions : voir ResponseStatus.
"""


class StorageUnavailable(Exception):
    """Panne de la couche de persistance, seule erreur légitimement propagée à l'appelant."""


class NotificationSendFailed(Exception):
    """Échec d'envoi pour UN destinataire. Collecté, jamais bloquant pour la cohorte."""

    def __init__(self, user_id: str, reason: str = ""):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"notification failed for user {user_id}: {reason}")
