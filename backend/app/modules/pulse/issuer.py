# modules/pulse/issuer.py
"""
Invite Issuer — une invitation par membre, puis notification.

Ordre strict :
    1. toutes les lignes PulseInvite du lot sont commitées
    2. les envois partent ensuite, en parallèle borné

Un échec d'envoi ne supprime jamais l'invitation : la ligne reste
la source de vérité, l'utilisateur la retrouve dans ses invitations en attente.
"""
import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.engine.pulse.calendar import utcnow
from app.infra.notifications import NotificationSender, build_response_links
from app.modules.pulse.repository import PulseRepository
from app.shared.enums import PulseScale
from app.shared.errors import NotificationSendFailed
from app.shared.models import PulseInvite

logger = logging.getLogger(__name__)

repo = PulseRepository()

TOKEN_BYTES = 32     # 256 bits d'entropie


def new_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


@dataclass
class IssueReport:
    invites:  List[PulseInvite]
    sent:     int = 0
    failures: List[NotificationSendFailed] = field(default_factory=list)


class InviteIssuer:

    def __init__(self, sender=None, concurrency: Optional[int] = None):
        self.sender = sender or NotificationSender()
        self.concurrency = concurrency or settings.PULSE_DISPATCH_CONCURRENCY

    async def issue_batch(
        self,
        db: AsyncSession,
        *,
        tenant_id: str,
        question,
        cohort_name: str,
        members: Sequence,
        now: Optional[datetime] = None,
    ) -> IssueReport:
        """
        members : objets annuaire (id, email, primary_team_id).
        L'équipe est figée sur l'invitation au moment de la création.
        """
        now = now or utcnow()
        expires_at = now + timedelta(days=settings.PULSE_INVITE_TTL_DAYS)

        rows = [
            {
                "tenant_id": tenant_id,
                "user_id": m.id,
                "question_id": question.id,
                "cohort_name": cohort_name,
                "team_id": m.primary_team_id,
                "token": new_token(),
                "sent_at": now,
                "expires_at": expires_at,
            }
            for m in members
        ]
        invites = await repo.create_invites(db, rows)

        recipients = {m.id: m.email for m in members}
        scores = PulseScale(question.scale).scores
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _send(invite: PulseInvite) -> Optional[NotificationSendFailed]:
            recipient = recipients.get(invite.user_id)
            if not recipient:
                return NotificationSendFailed(invite.user_id, "aucune adresse email")
            links = build_response_links(invite.token, scores)
            async with semaphore:
                try:
                    delivered = await asyncio.to_thread(
                        self.sender.send_pulse_invitation, recipient, question.text, links
                    )
                except Exception as e:
                    return NotificationSendFailed(invite.user_id, str(e))
            if not delivered:
                return NotificationSendFailed(invite.user_id, "envoi refusé")
            return None

        outcomes = await asyncio.gather(*(_send(invite) for invite in invites))

        report = IssueReport(invites=invites)
        for failure in outcomes:
            if failure is None:
                report.sent += 1
            else:
                logger.warning("Invitation pulse non notifiée : %s", failure)
                report.failures.append(failure)
        return report
