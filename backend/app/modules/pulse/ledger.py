# modules/pulse/ledger.py
"""
Response Ledger — soumission d'une réponse par token, exactement une fois.

Ordre de validation :
    token inconnu        → INVALID_TOKEN
    déjà répondu         → ALREADY_RESPONDED
    now >= expires_at    → EXPIRED_TOKEN
    score hors échelle   → INVALID_SCORE

Puis UPDATE conditionnel (responded_at IS NULL). Seul l'appelant dont
l'UPDATE touche la ligne insère la réponse ; le perdant d'une course
reçoit ALREADY_RESPONDED. La réponse ne porte jamais l'identité de
l'utilisateur.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.engine.pulse.calendar import as_utc, utcnow
from app.modules.pulse.repository import PulseRepository
from app.shared.enums import PulseScale, ResponseStatus
from app.shared.errors import StorageUnavailable

logger = logging.getLogger(__name__)

repo = PulseRepository()


@dataclass
class SubmitResult:
    status:      ResponseStatus
    question_id: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == ResponseStatus.ACCEPTED


@dataclass
class InviteStatus:
    valid:         bool
    question_text: Optional[str] = None
    scale:         Optional[PulseScale] = None
    responded:     bool = False
    expired:       bool = False


def score_in_scale(score, scale) -> bool:
    if isinstance(score, bool) or not isinstance(score, int):
        return False
    low, high = PulseScale(scale).bounds
    return low <= score <= high


class ResponseLedger:

    async def submit(
        self,
        db: AsyncSession,
        token: str,
        score,
        now: Optional[datetime] = None,
    ) -> SubmitResult:
        now = now or utcnow()
        try:
            return await self._submit(db, token, score, now)
        except SQLAlchemyError as e:
            await db.rollback()
            raise StorageUnavailable(str(e)) from e

    async def _submit(self, db: AsyncSession, token: str, score, now: datetime) -> SubmitResult:
        invite = await repo.get_invite_by_token(db, token) if token else None
        if invite is None:
            return SubmitResult(ResponseStatus.INVALID_TOKEN)
        if invite.responded_at is not None:
            return SubmitResult(ResponseStatus.ALREADY_RESPONDED, invite.question_id)
        if now >= as_utc(invite.expires_at):
            return SubmitResult(ResponseStatus.EXPIRED_TOKEN, invite.question_id)
        if not score_in_scale(score, invite.question.scale):
            return SubmitResult(ResponseStatus.INVALID_SCORE, invite.question_id)

        if not await repo.claim_invite(db, invite.id, now):
            await db.rollback()
            logger.debug("Token déjà consommé par une requête concurrente (invite %s)", invite.id)
            return SubmitResult(ResponseStatus.ALREADY_RESPONDED, invite.question_id)

        try:
            await repo.add_response(db, {
                "tenant_id": invite.tenant_id,
                "invite_id": invite.id,
                "question_id": invite.question_id,
                "team_id": invite.team_id,
                "score": score,
                "responded_at": now,
            })
            await db.commit()
        except IntegrityError:
            await db.rollback()
            return SubmitResult(ResponseStatus.ALREADY_RESPONDED, invite.question_id)

        return SubmitResult(ResponseStatus.ACCEPTED, invite.question_id)

    async def invite_status(
        self,
        db: AsyncSession,
        token: str,
        now: Optional[datetime] = None,
    ) -> InviteStatus:
        now = now or utcnow()
        try:
            invite = await repo.get_invite_by_token(db, token)
        except SQLAlchemyError as e:
            raise StorageUnavailable(str(e)) from e
        if invite is None:
            return InviteStatus(valid=False)
        responded = invite.responded_at is not None
        expired = now >= as_utc(invite.expires_at)
        return InviteStatus(
            valid=not responded and not expired,
            question_text=invite.question.text,
            scale=PulseScale(invite.question.scale),
            responded=responded,
            expired=expired,
        )
