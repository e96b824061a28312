# modules/pulse/service.py
"""
Service Pulse — point d'entrée des routers.

Trois acteurs :
- Membre  : invitations en attente, historique de participation
- Public  : réponse one-tap par token (aucune authentification)
- Admin   : questions, planning, cohortes, agrégats, déclenchement manuel

Erreurs :
    ValueError          → 400 (saisie admin invalide)
    LookupError         → 404
    StorageUnavailable  → 503
"""
import logging
from collections import Counter
from dataclasses import asdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.engine.pulse.aggregation import PulseSummary, summarize
from app.engine.pulse.calendar import (
    as_utc, get_zone, iso_week_label, parse_time_of_day, resolve_window, utcnow, week_start,
)
from app.engine.pulse.cohort import (
    assign_cohort, cohort_name, default_day_map, validate_day_map,
)
from app.infra.directory import DirectoryGateway
from app.modules.pulse.ledger import InviteStatus, ResponseLedger, SubmitResult, score_in_scale
from app.modules.pulse.repository import PulseRepository
from app.modules.pulse.scheduler import TenantDispatchResult, pulse_scheduler
from app.shared.errors import StorageUnavailable
from app.shared.models import PulseQuestion, PulseSchedule

logger = logging.getLogger(__name__)

repo = PulseRepository()
directory = DirectoryGateway()
ledger = ResponseLedger()

MAX_HISTORY_WEEKS = 52


class PulseService:

    # ── Public : réponse one-tap ──────────────────────────────

    async def submit_response(self, db: AsyncSession, token: str, score: int) -> SubmitResult:
        return await ledger.submit(db, token, score)

    async def get_invite_status(self, db: AsyncSession, token: str) -> InviteStatus:
        return await ledger.invite_status(db, token)

    async def preview_response(self, db: AsyncSession, token: str, score: int) -> Dict:
        """
        Cible GET des liens email. Lecture seule : les scanners de liens
        ne doivent pas consommer le token, seul POST /respond enregistre.
        """
        status = await ledger.invite_status(db, token)
        return {
            **asdict(status),
            "token": token,
            "score": score,
            "score_in_scale": status.scale is not None and score_in_scale(score, status.scale),
        }

    # ── Membre ────────────────────────────────────────────────

    async def get_pending_invites(
        self, db: AsyncSession, user_id: str, now: Optional[datetime] = None
    ) -> List[Dict]:
        now = now or utcnow()
        invites = await repo.list_pending_for_user(db, user_id, now)
        return [
            {
                "token":         inv.token,
                "question_id":   inv.question_id,
                "question_text": inv.question.text,
                "category":      inv.question.category,
                "scale":         inv.question.scale,
                "sent_at":       inv.sent_at,
                "expires_at":    inv.expires_at,
            }
            for inv in invites
        ]

    async def get_participation_history(
        self,
        db: AsyncSession,
        user_id: str,
        weeks: int = 8,
        now: Optional[datetime] = None,
    ) -> Dict:
        """
        Nombre d'invitations complétées par semaine.
        Jamais de score : les réponses ne sont pas rattachables à l'utilisateur.
        """
        now = as_utc(now or utcnow())
        weeks = min(max(weeks, 1), MAX_HISTORY_WEEKS)
        first_monday = week_start(now.date()) - timedelta(weeks=weeks - 1)
        since = datetime.combine(first_monday, datetime.min.time(), tzinfo=now.tzinfo)

        completed = await repo.list_completed_for_user(db, user_id, since)
        per_week = Counter(week_start(as_utc(inv.responded_at).date()) for inv in completed)

        buckets = []
        for i in range(weeks):
            monday = first_monday + timedelta(weeks=i)
            buckets.append({
                "week_start": monday,
                "week":       iso_week_label(monday),
                "completed":  per_week.get(monday, 0),
            })
        return {"weeks": buckets, "total_completed": len(completed)}

    # ── Admin : agrégats ──────────────────────────────────────

    async def get_summary(
        self,
        db: AsyncSession,
        tenant_id: str,
        *,
        range_str: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        team_id: Optional[str] = None,
        threshold: Optional[int] = None,
        by_team: bool = False,
        now: Optional[datetime] = None,
    ) -> PulseSummary:
        window_start, window_end = resolve_window(
            now or utcnow(),
            range_str=range_str,
            start=start,
            end=end,
            default_weeks=settings.PULSE_SUMMARY_DEFAULT_WEEKS,
        )
        try:
            # le seuil du tenant est un plancher : on peut durcir, jamais assouplir
            floor = await directory.get_anon_threshold(db, tenant_id)
            threshold = floor if threshold is None else max(threshold, floor)
            questions = await repo.list_questions(db, tenant_id)
            responses = await repo.get_responses(db, tenant_id, window_start, window_end, team_id)
            total_invites = await repo.count_invites(db, tenant_id, window_start, window_end, team_id)
        except SQLAlchemyError as e:
            logger.exception("Lecture des agrégats pulse impossible (tenant %s)", tenant_id)
            raise StorageUnavailable(str(e)) from e

        return summarize(
            responses,
            questions,
            threshold=threshold,
            window_start=window_start,
            window_end=window_end,
            total_invites=total_invites,
            team_id=team_id,
            by_team=by_team,
        )

    # ── Admin : questions ─────────────────────────────────────

    async def list_questions(self, db: AsyncSession, tenant_id: str) -> List[PulseQuestion]:
        return await repo.list_questions(db, tenant_id)

    async def create_question(self, db: AsyncSession, tenant_id: str, payload) -> PulseQuestion:
        text = payload.text.strip()
        if not text:
            raise ValueError("Le texte de la question est obligatoire.")
        return await repo.create_question(db, {
            "tenant_id": tenant_id,
            "text":      text,
            "category":  payload.category,
            "scale":     payload.scale,
            "active":    payload.active,
        })

    async def update_question(
        self, db: AsyncSession, tenant_id: str, question_id: str, payload
    ) -> PulseQuestion:
        question = await repo.get_question(db, tenant_id, question_id)
        if not question:
            raise LookupError("Question introuvable.")
        data = payload.model_dump(exclude_unset=True)
        if "scale" in data and data["scale"] != question.scale:
            # scores déjà reçus sur l'ancienne échelle
            if await repo.question_has_responses(db, question.id):
                raise ValueError("Échelle non modifiable : la question a déjà des réponses.")
        if "text" in data:
            data["text"] = (data["text"] or "").strip()
            if not data["text"]:
                raise ValueError("Le texte de la question est obligatoire.")
        return await repo.update_question(db, question, data)

    async def delete_question(self, db: AsyncSession, tenant_id: str, question_id: str) -> Dict:
        """Suppression physique si jamais envoyée, sinon désactivation (historique conservé)."""
        question = await repo.get_question(db, tenant_id, question_id)
        if not question:
            raise LookupError("Question introuvable.")
        if await repo.question_has_invites(db, question.id):
            await repo.update_question(db, question, {"active": False})
            return {"id": question_id, "deleted": False, "deactivated": True}
        await repo.delete_question(db, question)
        return {"id": question_id, "deleted": True, "deactivated": False}

    # ── Admin : planning ──────────────────────────────────────

    async def get_schedule(self, db: AsyncSession, tenant_id: str) -> PulseSchedule:
        schedule = await repo.get_schedule(db, tenant_id)
        if not schedule:
            raise LookupError("Aucun planning pulse pour ce tenant.")
        return schedule

    async def upsert_schedule(self, db: AsyncSession, tenant_id: str, payload) -> PulseSchedule:
        existing = await repo.get_schedule(db, tenant_id)
        data = payload.model_dump(exclude_unset=True)

        get_zone(data.get("timezone") or (existing.timezone if existing else "UTC"))
        parse_time_of_day(data.get("time_of_day") or (existing.time_of_day if existing else "09:00"))

        cohort_count = data.get("cohort_count") or (
            existing.cohort_count if existing else settings.PULSE_DEFAULT_COHORT_COUNT
        )
        data["cohort_count"] = cohort_count

        day_map = data.get("cohort_day_map")
        if day_map is not None:
            data["cohort_day_map"] = validate_day_map(day_map, cohort_count)
        else:
            current = existing.cohort_day_map if existing else None
            try:
                data["cohort_day_map"] = validate_day_map(current, cohort_count) if current else default_day_map(cohort_count)
            except ValueError:
                # cohort_count réduit : l'ancienne carte pointe hors bornes
                data["cohort_day_map"] = default_day_map(cohort_count)

        schedule = await repo.upsert_schedule(db, tenant_id, data)
        logger.info("Planning pulse mis à jour (tenant %s) : %r", tenant_id, schedule)
        return schedule

    # ── Admin : cohortes ──────────────────────────────────────

    async def seed_cohorts(self, db: AsyncSession, tenant_id: str) -> Dict:
        """
        Affecte chaque membre éligible sans cohorte. Les affectations
        existantes ne bougent jamais, même si cohort_count a changé.
        """
        schedule = await repo.get_schedule(db, tenant_id)
        count = schedule.cohort_count if schedule else settings.PULSE_DEFAULT_COHORT_COUNT

        cohorts = await repo.ensure_cohorts(db, tenant_id, [cohort_name(i) for i in range(count)])
        assigned = await repo.get_assigned_user_ids(db, tenant_id)
        eligible = await directory.get_eligible_members(db, tenant_id)

        added = 0
        for user_id in sorted(set(eligible) - assigned):
            cohort = cohorts[cohort_name(assign_cohort(user_id, count))]
            repo.add_cohort_member(db, cohort, user_id)
            added += 1
        await db.commit()

        sizes = {
            name: len(cohorts[name].members)
            for name in sorted(cohorts)
        }
        logger.info("Cohortes pulse (tenant %s) : %d nouvelle(s) affectation(s)", tenant_id, added)
        return {"cohort_count": count, "assigned": added, "sizes": sizes}

    # ── Admin : déclenchement manuel ──────────────────────────

    async def trigger(
        self, db: AsyncSession, tenant_id: str, cohort: Optional[str] = None
    ) -> TenantDispatchResult:
        return await pulse_scheduler.dispatch_now(db, tenant_id, cohort_name=cohort)
