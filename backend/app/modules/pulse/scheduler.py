# modules/pulse/scheduler.py
"""
Scheduler Pulse — évaluation périodique de tous les tenants.

Par tenant et par tick :
    idle → evaluating → (skipped | dispatching) → idle

    evaluating  : planning absent / désactivé / pas l'heure → skip
    claim       : INSERT (tenant, date locale), perdant → ALREADY_DISPATCHED ;
                  un cycle FAILED est rejoué au tick suivant
    dispatching : cohorte du jour → question (rotator) → Invite Issuer

Un tenant en erreur n'interrompt jamais les autres. Une panne storage
sur la lecture des tenants fait échouer le tick entier ; il sera rejoué
au tick suivant.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.engine.pulse.calendar import SendMoment, current_moment, evaluate_send_moment, utcnow
from app.engine.pulse.cohort import (
    ALL_MEMBERS_COHORT, cohort_for_weekday, cohort_index, cohort_name as make_cohort_name,
)
from app.engine.pulse.rotation import pick_question
from app.infra.directory import DirectoryGateway
from app.modules.pulse.issuer import InviteIssuer
from app.modules.pulse.repository import PulseRepository
from app.shared.enums import DispatchStatus
from app.shared.errors import NotificationSendFailed, StorageUnavailable

logger = logging.getLogger(__name__)

repo = PulseRepository()

JOB_ID = "pulse_tick"


@dataclass
class TenantDispatchResult:
    tenant_id:   str
    status:      DispatchStatus
    cycle_key:   Optional[str] = None
    cohort_name: Optional[str] = None
    question_id: Optional[str] = None
    sent:        int = 0
    failures:    List[NotificationSendFailed] = field(default_factory=list)
    error:       Optional[str] = None


@dataclass
class TickReport:
    now:     datetime
    results: List[TenantDispatchResult] = field(default_factory=list)

    @property
    def dispatched(self) -> List[TenantDispatchResult]:
        return [r for r in self.results if r.status == DispatchStatus.DISPATCHED]

    @property
    def failures(self) -> Dict[str, List[NotificationSendFailed]]:
        return {r.tenant_id: r.failures for r in self.results if r.failures}


class PulseScheduler:

    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        directory: Optional[DirectoryGateway] = None,
        issuer: Optional[InviteIssuer] = None,
        concurrency: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.directory = directory or DirectoryGateway()
        self.issuer = issuer or InviteIssuer()
        self.concurrency = concurrency or settings.PULSE_TENANT_CONCURRENCY

    # ── Tick ──────────────────────────────────────────────────

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        now = now or utcnow()
        try:
            async with self.session_factory() as db:
                tenant_ids = await self.directory.list_tenant_ids(db)
        except SQLAlchemyError as e:
            raise StorageUnavailable(str(e)) from e

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _run(tenant_id: str) -> TenantDispatchResult:
            async with semaphore:
                async with self.session_factory() as db:
                    try:
                        return await self.evaluate_tenant(db, tenant_id, now)
                    except Exception as e:
                        logger.exception("Tick pulse en échec pour le tenant %s", tenant_id)
                        return TenantDispatchResult(tenant_id, DispatchStatus.FAILED, error=str(e))

        results = await asyncio.gather(*(_run(tid) for tid in tenant_ids))
        report = TickReport(now=now, results=list(results))
        if report.dispatched:
            logger.info(
                "Tick pulse : %d tenant(s) évalué(s), %d dispatch(s)",
                len(report.results), len(report.dispatched),
            )
        return report

    async def evaluate_tenant(
        self, db: AsyncSession, tenant_id: str, now: datetime
    ) -> TenantDispatchResult:
        schedule = await repo.get_schedule(db, tenant_id)
        if schedule is None:
            return self._skip(tenant_id, DispatchStatus.NO_SCHEDULE)
        if not schedule.enabled:
            return self._skip(tenant_id, DispatchStatus.DISABLED)

        moment = evaluate_send_moment(
            now,
            tz_name=schedule.timezone,
            time_of_day=schedule.time_of_day,
            cadence=schedule.cadence,
            rotating=schedule.rotating_cohorts,
            day_of_week=schedule.day_of_week,
            window_minutes=settings.PULSE_SEND_WINDOW_MINUTES,
        )
        if moment is None:
            return TenantDispatchResult(tenant_id, DispatchStatus.NOT_DUE)

        if not await repo.claim_cycle(db, tenant_id, moment.cycle_key, now):
            return self._skip(tenant_id, DispatchStatus.ALREADY_DISPATCHED, moment.cycle_key)

        try:
            result = await self._dispatch(db, tenant_id, schedule, moment, now)
        except SQLAlchemyError:
            # FAILED rend le cycle re-réclamable au tick suivant
            await db.rollback()
            try:
                await repo.finish_cycle(db, tenant_id, moment.cycle_key, {
                    "status": DispatchStatus.FAILED.value,
                    "finished_at": utcnow(),
                })
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Pulse %s : cycle %s non marqué en échec", tenant_id, moment.cycle_key)
            raise

        await repo.finish_cycle(db, tenant_id, moment.cycle_key, {
            "status": result.status.value,
            "cohort_name": result.cohort_name,
            "question_id": result.question_id,
            "sent": result.sent,
            "failed": len(result.failures),
            "finished_at": utcnow(),
        })
        return result

    # ── Déclenchement manuel ──────────────────────────────────

    async def dispatch_now(
        self,
        db: AsyncSession,
        tenant_id: str,
        cohort_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TenantDispatchResult:
        """Sans contrôle d'horaire ni claim ; le dédoublonnage par période reste actif."""
        now = now or utcnow()
        schedule = await repo.get_schedule(db, tenant_id)
        if schedule is None:
            return self._skip(tenant_id, DispatchStatus.NO_SCHEDULE)
        moment = current_moment(now, tz_name=schedule.timezone, cadence=schedule.cadence)
        return await self._dispatch(db, tenant_id, schedule, moment, now, cohort_name)

    # ── Dispatch ──────────────────────────────────────────────

    async def _dispatch(
        self,
        db: AsyncSession,
        tenant_id: str,
        schedule,
        moment: SendMoment,
        now: datetime,
        forced_cohort: Optional[str] = None,
    ) -> TenantDispatchResult:
        if not schedule.rotating_cohorts:
            name, position = ALL_MEMBERS_COHORT, 0
        elif forced_cohort is not None:
            position = cohort_index(forced_cohort)
            if position is None:
                raise ValueError(f"cohorte inconnue : {forced_cohort!r}")
            name = forced_cohort
        else:
            position = cohort_for_weekday(moment.weekday, schedule.cohort_count, schedule.cohort_day_map)
            name = make_cohort_name(position)

        result = TenantDispatchResult(
            tenant_id, DispatchStatus.DISPATCHED, cycle_key=moment.cycle_key, cohort_name=name,
        )

        questions = await repo.list_active_questions(db, tenant_id)
        question = pick_question(questions, position, moment.cycle_index)
        if question is None:
            result.status = DispatchStatus.NO_ACTIVE_QUESTIONS
            logger.debug("Pulse %s : aucune question active, cohorte %s ignorée", tenant_id, name)
            return result
        result.question_id = question.id

        eligible = await self.directory.get_eligible_members(db, tenant_id)
        if name == ALL_MEMBERS_COHORT:
            member_ids = list(eligible)
        else:
            cohort = await repo.get_cohort(db, tenant_id, name)
            members = cohort.members if cohort else []
            member_ids = [m.user_id for m in members if m.user_id in eligible]

        already = await repo.users_invited_since(db, tenant_id, member_ids, moment.period_start_utc)
        targets = [eligible[uid] for uid in member_ids if uid not in already]
        if not targets:
            result.status = DispatchStatus.NO_MEMBERS
            logger.debug("Pulse %s : cohorte %s vide ou déjà invitée", tenant_id, name)
            return result

        report = await self.issuer.issue_batch(
            db,
            tenant_id=tenant_id,
            question=question,
            cohort_name=name,
            members=targets,
            now=now,
        )
        result.sent = report.sent
        result.failures = report.failures
        logger.info(
            "Pulse %s : %d invitation(s) cohorte %s (%d échec(s) de notification)",
            tenant_id, len(report.invites), name, len(report.failures),
        )
        return result

    @staticmethod
    def _skip(tenant_id: str, status: DispatchStatus, cycle_key: Optional[str] = None) -> TenantDispatchResult:
        logger.debug("Pulse %s : %s", tenant_id, status.value)
        return TenantDispatchResult(tenant_id, status, cycle_key=cycle_key)


# ── Driver APScheduler ────────────────────────────────────────────────────────

scheduler = AsyncIOScheduler()
pulse_scheduler = PulseScheduler()


async def run_tick():
    try:
        await pulse_scheduler.tick()
    except StorageUnavailable:
        logger.exception("Storage indisponible, tick pulse rejoué au prochain intervalle")


def start_scheduler():
    """Démarre le tick pulse (doit être appelé depuis la boucle asyncio de l'app)."""
    scheduler.add_job(
        run_tick,
        trigger=IntervalTrigger(seconds=settings.PULSE_TICK_SECONDS),
        id=JOB_ID,
        name="Évaluation des plannings pulse",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler pulse démarré (tick %ss)", settings.PULSE_TICK_SECONDS)


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler pulse arrêté")
