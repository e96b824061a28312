# modules/pulse/repository.py
"""
Accès DB pour le moteur Pulse.

Deux primitives atomiques portent toute la concurrence :
    claim_invite()  — UPDATE ... WHERE responded_at IS NULL (un seul gagnant)
    claim_cycle()   — INSERT unique (tenant_id, cycle_key), reprise conditionnelle si FAILED
Aucun verrou applicatif en dehors de ces deux opérations.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload, joinedload
from typing import Dict, Iterable, List, Optional, Set
from datetime import datetime

from app.shared.models import (
    PulseQuestion, PulseCohort, PulseCohortMember, PulseSchedule,
    PulseInvite, PulseResponse, PulseDispatchRun,
)
from app.shared.enums import DispatchStatus


class PulseRepository:

    # ── Questions ─────────────────────────────────────────────

    async def list_questions(self, db: AsyncSession, tenant_id: str) -> List[PulseQuestion]:
        r = await db.execute(
            select(PulseQuestion)
            .where(PulseQuestion.tenant_id == tenant_id)
            .order_by(PulseQuestion.created_at, PulseQuestion.id)
        )
        return list(r.scalars().all())

    async def list_active_questions(self, db: AsyncSession, tenant_id: str) -> List[PulseQuestion]:
        r = await db.execute(
            select(PulseQuestion)
            .where(
                PulseQuestion.tenant_id == tenant_id,
                PulseQuestion.active == True,
            )
            .order_by(PulseQuestion.created_at, PulseQuestion.id)
        )
        return list(r.scalars().all())

    async def get_question(
        self, db: AsyncSession, tenant_id: str, question_id: str
    ) -> Optional[PulseQuestion]:
        r = await db.execute(
            select(PulseQuestion).where(
                PulseQuestion.id == question_id,
                PulseQuestion.tenant_id == tenant_id,
            )
        )
        return r.scalar_one_or_none()

    async def create_question(self, db: AsyncSession, data: Dict) -> PulseQuestion:
        db_obj = PulseQuestion(**data)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update_question(self, db: AsyncSession, question: PulseQuestion, data: Dict) -> PulseQuestion:
        for field, value in data.items():
            setattr(question, field, value)
        await db.commit()
        await db.refresh(question)
        return question

    async def question_has_responses(self, db: AsyncSession, question_id: str) -> bool:
        r = await db.execute(
            select(PulseResponse.id).where(PulseResponse.question_id == question_id).limit(1)
        )
        return r.scalar_one_or_none() is not None

    async def question_has_invites(self, db: AsyncSession, question_id: str) -> bool:
        r = await db.execute(
            select(PulseInvite.id).where(PulseInvite.question_id == question_id).limit(1)
        )
        return r.scalar_one_or_none() is not None

    async def delete_question(self, db: AsyncSession, question: PulseQuestion) -> None:
        await db.delete(question)
        await db.commit()

    # ── Planning ──────────────────────────────────────────────

    async def get_schedule(self, db: AsyncSession, tenant_id: str) -> Optional[PulseSchedule]:
        r = await db.execute(select(PulseSchedule).where(PulseSchedule.tenant_id == tenant_id))
        return r.scalar_one_or_none()

    async def upsert_schedule(self, db: AsyncSession, tenant_id: str, data: Dict) -> PulseSchedule:
        schedule = await self.get_schedule(db, tenant_id)
        if schedule is None:
            schedule = PulseSchedule(tenant_id=tenant_id, **data)
            db.add(schedule)
        else:
            for field, value in data.items():
                setattr(schedule, field, value)
        await db.commit()
        await db.refresh(schedule)
        return schedule

    # ── Cohortes ──────────────────────────────────────────────

    async def get_cohort(
        self, db: AsyncSession, tenant_id: str, name: str
    ) -> Optional[PulseCohort]:
        r = await db.execute(
            select(PulseCohort)
            .options(selectinload(PulseCohort.members))
            .where(PulseCohort.tenant_id == tenant_id, PulseCohort.name == name)
        )
        return r.scalar_one_or_none()

    async def list_cohorts(self, db: AsyncSession, tenant_id: str) -> List[PulseCohort]:
        r = await db.execute(
            select(PulseCohort)
            .options(selectinload(PulseCohort.members))
            .where(PulseCohort.tenant_id == tenant_id)
            .order_by(PulseCohort.name)
        )
        return list(r.scalars().all())

    async def ensure_cohorts(
        self, db: AsyncSession, tenant_id: str, names: Iterable[str]
    ) -> Dict[str, PulseCohort]:
        """Crée les cohortes manquantes (sans commit). Retourne nom → cohorte."""
        existing = {c.name: c for c in await self.list_cohorts(db, tenant_id)}
        for name in names:
            if name not in existing:
                cohort = PulseCohort(tenant_id=tenant_id, name=name, members=[])
                db.add(cohort)
                existing[name] = cohort
        await db.flush()
        return existing

    async def get_assigned_user_ids(self, db: AsyncSession, tenant_id: str) -> Set[str]:
        r = await db.execute(
            select(PulseCohortMember.user_id).where(PulseCohortMember.tenant_id == tenant_id)
        )
        return set(r.scalars().all())

    def add_cohort_member(self, db: AsyncSession, cohort: PulseCohort, user_id: str) -> PulseCohortMember:
        """Ajout en fin de cohorte (sans commit)."""
        position = max((m.position for m in cohort.members), default=-1) + 1
        member = PulseCohortMember(
            cohort_id=cohort.id,
            tenant_id=cohort.tenant_id,
            user_id=user_id,
            position=position,
        )
        cohort.members.append(member)
        db.add(member)
        return member

    # ── Invitations ───────────────────────────────────────────

    async def get_invite_by_token(self, db: AsyncSession, token: str) -> Optional[PulseInvite]:
        r = await db.execute(
            select(PulseInvite)
            .options(joinedload(PulseInvite.question))
            .where(PulseInvite.token == token)
        )
        return r.scalar_one_or_none()

    async def users_invited_since(
        self, db: AsyncSession, tenant_id: str, user_ids: Iterable[str], since: datetime
    ) -> Set[str]:
        """Dédoublonnage par période : membres ayant déjà reçu une invitation depuis `since`."""
        ids = list(user_ids)
        if not ids:
            return set()
        r = await db.execute(
            select(PulseInvite.user_id).where(
                PulseInvite.tenant_id == tenant_id,
                PulseInvite.user_id.in_(ids),
                PulseInvite.sent_at >= since,
            )
        )
        return set(r.scalars().all())

    async def create_invites(self, db: AsyncSession, rows: List[Dict]) -> List[PulseInvite]:
        invites = [PulseInvite(**row) for row in rows]
        db.add_all(invites)
        await db.commit()
        return invites

    async def list_pending_for_user(
        self, db: AsyncSession, user_id: str, now: datetime
    ) -> List[PulseInvite]:
        r = await db.execute(
            select(PulseInvite)
            .options(joinedload(PulseInvite.question))
            .where(
                PulseInvite.user_id == user_id,
                PulseInvite.responded_at.is_(None),
                PulseInvite.expires_at > now,
            )
            .order_by(PulseInvite.sent_at.desc())
        )
        return list(r.scalars().all())

    async def list_completed_for_user(
        self, db: AsyncSession, user_id: str, since: datetime
    ) -> List[PulseInvite]:
        r = await db.execute(
            select(PulseInvite)
            .options(joinedload(PulseInvite.question))
            .where(
                PulseInvite.user_id == user_id,
                PulseInvite.responded_at.is_not(None),
                PulseInvite.responded_at >= since,
            )
            .order_by(PulseInvite.responded_at)
        )
        return list(r.scalars().all())

    async def count_invites(
        self,
        db: AsyncSession,
        tenant_id: str,
        start: datetime,
        end: datetime,
        team_id: Optional[str] = None,
    ) -> int:
        q = select(func.count(PulseInvite.id)).where(
            PulseInvite.tenant_id == tenant_id,
            PulseInvite.sent_at >= start,
            PulseInvite.sent_at < end,
        )
        if team_id is not None:
            q = q.where(PulseInvite.team_id == team_id)
        r = await db.execute(q)
        return r.scalar_one()

    # ── Ledger ────────────────────────────────────────────────

    async def claim_invite(self, db: AsyncSession, invite_id: str, now: datetime) -> bool:
        """
        Compare-and-swap sur responded_at : NULL → now.
        True pour l'unique appelant dont l'UPDATE a touché la ligne.
        """
        r = await db.execute(
            update(PulseInvite)
            .where(
                PulseInvite.id == invite_id,
                PulseInvite.responded_at.is_(None),
            )
            .values(responded_at=now)
            .execution_options(synchronize_session=False)
        )
        return r.rowcount == 1

    async def add_response(self, db: AsyncSession, data: Dict) -> PulseResponse:
        """Sans commit : le ledger commite claim + insert ensemble."""
        db_obj = PulseResponse(**data)
        db.add(db_obj)
        await db.flush()
        return db_obj

    async def get_responses(
        self,
        db: AsyncSession,
        tenant_id: str,
        start: datetime,
        end: datetime,
        team_id: Optional[str] = None,
    ) -> List:
        """
        Colonnes strictement nécessaires aux agrégats.
        invite_id n'est jamais sélectionné.
        """
        q = select(
            PulseResponse.question_id,
            PulseResponse.team_id,
            PulseResponse.score,
            PulseResponse.responded_at,
        ).where(
            PulseResponse.tenant_id == tenant_id,
            PulseResponse.responded_at >= start,
            PulseResponse.responded_at < end,
        )
        if team_id is not None:
            q = q.where(PulseResponse.team_id == team_id)
        r = await db.execute(q.order_by(PulseResponse.responded_at))
        return list(r.all())

    # ── Idempotence du scheduler ──────────────────────────────

    async def claim_cycle(
        self, db: AsyncSession, tenant_id: str, cycle_key: str, now: datetime
    ) -> bool:
        """
        INSERT unique : False si un autre tick a déjà réclamé ce cycle.
        Un cycle marqué FAILED (panne storage pendant le dispatch) est
        re-réclamable, par un seul appelant : UPDATE conditionnel sur le statut.
        """
        db.add(PulseDispatchRun(tenant_id=tenant_id, cycle_key=cycle_key, claimed_at=now))
        try:
            await db.commit()
            return True
        except IntegrityError:
            await db.rollback()

        r = await db.execute(
            update(PulseDispatchRun)
            .where(
                PulseDispatchRun.tenant_id == tenant_id,
                PulseDispatchRun.cycle_key == cycle_key,
                PulseDispatchRun.status == DispatchStatus.FAILED.value,
            )
            .values(status=None, claimed_at=now, finished_at=None, sent=0, failed=0)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return r.rowcount == 1

    async def finish_cycle(
        self,
        db: AsyncSession,
        tenant_id: str,
        cycle_key: str,
        data: Dict,
    ) -> None:
        await db.execute(
            update(PulseDispatchRun)
            .where(
                PulseDispatchRun.tenant_id == tenant_id,
                PulseDispatchRun.cycle_key == cycle_key,
            )
            .values(**data)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
