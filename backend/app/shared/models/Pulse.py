# app/shared/models/Pulse.py
"""
Pulse anonyme — questions, cohortes, planning, invitations, réponses.

Chaîne d'écriture :
    PulseSchedule → PulseCohort → PulseInvite (token à usage unique)
    → PulseResponse (anonyme)

PulseResponse n'a AUCUNE colonne permettant de remonter à un utilisateur :
ni user_id, ni IP, ni user-agent, ni texte libre. C'est la forme de la
table qui garantit l'anonymat, pas le code applicatif.
invite_id n'existe que pour la contrainte d'unicité (une réponse par token)
et n'est jamais exposé ni joint par les agrégats.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, JSON, Enum, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.shared.enums import PulseScale, PulseCadence


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PulseQuestion(Base):
    __tablename__ = "pulse_questions"

    id        = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)

    text     = Column(String, nullable=False)
    category = Column(String, nullable=True)
    scale    = Column(Enum(PulseScale, name="pulsescale"), nullable=False, default=PulseScale.LIKERT_1_5)

    # Jamais supprimée une fois des réponses reçues → désactivée
    active = Column(Boolean, nullable=False, default=True)

    # L'ordre de création fixe l'ordre de rotation
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    def __repr__(self):
        return f"<PulseQuestion id={self.id} scale={self.scale} active={self.active}>"


class PulseCohort(Base):
    __tablename__ = "pulse_cohorts"

    id        = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    name      = Column(String, nullable=False)      # weekday-0, weekday-1, ...

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_pulse_cohort_tenant_name"),
    )

    members = relationship(
        "PulseCohortMember",
        back_populates="cohort",
        order_by="PulseCohortMember.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<PulseCohort tenant={self.tenant_id} name={self.name}>"


class PulseCohortMember(Base):
    """
    Appartenance persistée, calculée une fois par le Cohort Assigner.
    uq_pulse_cohort_member : un utilisateur = une seule cohorte par tenant.
    """
    __tablename__ = "pulse_cohort_members"

    id        = Column(Integer, primary_key=True, autoincrement=True)
    cohort_id = Column(String(36), ForeignKey("pulse_cohorts.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(String(36), nullable=False)
    user_id   = Column(String(36), nullable=False)
    position  = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_pulse_cohort_member"),
    )

    cohort = relationship("PulseCohort", back_populates="members")


class PulseSchedule(Base):
    __tablename__ = "pulse_schedules"

    id        = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, unique=True)

    enabled          = Column(Boolean, nullable=False, default=False)
    cadence          = Column(Enum(PulseCadence, name="pulsecadence"), nullable=False, default=PulseCadence.WEEKLY)
    day_of_week      = Column(Integer, nullable=False, default=0)        # 0 = lundi (planning sans rotation)
    time_of_day      = Column(String(5), nullable=False, default="09:00")
    timezone         = Column(String, nullable=False, default="UTC")
    rotating_cohorts = Column(Boolean, nullable=False, default=True)
    cohort_count     = Column(Integer, nullable=False, default=5)

    # 7 index de cohorte (lundi → dimanche). Donnée de configuration :
    # changer cohort_count ne déplace pas les jours d'envoi.
    cohort_day_map = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now)

    def __repr__(self):
        return f"<PulseSchedule tenant={self.tenant_id} {self.cadence} {self.time_of_day} {self.timezone}>"


class PulseInvite(Base):
    __tablename__ = "pulse_invites"

    id          = Column(String(36), primary_key=True, default=_uuid)
    tenant_id   = Column(String(36), nullable=False, index=True)
    user_id     = Column(String(36), nullable=False, index=True)
    question_id = Column(String(36), ForeignKey("pulse_questions.id"), nullable=False, index=True)
    cohort_name = Column(String, nullable=True)

    # Équipe principale capturée à la création, jamais recalculée
    team_id = Column(String(36), nullable=True)

    token = Column(String, nullable=False, unique=True, index=True)

    sent_at      = Column(DateTime(timezone=True), nullable=False, default=_now)
    expires_at   = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)   # pending → responded, une seule fois

    question = relationship("PulseQuestion")

    def __repr__(self):
        return f"<PulseInvite id={self.id} question={self.question_id} responded={self.responded_at is not None}>"


class PulseResponse(Base):
    __tablename__ = "pulse_responses"

    id          = Column(String(36), primary_key=True, default=_uuid)
    tenant_id   = Column(String(36), nullable=False, index=True)
    invite_id   = Column(String(36), ForeignKey("pulse_invites.id"), nullable=False, unique=True)
    question_id = Column(String(36), ForeignKey("pulse_questions.id"), nullable=False, index=True)
    team_id     = Column(String(36), nullable=True, index=True)

    score        = Column(Integer, nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=False, default=_now, index=True)

    # Pas de relationship vers PulseInvite : aucun chemin ORM vers user_id.

    def __repr__(self):
        return f"<PulseResponse id={self.id} question={self.question_id} score={self.score}>"


class PulseDispatchRun(Base):
    """
    Marqueur d'idempotence du scheduler : une ligne par (tenant, cycle).
    L'INSERT est la primitive de claim : la contrainte unique fait perdre
    le second appelant avant toute invitation.
    """
    __tablename__ = "pulse_dispatch_runs"

    id        = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), nullable=False)
    cycle_key = Column(String(10), nullable=False)      # date locale ISO du tenant

    status      = Column(String, nullable=True)
    cohort_name = Column(String, nullable=True)
    question_id = Column(String(36), nullable=True)
    sent        = Column(Integer, nullable=False, default=0)
    failed      = Column(Integer, nullable=False, default=0)

    claimed_at  = Column(DateTime(timezone=True), nullable=False, default=_now)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "cycle_key", name="uq_pulse_dispatch_tenant_cycle"),
    )

    def __repr__(self):
        return f"<PulseDispatchRun tenant={self.tenant_id} cycle={self.cycle_key} status={self.status}>"
