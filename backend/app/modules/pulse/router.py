# modules/pulse/router.py
"""
Endpoints Pulse.

Trois acteurs :
- Public : réponse one-tap par token (lien email), sans authentification
- Membre : invitations en attente, historique de participation
- Admin  : agrégats, questions, planning, cohortes, déclenchement manuel
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from app.modules.pulse.schemas import (
    PulseQuestionIn, PulseQuestionUpdate, PulseQuestionOut, QuestionDeleteOut,
    PulseScheduleIn, PulseScheduleOut, CohortSeedOut,
    TriggerIn, DispatchOut,
    PulseRespondIn, PulseRespondOut, InviteStatusOut, OneTapPreviewOut,
    PendingInviteOut, ParticipationHistoryOut,
    PulseSummaryOut,
)
from app.modules.pulse.service import PulseService
from app.shared.deps import DbDep, UserDep, AdminDep
from app.shared.enums import ResponseStatus
from app.shared.errors import StorageUnavailable

router = APIRouter(prefix="/pulse", tags=["Pulse"])
service = PulseService()

REFUSAL_CODES = {
    ResponseStatus.INVALID_TOKEN:     (404, "Lien de réponse invalide."),
    ResponseStatus.ALREADY_RESPONDED: (409, "Vous avez déjà répondu à ce pulse."),
    ResponseStatus.EXPIRED_TOKEN:     (410, "Ce pulse a expiré."),
    ResponseStatus.INVALID_SCORE:     (422, "Score hors de l'échelle."),
}


async def _submit(db, token: str, score: int):
    try:
        result = await service.submit_response(db, token, score)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Service temporairement indisponible.")
    if result.status in REFUSAL_CODES:
        code, detail = REFUSAL_CODES[result.status]
        raise HTTPException(status_code=code, detail=detail)
    return result


# ─────────────────────────────────────────────
# PUBLIC — Réponse one-tap
# ─────────────────────────────────────────────

@router.post("/respond", response_model=PulseRespondOut, status_code=201)
async def respond(payload: PulseRespondIn, db: DbDep):
    return await _submit(db, payload.token, payload.score)


@router.get("/respond", response_model=OneTapPreviewOut)
async def respond_one_tap(db: DbDep, token: str = Query(...), score: int = Query(...)):
    """
    Cible des liens de l'email : un lien par score.
    Aucune écriture ici, la confirmation se fait par POST /respond.
    """
    try:
        preview = await service.preview_response(db, token, score)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Service temporairement indisponible.")
    if preview["question_text"] is None:
        raise HTTPException(status_code=404, detail="Lien de réponse invalide.")
    return preview


@router.get("/invites/pending", response_model=List[PendingInviteOut])
async def pending_invites(current_user: UserDep, db: DbDep):
    return await service.get_pending_invites(db, current_user.id)


@router.get("/invites/{token}", response_model=InviteStatusOut)
async def invite_status(token: str, db: DbDep):
    try:
        invite = await service.get_invite_status(db, token)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Service temporairement indisponible.")
    if not invite.valid and invite.question_text is None:
        raise HTTPException(status_code=404, detail="Lien de réponse invalide.")
    return invite


# ─────────────────────────────────────────────
# MEMBRE
# ─────────────────────────────────────────────

@router.get("/history", response_model=ParticipationHistoryOut)
async def participation_history(
    current_user: UserDep,
    db: DbDep,
    weeks: int = Query(8, ge=1, le=52),
):
    """Participation par semaine, jamais de score."""
    return await service.get_participation_history(db, current_user.id, weeks)


# ─────────────────────────────────────────────
# ADMIN — Agrégats
# ─────────────────────────────────────────────

@router.get("/summary", response_model=PulseSummaryOut)
async def summary(
    admin: AdminDep,
    db: DbDep,
    range_: Optional[str] = Query(None, alias="range", description="Fenêtre glissante : 4w, 8w, 12w…"),
    start: Optional[date] = None,
    end: Optional[date] = None,
    team: Optional[str] = None,
    threshold: Optional[int] = Query(None, ge=1),
    by_team: bool = False,
):
    try:
        return await service.get_summary(
            db,
            admin.tenant_id,
            range_str=range_,
            start=start,
            end=end,
            team_id=team,
            threshold=threshold,
            by_team=by_team,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Agrégats temporairement indisponibles.")


# ─────────────────────────────────────────────
# ADMIN — Questions
# ─────────────────────────────────────────────

@router.get("/questions", response_model=List[PulseQuestionOut])
async def list_questions(admin: AdminDep, db: DbDep):
    return await service.list_questions(db, admin.tenant_id)


@router.post("/questions", response_model=PulseQuestionOut, status_code=201)
async def create_question(payload: PulseQuestionIn, admin: AdminDep, db: DbDep):
    try:
        return await service.create_question(db, admin.tenant_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/questions/{question_id}", response_model=PulseQuestionOut)
async def update_question(question_id: str, payload: PulseQuestionUpdate, admin: AdminDep, db: DbDep):
    try:
        return await service.update_question(db, admin.tenant_id, question_id, payload)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/questions/{question_id}", response_model=QuestionDeleteOut)
async def delete_question(question_id: str, admin: AdminDep, db: DbDep):
    """Désactive au lieu de supprimer dès que la question a été envoyée."""
    try:
        return await service.delete_question(db, admin.tenant_id, question_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ─────────────────────────────────────────────
# ADMIN — Planning & cohortes
# ─────────────────────────────────────────────

@router.get("/schedule", response_model=PulseScheduleOut)
async def get_schedule(admin: AdminDep, db: DbDep):
    try:
        return await service.get_schedule(db, admin.tenant_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/schedule", response_model=PulseScheduleOut)
async def put_schedule(payload: PulseScheduleIn, admin: AdminDep, db: DbDep):
    try:
        return await service.upsert_schedule(db, admin.tenant_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/cohorts/seed", response_model=CohortSeedOut)
async def seed_cohorts(admin: AdminDep, db: DbDep):
    return await service.seed_cohorts(db, admin.tenant_id)


@router.post("/trigger", response_model=DispatchOut)
async def trigger(admin: AdminDep, db: DbDep, payload: Optional[TriggerIn] = None):
    """Envoi immédiat, hors horaire. Les membres déjà invités sur la période sont ignorés."""
    try:
        result = await service.trigger(db, admin.tenant_id, payload.cohort if payload else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "tenant_id":   result.tenant_id,
        "status":      result.status,
        "cycle_key":   result.cycle_key,
        "cohort_name": result.cohort_name,
        "question_id": result.question_id,
        "sent":        result.sent,
        "failures":    [{"user_id": f.user_id, "reason": f.reason} for f in result.failures],
    }
