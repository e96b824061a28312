# tests/modules/pulse/test_router.py
"""
Tests d'intégration HTTP pour modules.pulse.router.

Service mocké : on teste le mapping statut métier → code HTTP,
la validation des payloads et les contrôles d'accès.

Couverture :
    POST /pulse/respond          → 201, 404, 409, 410, 422, 503
    GET /pulse/respond           → confirmation en lecture seule, 404
    GET /pulse/invites/{token}   → 200, 404
    GET /pulse/invites/pending   → membre authentifié
    GET /pulse/history           → bornes de weeks
    GET /pulse/summary           → admin, insufficient_data sérialisé, 400, 503, 403
    questions / planning / cohortes / trigger (admin)
"""
import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

from app.engine.pulse.aggregation import INSUFFICIENT_DATA, summarize
from app.main import app
from app.modules.pulse.ledger import InviteStatus, SubmitResult
from app.modules.pulse.scheduler import TenantDispatchResult
from app.shared.deps import get_current_admin
from app.shared.enums import DispatchStatus, PulseScale, ResponseStatus
from app.shared.errors import NotificationSendFailed, StorageUnavailable
from fastapi import HTTPException
from tests.conftest import NOW, TENANT_ID, make_question, make_response, make_schedule

pytestmark = pytest.mark.router

SVC = "app.modules.pulse.router.service"


# ── Réponse one-tap ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_respond_201(client, mocker):
    mocker.patch(f"{SVC}.submit_response", AsyncMock(
        return_value=SubmitResult(ResponseStatus.ACCEPTED, "q-1")
    ))
    r = await client.post("/pulse/respond", json={"token": "tok-abc", "score": 4})
    assert r.status_code == 201
    assert r.json() == {"status": "accepted", "question_id": "q-1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status,code", [
    (ResponseStatus.INVALID_TOKEN, 404),
    (ResponseStatus.ALREADY_RESPONDED, 409),
    (ResponseStatus.EXPIRED_TOKEN, 410),
    (ResponseStatus.INVALID_SCORE, 422),
])
async def test_respond_refus(client, mocker, status, code):
    mocker.patch(f"{SVC}.submit_response", AsyncMock(return_value=SubmitResult(status)))
    r = await client.post("/pulse/respond", json={"token": "tok-abc", "score": 4})
    assert r.status_code == code


@pytest.mark.asyncio
async def test_respond_one_tap_get_sans_ecriture(client, mocker):
    submit = mocker.patch(f"{SVC}.submit_response", AsyncMock())
    preview = mocker.patch(f"{SVC}.preview_response", AsyncMock(return_value={
        "valid": True,
        "question_text": "Charge ?",
        "scale": PulseScale.LIKERT_1_5,
        "responded": False,
        "expired": False,
        "token": "tok-abc",
        "score": 5,
        "score_in_scale": True,
    }))

    r = await client.get("/pulse/respond", params={"token": "tok-abc", "score": 5})

    assert r.status_code == 200
    assert r.json()["score"] == 5
    assert r.json()["valid"] is True
    assert preview.call_args.args[1:] == ("tok-abc", 5)
    submit.assert_not_awaited()


@pytest.mark.asyncio
async def test_respond_one_tap_get_token_inconnu_404(client, mocker):
    mocker.patch(f"{SVC}.preview_response", AsyncMock(return_value={
        "valid": False, "question_text": None, "scale": None, "responded": False,
        "expired": False, "token": "nope", "score": 5, "score_in_scale": False,
    }))
    r = await client.get("/pulse/respond", params={"token": "nope", "score": 5})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_respond_storage_503(client, mocker):
    mocker.patch(f"{SVC}.submit_response", AsyncMock(side_effect=StorageUnavailable("down")))
    r = await client.post("/pulse/respond", json={"token": "tok-abc", "score": 4})
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_respond_payload_invalide_422(client):
    r = await client.post("/pulse/respond", json={"token": "tok-abc"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_statut_invitation(client, mocker):
    mocker.patch(f"{SVC}.get_invite_status", AsyncMock(return_value=InviteStatus(
        valid=True, question_text="Charge ?", scale=PulseScale.LIKERT_1_5,
    )))
    r = await client.get("/pulse/invites/tok-abc")
    assert r.status_code == 200
    assert r.json()["valid"] is True
    assert r.json()["scale"] == "LIKERT_1_5"


@pytest.mark.asyncio
async def test_statut_invitation_inconnue_404(client, mocker):
    mocker.patch(f"{SVC}.get_invite_status", AsyncMock(return_value=InviteStatus(valid=False)))
    r = await client.get("/pulse/invites/nope")
    assert r.status_code == 404


# ── Membre ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_invitations_en_attente(member_client, mocker):
    get_pending = mocker.patch(f"{SVC}.get_pending_invites", AsyncMock(return_value=[{
        "token": "tok-abc",
        "question_id": "q-1",
        "question_text": "Charge ?",
        "category": "workload",
        "scale": PulseScale.LIKERT_1_5,
        "sent_at": NOW,
        "expires_at": NOW,
    }]))
    r = await member_client.get("/pulse/invites/pending")
    assert r.status_code == 200
    assert r.json()[0]["token"] == "tok-abc"
    assert get_pending.call_args.args[1] == "user-1"


@pytest.mark.asyncio
async def test_invitations_en_attente_sans_token_401_403(client):
    r = await client.get("/pulse/invites/pending")
    assert r.status_code in (401, 403)


@pytest.mark.asyncio
async def test_historique(member_client, mocker):
    mocker.patch(f"{SVC}.get_participation_history", AsyncMock(return_value={
        "weeks": [{"week_start": date(2026, 10, 19), "week": "2026-W43", "completed": 2}],
        "total_completed": 2,
    }))
    r = await member_client.get("/pulse/history", params={"weeks": 4})
    assert r.status_code == 200
    assert r.json()["weeks"][0]["completed"] == 2


@pytest.mark.asyncio
async def test_historique_weeks_hors_bornes_422(member_client):
    r = await member_client.get("/pulse/history", params={"weeks": 100})
    assert r.status_code == 422


# ── Agrégats ──────────────────────────────────────────────────────────────────

def _summary():
    responses = (
        [make_response(question_id="q-1", score=4) for _ in range(5)]
        + [make_response(question_id="q-2", score=2) for _ in range(2)]
    )
    return summarize(
        responses,
        [make_question(id="q-1"), make_question(id="q-2", category="recognition")],
        threshold=5,
        window_start=datetime(2026, 10, 1, tzinfo=timezone.utc),
        window_end=datetime(2026, 10, 29, tzinfo=timezone.utc),
        total_invites=14,
    )


@pytest.mark.asyncio
async def test_summary(admin_client, mocker):
    get_summary = mocker.patch(f"{SVC}.get_summary", AsyncMock(return_value=_summary()))

    r = await admin_client.get("/pulse/summary", params={"range": "4w", "team": "team-a"})

    assert r.status_code == 200
    body = r.json()
    by_id = {q["question_id"]: q for q in body["questions"]}
    assert by_id["q-1"]["mean"] == 4.0
    assert by_id["q-2"]["mean"] == INSUFFICIENT_DATA
    assert by_id["q-2"]["insufficient"] is True
    assert body["participation_rate"] == 0.5
    assert get_summary.call_args.args[1] == TENANT_ID
    assert get_summary.call_args.kwargs["range_str"] == "4w"
    assert get_summary.call_args.kwargs["team_id"] == "team-a"


@pytest.mark.asyncio
async def test_summary_dates_invalides_400(admin_client, mocker):
    mocker.patch(f"{SVC}.get_summary", AsyncMock(side_effect=ValueError("start doit précéder end")))
    r = await admin_client.get("/pulse/summary", params={"start": "2026-10-09", "end": "2026-10-01"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_summary_storage_503(admin_client, mocker):
    mocker.patch(f"{SVC}.get_summary", AsyncMock(side_effect=StorageUnavailable("down")))
    r = await admin_client.get("/pulse/summary")
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_summary_membre_403(member_client):
    def deny():
        raise HTTPException(status_code=403, detail="Accès administrateur requis")

    app.dependency_overrides[get_current_admin] = deny
    r = await member_client.get("/pulse/summary")
    assert r.status_code == 403


# ── Questions ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_creation_question_201(admin_client, mocker):
    mocker.patch(f"{SVC}.create_question", AsyncMock(return_value=make_question()))
    r = await admin_client.post("/pulse/questions", json={"text": "Charge ?", "scale": "NPS_0_10"})
    assert r.status_code == 201
    assert r.json()["id"] == "q-1"


@pytest.mark.asyncio
async def test_creation_question_echelle_inconnue_422(admin_client):
    r = await admin_client.post("/pulse/questions", json={"text": "Charge ?", "scale": "STARS_1_3"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_liste_questions(admin_client, mocker):
    mocker.patch(f"{SVC}.list_questions", AsyncMock(return_value=[make_question(), make_question(id="q-2")]))
    r = await admin_client.get("/pulse/questions")
    assert r.status_code == 200
    assert [q["id"] for q in r.json()] == ["q-1", "q-2"]


@pytest.mark.asyncio
async def test_maj_question_404(admin_client, mocker):
    mocker.patch(f"{SVC}.update_question", AsyncMock(side_effect=LookupError("Question introuvable.")))
    r = await admin_client.patch("/pulse/questions/q-x", json={"active": False})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_suppression_question(admin_client, mocker):
    mocker.patch(f"{SVC}.delete_question", AsyncMock(
        return_value={"id": "q-1", "deleted": False, "deactivated": True}
    ))
    r = await admin_client.delete("/pulse/questions/q-1")
    assert r.status_code == 200
    assert r.json()["deactivated"] is True


# ── Planning, cohortes, trigger ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_lecture_planning(admin_client, mocker):
    mocker.patch(f"{SVC}.get_schedule", AsyncMock(return_value=make_schedule()))
    r = await admin_client.get("/pulse/schedule")
    assert r.status_code == 200
    assert r.json()["timezone"] == "America/New_York"
    assert r.json()["cadence"] == "weekly"


@pytest.mark.asyncio
async def test_lecture_planning_absent_404(admin_client, mocker):
    mocker.patch(f"{SVC}.get_schedule", AsyncMock(side_effect=LookupError("Aucun planning")))
    r = await admin_client.get("/pulse/schedule")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_planning_heure_invalide_422(admin_client):
    r = await admin_client.put("/pulse/schedule", json={"time_of_day": "9h"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_planning_timezone_invalide_400(admin_client, mocker):
    mocker.patch(f"{SVC}.upsert_schedule", AsyncMock(side_effect=ValueError("timezone inconnue")))
    r = await admin_client.put("/pulse/schedule", json={"timezone": "Mars/Olympus_Mons"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_seed_cohortes(admin_client, mocker):
    mocker.patch(f"{SVC}.seed_cohorts", AsyncMock(
        return_value={"cohort_count": 2, "assigned": 4, "sizes": {"weekday-0": 2, "weekday-1": 2}}
    ))
    r = await admin_client.post("/pulse/cohorts/seed")
    assert r.status_code == 200
    assert r.json()["assigned"] == 4


@pytest.mark.asyncio
async def test_trigger(admin_client, mocker):
    result = TenantDispatchResult(
        TENANT_ID, DispatchStatus.DISPATCHED, cycle_key="2026-10-19", cohort_name="weekday-0",
        question_id="q-1", sent=1, failures=[NotificationSendFailed("user-2", "envoi refusé")],
    )
    trigger = mocker.patch(f"{SVC}.trigger", AsyncMock(return_value=result))

    r = await admin_client.post("/pulse/trigger", json={"cohort": "weekday-0"})

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "dispatched"
    assert body["failures"] == [{"user_id": "user-2", "reason": "envoi refusé"}]
    assert trigger.call_args.args[2] == "weekday-0"


@pytest.mark.asyncio
async def test_trigger_cohorte_inconnue_400(admin_client, mocker):
    mocker.patch(f"{SVC}.trigger", AsyncMock(side_effect=ValueError("cohorte inconnue")))
    r = await admin_client.post("/pulse/trigger", json={"cohort": "lundi"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
