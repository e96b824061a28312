# tests/shared/test_deps.py
"""
Chaîne d'authentification réelle : Bearer JWT → Principal → contrôle de rôle.
Aucun override de get_current_user / get_current_admin ici.
"""
import pytest
from unittest.mock import AsyncMock

from app.core.security import create_access_token

pytestmark = pytest.mark.router


def _auth(**claims):
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.mark.asyncio
async def test_admin_accede_aux_questions(client, mocker):
    list_questions = mocker.patch(
        "app.modules.pulse.router.service.list_questions", AsyncMock(return_value=[])
    )
    r = await client.get("/pulse/questions", headers=_auth(sub="admin-1", tid="tenant-acme", role="admin"))
    assert r.status_code == 200
    assert list_questions.call_args.args[1] == "tenant-acme"


@pytest.mark.asyncio
async def test_membre_refuse_sur_route_admin(client):
    r = await client.get("/pulse/questions", headers=_auth(sub="user-1", tid="tenant-acme", role="member"))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_role_absent_vaut_membre(client, mocker):
    get_pending = mocker.patch(
        "app.modules.pulse.router.service.get_pending_invites", AsyncMock(return_value=[])
    )
    r = await client.get("/pulse/invites/pending", headers=_auth(sub="user-1", tid="tenant-acme"))
    assert r.status_code == 200
    assert get_pending.call_args.args[1] == "user-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("claims", [
    {"sub": "user-1"},                                         # tid manquant
    {"tid": "tenant-acme"},                                    # sub manquant
    {"sub": "user-1", "tid": "tenant-acme", "role": "root"},   # rôle inconnu
])
async def test_claims_invalides_401(client, claims):
    r = await client.get("/pulse/invites/pending", headers=_auth(**claims))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_signature_invalide_401(client):
    r = await client.get("/pulse/invites/pending", headers={"Authorization": "Bearer pas.un.jwt"})
    assert r.status_code == 401
