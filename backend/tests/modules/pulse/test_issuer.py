# tests/modules/pulse/test_issuer.py
"""
Tests unitaires pour modules.pulse.issuer — InviteIssuer.

Couverture :
    new_token()     → 256 bits, url-safe, unique
    issue_batch()   → une invitation par membre, équipe figée, expiration TTL,
                      liens one-tap par score, échecs de notification collectés
                      sans bloquer le lot, invitations commitées avant tout envoi
"""
import pytest
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

from app.core.config import settings
from app.modules.pulse.issuer import InviteIssuer, new_token
from app.shared.enums import PulseScale
from app.shared.errors import NotificationSendFailed
from tests.conftest import NOW, TENANT_ID, make_async_db, make_member, make_question

pytestmark = pytest.mark.service


class RecordingSender:
    def __init__(self, refuse=(), explode=()):
        self.calls = []
        self.refuse = set(refuse)
        self.explode = set(explode)

    def send_pulse_invitation(self, recipient, question_text, links):
        self.calls.append((recipient, question_text, links))
        if recipient in self.explode:
            raise ConnectionError("smtp down")
        return recipient not in self.refuse


def _members():
    return [
        make_member(id="user-1", email="u1@acme.test", primary_team_id="team-a"),
        make_member(id="user-2", email="u2@acme.test", primary_team_id="team-b"),
        make_member(id="user-3", email="u3@acme.test", primary_team_id=None),
    ]


@pytest.fixture
def create_invites(mocker):
    return mocker.patch(
        "app.modules.pulse.issuer.repo.create_invites",
        AsyncMock(side_effect=lambda db, rows: [SimpleNamespace(**row) for row in rows]),
    )


def test_token_256_bits_url_safe():
    tokens = {new_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) >= 43 for t in tokens)
    assert all("/" not in t and "+" not in t for t in tokens)


@pytest.mark.asyncio
async def test_une_invitation_par_membre(create_invites):
    sender = RecordingSender()
    issuer = InviteIssuer(sender=sender)

    report = await issuer.issue_batch(
        make_async_db(),
        tenant_id=TENANT_ID,
        question=make_question(),
        cohort_name="weekday-0",
        members=_members(),
        now=NOW,
    )

    rows = create_invites.call_args.args[1]
    assert [r["user_id"] for r in rows] == ["user-1", "user-2", "user-3"]
    assert [r["team_id"] for r in rows] == ["team-a", "team-b", None]
    assert all(r["expires_at"] == NOW + timedelta(days=settings.PULSE_INVITE_TTL_DAYS) for r in rows)
    assert all(r["cohort_name"] == "weekday-0" for r in rows)
    assert len({r["token"] for r in rows}) == 3
    assert report.sent == 3 and report.failures == []


@pytest.mark.asyncio
async def test_liens_un_par_score(create_invites):
    sender = RecordingSender()
    issuer = InviteIssuer(sender=sender)

    report = await issuer.issue_batch(
        make_async_db(),
        tenant_id=TENANT_ID,
        question=make_question(scale=PulseScale.NPS_0_10),
        cohort_name="weekday-0",
        members=_members()[:1],
        now=NOW,
    )

    _, text, links = sender.calls[0]
    token = report.invites[0].token
    assert text == make_question().text
    assert [score for score, _ in links] == list(range(0, 11))
    assert links[3][1] == f"{settings.BASE_URL}/pulse/respond?token={token}&score=3"


@pytest.mark.asyncio
async def test_echecs_collectes_sans_bloquer(create_invites):
    sender = RecordingSender(refuse={"u1@acme.test"}, explode={"u2@acme.test"})
    issuer = InviteIssuer(sender=sender, concurrency=2)

    report = await issuer.issue_batch(
        make_async_db(),
        tenant_id=TENANT_ID,
        question=make_question(),
        cohort_name="weekday-0",
        members=_members(),
        now=NOW,
    )

    assert len(report.invites) == 3
    assert report.sent == 1
    assert sorted(f.user_id for f in report.failures) == ["user-1", "user-2"]
    assert all(isinstance(f, NotificationSendFailed) for f in report.failures)
    assert len(sender.calls) == 3


@pytest.mark.asyncio
async def test_membre_sans_email(create_invites):
    sender = RecordingSender()
    issuer = InviteIssuer(sender=sender)

    report = await issuer.issue_batch(
        make_async_db(),
        tenant_id=TENANT_ID,
        question=make_question(),
        cohort_name="all",
        members=[make_member(email=None)],
        now=NOW,
    )

    assert sender.calls == []
    assert [f.user_id for f in report.failures] == ["user-1"]


@pytest.mark.asyncio
async def test_invitations_commitees_avant_envoi(mocker):
    order = []

    async def fake_create(db, rows):
        order.append("commit")
        return [SimpleNamespace(**row) for row in rows]

    class OrderSender(RecordingSender):
        def send_pulse_invitation(self, recipient, question_text, links):
            order.append("send")
            return True

    mocker.patch("app.modules.pulse.issuer.repo.create_invites", AsyncMock(side_effect=fake_create))
    await InviteIssuer(sender=OrderSender()).issue_batch(
        make_async_db(),
        tenant_id=TENANT_ID,
        question=make_question(),
        cohort_name="weekday-0",
        members=_members(),
        now=NOW,
    )

    assert order == ["commit", "send", "send", "send"]
