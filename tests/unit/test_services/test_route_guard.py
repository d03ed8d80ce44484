"""Tests for the route guard and the pending approval poller."""

import asyncio
import logging

import pytest

from src.models.profile import Role
from src.models.session import Session
from src.services.route_guard import (
    GuardAction,
    GuardState,
    PendingApprovalPoller,
    decide,
    get_poll_interval,
    guard,
    is_admin_route,
    login_redirect,
)


@pytest.mark.unit
def test_no_session_redirects_to_login():
    decision = decide("/admin/offers", has_session=False, role=None)

    assert decision.action == GuardAction.REDIRECT
    assert decision.location == "/login?next=%2Fadmin%2Foffers"


@pytest.mark.unit
def test_waits_while_role_resolves():
    decision = decide("/dashboard", has_session=True, role=None)

    assert decision.action == GuardAction.WAIT
    assert decision.state == GuardState.LOADING


@pytest.mark.unit
@pytest.mark.parametrize("path", ["/dashboard", "/offers", "/admin"])
def test_pending_sees_approval_screen_everywhere(path):
    decision = decide(path, has_session=True, role=Role.PENDING)

    assert decision.action == GuardAction.SHOW_PENDING
    assert decision.state == GuardState.PENDING


@pytest.mark.unit
def test_buyer_bounced_from_admin():
    decision = decide("/admin", has_session=True, role=Role.BUYER)

    assert decision.action == GuardAction.REDIRECT
    assert decision.location == "/dashboard"


@pytest.mark.unit
def test_buyer_allowed_on_buyer_pages():
    decision = decide("/offers", has_session=True, role=Role.BUYER)
    assert decision.action == GuardAction.ALLOW
    assert decision.state == GuardState.BUYER


@pytest.mark.unit
def test_admin_allowed_everywhere():
    assert decide("/admin", True, Role.ADMIN).action == GuardAction.ALLOW
    assert decide("/dashboard", True, Role.ADMIN).action == GuardAction.ALLOW


@pytest.mark.unit
def test_admin_route_matching():
    assert is_admin_route("/admin")
    assert is_admin_route("/admin/users")
    assert not is_admin_route("/administrator")
    assert login_redirect("/offers") == "/login?next=%2Foffers"


@pytest.mark.unit
def test_poll_interval_from_env(monkeypatch):
    monkeypatch.delenv("PENDING_POLL_INTERVAL_SECONDS", raising=False)
    assert get_poll_interval() == 10.0

    monkeypatch.setenv("PENDING_POLL_INTERVAL_SECONDS", "2.5")
    assert get_poll_interval() == 2.5


@pytest.mark.unit
@pytest.mark.asyncio
async def test_guard_rereads_role_each_call(fake_db, buyer_profile):
    session = Session(user_id=buyer_profile["user_id"], access_token="token")

    first = await guard("/admin", session, fake_db)
    fake_db.find("profiles", user_id=buyer_profile["user_id"])["role"] = "admin"
    second = await guard("/admin", session, fake_db)

    assert first.action == GuardAction.REDIRECT
    assert second.action == GuardAction.ALLOW


@pytest.mark.unit
@pytest.mark.asyncio
async def test_guard_without_session(fake_db):
    decision = await guard("/dashboard", None, fake_db)

    assert decision.action == GuardAction.REDIRECT
    assert fake_db.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_poller_stops_once_approved(fake_db, pending_profile):
    changes = []
    poller = PendingApprovalPoller(
        pending_profile["user_id"],
        on_change=changes.append,
        interval_seconds=0.01,
        client=fake_db,
    )

    poller.start()
    await asyncio.sleep(0.05)
    assert poller.running
    assert poller.polls >= 1

    fake_db.find("profiles", user_id=pending_profile["user_id"])["role"] = "buyer"
    role = await asyncio.wait_for(poller.wait(), timeout=2)

    assert role == Role.BUYER
    assert changes == [Role.BUYER]
    assert not poller.running


@pytest.mark.unit
@pytest.mark.asyncio
async def test_poller_stop_cancels_loop(fake_db, pending_profile):
    async with PendingApprovalPoller(
        pending_profile["user_id"], interval_seconds=0.01, client=fake_db
    ) as poller:
        await asyncio.sleep(0.03)
        assert poller.running

    assert not poller.running
    assert poller.role == Role.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_poller_logs_failing_callback(fake_db, buyer_profile, caplog):
    def broken(role):
        raise RuntimeError("redirect failed")

    poller = PendingApprovalPoller(
        buyer_profile["user_id"], on_change=broken, interval_seconds=0.01, client=fake_db
    )

    with caplog.at_level(logging.ERROR, logger="src.services.route_guard"):
        poller.start()
        role = await asyncio.wait_for(poller.wait(), timeout=2)

    assert role == Role.BUYER
    assert not poller.running
    failures = [r for r in caplog.records if r.getMessage() == "Role change callback failed"]
    assert len(failures) == 1
    assert failures[0].error == "redirect failed"
