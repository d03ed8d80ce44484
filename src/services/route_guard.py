"""Route guard for authenticated pages and the pending-approval poll loop."""

import asyncio
import os
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Union
from urllib.parse import quote

from supabase import Client

from src.models.profile import Role
from src.models.session import Session
from src.services.roles import resolve_role
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"
ADMIN_PATH = "/admin"

DEFAULT_POLL_INTERVAL_SECONDS = 10.0


class GuardState(str, Enum):
    LOADING = "loading"
    ADMIN = "admin"
    BUYER = "buyer"
    PENDING = "pending"


class GuardAction(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    SHOW_PENDING = "show_pending"
    WAIT = "wait"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    location: Optional[str] = None
    state: GuardState = GuardState.LOADING


def is_admin_route(path: str) -> bool:
    return path == ADMIN_PATH or path.startswith(ADMIN_PATH + "/")


def login_redirect(path: str) -> str:
    return f"{LOGIN_PATH}?next={quote(path, safe='')}"


def decide(path: str, has_session: bool, role: Optional[Role]) -> GuardDecision:
    """
    Decide what an authenticated page shows for ``path``.

    ``role`` is None while it is still being resolved. Pending users get the
    approval screen on every route; non-admins are sent away from admin routes.
    """
    if not has_session:
        return GuardDecision(GuardAction.REDIRECT, login_redirect(path))

    if role is None:
        return GuardDecision(GuardAction.WAIT, state=GuardState.LOADING)

    state = GuardState(role.value)

    if role == Role.PENDING:
        return GuardDecision(GuardAction.SHOW_PENDING, state=state)

    if is_admin_route(path) and role != Role.ADMIN:
        return GuardDecision(GuardAction.REDIRECT, DASHBOARD_PATH, state=state)

    return GuardDecision(GuardAction.ALLOW, state=state)


async def guard(path: str, session: Optional[Session], client: Optional[Client] = None) -> GuardDecision:
    """Re-resolve the caller's role and decide. Nothing is cached between calls."""
    if session is None:
        return decide(path, False, None)

    role = await resolve_role(session.user_id, client)
    decision = decide(path, True, role)
    logger.debug(
        "Route guard decision",
        path=path,
        user_id=mask_user_id(session.user_id),
        role=role.value,
        action=decision.action.value,
        location=decision.location
    )
    return decision


def get_poll_interval() -> float:
    return float(os.environ.get("PENDING_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS))


RoleCallback = Callable[[Role], Union[None, Awaitable[None]]]


class PendingApprovalPoller:
    """Poll a pending user's role at a fixed interval until it changes.

    The loop ends when the role resolves to anything other than pending or
    when ``stop()`` is called.
    """

    def __init__(
        self,
        user_id: str,
        on_change: Optional[RoleCallback] = None,
        interval_seconds: Optional[float] = None,
        client: Optional[Client] = None,
    ):
        self.user_id = user_id
        self.on_change = on_change
        self.interval_seconds = interval_seconds if interval_seconds is not None else get_poll_interval()
        self.client = client
        self.role: Role = Role.PENDING
        self.polls = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.info(
                "Pending approval poll started",
                user_id=mask_user_id(self.user_id),
                interval_seconds=self.interval_seconds
            )
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def wait(self) -> Role:
        """Wait for the loop to finish and return the final role."""
        if self._task is not None:
            await self._task
        return self.role

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.polls += 1
            role = await resolve_role(self.user_id, self.client)
            if role == Role.PENDING:
                continue

            self.role = role
            logger.info(
                "Pending user role changed",
                user_id=mask_user_id(self.user_id),
                role=role.value,
                polls=self.polls
            )
            if self.on_change is not None:
                try:
                    result = self.on_change(role)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception as e:
                    logger.error(
                        "Role change callback failed",
                        user_id=mask_user_id(self.user_id),
                        role=role.value,
                        error=str(e),
                        exc_info=True
                    )
            return

    async def __aenter__(self) -> "PendingApprovalPoller":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False
