"""Authenticated identity lookup for the sync components."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from ..utils.errors import AuthenticationRequired


@dataclass(frozen=True)
class AuthSession:
    """The authenticated owner whose repository is mirrored."""
    owner_id: str


SessionProvider = Callable[[], Union[Optional[AuthSession], Awaitable[Optional[AuthSession]]]]


class StaticSessionProvider:
    """Session provider holding a session set by the host application."""

    def __init__(self, session: Optional[AuthSession] = None):
        self.session = session

    def login(self, owner_id: str) -> AuthSession:
        self.session = AuthSession(owner_id=owner_id)
        return self.session

    def logout(self) -> None:
        self.session = None

    def __call__(self) -> Optional[AuthSession]:
        return self.session


async def require_session(provider: SessionProvider) -> AuthSession:
    """Resolve the current session or raise AuthenticationRequired."""
    session = provider()
    if asyncio.iscoroutine(session):
        session = await session
    if session is None or not session.owner_id:
        raise AuthenticationRequired()
    return session
