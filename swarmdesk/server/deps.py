"""FastAPI dependency injection for DB sessions, the caller's owner id and the runner.

Usage in route handlers::

    @router.post("/things")
    async def create_thing(db: DbSession, owner: Owner, thing: ThingCreate) -> ThingResponse:
        ...

``get_db`` / ``get_runner`` raise HTTP 503 if the lifespan has not wired
the backing object onto ``app.state``.
"""

from __future__ import annotations

import hmac
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from swarmdesk.server.execution.runner import SwarmRunner

_bearer = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an async SQLAlchemy session, closing it after the request.

    Managers commit their own writes.  If the handler raises, the session is
    simply closed and any open transaction is rolled back.
    """
    session_factory = request.app.state.db_session_factory
    if session_factory is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured.",
        )
    session: AsyncSession = session_factory()
    try:
        yield session
    finally:
        await session.close()


def get_runner(request: Request) -> SwarmRunner:
    runner: SwarmRunner | None = request.app.state.runner
    if runner is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Swarm runner not configured.",
        )
    return runner


def get_owner(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> str:
    """Resolve ``Authorization: Bearer <token>`` to an owner id (401 otherwise)."""
    tokens: dict[str, str] = request.app.state.auth_tokens or {}
    if credentials is not None:
        for token, owner_id in tokens.items():
            if hmac.compare_digest(credentials.credentials.encode(), token.encode()):
                return owner_id
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing bearer token.",
        headers={"WWW-Authenticate": "Bearer"},
    )


# -- Annotated type aliases for concise route signatures ---------------------

DbSession = Annotated[AsyncSession, Depends(get_db)]
"""Annotated dependency: async SQLAlchemy session (auto-closed after request)."""

Runner = Annotated[SwarmRunner, Depends(get_runner)]
"""Annotated dependency: the shared swarm runner."""

Owner = Annotated[str, Depends(get_owner)]
"""Annotated dependency: owner id of the authenticated caller."""
