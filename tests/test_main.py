from __future__ import annotations

import asyncio

from session_service import main
from session_service.domain.identity import IdentityService


def test_lifespan_builds_service_and_closes_pool(monkeypatch):
    opened = []
    closed = []
    monkeypatch.setattr(main.ConnectionPool, "open", lambda self, *args, **kwargs: opened.append(self))
    monkeypatch.setattr(main.ConnectionPool, "close", lambda self, *args, **kwargs: closed.append(self))
    monkeypatch.setattr(main.AccountRepository, "create_schema", lambda self: None)

    async def run_lifespan():
        async with main.lifespan(main.app):
            assert isinstance(main.app.state.identity_service, IdentityService)
            assert main.app.state.cookie_secure is main.settings.cookie_secure

    asyncio.run(run_lifespan())

    assert len(opened) == 1
    assert closed == opened
