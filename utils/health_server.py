# -*- coding: utf-8 -*-
import logging
from typing import Optional

from aiohttp import web

log = logging.getLogger('VoiceBot.Health')


async def handle_health(request: web.Request) -> web.Response:
    return web.Response(text="ok")


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get('/', handle_health)
    app.router.add_get('/health', handle_health)
    return app


class HealthServer:
    """Liveness endpoint for process supervisors. Carries no bot state."""

    def __init__(self, port: int, host: str = '0.0.0.0'):
        self.port = port
        self.host = host
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        if self._runner is not None:
            return
        runner = web.AppRunner(create_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            log.error(f"HEALTH: Could not bind {self.host}:{self.port}: {e}")
            return
        self._runner = runner
        log.info(f"HEALTH: Listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
