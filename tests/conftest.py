# -*- coding: utf-8 -*-
import asyncio
import io
from typing import Any, Callable, List, Optional

import discord
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.audio_resolver import AudioResource

FRAME_BYTES = 3840 # 20ms of 48kHz stereo s16le
WAV_HEAD = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 48


def make_resource(label: str = "clip", frames: int = 5) -> AudioResource:
    buffer = io.BytesIO(b"\x00" * FRAME_BYTES * frames)
    return AudioResource(label=label, format="wav", source=discord.PCMAudio(buffer), buffer=buffer)


def fake_decoder(data: bytes, fmt: str, label: str):
    buffer = io.BytesIO(b"\x00" * FRAME_BYTES * 3)
    return discord.PCMAudio(buffer), buffer


class FakeVoiceClient:
    """Stands in for discord.VoiceClient. ``play`` schedules the first read like the player thread would."""

    def __init__(self, channel=None, guild=None):
        self.channel = channel
        self.guild = guild
        self.connected = True
        self.auto_start = True
        self.fail_next: Optional[Exception] = None
        self.play_calls = 0
        self.source: Optional[discord.AudioSource] = None
        self._after: Optional[Callable[[Optional[Exception]], None]] = None
        self.disconnect_calls = 0
        self.moves: List[Any] = []

    def is_connected(self) -> bool:
        return self.connected

    def is_playing(self) -> bool:
        return self._after is not None

    def play(self, source, *, after=None):
        if self._after is not None:
            raise discord.ClientException("Already playing audio.")
        self.play_calls += 1
        self.source = source
        self._after = after
        loop = asyncio.get_running_loop()
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            loop.call_soon(self.finish, error)
        elif self.auto_start:
            loop.call_soon(source.read)

    def finish(self, error: Optional[Exception] = None) -> None:
        after, self._after = self._after, None
        if after is not None:
            after(error)

    def stop(self) -> None:
        # The player is detached at once; its after callback still runs later.
        after, self._after = self._after, None
        if after is not None:
            asyncio.get_running_loop().call_soon(after, None)

    async def move_to(self, channel) -> None:
        self.moves.append(channel)
        self.channel = channel

    async def disconnect(self, *, force: bool = False) -> None:
        self.disconnect_calls += 1
        self.connected = False
        if self.guild is not None and self.guild.voice_client is self:
            self.guild.voice_client = None


class FakeVoiceChannel:
    def __init__(self, guild, channel_id: int = 100, name: str = "General"):
        self.guild = guild
        self.id = channel_id
        self.name = name
        self.connect_count = 0
        self.connect_delay = 0.0
        self.connect_error: Optional[BaseException] = None
        self.clients: List[FakeVoiceClient] = []

    async def connect(self, *, timeout: float = 60.0, reconnect: bool = True) -> FakeVoiceClient:
        self.connect_count += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        client = FakeVoiceClient(channel=self, guild=self.guild)
        self.guild.voice_client = client
        self.clients.append(client)
        return client


class FakeGuild:
    def __init__(self, guild_id: int = 1):
        self.id = guild_id
        self.name = f"Guild {guild_id}"
        self.voice_client: Optional[FakeVoiceClient] = None
        self.channels = {}

    def add_voice_channel(self, channel_id: int = 100, name: str = "General") -> FakeVoiceChannel:
        channel = FakeVoiceChannel(self, channel_id, name)
        self.channels[channel_id] = channel
        return channel

    def get_channel(self, channel_id: int):
        return self.channels.get(channel_id)


class FakeVoiceState:
    def __init__(self, channel):
        self.channel = channel


class FakeMember:
    def __init__(self, member_id: int = 42, name: str = "tester", channel=None):
        self.id = member_id
        self.name = name
        self.voice = FakeVoiceState(channel) if channel is not None else None


class FakeResponder:
    def __init__(self, fail_send: bool = False):
        self.acknowledged = False
        self.sent: List[str] = []
        self.fail_send = fail_send

    async def acknowledge(self) -> None:
        self.acknowledged = True

    async def send(self, content: str) -> None:
        if self.fail_send:
            raise RuntimeError("interaction expired")
        self.sent.append(content)


@pytest.fixture
def guild():
    return FakeGuild()


@pytest.fixture
async def audio_server():
    """Local HTTP server: /missing is 404, /clip is a WAV body, /slow never answers in time."""
    hits = {"clip": 0, "never": 0}

    async def missing(request):
        return web.Response(status=404, text="not found")

    async def clip(request):
        hits["clip"] += 1
        return web.Response(body=WAV_HEAD + b"\x00" * 1024, content_type="audio/wav")

    async def never(request):
        hits["never"] += 1
        return web.Response(body=WAV_HEAD, content_type="audio/wav")

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(body=WAV_HEAD)

    async def html(request):
        return web.Response(text="<html><body>Error</body></html>", content_type="text/html")

    async def empty(request):
        return web.Response(body=b"")

    app = web.Application()
    app.router.add_get('/missing', missing)
    app.router.add_get('/clip', clip)
    app.router.add_get('/never', never)
    app.router.add_get('/slow', slow)
    app.router.add_get('/html', html)
    app.router.add_get('/empty', empty)
    server = TestServer(app)
    await server.start_server()
    server.hits = hits
    yield server
    await server.close()
