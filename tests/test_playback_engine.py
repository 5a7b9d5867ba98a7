# -*- coding: utf-8 -*-
import asyncio

import discord
import pytest

from core.errors import PlaybackError, PlaybackSuperseded
from core.playback_engine import PlaybackEngine, PlayerState
from tests.conftest import FakeVoiceClient, make_resource


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def voice_client():
    return FakeVoiceClient()


@pytest.fixture
async def engine(voice_client):
    return PlaybackEngine(voice_client, start_timeout=1, name="test")


@pytest.mark.asyncio
async def test_play_resolves_once_playing(engine, voice_client):
    resource = make_resource("hello")
    await engine.play(resource)
    assert engine.state is PlayerState.PLAYING
    assert engine.current is resource
    assert engine.events.listener_count() == 0

    voice_client.finish()
    await settle()
    assert engine.state is PlayerState.IDLE
    assert resource.closed


@pytest.mark.asyncio
async def test_player_error_before_start_rejects(engine, voice_client):
    voice_client.fail_next = RuntimeError("decoder exploded")
    resource = make_resource()
    with pytest.raises(PlaybackError):
        await engine.play(resource)
    assert engine.state is PlayerState.IDLE
    assert engine.events.listener_count() == 0
    assert resource.closed


@pytest.mark.asyncio
async def test_client_exception_from_play_is_a_playback_error(engine, voice_client):
    def refuse(source, *, after=None):
        raise discord.ClientException("Not connected to voice.")

    voice_client.play = refuse
    resource = make_resource()
    with pytest.raises(PlaybackError):
        await engine.play(resource)
    assert engine.state is PlayerState.IDLE
    assert resource.closed


@pytest.mark.asyncio
async def test_start_timeout_stops_and_releases(voice_client):
    engine = PlaybackEngine(voice_client, start_timeout=0.05, name="test")
    voice_client.auto_start = False
    resource = make_resource()
    with pytest.raises(PlaybackError):
        await engine.play(resource)
    assert engine.state is PlayerState.IDLE
    assert not engine.is_active()
    assert resource.closed
    assert engine.events.listener_count() == 0


@pytest.mark.asyncio
async def test_no_listener_leak_over_many_plays(engine, voice_client):
    for i in range(1000):
        if i % 2:
            voice_client.fail_next = RuntimeError("bad frame")
            with pytest.raises(PlaybackError):
                await engine.play(make_resource(f"r{i}"))
        else:
            await engine.play(make_resource(f"r{i}"))
        assert engine.events.listener_count() == 0
    await settle()
    assert len(engine._stale) <= 1


@pytest.mark.asyncio
async def test_new_play_supersedes_pending_start(engine, voice_client):
    voice_client.auto_start = False
    first = make_resource("first")
    first_task = asyncio.ensure_future(engine.play(first))
    await settle()

    voice_client.auto_start = True
    second = make_resource("second")
    await engine.play(second)

    with pytest.raises(PlaybackSuperseded):
        await first_task
    await settle()
    assert engine.current is second
    assert first.closed
    assert not second.closed


@pytest.mark.asyncio
async def test_new_play_supersedes_playing_resource(engine, voice_client):
    first = make_resource("first")
    await engine.play(first)
    second = make_resource("second")
    await engine.play(second)
    await settle()
    assert engine.current is second
    assert engine.state is PlayerState.PLAYING
    assert first.closed


@pytest.mark.asyncio
async def test_wait_idle(engine, voice_client):
    assert await engine.wait_idle(timeout=0.01) is True

    await engine.play(make_resource())
    assert await engine.wait_idle(timeout=0.01) is False

    waiter = asyncio.ensure_future(engine.wait_idle(timeout=1))
    await settle()
    voice_client.finish()
    assert await waiter is True
    assert engine.events.listener_count() == 0


@pytest.mark.asyncio
async def test_wait_idle_surfaces_player_error(engine, voice_client):
    await engine.play(make_resource())
    waiter = asyncio.ensure_future(engine.wait_idle(timeout=1))
    await settle()
    voice_client.finish(RuntimeError("socket closed"))
    with pytest.raises(PlaybackError):
        await waiter


@pytest.mark.asyncio
async def test_connection_lost_auto_pauses_and_shutdown_releases(engine, voice_client):
    resource = make_resource()
    await engine.play(resource)
    engine.connection_lost()
    assert engine.state is PlayerState.AUTO_PAUSED

    engine.shutdown()
    assert engine.state is PlayerState.IDLE
    assert resource.closed


@pytest.mark.asyncio
async def test_stop_ends_current_resource(engine, voice_client):
    assert engine.stop() is False
    resource = make_resource()
    await engine.play(resource)
    assert engine.stop() is True
    await settle()
    assert engine.state is PlayerState.IDLE
    assert resource.closed
