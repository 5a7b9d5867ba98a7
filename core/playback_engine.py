# -*- coding: utf-8 -*-
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Optional

import discord

import config
from core.audio_resolver import AudioResource
from core.errors import PlaybackError, PlaybackSuperseded
from core.event_waiter import EventWaiter

if TYPE_CHECKING:
    from discord.voice_client import VoiceClient

log = logging.getLogger('VoiceBot.Playback')


class PlayerState(Enum):
    IDLE = "Idle"
    BUFFERING = "Buffering"
    PLAYING = "Playing"
    PAUSED = "Paused"
    AUTO_PAUSED = "AutoPaused"


@dataclass(frozen=True)
class PlayerEvent:
    generation: int
    state: Optional[PlayerState] = None
    error: Optional[BaseException] = None
    superseded: bool = False


class _TrackedSource(discord.AudioSource):
    """Wraps a resource's source to report the first frame actually handed to the player."""

    def __init__(self, resource: AudioResource, on_first_frame: Callable[[], None]):
        self._resource = resource
        self._on_first_frame = on_first_frame
        self._started = False

    def read(self) -> bytes:
        data = self._resource.source.read()
        if data and not self._started:
            self._started = True
            self._on_first_frame()
        return data

    def is_opus(self) -> bool:
        return self._resource.source.is_opus()

    def cleanup(self) -> None:
        self._resource.close()


class PlaybackEngine:
    """Drives one voice client's player and exposes its lifecycle as awaitables.

    At most one resource is in flight. A ``play`` issued while another resource
    is pending or playing supersedes it: the older start is rejected with
    PlaybackSuperseded and its resource is stopped.

    ``after`` callbacks and ``read()`` run on the library's player thread, so
    every transition is marshalled onto the event loop before it touches state.
    """

    def __init__(self, voice_client: "VoiceClient", *, start_timeout: float = config.PLAYBACK_START_TIMEOUT_SECONDS, name: str = "player"):
        self.voice_client = voice_client
        self.start_timeout = start_timeout
        self.name = name
        self.state = PlayerState.IDLE
        self.events = EventWaiter(f"Player {name}")
        self._loop = asyncio.get_running_loop()
        self._generation = 0
        self._current: Optional[AudioResource] = None
        self._stale: Dict[int, AudioResource] = {}

    @property
    def current(self) -> Optional[AudioResource]:
        return self._current

    def is_active(self) -> bool:
        return self._current is not None

    # --- Commands ---

    async def play(self, resource: AudioResource, *, timeout: Optional[float] = None) -> None:
        """Starts ``resource`` and returns once its first frame reached the player."""
        timeout = self.start_timeout if timeout is None else timeout
        if self._current is not None:
            log.warning(f"PLAYER ({self.name}): New playback '{resource.label}' supersedes '{self._current.label}'.")
            self._supersede()

        self._generation += 1
        generation = self._generation
        self._current = resource

        def on_first_frame() -> None:
            self._post(PlayerEvent(generation, state=PlayerState.PLAYING))

        def after(error: Optional[Exception]) -> None:
            self._post(PlayerEvent(generation, state=PlayerState.IDLE, error=error))

        def started(event: PlayerEvent):
            if event.generation != generation:
                return None
            if event.superseded:
                return PlaybackSuperseded(f"'{resource.label}' was superseded before it started.")
            if event.error is not None:
                return PlaybackError(f"Player error before start: {event.error}")
            if event.state is PlayerState.IDLE:
                return PlaybackError(f"'{resource.label}' ended before producing audio.")
            return event.state is PlayerState.PLAYING

        with self.events.expect(started) as waiter:
            self._set_state(PlayerState.BUFFERING)
            try:
                self.voice_client.play(_TrackedSource(resource, on_first_frame), after=after)
            except (discord.ClientException, discord.opus.OpusNotLoaded, TypeError) as e:
                log.error(f"PLAYER ({self.name}): Could not start '{resource.label}': {e}")
                self._finish(generation)
                raise PlaybackError(f"Could not start playback: {e}") from e

            try:
                await asyncio.wait_for(waiter, timeout=timeout)
            except asyncio.TimeoutError:
                log.error(f"PLAYER ({self.name}): '{resource.label}' did not start within {timeout}s. Stopping it.")
                if self._generation == generation:
                    self._stop_voice_client()
                    self._finish(generation)
                raise PlaybackError(f"Playback did not start within {timeout}s.")
        log.info(f"PLAYER ({self.name}): Playing '{resource.label}'.")

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Waits for the current resource to end. False if ``timeout`` expired first."""
        if self._current is None:
            return True
        generation = self._generation
        label = self._current.label

        def finished(event: PlayerEvent):
            if event.generation != generation:
                return None
            if event.superseded:
                return True
            if event.state is PlayerState.IDLE:
                return PlaybackError(f"Player error during '{label}': {event.error}") if event.error else True
            return None

        with self.events.expect(finished) as waiter:
            try:
                await asyncio.wait_for(waiter, timeout=timeout)
            except asyncio.TimeoutError:
                log.warning(f"PLAYER ({self.name}): '{label}' still playing after {timeout}s.")
                return False
        return True

    def stop(self) -> bool:
        """Stops the current resource. The Idle transition arrives through the after callback."""
        if self._current is None:
            return False
        log.info(f"PLAYER ({self.name}): Stopping '{self._current.label}'.")
        self._stop_voice_client()
        return True

    def connection_lost(self) -> None:
        if self.state in (PlayerState.PLAYING, PlayerState.BUFFERING):
            self._set_state(PlayerState.AUTO_PAUSED)
            self.events.emit(PlayerEvent(self._generation, state=PlayerState.AUTO_PAUSED))

    def shutdown(self) -> None:
        """Releases everything; used when the owning session is destroyed."""
        generation = self._generation
        if self._current is not None:
            self._stop_voice_client()
            self._dispatch(PlayerEvent(generation, state=PlayerState.IDLE))
        for resource in self._stale.values():
            resource.close()
        self._stale.clear()

    # --- Internals ---

    def _supersede(self) -> None:
        old_generation = self._generation
        old = self._current
        self._current = None
        if old is not None:
            self._stale[old_generation] = old
        self.events.emit(PlayerEvent(old_generation, superseded=True))
        self._stop_voice_client()

    def _stop_voice_client(self) -> None:
        try:
            self.voice_client.stop()
        except Exception as e:
            log.warning(f"PLAYER ({self.name}): Error stopping voice client: {e}")

    def _post(self, event: PlayerEvent) -> None:
        try:
            self._loop.call_soon_threadsafe(self._dispatch, event)
        except RuntimeError:
            log.debug(f"PLAYER ({self.name}): Event loop closed, dropping {event}.")

    def _dispatch(self, event: PlayerEvent) -> None:
        if event.generation == self._generation and self._current is not None:
            if event.state is PlayerState.PLAYING and self.state is PlayerState.BUFFERING:
                self._set_state(PlayerState.PLAYING)
            elif event.state is PlayerState.IDLE:
                if event.error is not None:
                    log.error(f"PLAYER ({self.name}): Playback error for '{self._current.label}': {event.error}", exc_info=event.error)
                self._finish(event.generation)
        elif event.state is PlayerState.IDLE:
            stale = self._stale.pop(event.generation, None)
            if stale is not None:
                log.debug(f"PLAYER ({self.name}): Superseded '{stale.label}' reached Idle.")
                stale.close()
        self.events.emit(event)

    def _finish(self, generation: int) -> None:
        if generation != self._generation:
            return
        resource = self._current
        self._current = None
        self._set_state(PlayerState.IDLE)
        if resource is not None:
            resource.close()

    def _set_state(self, new_state: PlayerState) -> None:
        if new_state is self.state:
            return
        log.info(f"PLAYER ({self.name}): {self.state.value} -> {new_state.value}")
        self.state = new_state
