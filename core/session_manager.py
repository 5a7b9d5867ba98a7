# -*- coding: utf-8 -*-
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

import discord

import config
from core.errors import ChannelUnavailable, ConnectError, ConnectTimeout
from core.playback_engine import PlaybackEngine

if TYPE_CHECKING:
    from discord.voice_client import VoiceClient

log = logging.getLogger('VoiceBot.Sessions')

PlayerFactory = Callable[..., PlaybackEngine]


class SessionState(Enum):
    SIGNALLING = "Signalling"
    CONNECTING = "Connecting"
    READY = "Ready"
    DISCONNECTED = "Disconnected"
    DESTROYED = "Destroyed"


@dataclass
class VoiceSession:
    guild_id: int
    channel: Any
    voice_client: Optional["VoiceClient"] = None
    player: Optional[PlaybackEngine] = None
    state: SessionState = SessionState.SIGNALLING
    lost_reason: Optional[str] = None

    def transition(self, new_state: SessionState) -> None:
        if new_state is self.state:
            return
        log.info(f"SESSION (GID:{self.guild_id}): {self.state.value} -> {new_state.value}")
        self.state = new_state

    def is_live(self) -> bool:
        return (self.state is SessionState.READY
                and self.voice_client is not None
                and self.voice_client.is_connected())


class VoiceSessionManager:
    """Owns every guild's voice connection and the player subscribed to it.

    Only this class creates or destroys connections. Exactly one connection
    attempt runs per guild at a time: concurrent callers await the same task.
    """

    def __init__(
        self,
        *,
        connect_timeout: float = config.CONNECT_TIMEOUT_SECONDS,
        fallback_channel_id: Optional[int] = config.VOICE_CHANNEL_ID,
        player_factory: PlayerFactory = PlaybackEngine,
    ):
        self.connect_timeout = connect_timeout
        self.fallback_channel_id = fallback_channel_id
        self._player_factory = player_factory
        self.sessions: Dict[int, VoiceSession] = {}
        self._connecting: Dict[int, "asyncio.Task[VoiceSession]"] = {}

    def get_session(self, guild_id: int) -> Optional[VoiceSession]:
        """Returns the guild's session only if it is Ready and still connected."""
        session = self.sessions.get(guild_id)
        return session if session is not None and session.is_live() else None

    def resolve_channel(self, guild: discord.Guild, member: Optional[discord.Member] = None):
        """Invoker's current voice channel first, then the configured fallback channel."""
        voice_state = getattr(member, 'voice', None) if member is not None else None
        if voice_state is not None and voice_state.channel is not None:
            return voice_state.channel
        if self.fallback_channel_id:
            channel = guild.get_channel(self.fallback_channel_id)
            if channel is not None and hasattr(channel, 'connect'):
                log.debug(f"SESSION (GID:{guild.id}): Using fallback channel {self.fallback_channel_id}.")
                return channel
            log.warning(f"SESSION (GID:{guild.id}): Fallback channel {self.fallback_channel_id} not found or not a voice channel.")
        raise ChannelUnavailable(f"No voice channel for guild {guild.id}")

    async def ensure_session(self, guild: Optional[discord.Guild], member: Optional[discord.Member] = None) -> VoiceSession:
        if guild is None:
            raise ChannelUnavailable("Command used outside a guild", user_message="❌ This command must be used in a server.")
        guild_id = guild.id

        session = self.sessions.get(guild_id)
        if session is not None and session.is_live():
            await self._follow_member(session, member)
            return session
        reason = await self.take_lost(guild_id)
        if reason is not None:
            raise ConnectError(reason, user_message="❌ The voice connection was lost. Run the command again to reconnect.")

        # No await between the lookup and the registration below.
        pending = self._connecting.get(guild_id)
        if pending is None:
            channel = self.resolve_channel(guild, member)
            pending = asyncio.ensure_future(self._connect(guild, channel))
            self._connecting[guild_id] = pending
            pending.add_done_callback(lambda task, gid=guild_id: self._clear_pending(gid, task))
        else:
            log.debug(f"SESSION (GID:{guild_id}): Connection already in flight, waiting on it.")
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if pending.cancelled(): # Cancelled by destroy_session, not by our caller
                raise ConnectError(f"Connection attempt for guild {guild_id} was cancelled",
                                   user_message="❌ The voice connection was cancelled (the bot was told to leave).")
            raise

    async def take_lost(self, guild_id: int) -> Optional[str]:
        """Discards a registered session that is no longer live and returns why it was lost.

        None when the guild has no session or its session is still live.
        """
        session = self.sessions.get(guild_id)
        if session is None or session.is_live():
            return None
        reason = session.lost_reason or "voice connection was lost"
        log.warning(f"SESSION (GID:{guild_id}): Found dead session ({session.state.value}): {reason}. Reporting and discarding it.")
        await self._teardown(session)
        return reason

    async def destroy_session(self, guild_id: int) -> bool:
        """Tears down the guild's connection. Returns False if there was nothing to tear down."""
        pending = self._connecting.pop(guild_id, None)
        if pending is not None and not pending.done():
            log.info(f"SESSION (GID:{guild_id}): Cancelling in-flight connection.")
            pending.cancel()
        session = self.sessions.get(guild_id)
        if session is None:
            return pending is not None
        await self._teardown(session)
        return True

    def handle_disconnect(self, guild_id: int, reason: str = "disconnected from voice") -> None:
        """Called when the connection drops outside our control. No reconnect is attempted."""
        session = self.sessions.get(guild_id)
        if session is None or session.state is not SessionState.READY:
            return
        log.warning(f"SESSION (GID:{guild_id}): Connection lost after Ready: {reason}")
        session.lost_reason = reason
        session.transition(SessionState.DISCONNECTED)
        if session.player is not None:
            session.player.connection_lost()

    async def close_all(self) -> None:
        for guild_id in list(self.sessions) + list(self._connecting):
            await self.destroy_session(guild_id)

    # --- Internals ---

    def _clear_pending(self, guild_id: int, task: "asyncio.Task[VoiceSession]") -> None:
        if self._connecting.get(guild_id) is task:
            del self._connecting[guild_id]
        if not task.cancelled():
            task.exception() # Retrieved by awaiters; avoid "never retrieved" noise if all left

    async def _connect(self, guild: discord.Guild, channel) -> VoiceSession:
        session = VoiceSession(guild_id=guild.id, channel=channel)
        log.info(f"SESSION (GID:{guild.id}): Signalling for '{getattr(channel, 'name', channel)}'.")
        existing = guild.voice_client
        try:
            session.transition(SessionState.CONNECTING)
            if existing is not None and existing.is_connected():
                log.info(f"SESSION (GID:{guild.id}): Adopting existing voice client.")
                voice_client = existing
                if voice_client.channel != channel:
                    await asyncio.wait_for(voice_client.move_to(channel), timeout=self.connect_timeout)
            else:
                voice_client = await asyncio.wait_for(
                    channel.connect(timeout=self.connect_timeout, reconnect=False),
                    timeout=self.connect_timeout,
                )
        except asyncio.TimeoutError as e:
            session.transition(SessionState.DESTROYED)
            await self._cleanup_voice_client(guild)
            raise ConnectTimeout(f"Voice connection for guild {guild.id} not Ready after {self.connect_timeout}s") from e
        except asyncio.CancelledError:
            session.transition(SessionState.DESTROYED)
            await self._cleanup_voice_client(guild)
            raise
        except (discord.DiscordException, OSError, RuntimeError) as e:
            session.transition(SessionState.DESTROYED)
            await self._cleanup_voice_client(guild)
            raise ConnectError(f"Voice connection for guild {guild.id} failed: {type(e).__name__}: {e}") from e

        session.voice_client = voice_client
        session.player = self._player_factory(voice_client, name=f"GID:{guild.id}")
        session.transition(SessionState.READY)
        self.sessions[guild.id] = session
        return session

    async def _follow_member(self, session: VoiceSession, member: Optional[discord.Member]) -> None:
        voice_state = getattr(member, 'voice', None) if member is not None else None
        target = voice_state.channel if voice_state is not None else None
        if target is None or target == session.channel:
            return
        log.info(f"SESSION (GID:{session.guild_id}): Moving to '{getattr(target, 'name', target)}'.")
        try:
            await asyncio.wait_for(session.voice_client.move_to(target), timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            raise ConnectTimeout(f"Move to {target} timed out after {self.connect_timeout}s",
                                 user_message="❌ Timed out moving voice channels.") from e
        except (discord.DiscordException, OSError) as e:
            raise ConnectError(f"Move to {target} failed: {e}",
                               user_message="❌ Could not move to your voice channel.") from e
        session.channel = target

    async def _teardown(self, session: VoiceSession) -> None:
        if self.sessions.get(session.guild_id) is session:
            del self.sessions[session.guild_id]
        session.transition(SessionState.DESTROYED)
        if session.player is not None:
            session.player.shutdown()
        voice_client = session.voice_client
        if voice_client is not None:
            try:
                await voice_client.disconnect(force=True)
                log.info(f"SESSION (GID:{session.guild_id}): Disconnected.")
            except Exception as e:
                log.error(f"SESSION (GID:{session.guild_id}): Error during voice client disconnect: {e}", exc_info=True)

    async def _cleanup_voice_client(self, guild: discord.Guild) -> None:
        voice_client = guild.voice_client
        if voice_client is None:
            return
        try:
            await voice_client.disconnect(force=True)
        except Exception as e:
            log.warning(f"SESSION (GID:{guild.id}): Error cleaning up half-open voice client: {e}")
