# -*- coding: utf-8 -*-
import logging
from typing import List, Optional, Sequence
from urllib.parse import quote

import config
from core.audio_resolver import AudioCandidate, AudioRequest, AudioSourceResolver, SpeechCandidate, UrlCandidate
from core.command_router import CommandInvocation, CommandRouter
from core.convai_client import ConvaiClient
from core.errors import AllSourcesExhausted, PlaybackError
from core.interaction_gate import InteractionGate
from core.session_manager import VoiceSessionManager
from utils.text_helpers import is_url, normalize_for_tts, truncate

log = logging.getLogger('VoiceBot.Commands')

SAY_USAGE = "ℹ️ Usage: `say <text or audio URL>`"
ASK_USAGE = "ℹ️ Usage: `ask <question>`"
PAUSED_MESSAGE = "⏸️ Listening is paused. Use `resume` first."
REPLY_AUDIO_FAILED = "⚠️ Could not play the audio response (format/URL?)."
VOICE_LOST_NOTICE = "⚠️ The voice connection was lost. Use `join` to reconnect."


class VoiceCommands:
    """join, say, leave, pause, resume and ask, expressed against the core services."""

    def __init__(
        self,
        sessions: VoiceSessionManager,
        resolver: AudioSourceResolver,
        gate: InteractionGate,
        convai: ConvaiClient,
        *,
        say_templates: Optional[Sequence[str]] = None,
        tts_enabled: bool = config.TTS_ENABLED,
        tts_voice: str = config.DEFAULT_TTS_VOICE,
        max_say_length: int = config.MAX_SAY_LENGTH,
        reply_timeout: float = config.REPLY_PLAYBACK_TIMEOUT_SECONDS,
    ):
        self.sessions = sessions
        self.resolver = resolver
        self.gate = gate
        self.convai = convai
        self.say_templates = list(config.SAY_SOURCE_URLS if say_templates is None else say_templates)
        self.tts_enabled = tts_enabled
        self.tts_voice = tts_voice
        self.max_say_length = max_say_length
        self.reply_timeout = reply_timeout

    def register(self, router: CommandRouter) -> None:
        router.register("join", self.join, description="Join your voice channel (or the configured one).")
        router.register("say", self.say, description="Speak text, or play an audio URL.")
        router.register("leave", self.leave, description="Leave the voice channel.")
        router.register("pause", self.pause, defer=False, description="Stop sending questions to the character.")
        router.register("resume", self.resume, defer=False, description="Resume sending questions to the character.")
        router.register("ask", self.ask, description="Ask the character something.")

    # --- Handlers ---

    async def join(self, inv: CommandInvocation) -> str:
        session = await self.sessions.ensure_session(inv.guild, inv.member)
        return f"✅ Joined **{getattr(session.channel, 'name', 'the voice channel')}**."

    async def say(self, inv: CommandInvocation) -> str:
        text = inv.text.strip()
        if not text:
            return SAY_USAGE
        if is_url(text):
            request = AudioRequest.from_urls([text])
        else:
            if len(text) > self.max_say_length:
                return f"❌ Text is too long (max {self.max_say_length} characters)."
            spoken = normalize_for_tts(text)
            if not spoken:
                return SAY_USAGE
            request = AudioRequest(self.speech_candidates(spoken))

        session = await self.sessions.ensure_session(inv.guild, inv.member)
        resource = await self.resolver.resolve(request)
        await session.player.play(resource)
        if is_url(text):
            return f"🔊 Playing <{truncate(text, 100)}>."
        return f"🗣️ Saying: \"{truncate(text)}\""

    async def leave(self, inv: CommandInvocation) -> str:
        if inv.guild is None:
            return "❌ This command must be used in a server."
        if await self.sessions.destroy_session(inv.guild.id):
            return "👋 Left the voice channel."
        return "ℹ️ I'm not in a voice channel."

    async def pause(self, inv: CommandInvocation) -> str:
        if not self.gate.set_paused(True):
            return "⏸️ Listening was already paused."
        return "⏸️ Listening paused. Questions will not be sent until `resume`."

    async def resume(self, inv: CommandInvocation) -> str:
        if not self.gate.set_paused(False):
            return "▶️ Listening was not paused."
        return "▶️ Listening resumed."

    async def ask(self, inv: CommandInvocation) -> Optional[str]:
        prompt = inv.text.strip()
        if not prompt:
            return ASK_USAGE
        if self.gate.is_paused():
            log.info(f"{inv.log_prefix} Gate is paused, not calling the conversation API.")
            return PAUSED_MESSAGE

        reply = await self.convai.ask(prompt)
        text = reply.text or "🤷 (no reply text)"
        if inv.guild is not None and await self.sessions.take_lost(inv.guild.id) is not None:
            log.info(f"{inv.log_prefix} Voice connection was lost, sending the reply as text.")
            return f"{text}\n{VOICE_LOST_NOTICE}"
        if reply.echoed or not reply.audio_url:
            return text

        session = self.sessions.get_session(inv.guild.id) if inv.guild is not None else None
        if session is None:
            log.info(f"{inv.log_prefix} Reply has audio but there is no live session, sending text only.")
            return text

        await inv.responder.send(text)
        try:
            resource = await self.resolver.resolve(AudioRequest([UrlCandidate(reply.audio_url)]))
            await session.player.play(resource)
            await session.player.wait_idle(timeout=self.reply_timeout)
        except (AllSourcesExhausted, PlaybackError) as e:
            log.warning(f"{inv.log_prefix} Reply audio failed: {type(e).__name__}: {e}")
            return f"{text}\n{REPLY_AUDIO_FAILED}"
        return None

    # --- Helpers ---

    def speech_candidates(self, text: str) -> List[AudioCandidate]:
        quoted = quote(text, safe="")
        candidates: List[AudioCandidate] = [UrlCandidate(template.replace("{text}", quoted)) for template in self.say_templates]
        if self.tts_enabled and config.EDGE_TTS_AVAILABLE:
            candidates.append(SpeechCandidate(text, self.tts_voice))
        return candidates
