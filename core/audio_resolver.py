# -*- coding: utf-8 -*-
import asyncio
import functools
import io
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import aiohttp
import discord
import edge_tts

import config
from core.errors import AllSourcesExhausted, ProbeError, SourceFetchError
from core.fallback import AttemptsExhausted, first_success
from utils import audio_processor
from utils.audio_probe import PROBE_BYTES, detect_format

log = logging.getLogger('VoiceBot.Resolver')

Decoder = Callable[[bytes, str, str], Tuple[discord.AudioSource, Optional[io.BytesIO]]]

CHUNK_SIZE = 64 * 1024


@dataclass
class AudioResource:
    """A probed, decoded stream ready to hand to a PlaybackEngine."""
    label: str
    format: str
    source: discord.AudioSource
    buffer: Optional[io.BytesIO] = None
    closed: bool = field(default=False, init=False)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.source.cleanup()
        except Exception as e:
            log.warning(f"RESOURCE: Error cleaning up source '{self.label}': {e}")
        if self.buffer is not None and not self.buffer.closed:
            self.buffer.close()


class AudioCandidate:
    """One place audio may come from. ``fetch`` returns the raw encoded bytes."""
    label = "candidate"

    async def fetch(self, http: aiohttp.ClientSession, max_bytes: int) -> bytes:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.label}>"


class UrlCandidate(AudioCandidate):
    def __init__(self, url: str):
        self.url = url
        self.label = url

    async def fetch(self, http: aiohttp.ClientSession, max_bytes: int) -> bytes:
        async with http.get(self.url) as resp:
            if not 200 <= resp.status < 300:
                raise SourceFetchError(f"Audio fetch failed: {resp.status} {resp.reason}")
            if resp.content_length is not None and resp.content_length > max_bytes:
                raise SourceFetchError(f"Audio body too large ({resp.content_length} > {max_bytes} bytes)")
            chunks: List[bytes] = []
            size = 0
            async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                size += len(chunk)
                if size > max_bytes:
                    raise SourceFetchError(f"Audio body exceeded {max_bytes} bytes")
                chunks.append(chunk)
        if size == 0:
            raise SourceFetchError("Audio body was empty")
        return b"".join(chunks)


class SpeechCandidate(AudioCandidate):
    """Synthesises the text with Edge-TTS (MP3 output)."""

    def __init__(self, text: str, voice: str = config.DEFAULT_TTS_VOICE):
        self.text = text
        self.voice = voice
        self.label = f"edge-tts:{voice}"

    async def fetch(self, http: aiohttp.ClientSession, max_bytes: int) -> bytes:
        mp3_bytes_list: List[bytes] = []
        communicate = edge_tts.Communicate(self.text, self.voice)
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                mp3_bytes_list.append(chunk["data"])
        mp3_data = b"".join(mp3_bytes_list)
        if not mp3_data:
            raise SourceFetchError("Edge-TTS generation yielded no audio data.")
        if len(mp3_data) > max_bytes:
            raise SourceFetchError(f"Edge-TTS output exceeded {max_bytes} bytes")
        return mp3_data


@dataclass
class AudioRequest:
    candidates: Sequence[AudioCandidate]
    attempt_timeout: float = config.FETCH_TIMEOUT_SECONDS

    @classmethod
    def from_urls(cls, urls: Sequence[str], attempt_timeout: float = config.FETCH_TIMEOUT_SECONDS) -> "AudioRequest":
        return cls([UrlCandidate(url) for url in urls], attempt_timeout)


class AudioSourceResolver:
    """Turns an AudioRequest into the first AudioResource that fetches, probes and decodes."""

    def __init__(
        self,
        *,
        decoder: Decoder = audio_processor.decode_to_pcm,
        max_bytes: int = config.MAX_AUDIO_BYTES,
        decode_timeout: float = config.DECODE_TIMEOUT_SECONDS,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self._decoder = decoder
        self.max_bytes = max_bytes
        self.decode_timeout = decode_timeout
        self._http = http_session
        self._owns_http = http_session is None

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    async def close(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()

    async def resolve(self, request: AudioRequest) -> AudioResource:
        if not request.candidates:
            raise AllSourcesExhausted([], "No audio candidates were supplied.")
        log.debug(f"RESOLVE: {len(request.candidates)} candidate(s), fetch {request.attempt_timeout}s / decode {self.decode_timeout}s each: {list(request.candidates)}")
        try:
            resource = await first_success(
                request.candidates,
                functools.partial(self._attempt, fetch_timeout=request.attempt_timeout),
                label=lambda candidate: candidate.label,
            )
        except AttemptsExhausted as e:
            log.error(f"RESOLVE: All {len(e.failures)} audio candidate(s) failed.")
            raise AllSourcesExhausted(e.failures) from e
        log.info(f"RESOLVE: Using '{resource.label}' ({resource.format}).")
        return resource

    async def _attempt(self, candidate: AudioCandidate, *, fetch_timeout: float) -> AudioResource:
        try:
            data = await asyncio.wait_for(candidate.fetch(self._get_http(), self.max_bytes), timeout=fetch_timeout)
        except asyncio.TimeoutError as e:
            raise SourceFetchError(f"Fetch timed out after {fetch_timeout}s") from e
        fmt = detect_format(data[:PROBE_BYTES])
        log.debug(f"RESOLVE: '{candidate.label}' probed as {fmt} ({len(data)} bytes).")

        loop = asyncio.get_running_loop()
        decoding = loop.run_in_executor(None, self._decoder, data, fmt, candidate.label)
        try:
            # Shielded so the executor future keeps its result if we stop waiting.
            source, buffer = await asyncio.wait_for(asyncio.shield(decoding), timeout=self.decode_timeout)
        except asyncio.TimeoutError as e:
            decoding.add_done_callback(functools.partial(_release_late_decode, candidate.label, fmt))
            raise ProbeError(f"Decoding '{candidate.label}' did not finish within {self.decode_timeout}s") from e
        except asyncio.CancelledError:
            decoding.add_done_callback(functools.partial(_release_late_decode, candidate.label, fmt))
            raise
        return AudioResource(label=candidate.label, format=fmt, source=source, buffer=buffer)


def _release_late_decode(label: str, fmt: str, decoding: "asyncio.Future[Tuple[discord.AudioSource, Optional[io.BytesIO]]]") -> None:
    """Closes the output of a decode nobody is waiting for any more."""
    if decoding.cancelled() or decoding.exception() is not None:
        return
    source, buffer = decoding.result()
    log.debug(f"RESOLVE: Releasing late decode of '{label}'.")
    AudioResource(label=label, format=fmt, source=source, buffer=buffer).close()
