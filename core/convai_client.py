# -*- coding: utf-8 -*-
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

import config
from core.errors import ExternalApiError

log = logging.getLogger('VoiceBot.Convai')

ECHO_PREFIX = "(dev echo) "


@dataclass
class ConvaiReply:
    text: str
    audio_url: Optional[str] = None
    echoed: bool = False


def _first_str(data: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


class ConvaiClient:
    """Relays a prompt to the character API. Without credentials it echoes the prompt back."""

    def __init__(
        self,
        api_url: Optional[str] = config.CONVAI_API_URL,
        api_key: Optional[str] = config.CONVAI_API_KEY,
        character_id: Optional[str] = config.CONVAI_CHARACTER_ID,
        *,
        voice_format: str = config.CONVAI_VOICE_FORMAT,
        timeout: float = config.CONVAI_TIMEOUT_SECONDS,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.character_id = character_id
        self.voice_format = voice_format
        self.timeout = timeout
        self._http = http_session
        self._owns_http = http_session is None

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key and self.character_id)

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    async def close(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()

    async def ask(self, prompt: str) -> ConvaiReply:
        if not self.configured:
            log.info("CONVAI: No credentials configured, echoing prompt.")
            return ConvaiReply(text=f"{ECHO_PREFIX}{prompt}", echoed=True)

        payload = {
            "character_id": self.character_id,
            "query": prompt,
            "voice": {"format": self.voice_format},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        log.info(f"CONVAI: Sending query ({len(prompt)} chars) for character {self.character_id}.")
        try:
            async with self._get_http().post(
                self.api_url, json=payload, headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise ExternalApiError(f"Convai call failed: {resp.status} {resp.reason}")
                data: Any = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ExternalApiError(f"Convai call timed out after {self.timeout}s",
                                   user_message="❌ The conversation service timed out.") from e
        except aiohttp.ClientError as e:
            raise ExternalApiError(f"Convai call failed: {type(e).__name__}: {e}") from e
        except ValueError as e: # Body was not JSON
            raise ExternalApiError(f"Convai returned a non-JSON body: {e}") from e

        if not isinstance(data, dict):
            log.warning(f"CONVAI: Unexpected response shape ({type(data).__name__}), treating as empty reply.")
            return ConvaiReply(text="")

        text = _first_str(data, "text", "reply", "message") or ""
        audio_url = _first_str(data, "audioUrl", "audio_url")
        if audio_url is not None and not audio_url.lower().startswith(("http://", "https://")):
            log.warning(f"CONVAI: Ignoring non-HTTP audio URL in reply: {audio_url[:80]}")
            audio_url = None
        log.info(f"CONVAI: Reply received ({len(text)} chars, audio: {'yes' if audio_url else 'no'}).")
        return ConvaiReply(text=text, audio_url=audio_url)
