# -*- coding: utf-8 -*-
from typing import List, Optional, Tuple


class VoiceBotError(Exception):
    """Base class for failures that are reported back to the invoking user."""
    user_message = "❌ Something went wrong."

    def __init__(self, detail: Optional[str] = None, *, user_message: Optional[str] = None):
        super().__init__(detail or self.user_message)
        self.detail = detail
        if user_message is not None:
            self.user_message = user_message


class ChannelUnavailable(VoiceBotError):
    user_message = "❌ Join a voice channel first (or set VOICE_CHANNEL_ID)."


class ConnectTimeout(VoiceBotError):
    user_message = "❌ Timed out connecting to the voice channel."


class ConnectError(VoiceBotError):
    user_message = "❌ Could not connect to the voice channel."


class AllSourcesExhausted(VoiceBotError):
    user_message = "❌ Could not fetch any playable audio."

    def __init__(self, failures: List[Tuple[str, BaseException]], detail: Optional[str] = None):
        if detail is None:
            detail = "; ".join(f"{label}: {type(exc).__name__}: {exc}" for label, exc in failures) or "no candidates"
        super().__init__(detail)
        self.failures = failures


class PlaybackError(VoiceBotError):
    user_message = "❌ Playback failed."


class PlaybackSuperseded(PlaybackError):
    user_message = "⏭️ Playback was replaced by a newer request."


class ExternalApiError(VoiceBotError):
    user_message = "❌ The conversation service did not answer."


class ProbeError(Exception):
    """Raised when fetched bytes are not a recognised/decodable audio stream."""


class SourceFetchError(Exception):
    """Raised when one audio candidate cannot be fetched (non-2xx, too large, empty)."""
