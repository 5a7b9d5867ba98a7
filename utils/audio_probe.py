# -*- coding: utf-8 -*-
import logging

from core.errors import ProbeError

log = logging.getLogger('VoiceBot.AudioProbe')

PROBE_BYTES = 64 # Enough for every signature below

# Detected format -> container name handed to ffmpeg (through pydub)
DECODER_FORMATS = {
    "mp3": "mp3",
    "ogg": "ogg",
    "webm": "matroska",
    "wav": "wav",
    "flac": "flac",
    "m4a": "mp4",
}


def detect_format(head: bytes) -> str:
    """Identifies the audio container from the first bytes of a stream.

    Raises ProbeError for anything outside the allow-list (HTML error pages,
    truncated bodies, unknown containers).
    """
    if len(head) < 4:
        raise ProbeError(f"Stream too short to probe ({len(head)} bytes).")

    if head.startswith(b"OggS"):
        return "ogg"
    if head.startswith(b"\x1a\x45\xdf\xa3"): # EBML header
        return "webm"
    if head.startswith(b"RIFF") and head[8:12] == b"WAVE":
        return "wav"
    if head.startswith(b"fLaC"):
        return "flac"
    if head[4:8] == b"ftyp":
        return "m4a"
    if head.startswith(b"ID3"):
        return "mp3"
    if head[0] == 0xFF and (head[1] & 0xE0) == 0xE0: # MPEG audio frame sync
        return "mp3"

    log.debug(f"PROBE: Unrecognised header {head[:16]!r}")
    raise ProbeError(f"Unrecognised audio container (header {head[:8].hex()}).")
