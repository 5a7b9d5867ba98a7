# -*- coding: utf-8 -*-
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv() # Load environment variables from .env file


def _get_int(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default

def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default

def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")

def _get_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# --- Core Settings ---
BOT_TOKEN = os.getenv('DISCORD_TOKEN') or os.getenv('BOT_TOKEN')
GUILD_ID = _get_int('GUILD_ID') # Guild used for DM-invoked text commands and slash registration
VOICE_CHANNEL_ID = _get_int('VOICE_CHANNEL_ID') # Fallback channel when the invoker is not in voice
COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# --- Liveness Endpoint ---
HEALTH_PORT = _get_int('PORT', 3000) # 0 disables the endpoint

# --- Voice Connection ---
CONNECT_TIMEOUT_SECONDS = _get_float('CONNECT_TIMEOUT_SECONDS', 10.0)

# --- Audio Sources ---
FETCH_TIMEOUT_SECONDS = _get_float('FETCH_TIMEOUT_SECONDS', 8.0) # Per candidate download
DECODE_TIMEOUT_SECONDS = _get_float('DECODE_TIMEOUT_SECONDS', 30.0) # Per candidate decode, after a successful download
MAX_AUDIO_BYTES = _get_int('MAX_AUDIO_BYTES', 25 * 1024 * 1024)
SAY_SOURCE_URLS = _get_list('SAY_SOURCE_URLS') # URL templates, '{text}' is replaced with the quoted text
MAX_SAY_LENGTH = _get_int('MAX_SAY_LENGTH', 300)

# --- Playback ---
PLAYBACK_START_TIMEOUT_SECONDS = _get_float('PLAYBACK_START_TIMEOUT_SECONDS', 10.0)
REPLY_PLAYBACK_TIMEOUT_SECONDS = _get_float('REPLY_PLAYBACK_TIMEOUT_SECONDS', 120.0)

# --- Text To Speech (edge-tts) ---
TTS_ENABLED = _get_bool('TTS_ENABLED', True)
DEFAULT_TTS_VOICE = os.getenv('DEFAULT_TTS_VOICE', 'en-US-JennyNeural')

# --- Conversational API (Convai) ---
CONVAI_API_KEY = os.getenv('CONVAI_API_KEY')
CONVAI_CHARACTER_ID = os.getenv('CONVAI_CHARACTER_ID')
CONVAI_API_URL = os.getenv('CONVAI_API_URL')
CONVAI_VOICE_FORMAT = os.getenv('CONVAI_VOICE_FORMAT', 'wav')
CONVAI_TIMEOUT_SECONDS = _get_float('CONVAI_TIMEOUT_SECONDS', 20.0)

# Check for essential libraries during startup
EDGE_TTS_AVAILABLE = False
NACL_AVAILABLE = False
try:
    import edge_tts
    EDGE_TTS_AVAILABLE = True
except ImportError: pass
try:
    import nacl
    NACL_AVAILABLE = True
except ImportError: pass
