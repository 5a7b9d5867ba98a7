# -*- coding: utf-8 -*-
import ctypes.util
import logging
import os
import struct
import sys

import discord

log = logging.getLogger('VoiceBot.Opus')


def _bundled_dll_path() -> str:
    basedir = os.path.dirname(os.path.abspath(discord.opus.__file__))
    target = 'x64' if struct.calcsize('P') * 8 > 32 else 'x86'
    return os.path.join(basedir, 'bin', f'libopus-0.{target}.dll')


def load_opus() -> bool:
    """Tries the bundled Windows DLL, then find_library('opus'), then the bare name. Returns is_loaded()."""
    if discord.opus.is_loaded():
        log.info("Opus library already loaded.")
        return True

    attempts = []
    if sys.platform == 'win32':
        path = _bundled_dll_path()
        if os.path.exists(path):
            attempts.append(("bundled DLL", path))
        else:
            log.warning(f"Bundled Opus DLL not found: {path}")
    found_path = ctypes.util.find_library('opus')
    if found_path:
        attempts.append(("find_library", found_path))
    else:
        log.warning("Could not find Opus library using ctypes.util.find_library('opus').")
    attempts.append(("generic name", 'opus'))

    for how, name in attempts:
        try:
            discord.opus.load_opus(name)
        except OSError as e:
            log.debug(f"Opus load via {how} ({name}) failed: {e}")
            continue
        if discord.opus.is_loaded():
            log.info(f"Successfully loaded Opus via {how}: {name}")
            return True

    log.error("❌ FAILED to load the Opus library. Voice playback will not work.")
    return False
