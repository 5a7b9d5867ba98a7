# -*- coding: utf-8 -*-
import io
import logging
from typing import Tuple

import discord
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from core.errors import ProbeError
from utils.audio_probe import DECODER_FORMATS

log = logging.getLogger('VoiceBot.AudioProcessor')


def decode_to_pcm(data: bytes, fmt: str, label: str = "audio") -> Tuple[discord.PCMAudio, io.BytesIO]:
    """
    Decodes probed audio bytes into 48kHz stereo s16le for Discord playback.
    Returns a tuple: (PCMAudio source, BytesIO buffer).
    The BytesIO buffer MUST be closed by the caller after playback is finished or fails.
    Blocking (ffmpeg subprocess); run it in an executor.
    """
    decoder_format = DECODER_FORMATS.get(fmt)
    if decoder_format is None:
        raise ProbeError(f"Format '{fmt}' is not in the playback allow-list.")

    try:
        log.debug(f"AUDIO: Decoding '{label}' as {fmt} ({len(data)} bytes)...")
        with io.BytesIO(data) as raw_fp:
            segment = AudioSegment.from_file(raw_fp, format=decoder_format)
    except CouldntDecodeError as e:
        raise ProbeError(f"Could not decode '{label}' as {fmt}: {e}") from e

    if len(segment) == 0:
        raise ProbeError(f"Decoded '{label}' is empty.")

    # Resample and set channels for Discord
    segment = segment.set_frame_rate(48000).set_channels(2).set_sample_width(2)

    pcm_data_io = io.BytesIO()
    segment.export(pcm_data_io, format="s16le")
    pcm_data_io.seek(0)

    if pcm_data_io.getbuffer().nbytes == 0:
        pcm_data_io.close()
        raise ProbeError(f"Exported PCM for '{label}' is empty.")

    log.debug(f"AUDIO: Decoded '{label}' ({len(segment)}ms, {pcm_data_io.getbuffer().nbytes} PCM bytes)")
    return discord.PCMAudio(pcm_data_io), pcm_data_io
