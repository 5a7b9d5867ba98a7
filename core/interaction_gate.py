# -*- coding: utf-8 -*-
import logging

log = logging.getLogger('VoiceBot.Gate')


class InteractionGate:
    """Process-wide pause flag for outbound conversational API calls. Never touches voice."""

    def __init__(self, paused: bool = False):
        self._paused = paused

    def is_paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> bool:
        """Sets the flag and returns whether it changed."""
        changed = self._paused != paused
        self._paused = paused
        log.info(f"GATE: Listening paused: {paused}{'' if changed else ' (unchanged)'}")
        return changed
