# -*- coding: utf-8 -*-
import logging
from typing import Optional

import discord

log = logging.getLogger('VoiceBot.Responders')


class Responder:
    """The acknowledgment path of one command invocation.

    ``acknowledge`` must be cheap and happen before any network or voice work.
    ``send`` reports the final outcome: it edits the acknowledgment when there
    is one and sends a fresh reply otherwise.
    """

    @property
    def acknowledged(self) -> bool:
        raise NotImplementedError

    async def acknowledge(self) -> None:
        raise NotImplementedError

    async def send(self, content: str) -> None:
        raise NotImplementedError


class InteractionResponder(Responder):
    def __init__(self, interaction: discord.Interaction, *, ephemeral: bool = False):
        self.interaction = interaction
        self.ephemeral = ephemeral

    @property
    def acknowledged(self) -> bool:
        return self.interaction.response.is_done()

    async def acknowledge(self) -> None:
        if not self.interaction.response.is_done():
            await self.interaction.response.defer(ephemeral=self.ephemeral)

    async def send(self, content: str) -> None:
        if self.interaction.response.is_done():
            await self.interaction.edit_original_response(content=content)
        else:
            await self.interaction.response.send_message(content, ephemeral=self.ephemeral)


class MessageResponder(Responder):
    """Prefix commands: a placeholder reply stands in for the deferral and is edited later."""
    PLACEHOLDER = "⏳ Working on it..."

    def __init__(self, message: discord.Message):
        self.message = message
        self.reply: Optional[discord.Message] = None

    @property
    def acknowledged(self) -> bool:
        return self.reply is not None

    async def acknowledge(self) -> None:
        if self.reply is None:
            self.reply = await self.message.reply(self.PLACEHOLDER, mention_author=False)

    async def send(self, content: str) -> None:
        if self.reply is not None:
            try:
                await self.reply.edit(content=content)
                return
            except discord.NotFound:
                log.warning(f"RESPOND: Placeholder reply to message {self.message.id} was deleted, sending a new one.")
                self.reply = None
        self.reply = await self.message.reply(content, mention_author=False)
