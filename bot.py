# -*- coding: utf-8 -*-
import logging
import platform
import sys
from typing import Optional

import discord

import config
from core.audio_resolver import AudioSourceResolver
from core.command_router import CommandRouter
from core.convai_client import ConvaiClient
from core.interaction_gate import InteractionGate
from core.session_manager import VoiceSessionManager
from core.voice_commands import VoiceCommands
from utils.health_server import HealthServer
from utils.opus_loader import load_opus

# --- Logging Setup ---
log_formatter = logging.Formatter('%(asctime)s:%(levelname)s:%(name)s: %(message)s')
console_handler = logging.StreamHandler()
console_handler.setFormatter(log_formatter)
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
root_logger.addHandler(console_handler)
logging.getLogger('discord').setLevel(logging.WARNING) # Reduce library noise
log = logging.getLogger('VoiceBot.Main')

COG_NAMES = ['events', 'voice', 'text_commands']


class VoiceBot(discord.Bot):
    """discord.Bot carrying the voice services. Cogs reach them through ``self.bot``."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.voice_sessions = VoiceSessionManager()
        self.audio_resolver = AudioSourceResolver()
        self.interaction_gate = InteractionGate()
        self.convai = ConvaiClient()
        self.command_router = CommandRouter()
        VoiceCommands(self.voice_sessions, self.audio_resolver, self.interaction_gate, self.convai).register(self.command_router)
        self.health_server: Optional[HealthServer] = HealthServer(config.HEALTH_PORT) if config.HEALTH_PORT else None

    async def start(self, *args, **kwargs):
        if self.health_server is not None:
            await self.health_server.start()
        await super().start(*args, **kwargs)

    async def close(self):
        log.info("Shutting down: destroying voice sessions and closing HTTP sessions.")
        try:
            await self.voice_sessions.close_all()
            await self.audio_resolver.close()
            await self.convai.close()
            if self.health_server is not None:
                await self.health_server.stop()
        except Exception as e:
            log.error(f"Error during shutdown cleanup: {e}", exc_info=True)
        await super().close()


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.voice_states = True    # Bot's own voice state and invoker's channel
    intents.guilds = True
    intents.members = True         # Resolving the DM author as a member of GUILD_ID
    intents.message_content = True # Prefix commands
    return intents


def create_bot() -> VoiceBot:
    debug_guilds = [config.GUILD_ID] if config.GUILD_ID else None
    bot = VoiceBot(intents=build_intents(), debug_guilds=debug_guilds)

    log.info("Loading Cogs...")
    loaded_cogs = 0
    for cog_name in COG_NAMES:
        cog_path = f"cogs.{cog_name}"
        try:
            bot.load_extension(cog_path)
            log.info(f"Successfully loaded Cog: {cog_path}")
            loaded_cogs += 1
        except discord.errors.ExtensionNotFound:
            log.error(f"Cog not found: {cog_path}. Skipping.")
        except discord.errors.ExtensionAlreadyLoaded:
            log.warning(f"Cog already loaded: {cog_path}. Skipping.")
        except Exception as e:
            log.error(f"Failed to load Cog {cog_path}: {e}", exc_info=True)
    log.info(f"Finished loading Cogs ({loaded_cogs}/{len(COG_NAMES)} successful).")
    return bot


def main() -> None:
    if not config.BOT_TOKEN:
        log.critical("CRITICAL ERROR: DISCORD_TOKEN is not set. Exiting.")
        sys.exit(1)
    if not config.NACL_AVAILABLE:
        log.critical("CRITICAL: PyNaCl library not found. Voice WILL NOT WORK. Install: pip install \"py-cord[voice]\"")
    load_opus()

    bot = create_bot()
    log.info(f"Starting Bot (Python {platform.python_version()}, py-cord {discord.__version__})")
    try:
        bot.run(config.BOT_TOKEN)
    except discord.errors.LoginFailure:
        log.critical("CRITICAL STARTUP ERROR: Login Failure - Invalid DISCORD_TOKEN.")
        sys.exit(1)
    except discord.errors.PrivilegedIntentsRequired as e:
        log.critical(f"CRITICAL STARTUP ERROR: Missing Privileged Intents: {e}. Enable in Dev Portal.")
        sys.exit(1)
    finally:
        log.info("Bot process has ended.")


if __name__ == "__main__":
    main()
