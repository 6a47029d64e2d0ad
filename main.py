#!/usr/bin/env python3
"""
Entry point for the Discord Trivia Bot.

Reads optional settings from config.json (see config.example.json), sets up
console and file logging, then connects to Discord. The bot token comes from
DISCORD_BOT_TOKEN when set, otherwise from the 'bot.token' config entry.

Usage:
    python main.py
"""

import asyncio
import sys
import os
import json
import logging
from pathlib import Path

PLACEHOLDER_TOKEN = "YOUR_DISCORD_BOT_TOKEN_HERE"
QUIET_LOGGERS = ('discord', 'discord.http', 'httpx')


def load_config(config_path=Path("config.json")):
    """Read config.json, running on built-in defaults when the file is absent."""
    if not config_path.exists():
        print(f"ℹ️  {config_path} not found, using default settings")
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON in {config_path}: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"❌ Error loading {config_path}: {e}")
        sys.exit(1)


def get_bot_token(config):
    token = os.getenv('DISCORD_BOT_TOKEN') or config.get('bot', {}).get('token')
    if token and token != PLACEHOLDER_TOKEN:
        return token

    print("❌ Error: no Discord bot token found.")
    print("Set DISCORD_BOT_TOKEN or fill in 'bot.token' in config.json.")
    sys.exit(1)


def setup_logging_from_config(config):
    """Log to the console and to bot.log inside the configured directory."""
    log_config = config.get('logging', {})
    log_level = getattr(logging, log_config.get('level', 'INFO').upper(), logging.INFO)
    log_directory = Path(log_config.get('log_directory', './logs/'))
    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "bot.log", encoding='utf-8')
        ]
    )

    # Library request logs drown out quiz events at INFO
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


async def main():
    config = load_config()
    setup_logging_from_config(config)

    from trivia_quiz.bot import run_bot
    await run_bot(get_bot_token(config), config)


if __name__ == "__main__":
    try:
        print("🤖 Starting Discord Trivia Bot...")
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
    except Exception as e:
        print(f"❌ Failed to start bot: {e}")
        sys.exit(1)
