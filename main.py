#!/usr/bin/env python3
"""
Citizenship Quiz Bot entry point.

Usage:
    python main.py                      Run the Discord bot
    python main.py --check              Validate the question bank and exit
    python main.py --config other.json  Use another configuration file

The bot token comes from DISCORD_BOT_TOKEN or bot.token in the config file.
QUIZ_QUESTION_SOURCE overrides quiz.question_source (a file path or http(s) URL).
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from citizenship_quiz.config_manager import ConfigManager
from citizenship_quiz.data_manager import DataManager, DataManagerError

TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"
CONFIG_SECTIONS = ("bot", "quiz", "logging")

logger = logging.getLogger("citizenship_quiz")


class ConfigError(Exception):
    """Raised when the configuration file or bot token is unusable."""
    pass


def load_config(config_path: Path) -> dict:
    """
    Read the JSON configuration and apply environment overrides.

    Args:
        config_path: Location of the configuration file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If the file is missing, unreadable or not a JSON object
    """
    if not config_path.exists():
        raise ConfigError(f"{config_path} not found. Copy config.json and set your Discord bot token.")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{config_path} is not valid JSON: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    for section in CONFIG_SECTIONS:
        if section in config and not isinstance(config[section], dict):
            raise ConfigError(
                f"'{section}' in {config_path} must be an object, got {type(config[section]).__name__}"
            )

    question_source = os.getenv('QUIZ_QUESTION_SOURCE')
    if question_source:
        config.setdefault('quiz', {})['question_source'] = question_source

    return config


def get_bot_token(config: dict) -> str:
    bot_config = config.get('bot') or {}
    if not isinstance(bot_config, dict):
        raise ConfigError(f"'bot' must be an object, got {type(bot_config).__name__}")

    token = os.getenv('DISCORD_BOT_TOKEN') or bot_config.get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        raise ConfigError(
            "Discord bot token not configured. Set DISCORD_BOT_TOKEN "
            "or the 'token' field of the 'bot' section."
        )
    return token


def setup_logging_from_config(config: dict) -> None:
    """Log to the console and a rotating file in the configured directory."""
    log_config = config.get('logging') or {}
    level_name = str(log_config.get('level', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    log_directory = Path(log_config.get('log_directory', './logs/'))
    log_directory.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    file_handler = RotatingFileHandler(
        log_directory / "bot.log", maxBytes=5 * 1024 * 1024, backupCount=3, encoding='utf-8'
    )
    console_handler = logging.StreamHandler()

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in (console_handler, file_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # discord.py logs every gateway event at INFO
    for noisy in ('discord', 'discord.http', 'discord.gateway'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def check_question_bank(config: dict) -> bool:
    """
    Load and validate the configured question bank without connecting to Discord.

    Returns:
        True if the bank loaded and passed validation
    """
    config_manager = ConfigManager()
    for error in config_manager.apply_config(config):
        print(f"⚠️ Ignoring configuration value: {error}")

    validation = config_manager.validate_settings()
    if not validation['valid']:
        for message in config_manager.get_user_friendly_validation_errors():
            print(message)
        return False

    source = config_manager.get_question_source()
    data_manager = DataManager(source)
    try:
        pool = await data_manager.load_pool()
    except DataManagerError as e:
        print(f"❌ {e}")
        return False

    print(f"✅ {len(pool)} questions loaded from {source}")
    for section, count in data_manager.get_sections().items():
        print(f"   • {section}: {count}")
    print(config_manager.get_settings_summary())
    return True


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discord bot for practising the citizenship test")
    parser.add_argument(
        '--config', type=Path, default=Path("config.json"),
        help="configuration file (default: config.json)"
    )
    parser.add_argument(
        '--check', action='store_true',
        help="validate the question bank and exit"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"❌ Error: {e}")
        return 1

    if args.check:
        return 0 if asyncio.run(check_question_bank(config)) else 1

    setup_logging_from_config(config)
    try:
        token = get_bot_token(config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    from citizenship_quiz.bot import run_bot

    print("🤖 Starting Citizenship Quiz Bot...")
    try:
        asyncio.run(run_bot(token, config))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
