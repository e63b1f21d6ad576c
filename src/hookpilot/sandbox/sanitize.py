"""Output sanitizing so agent responses cannot re-trigger the bot."""

from __future__ import annotations

import re


def sanitize_bot_mentions(text: str, bot_username: str) -> str:
    """Replace ``@<bot>`` mentions with the bare name.

    Case-insensitive, and only whole mentions: ``@bot-extra`` and
    ``me@bot.com`` are left alone.
    """
    if not text or not bot_username:
        return text
    pattern = re.compile(
        rf"(?<![\w@])@({re.escape(bot_username)}(?:\[bot\])?)(?![\w-])",
        re.IGNORECASE,
    )
    return pattern.sub(r"\1", text)
