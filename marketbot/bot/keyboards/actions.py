"""
Reply keyboard built from response actions.
"""

from typing import Optional

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove
from aiogram.utils.keyboard import ReplyKeyboardBuilder

# Most chat clients render at most three quick-reply buttons
MAX_ACTIONS = 3


def truncate_actions(actions: list[str], limit: int = MAX_ACTIONS) -> list[str]:
    return list(actions[:limit])


def get_actions_keyboard(actions: list[str]) -> Optional[ReplyKeyboardMarkup]:
    """One button per row, first MAX_ACTIONS actions only. None when there are none."""
    actions = truncate_actions(actions)
    if not actions:
        return None

    builder = ReplyKeyboardBuilder()
    for action in actions:
        builder.row(KeyboardButton(text=action))
    return builder.as_markup(
        resize_keyboard=True,
        input_field_placeholder="Tell me what you're looking for...",
    )


def get_reply_markup(actions: list[str]) -> ReplyKeyboardMarkup | ReplyKeyboardRemove:
    return get_actions_keyboard(actions) or ReplyKeyboardRemove()
