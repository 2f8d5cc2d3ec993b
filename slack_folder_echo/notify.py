from __future__ import annotations

from .slack import TextMessage

REJECTED_ICON = ":scream_cat:"
RATE_LIMIT_ICON = ":snail:"


def rejection_message(filename: str, error: Exception) -> TextMessage:
    return TextMessage(
        title="Sorry! Error posting file.",
        text=(
            f"Failed to process / post incoming file '{filename}'. "
            f"Admins, please check logs. Error: {error}"
        ),
        icon_emoji=REJECTED_ICON,
    )


def rate_limit_message(limit_per_minute: int) -> TextMessage:
    return TextMessage(
        title="(Upload rate limit exceeded.)",
        text=(
            f"Note: There are currently too many (>{limit_per_minute}) files "
            "to upload per minute. Limiting posting rate for now."
        ),
        icon_emoji=RATE_LIMIT_ICON,
    )


def format_elapsed(seconds: float) -> str:
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
