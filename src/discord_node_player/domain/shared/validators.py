"""Shared validators for identifiers and ranges.

These are plain functions so both Pydantic models and service code
(which receives raw ints from embedding applications) can use them.
"""

from discord_node_player.domain.shared.messages import ErrorMessages
from discord_node_player.domain.shared.types import VOLUME_MAX, VOLUME_MIN


def validate_discord_snowflake(value: int) -> int:
    """Validate a Discord snowflake ID.

    Discord snowflake IDs are 64-bit unsigned integers representing unique
    identifiers for users, guilds, channels, messages, etc.

    Args:
        value: The snowflake ID to validate.

    Returns:
        The validated snowflake ID.

    Raises:
        ValueError: If the snowflake ID is invalid.
    """
    if value <= 0:
        raise ValueError(ErrorMessages.INVALID_SNOWFLAKE)
    if value >= 2**64:
        raise ValueError(ErrorMessages.SNOWFLAKE_TOO_LARGE)
    return value


def is_valid_volume(value: int) -> bool:
    """Return True when ``value`` is an integer node volume in 0 … 1000."""
    return isinstance(value, int) and not isinstance(value, bool) and VOLUME_MIN <= value <= VOLUME_MAX
