"""Room configuration checks. Pure: never touches a session."""
from typing import List

from models.game import RoomConfig


def validate_config(config: RoomConfig) -> List[str]:
    """Return human-readable violations; an empty list means the config is usable."""
    errors: List[str] = []

    if config.dealer_count not in (0, 1):
        errors.append("Dealer count must be 0 or 1")
    if config.civilian_count < 1:
        errors.append("There must be at least 1 civilian")
    if config.undercover_count < 0:
        errors.append("Undercover count cannot be negative")
    if config.blank_count < 0:
        errors.append("Blank count cannot be negative")

    total = (
        config.dealer_count
        + config.civilian_count
        + config.undercover_count
        + config.blank_count
    )
    if total != config.capacity:
        errors.append(
            f"Role total ({total}) must equal room capacity ({config.capacity})"
        )

    if config.dealer_vote_count < 1:
        errors.append("Dealer must have at least 1 vote")
    elif config.dealer_count == 1 and config.dealer_vote_count > config.capacity - 1:
        errors.append(
            f"Dealer votes ({config.dealer_vote_count}) cannot exceed the other seats "
            f"({config.capacity - 1})"
        )

    return errors

