"""
Random number generation for first-turn choice and code generation.

Uses stdlib random.Random: statistical perfection is not critical for a
coin flip between two players or a suggested secret, and a seedable
instance lets tests pin outcomes deterministically. Seeds are hex
strings so they can travel through environment variables unchanged.
"""

import random
import secrets

SEED_BYTES = 16


def generate_seed() -> str:
    """Generate a cryptographically random hex seed."""
    return secrets.token_hex(SEED_BYTES)


def validate_seed_hex(seed_hex: str) -> None:
    """Validate that a seed string is non-empty hex.

    Raises TypeError for non-string input, ValueError for invalid format.
    """
    if not isinstance(seed_hex, str):
        raise TypeError(f"Seed must be a string, got {type(seed_hex).__name__}")
    if not seed_hex:
        raise ValueError("Seed must not be empty")
    try:
        int(seed_hex, 16)
    except ValueError:
        raise ValueError("Seed contains invalid hex characters") from None


def create_turn_rng(seed_hex: str | None = None) -> random.Random:
    """Create the RNG used for first-turn choice and suggested secrets.

    Unseeded when seed_hex is None.
    """
    if seed_hex is None:
        return random.Random()  # noqa: S311
    validate_seed_hex(seed_hex)
    return random.Random(int(seed_hex, 16))  # noqa: S311


def choose_first_turn(player_ids: list[str], rng: random.Random) -> str:
    """Pick the player who guesses first, uniformly at random."""
    if not player_ids:
        raise ValueError("Cannot choose a first turn without players")
    return rng.choice(player_ids)
