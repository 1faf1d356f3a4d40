"""
Bulls and Cows scoring.

A bull is a digit correct in value and position. A cow is a digit present
in the secret but at another position. Scoring runs in two passes over
"consumed" markers so a digit slot is never counted twice, which keeps the
counts exact when the guess or the secret repeats a digit:

1. Bulls: every position where guess and secret agree is counted and both
   slots are consumed.
2. Cows: each unconsumed guess digit takes the leftmost unconsumed secret
   slot holding the same digit, if any, and consumes it.

Input format (length, digits only, uniqueness) is validated by the caller
before a guess or secret is accepted; see minddigit.logic.codes.
"""

from pydantic import BaseModel, ConfigDict


class Score(BaseModel):
    """Outcome of comparing one guess against one secret."""

    model_config = ConfigDict(frozen=True)

    bulls: int
    cows: int

    def is_win_for(self, length: int) -> bool:
        return self.bulls == length


def score(guess: str, secret: str) -> Score:
    """Count bulls and cows of a guess against a secret of the same length."""
    if len(guess) != len(secret):
        raise ValueError(f"Guess and secret lengths differ: {len(guess)} != {len(secret)}")

    guess_used = [False] * len(guess)
    secret_used = [False] * len(secret)

    bulls = 0
    for i, (g, s) in enumerate(zip(guess, secret, strict=True)):
        if g == s:
            bulls += 1
            guess_used[i] = True
            secret_used[i] = True

    cows = 0
    for i, g in enumerate(guess):
        if guess_used[i]:
            continue
        for j, s in enumerate(secret):
            if not secret_used[j] and g == s:
                cows += 1
                secret_used[j] = True
                break

    return Score(bulls=bulls, cows=cows)
