"""Code validation and guess scoring.

Pure functions only: no room state, no I/O.
"""

from collections import Counter

from duel.logic.exceptions import InvalidCodeError
from duel.logic.types import GuessResult

CODE_LENGTH = 4
_DIGITS = frozenset("0123456789")


def is_valid_code(value: object) -> bool:
    """Return True for a string of exactly four distinct ASCII digits."""
    if not isinstance(value, str) or len(value) != CODE_LENGTH:
        return False
    return set(value) <= _DIGITS and len(set(value)) == CODE_LENGTH


def validate_code(value: object) -> str:
    if not is_valid_code(value):
        raise InvalidCodeError(f"Code must be {CODE_LENGTH} distinct digits")
    return value  # type: ignore[return-value]


def check_guess(guess: str, secret: str) -> GuessResult:
    """Score a guess against a secret.

    correct_position counts exact matches. correct_number counts every digit
    value match regardless of position (exact matches included), so it is
    never smaller than correct_position.
    """
    correct_position = sum(1 for g, s in zip(guess, secret, strict=True) if g == s)
    secret_counts = Counter(secret)
    correct_number = sum(min(count, secret_counts[digit]) for digit, count in Counter(guess).items())
    return GuessResult(correct_position=correct_position, correct_number=correct_number)


def is_winning(result: GuessResult) -> bool:
    return result.correct_position == CODE_LENGTH
