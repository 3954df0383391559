"""Map provider numbers onto Rock-Paper-Scissors-Lizard-Spock choices."""

from __future__ import annotations

from enum import IntEnum


class Choice(IntEnum):
    """Game choices, numbered as the provider-facing API exposes them."""

    ROCK = 1
    PAPER = 2
    SCISSORS = 3
    LIZARD = 4
    SPOCK = 5

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


_CHOICES = tuple(Choice)


def choice_from_number(number: int) -> Choice:
    """Return the choice for any integer.

    Negative numbers use their absolute value; everything else wraps modulo
    five so that 1-5 map directly and 6 maps back to ``ROCK``.
    """
    normalized = abs(number)
    return _CHOICES[(normalized - 1) % len(_CHOICES)]
