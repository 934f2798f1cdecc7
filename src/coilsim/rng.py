# Copyright (c) Syntropy Systems
"""Deterministic pseudo-random stream used for synthetic results."""
from __future__ import annotations

MULTIPLIER = 9301
INCREMENT = 49297
MODULUS = 233280


class SeededRandom:
    """Linear congruential generator producing reals in [0, 1).

    Every draw advances the state first and returns the updated state over
    the modulus. Two instances built from the same seed produce the same
    sequence. Not safe to share between threads.
    """

    _state: int

    def __init__(self, seed: int) -> None:
        self._state = int(seed)

    def random(self) -> float:
        """Advance the generator and return the next value."""
        self._state = (self._state * MULTIPLIER + INCREMENT) % MODULUS
        return self._state / MODULUS
