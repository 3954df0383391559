"""Local substitute numbers for when the provider cannot be used."""

from __future__ import annotations

import random


class FallbackGenerator:
    """Generate integers uniformly in ``[min_value, max_value)``.

    The default source is ``random.SystemRandom``, which keeps no shared
    state and is safe to call from many tasks or threads without locking.
    """

    def __init__(
        self,
        min_value: int,
        max_value: int,
        *,
        source: random.Random | None = None,
    ) -> None:
        if min_value >= max_value:
            raise ValueError("min_value must be < max_value")
        self.min_value = min_value
        self.max_value = max_value
        self._source = random.SystemRandom() if source is None else source

    def generate(self) -> int:
        return self._source.randrange(self.min_value, self.max_value)
