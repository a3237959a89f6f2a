"""
Seeded pseudo-random stream used by the randomized placement layers.

The recurrence is a tiny linear congruential generator. It is not meant to
be unpredictable, only reproducible: the same seed text always yields the
same sequence when ``next()`` is called in the same order.
"""

# LCG constants
_MULTIPLIER = 9301
_INCREMENT = 49297
_MODULUS = 233280


def fold_seed(seed_text: str) -> int:
    """
    Fold a seed string into a non-negative integer state.

    Characters are consumed as UTF-16 code units so that characters outside
    the BMP contribute two units, and the running hash wraps to a signed
    32-bit integer after every step.
    """
    state = 0
    data = seed_text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        state = (state * 31 + unit) & 0xFFFFFFFF
    if state >= 0x80000000:
        state -= 0x100000000
    return abs(state)


class SeededGenerator:
    """
    Deterministic float stream in ``[0, 1)``.

    Every placement run constructs its own generator; instances never share
    state, so concurrent runs are isolated.
    """

    def __init__(self, seed_text: str):
        self._seed_text = seed_text
        self._state = fold_seed(seed_text)
        self._draws = 0

    @property
    def seed_text(self) -> str:
        return self._seed_text

    @property
    def draws(self) -> int:
        """Number of values produced so far."""
        return self._draws

    def next(self) -> float:
        self._state = (self._state * _MULTIPLIER + _INCREMENT) % _MODULUS
        self._draws += 1
        return self._state / _MODULUS

    def between(self, low: float, high: float) -> float:
        """Uniform value in ``[low, high)``."""
        return low + self.next() * (high - low)

    def jitter(self, amplitude: float) -> float:
        """Uniform value in ``[-amplitude/2, amplitude/2)``."""
        return (self.next() - 0.5) * amplitude

    def choice(self, options):
        """Pick one element of a non-empty sequence."""
        return options[int(self.next() * len(options))]
