"""A small 64-bit pseudo random number generator used for magic numbers."""

from __future__ import annotations

from collections.abc import Iterator

MASK64 = (1 << 64) - 1

_KEY0_MIX = 0xC5462216 ^ (0xCF14F4EB << 32)
_KEY1_MIX = 0x75ECFC58 ^ (0x9576080C << 32)
_WARMUP_ROUNDS = 64


def rotate(value: int, shift: int) -> int:
    """Rotate a 64-bit value right by ``shift`` bits."""
    if not 0 <= shift < 64:
        raise ValueError(f"shift must be in 0..63, got {shift}")
    value &= MASK64
    return ((value >> shift) | (value << (64 - shift))) & MASK64


class Rng:
    """Two-key add/rotate generator producing 64-bit integers."""

    def __init__(self, seed: int = 0) -> None:
        self._keys = [0, 0]
        self.seed(seed)

    def seed(self, seed: int) -> None:
        """Reset both keys to ``seed`` and discard the first outputs."""
        value = seed & MASK64
        self._keys = [value, value]
        for _ in range(_WARMUP_ROUNDS):
            self.next_u64()

    def next_u64(self) -> int:
        """Return the next 64-bit value."""
        first, second = self._keys
        first = (first + rotate(second ^ _KEY0_MIX, 1)) & MASK64
        second = (second + rotate(self._keys[0] ^ _KEY1_MIX, 9)) & MASK64
        self._keys = [first, second]
        return second

    def magic(self) -> int:
        """Return a sparse value: three outputs combined with AND."""
        return self.next_u64() & self.next_u64() & self.next_u64()

    def __iter__(self) -> Iterator[int]:
        while True:
            yield self.next_u64()