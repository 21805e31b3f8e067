"""Probe result values and the packed root-result format."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

MAX_MOVES = 256
MAX_CAPTURES = 64
MAX_PLY = 256

VALUE_PAWN = 100
VALUE_MATE = 32000
VALUE_DRAW = 0
MAX_MATE_PLY = 255

RESULT_WDL_MASK = 0x0000000F
RESULT_TO_MASK = 0x000003F0
RESULT_FROM_MASK = 0x0000FC00
RESULT_PROMOTES_MASK = 0x00070000
RESULT_EP_MASK = 0x00080000
RESULT_DTZ_MASK = 0xFFF00000
RESULT_WDL_SHIFT = 0
RESULT_TO_SHIFT = 4
RESULT_FROM_SHIFT = 10
RESULT_PROMOTES_SHIFT = 16
RESULT_EP_SHIFT = 19
RESULT_DTZ_SHIFT = 20

RESULT_FAILED = 0xFFFFFFFF


class Wdl(IntEnum):
    """Win/draw/loss outcome from the side to move's point of view."""

    LOSS = 0
    BLESSED_LOSS = 1
    DRAW = 2
    CURSED_WIN = 3
    WIN = 4


RESULT_CHECKMATE = (Wdl.WIN << RESULT_WDL_SHIFT) & RESULT_WDL_MASK
RESULT_STALEMATE = (Wdl.DRAW << RESULT_WDL_SHIFT) & RESULT_WDL_MASK


def _put(value: int, shift: int, mask: int) -> int:
    return (int(value) << shift) & mask


def _get(packed: int, shift: int, mask: int) -> int:
    return (packed & mask) >> shift


@dataclass(frozen=True)
class RootResult:
    """A suggested root move with its outcome and distance to zeroing."""

    wdl: Wdl
    from_square: int = 0
    to_square: int = 0
    promotes: int = 0
    en_passant: bool = False
    dtz: int = 0

    def pack(self) -> int:
        """Pack into the 32-bit result word; fields are truncated to their masks."""
        return (
            _put(self.wdl, RESULT_WDL_SHIFT, RESULT_WDL_MASK)
            | _put(self.to_square, RESULT_TO_SHIFT, RESULT_TO_MASK)
            | _put(self.from_square, RESULT_FROM_SHIFT, RESULT_FROM_MASK)
            | _put(self.promotes, RESULT_PROMOTES_SHIFT, RESULT_PROMOTES_MASK)
            | _put(self.en_passant, RESULT_EP_SHIFT, RESULT_EP_MASK)
            | _put(self.dtz, RESULT_DTZ_SHIFT, RESULT_DTZ_MASK)
        )

    @classmethod
    def unpack(cls, value: int) -> RootResult:
        """Decode a 32-bit result word."""
        if not 0 <= value <= 0xFFFFFFFF:
            raise ValueError(f"result word out of range: {value}")
        if value == RESULT_FAILED:
            raise ValueError("result word marks a failed probe")
        return cls(
            wdl=Wdl(_get(value, RESULT_WDL_SHIFT, RESULT_WDL_MASK)),
            from_square=_get(value, RESULT_FROM_SHIFT, RESULT_FROM_MASK),
            to_square=_get(value, RESULT_TO_SHIFT, RESULT_TO_MASK),
            promotes=_get(value, RESULT_PROMOTES_SHIFT, RESULT_PROMOTES_MASK),
            en_passant=bool(_get(value, RESULT_EP_SHIFT, RESULT_EP_MASK)),
            dtz=_get(value, RESULT_DTZ_SHIFT, RESULT_DTZ_MASK),
        )


@dataclass
class TbRootMove:
    """A root move ranked and scored by the tables."""

    move: int
    pv: list[int] = field(default_factory=list)
    tb_score: int = 0
    tb_rank: int = 0


def dtz_to_wdl(cnt50: int, dtz: int) -> Wdl:
    """Turn a distance to zeroing plus the fifty-move counter into an outcome."""
    wdl = 0
    if dtz > 0:
        wdl = 2 if dtz + cnt50 <= 100 else 1
    elif dtz < 0:
        wdl = -2 if -dtz + cnt50 <= 100 else -1
    return Wdl(wdl + 2)