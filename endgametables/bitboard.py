"""Bitboard helpers and attack generation with square 0 = a1, 63 = h8."""

from __future__ import annotations

from collections.abc import Iterator

MASK64 = (1 << 64) - 1

_KNIGHT_STEPS = ((1, 2), (2, 1), (2, -1), (1, -2), (-1, -2), (-2, -1), (-2, 1), (-1, 2))
_KING_STEPS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))
_BISHOP_DIRS = ((1, 1), (1, -1), (-1, 1), (-1, -1))
_ROOK_DIRS = ((1, 0), (-1, 0), (0, 1), (0, -1))


def _check_square(square: int) -> None:
    if not 0 <= square < 64:
        raise ValueError(f"square must be in 0..63, got {square}")


def _leaper_table(steps) -> tuple[int, ...]:
    table = []
    for square in range(64):
        file, rank = square & 7, square >> 3
        attacks = 0
        for df, dr in steps:
            f, r = file + df, rank + dr
            if 0 <= f < 8 and 0 <= r < 8:
                attacks |= 1 << (r * 8 + f)
        table.append(attacks)
    return tuple(table)


_KNIGHT = _leaper_table(_KNIGHT_STEPS)
_KING = _leaper_table(_KING_STEPS)
_PAWN_WHITE = _leaper_table(((-1, 1), (1, 1)))
_PAWN_BLACK = _leaper_table(((-1, -1), (1, -1)))


def popcount(bb: int) -> int:
    """Number of set bits."""
    return (bb & MASK64).bit_count()


def lsb(bb: int) -> int:
    """Index of the least significant set bit."""
    bb &= MASK64
    if not bb:
        raise ValueError("empty bitboard has no least significant bit")
    return (bb & -bb).bit_length() - 1


def iter_bits(bb: int) -> Iterator[int]:
    """Yield the set squares from lowest to highest."""
    bb &= MASK64
    while bb:
        low = bb & -bb
        yield low.bit_length() - 1
        bb ^= low


def pawn_attacks(square: int, white: bool) -> int:
    """Squares a pawn of the given colour on ``square`` attacks."""
    _check_square(square)
    return _PAWN_WHITE[square] if white else _PAWN_BLACK[square]


def knight_attacks(square: int) -> int:
    _check_square(square)
    return _KNIGHT[square]


def king_attacks(square: int) -> int:
    _check_square(square)
    return _KING[square]


def _slide(square: int, occupied: int, directions) -> int:
    _check_square(square)
    file, rank = square & 7, square >> 3
    attacks = 0
    for df, dr in directions:
        f, r = file + df, rank + dr
        while 0 <= f < 8 and 0 <= r < 8:
            target = r * 8 + f
            attacks |= 1 << target
            if (occupied >> target) & 1:
                break
            f += df
            r += dr
    return attacks


def bishop_attacks(square: int, occupied: int) -> int:
    """Diagonal attacks, stopping at (and including) the first blocker."""
    return _slide(square, occupied & MASK64, _BISHOP_DIRS)


def rook_attacks(square: int, occupied: int) -> int:
    """Orthogonal attacks, stopping at (and including) the first blocker."""
    return _slide(square, occupied & MASK64, _ROOK_DIRS)


def queen_attacks(square: int, occupied: int) -> int:
    return bishop_attacks(square, occupied) | rook_attacks(square, occupied)