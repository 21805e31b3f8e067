"""Index encoding of piece placements into positions of an endgame table."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from .position import BPAWN, WPAWN, calc_key_from_counts, char_to_piece_type

MAX_PIECES = 7


class Encoding(IntEnum):
    """How the leading pieces of a table are folded into an index."""

    PIECE = 0
    FILE = 1
    RANK = 2


_OFF_DIAG = (
    0, -1, -1, -1, -1, -1, -1, -1, 1, 0, -1, -1, -1, -1, -1, -1, 1, 1, 0, -1, -1, -1,
    -1, -1, 1, 1, 1, 0, -1, -1, -1, -1, 1, 1, 1, 1, 0, -1, -1, -1, 1, 1, 1, 1,
    1, 0, -1, -1, 1, 1, 1, 1, 1, 1, 0, -1, 1, 1, 1, 1, 1, 1, 1, 0,
)

_TRIANGLE = (
    6, 0, 1, 2, 2, 1, 0, 6, 0, 7, 3, 4, 4, 3, 7, 0, 1, 3, 8, 5, 5, 8,
    3, 1, 2, 4, 5, 9, 9, 5, 4, 2, 2, 4, 5, 9, 9, 5, 4, 2, 1, 3, 8, 5,
    5, 8, 3, 1, 0, 7, 3, 4, 4, 3, 7, 0, 6, 0, 1, 2, 2, 1, 0, 6,
)

_FLIP_DIAG = (
    0, 8, 16, 24, 32, 40, 48, 56, 1, 9, 17, 25, 33, 41, 49, 57,
    2, 10, 18, 26, 34, 42, 50, 58, 3, 11, 19, 27, 35, 43, 51, 59,
    4, 12, 20, 28, 36, 44, 52, 60, 5, 13, 21, 29, 37, 45, 53, 61,
    6, 14, 22, 30, 38, 46, 54, 62, 7, 15, 23, 31, 39, 47, 55, 63,
)

_LOWER = (
    28, 0, 1, 2, 3, 4, 5, 6, 0, 29, 7, 8, 9, 10, 11, 12, 1, 7, 30, 13, 14, 15,
    16, 17, 2, 8, 13, 31, 18, 19, 20, 21, 3, 9, 14, 18, 32, 22, 23, 24, 4, 10, 15, 19,
    22, 33, 25, 26, 5, 11, 16, 20, 23, 25, 34, 27, 6, 12, 17, 21, 24, 26, 27, 35,
)

_DIAG = (
    0, 0, 0, 0, 0, 0, 0, 8, 0, 1, 0, 0, 0, 0, 9, 0, 0, 0, 2, 0, 0, 10,
    0, 0, 0, 0, 0, 3, 11, 0, 0, 0, 0, 0, 0, 12, 4, 0, 0, 0, 0, 0, 13, 0,
    0, 5, 0, 0, 0, 14, 0, 0, 0, 0, 6, 0, 15, 0, 0, 0, 0, 0, 0, 7,
)

_FLAP = (
    (
        0, 0, 0, 0, 0, 0, 0, 0, 0, 6, 12, 18, 18, 12, 6, 0, 1, 7, 13, 19, 19, 13,
        7, 1, 2, 8, 14, 20, 20, 14, 8, 2, 3, 9, 15, 21, 21, 15, 9, 3, 4, 10, 16, 22,
        22, 16, 10, 4, 5, 11, 17, 23, 23, 17, 11, 5, 0, 0, 0, 0, 0, 0, 0, 0,
    ),
    (
        0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 2, 3, 3, 2, 1, 0, 4, 5, 6, 7, 7, 6,
        5, 4, 8, 9, 10, 11, 11, 10, 9, 8, 12, 13, 14, 15, 15, 14, 13, 12, 16, 17, 18, 19,
        19, 18, 17, 16, 20, 21, 22, 23, 23, 22, 21, 20, 0, 0, 0, 0, 0, 0, 0, 0,
    ),
)

_PAWN_TWIST = (
    (
        0, 0, 0, 0, 0, 0, 0, 0, 47, 35, 23, 11, 10, 22, 34, 46, 45, 33, 21, 9, 8, 20,
        32, 44, 43, 31, 19, 7, 6, 18, 30, 42, 41, 29, 17, 5, 4, 16, 28, 40, 39, 27, 15, 3,
        2, 14, 26, 38, 37, 25, 13, 1, 0, 12, 24, 36, 0, 0, 0, 0, 0, 0, 0, 0,
    ),
    (
        0, 0, 0, 0, 0, 0, 0, 0, 47, 45, 43, 41, 40, 42, 44, 46, 39, 37, 35, 33, 32, 34,
        36, 38, 31, 29, 27, 25, 24, 26, 28, 30, 23, 21, 19, 17, 16, 18, 20, 22, 15, 13, 11, 9,
        8, 10, 12, 14, 7, 5, 3, 1, 0, 2, 4, 6, 0, 0, 0, 0, 0, 0, 0, 0,
    ),
)

_KK_IDX = (
    (
        -1, -1, -1, 0, 1, 2, 3, 4, -1, -1, -1, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15,
        16, 17, 18, 19, 20, 21, 22, 23, 24, 25, 26, 27, 28, 29, 30, 31, 32, 33, 34, 35, 36, 37,
        38, 39, 40, 41, 42, 43, 44, 45, 46, 47, 48, 49, 50, 51, 52, 53, 54, 55, 56, 57,
    ),
    (
        58, -1, -1, -1, 59, 60, 61, 62, 63, -1, -1, -1, 64, 65, 66, 67, 68, 69, 70, 71, 72, 73,
        74, 75, 76, 77, 78, 79, 80, 81, 82, 83, 84, 85, 86, 87, 88, 89, 90, 91, 92, 93, 94, 95,
        96, 97, 98, 99, 100, 101, 102, 103, 104, 105, 106, 107, 108, 109, 110, 111, 112, 113, 114, 115,
    ),
    (
        116, 117, -1, -1, -1, 118, 119, 120, 121, 122, -1, -1, -1, 123, 124, 125, 126, 127, 128, 129, 130, 131,
        132, 133, 134, 135, 136, 137, 138, 139, 140, 141, 142, 143, 144, 145, 146, 147, 148, 149, 150, 151, 152, 153,
        154, 155, 156, 157, 158, 159, 160, 161, 162, 163, 164, 165, 166, 167, 168, 169, 170, 171, 172, 173,
    ),
    (
        174, -1, -1, -1, 175, 176, 177, 178, 179, -1, -1, -1, 180, 181, 182, 183, 184, -1, -1, -1, 185, 186,
        187, 188, 189, 190, 191, 192, 193, 194, 195, 196, 197, 198, 199, 200, 201, 202, 203, 204, 205, 206, 207, 208,
        209, 210, 211, 212, 213, 214, 215, 216, 217, 218, 219, 220, 221, 222, 223, 224, 225, 226, 227, 228,
    ),
    (
        229, 230, -1, -1, -1, 231, 232, 233, 234, 235, -1, -1, -1, 236, 237, 238, 239, 240, -1, -1, -1, 241,
        242, 243, 244, 245, 246, 247, 248, 249, 250, 251, 252, 253, 254, 255, 256, 257, 258, 259, 260, 261, 262, 263,
        264, 265, 266, 267, 268, 269, 270, 271, 272, 273, 274, 275, 276, 277, 278, 279, 280, 281, 282, 283,
    ),
    (
        284, 285, 286, 287, 288, 289, 290, 291, 292, 293, -1, -1, -1, 294, 295, 296, 297, 298, -1, -1, -1, 299,
        300, 301, 302, 303, -1, -1, -1, 304, 305, 306, 307, 308, 309, 310, 311, 312, 313, 314, 315, 316, 317, 318,
        319, 320, 321, 322, 323, 324, 325, 326, 327, 328, 329, 330, 331, 332, 333, 334, 335, 336, 337, 338,
    ),
    (
        -1, -1, 339, 340, 341, 342, 343, 344, -1, -1, 345, 346, 347, 348, 349, 350, -1, -1, 441, 351, 352, 353,
        354, 355, -1, -1, -1, 442, 356, 357, 358, 359, -1, -1, -1, -1, 443, 360, 361, 362, -1, -1, -1, -1,
        -1, 444, 363, 364, -1, -1, -1, -1, -1, -1, 445, 365, -1, -1, -1, -1, -1, -1, -1, 446,
    ),
    (
        -1, -1, -1, 366, 367, 368, 369, 370, -1, -1, -1, 371, 372, 373, 374, 375, -1, -1, -1, 376, 377, 378,
        379, 380, -1, -1, -1, 447, 381, 382, 383, 384, -1, -1, -1, -1, 448, 385, 386, 387, -1, -1, -1, -1,
        -1, 449, 388, 389, -1, -1, -1, -1, -1, -1, 450, 390, -1, -1, -1, -1, -1, -1, -1, 451,
    ),
    (
        452, 391, 392, 393, 394, 395, 396, 397, -1, -1, -1, -1, 398, 399, 400, 401, -1, -1, -1, -1, 402, 403,
        404, 405, -1, -1, -1, -1, 406, 407, 408, 409, -1, -1, -1, -1, 453, 410, 411, 412, -1, -1, -1, -1,
        -1, 454, 413, 414, -1, -1, -1, -1, -1, -1, 455, 415, -1, -1, -1, -1, -1, -1, -1, 456,
    ),
    (
        457, 416, 417, 418, 419, 420, 421, 422, -1, 458, 423, 424, 425, 426, 427, 428, -1, -1, -1, -1, -1, 429,
        430, 431, -1, -1, -1, -1, -1, 432, 433, 434, -1, -1, -1, -1, -1, 435, 436, 437, -1, -1, -1, -1,
        -1, 459, 438, 439, -1, -1, -1, -1, -1, -1, 460, 440, -1, -1, -1, -1, -1, -1, -1, 461,
    ),
)

_FILE_TO_FILE = (0, 1, 2, 3, 3, 2, 1, 0)

_KK_FACTOR = 462
_PIECE_FACTOR = 31332

_BINOMIAL = tuple(tuple(math.comb(n, k) for n in range(64)) for k in range(MAX_PIECES))


def _pawn_tables() -> tuple[tuple, tuple, tuple]:
    pawn_idx = [[[0] * 24 for _ in range(6)] for _ in range(2)]
    factor_file = [[0] * 4 for _ in range(6)]
    factor_rank = [[0] * 6 for _ in range(6)]
    for i in range(6):
        total = 0
        for j in range(24):
            pawn_idx[0][i][j] = total
            total += _BINOMIAL[i][_PAWN_TWIST[0][(1 + j % 6) * 8 + j // 6]]
            if (j + 1) % 6 == 0:
                factor_file[i][j // 6] = total
                total = 0
    for i in range(6):
        total = 0
        for j in range(24):
            pawn_idx[1][i][j] = total
            total += _BINOMIAL[i][_PAWN_TWIST[1][(1 + j // 4) * 8 + j % 4]]
            if (j + 1) % 4 == 0:
                factor_rank[i][j // 4] = total
                total = 0
    freeze = lambda rows: tuple(tuple(r) for r in rows)  # noqa: E731
    return (
        tuple(freeze(side) for side in pawn_idx),
        freeze(factor_file),
        freeze(factor_rank),
    )


_PAWN_IDX, _PAWN_FACTOR_FILE, _PAWN_FACTOR_RANK = _pawn_tables()


def binomial(k: int, n: int) -> int:
    """Number of ways to choose ``k`` items from ``n`` (0 when ``k > n``)."""
    if k < 0 or n < 0:
        raise ValueError(f"binomial needs non-negative arguments, got k={k}, n={n}")
    return math.comb(n, k)


def subfactor(k: int, n: int) -> int:
    """Number of placements of ``k`` like pieces on ``n`` squares."""
    f = n
    lower = 1
    for i in range(1, k):
        f *= n - i
        lower *= i + 1
    return f // lower


@dataclass(frozen=True)
class Material:
    """Material signature of a table such as ``KQvKR``."""

    num: int
    has_pawns: bool = False
    kk_enc: bool = False
    pawns: tuple[int, int] = (0, 0)
    key: int = 0
    mirrored_key: int = 0
    name: str = ""

    @property
    def symmetric(self) -> bool:
        """True when both sides hold the same material."""
        return self.key == self.mirrored_key

    @classmethod
    def from_name(cls, name: str) -> Material:
        """Build the signature from a name of the form ``KRPvKR``."""
        counts = [0] * 16
        colour = 0
        for char in name:
            if char == "v":
                colour = 8
                continue
            piece_type = char_to_piece_type(char)
            if piece_type:
                counts[piece_type | colour] += 1

        has_pawns = bool(counts[WPAWN] or counts[BPAWN])
        kk_enc = False
        pawns = (0, 0)
        if has_pawns:
            first, second = counts[WPAWN], counts[BPAWN]
            if second and (not first or first > second):
                first, second = second, first
            pawns = (first, second)
        else:
            kk_enc = sum(1 for count in counts if count == 1) == 2

        return cls(
            num=sum(counts),
            has_pawns=has_pawns,
            kk_enc=kk_enc,
            pawns=pawns,
            key=calc_key_from_counts(counts, False),
            mirrored_key=calc_key_from_counts(counts, True),
            name=name,
        )


@dataclass
class EncInfo:
    """Piece order, grouping and multipliers for one sub-table."""

    pieces: list[int]
    norm: list[int]
    factor: list[int]
    size: int
    precomp: Any = field(default=None, repr=False)

    @classmethod
    def build(
        cls,
        material: Material,
        header: Sequence[int],
        shift: int,
        table: int,
        enc: Encoding,
    ) -> EncInfo:
        """Read one sub-table header (nibbles at ``shift``) and size the index space."""
        enc = Encoding(enc)
        num = material.num
        if not 0 < num <= MAX_PIECES:
            raise ValueError(f"unsupported piece count: {num}")
        if enc is Encoding.FILE and not 0 <= table < 4:
            raise ValueError(f"file table index must be in 0..3, got {table}")
        if enc is Encoding.RANK and not 0 <= table < 6:
            raise ValueError(f"rank table index must be in 0..5, got {table}")

        more_pawns = enc is not Encoding.PIECE and material.pawns[1] > 0
        offset = 1 + int(more_pawns)
        if len(header) < num + offset:
            raise ValueError("table header is too short")

        pieces = [(header[i + offset] >> shift) & 0x0F for i in range(num)]
        norm = [0] * num
        factor = [0] * num

        order = (header[0] >> shift) & 0x0F
        order2 = (header[1] >> shift) & 0x0F if more_pawns else 0x0F

        if enc is not Encoding.PIECE:
            k = material.pawns[0]
        else:
            k = 2 if material.kk_enc else 3
        if not 0 < k <= num:
            raise ValueError("material does not fit the encoding")
        norm[0] = k

        if more_pawns:
            norm[k] = material.pawns[1]
            k += norm[k]

        i = k
        while i < num:
            j = i
            while j < num and pieces[j] == pieces[i]:
                norm[i] += 1
                j += 1
            i += norm[i]

        n = 64 - k
        f = 1
        i = 0
        while k < num or i == order or i == order2:
            if i == order:
                factor[0] = f
                if enc is Encoding.FILE:
                    f *= _PAWN_FACTOR_FILE[norm[0] - 1][table]
                elif enc is Encoding.RANK:
                    f *= _PAWN_FACTOR_RANK[norm[0] - 1][table]
                else:
                    f *= _KK_FACTOR if material.kk_enc else _PIECE_FACTOR
            elif i == order2:
                factor[norm[0]] = f
                f *= subfactor(norm[norm[0]], 48 - norm[0])
            else:
                factor[k] = f
                f *= subfactor(norm[k], n)
                n -= norm[k]
                k += norm[k]
            i += 1

        return cls(pieces=pieces, norm=norm, factor=factor, size=f)


def leading_pawn(
    squares: Sequence[int], material: Material, enc: Encoding
) -> tuple[int, list[int]]:
    """Move the leading pawn to the front; return the sub-table index and the squares."""
    enc = Encoding(enc)
    if enc is Encoding.PIECE:
        raise ValueError("leading pawn needs a pawn encoding")
    count = material.pawns[0]
    if len(squares) < count or count < 1:
        raise ValueError("not enough pawn squares")
    flap = _FLAP[enc - 1]
    result = list(squares)
    for i in range(1, count):
        if flap[result[0]] > flap[result[i]]:
            result[0], result[i] = result[i], result[0]
    lead = result[0]
    if enc is Encoding.FILE:
        return _FILE_TO_FILE[lead & 7], result
    return (lead - 8) >> 3, result


def _group_index(p: list[int], k: int, t: int, base: int) -> int:
    p[k:t] = sorted(p[k:t])
    total = 0
    for i in range(k, t):
        sq = p[i]
        skips = sum(1 for other in p[:k] if sq > other)
        slot = sq - skips - base
        if slot < 0:
            raise ValueError(f"square {sq} cannot be encoded")
        total += _BINOMIAL[i - k + 1][slot]
    return total


def encode(
    squares: Sequence[int], info: EncInfo, material: Material, enc: Encoding
) -> int:
    """Index of a placement, with squares listed in the order of ``info.pieces``."""
    enc = Encoding(enc)
    n = material.num
    if len(squares) < n:
        raise ValueError(f"expected {n} squares, got {len(squares)}")
    p = [int(sq) for sq in squares[:n]]
    if any(not 0 <= sq < 64 for sq in p):
        raise ValueError("squares must be in 0..63")

    if p[0] & 0x04:
        p = [sq ^ 0x07 for sq in p]

    if enc is Encoding.PIECE:
        if p[0] & 0x20:
            p = [sq ^ 0x38 for sq in p]

        leading = 2 if material.kk_enc else 3
        for i, sq in enumerate(p):
            if _OFF_DIAG[sq]:
                if _OFF_DIAG[sq] > 0 and i < leading:
                    p = [_FLIP_DIAG[s] for s in p]
                break

        if material.kk_enc:
            idx = _KK_IDX[_TRIANGLE[p[0]]][p[1]]
            if idx < 0:
                raise ValueError("king placement cannot be encoded")
            k = 2
        else:
            a, b, c = p[0], p[1], p[2]
            s1 = int(b > a)
            s2 = int(c > a) + int(c > b)
            if _OFF_DIAG[a]:
                idx = _TRIANGLE[a] * 63 * 62 + (b - s1) * 62 + (c - s2)
            elif _OFF_DIAG[b]:
                idx = 6 * 63 * 62 + _DIAG[a] * 28 * 62 + _LOWER[b] * 62 + c - s2
            elif _OFF_DIAG[c]:
                idx = (
                    6 * 63 * 62
                    + 4 * 28 * 62
                    + _DIAG[a] * 7 * 28
                    + (_DIAG[b] - s1) * 28
                    + _LOWER[c]
                )
            else:
                idx = (
                    6 * 63 * 62
                    + 4 * 28 * 62
                    + 4 * 7 * 28
                    + _DIAG[a] * 7 * 6
                    + (_DIAG[b] - s1) * 6
                    + (_DIAG[c] - s2)
                )
            k = 3
        idx *= info.factor[0]
    else:
        e = enc - 1
        twist = _PAWN_TWIST[e]
        k = material.pawns[0]
        p[1:k] = sorted(p[1:k], key=lambda sq: twist[sq], reverse=True)
        idx = _PAWN_IDX[e][k - 1][_FLAP[e][p[0]]]
        idx += sum(_BINOMIAL[k - i][twist[p[i]]] for i in range(1, k))
        idx *= info.factor[0]

        if material.pawns[1]:
            t = k + material.pawns[1]
            idx += _group_index(p, k, t, 8) * info.factor[k]
            k = t

    while k < n:
        width = info.norm[k]
        if width <= 0:
            raise ValueError("encoding info has an empty piece group")
        t = k + width
        idx += _group_index(p, k, t, 0) * info.factor[k]
        k = t

    return idx