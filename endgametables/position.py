"""Minimal chess position for endgame table probing (square 0 = a1, 63 = h8)."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import IntEnum

from .bitboard import (
    MASK64,
    bishop_attacks,
    iter_bits,
    king_attacks,
    knight_attacks,
    lsb,
    pawn_attacks,
    popcount,
    rook_attacks,
)

BLACK = 0
WHITE = 1

PAWN = 1
KNIGHT = 2
BISHOP = 3
ROOK = 4
QUEEN = 5
KING = 6

WPAWN, WKNIGHT, WBISHOP, WROOK, WQUEEN, WKING = 1, 2, 3, 4, 5, 6
BPAWN, BKNIGHT, BBISHOP, BROOK, BQUEEN, BKING = 9, 10, 11, 12, 13, 14

PROMOTION_SQUARES = 0xFF000000000000FF

PRIME_WQUEEN = 11811845319353239651
PRIME_WROOK = 10979190538029446137
PRIME_WBISHOP = 12311744257139811149
PRIME_WKNIGHT = 15202887380319082783
PRIME_WPAWN = 17008651141875982339
PRIME_BQUEEN = 15484752644942473553
PRIME_BROOK = 18264461213049635989
PRIME_BBISHOP = 15394650811035483107
PRIME_BKNIGHT = 13469005675588064321
PRIME_BPAWN = 11695583624105689831

_PRIMES_BY_PIECE = (
    0, PRIME_WPAWN, PRIME_WKNIGHT, PRIME_WBISHOP, PRIME_WROOK, PRIME_WQUEEN, 0, 0,
    0, PRIME_BPAWN, PRIME_BKNIGHT, PRIME_BBISHOP, PRIME_BROOK, PRIME_BQUEEN, 0, 0,
)

PIECE_CHARS = " PNBRQK  pnbrqk"


class Promotes(IntEnum):
    """Promotion piece encoded in a move."""

    NONE = 0
    QUEEN = 1
    ROOK = 2
    BISHOP = 3
    KNIGHT = 4


_PROMOTION_ORDER = (Promotes.QUEEN, Promotes.KNIGHT, Promotes.ROOK, Promotes.BISHOP)


def make_move(promotes: int, from_square: int, to_square: int) -> int:
    """Pack a move into 16 bits: promotion, origin and destination."""
    return ((int(promotes) & 0x7) << 12) | ((from_square & 0x3F) << 6) | (to_square & 0x3F)


def move_from(move: int) -> int:
    return (move >> 6) & 0x3F


def move_to(move: int) -> int:
    return move & 0x3F


def move_promotes(move: int) -> Promotes:
    return Promotes((move >> 12) & 0x07)


def colour_of_piece(piece: int) -> int:
    """WHITE (1) for codes below 8, BLACK (0) otherwise."""
    return int(not (piece >> 3))


def type_of_piece(piece: int) -> int:
    return piece & 0x7


def char_to_piece_type(char: str) -> int:
    """Piece type for an upper-case piece letter, or 0 if it is not one."""
    for piece_type in range(PAWN, KING + 1):
        if char == PIECE_CHARS[piece_type]:
            return piece_type
    return 0


def calc_key_from_counts(counts: Sequence[int], mirror: bool) -> int:
    """Material key from piece counts indexed by piece code."""
    flip = 8 if mirror else 0
    total = (
        counts[WQUEEN ^ flip] * PRIME_WQUEEN
        + counts[WROOK ^ flip] * PRIME_WROOK
        + counts[WBISHOP ^ flip] * PRIME_WBISHOP
        + counts[WKNIGHT ^ flip] * PRIME_WKNIGHT
        + counts[WPAWN ^ flip] * PRIME_WPAWN
        + counts[BQUEEN ^ flip] * PRIME_BQUEEN
        + counts[BROOK ^ flip] * PRIME_BROOK
        + counts[BBISHOP ^ flip] * PRIME_BBISHOP
        + counts[BKNIGHT ^ flip] * PRIME_BKNIGHT
        + counts[BPAWN ^ flip] * PRIME_BPAWN
    )
    return total & MASK64


def calc_key_from_pieces(pieces: Iterable[int]) -> int:
    """Material key from a list of piece codes."""
    return sum(_PRIMES_BY_PIECE[piece] for piece in pieces) & MASK64


def _do_bb_move(bb: int, from_square: int, to_square: int) -> int:
    moved = ((bb >> from_square) & 1) << to_square
    return moved | (bb & ~(1 << from_square) & ~(1 << to_square) & MASK64)


def _is_promotion_square(square: int) -> bool:
    return bool((PROMOTION_SQUARES >> square) & 1)


def _pawn_start_square(white: bool, square: int) -> bool:
    return (square >> 3) == (1 if white else 6)


def _expand(promotes: bool, from_square: int, to_square: int) -> list[int]:
    if not promotes:
        return [make_move(Promotes.NONE, from_square, to_square)]
    return [make_move(p, from_square, to_square) for p in _PROMOTION_ORDER]


@dataclass(frozen=True)
class Position:
    """Bitboard position; ``turn`` is True when white is to move."""

    white: int = 0
    black: int = 0
    kings: int = 0
    queens: int = 0
    rooks: int = 0
    bishops: int = 0
    knights: int = 0
    pawns: int = 0
    rule50: int = 0
    ep: int = 0
    turn: bool = True

    def _sides(self) -> tuple[int, int]:
        if self.turn:
            return self.white, self.black
        return self.black, self.white

    def pieces_by_type(self, colour: int, piece_type: int) -> int:
        """Bitboard of one colour's pieces of one type."""
        if colour not in (WHITE, BLACK):
            raise ValueError(f"invalid colour: {colour}")
        boards = {
            PAWN: self.pawns,
            KNIGHT: self.knights,
            BISHOP: self.bishops,
            ROOK: self.rooks,
            QUEEN: self.queens,
            KING: self.kings,
        }
        if piece_type not in boards:
            raise ValueError(f"invalid piece type: {piece_type}")
        side = self.white if colour == WHITE else self.black
        return boards[piece_type] & side

    def calc_key(self, mirror: bool) -> int:
        """Material signature key, with colours swapped when ``mirror`` is set."""
        white = self.black if mirror else self.white
        black = self.white if mirror else self.black
        total = (
            popcount(white & self.queens) * PRIME_WQUEEN
            + popcount(white & self.rooks) * PRIME_WROOK
            + popcount(white & self.bishops) * PRIME_WBISHOP
            + popcount(white & self.knights) * PRIME_WKNIGHT
            + popcount(white & self.pawns) * PRIME_WPAWN
            + popcount(black & self.queens) * PRIME_BQUEEN
            + popcount(black & self.rooks) * PRIME_BROOK
            + popcount(black & self.bishops) * PRIME_BBISHOP
            + popcount(black & self.knights) * PRIME_BKNIGHT
            + popcount(black & self.pawns) * PRIME_BPAWN
        )
        return total & MASK64

    def _piece_moves(self, targets: int) -> list[int]:
        us, them = self._sides()
        occupied = us | them
        moves: list[int] = []
        for sq in iter_bits(us & self.kings):
            for to in iter_bits(king_attacks(sq) & targets):
                moves += _expand(False, sq, to)
        for sq in iter_bits(us & (self.rooks | self.queens)):
            for to in iter_bits(rook_attacks(sq, occupied) & targets):
                moves += _expand(False, sq, to)
        for sq in iter_bits(us & (self.bishops | self.queens)):
            for to in iter_bits(bishop_attacks(sq, occupied) & targets):
                moves += _expand(False, sq, to)
        for sq in iter_bits(us & self.knights):
            for to in iter_bits(knight_attacks(sq) & targets):
                moves += _expand(False, sq, to)
        return moves

    def _ep_available(self, square: int) -> bool:
        return bool(self.ep) and bool((pawn_attacks(square, self.turn) >> self.ep) & 1)

    def captures(self) -> list[int]:
        """All pseudo-legal captures, including promotions and en passant."""
        us, them = self._sides()
        moves = self._piece_moves(them)
        for sq in iter_bits(us & self.pawns):
            if self._ep_available(sq):
                moves += _expand(False, sq, self.ep)
            for to in iter_bits(pawn_attacks(sq, self.turn) & them):
                moves += _expand(_is_promotion_square(to), sq, to)
        return moves

    def moves(self) -> list[int]:
        """All pseudo-legal moves (no castling)."""
        us, them = self._sides()
        occupied = us | them
        moves = self._piece_moves(~us & MASK64)
        forward = 8 if self.turn else -8
        for sq in iter_bits(us & self.pawns):
            if self._ep_available(sq):
                moves += _expand(False, sq, self.ep)
            one = sq + forward
            if 0 <= one < 64 and not (occupied >> one) & 1:
                moves += _expand(_is_promotion_square(one), sq, one)
                two = one + forward
                if _pawn_start_square(self.turn, sq) and not (occupied >> two) & 1:
                    moves += _expand(False, sq, two)
            for to in iter_bits(pawn_attacks(sq, self.turn) & them):
                moves += _expand(_is_promotion_square(to), sq, to)
        return moves

    def legal_moves(self) -> list[int]:
        return [move for move in self.moves() if self.legal_move(move)]

    def is_pawn_move(self, move: int) -> bool:
        us, _ = self._sides()
        return bool(((us & self.pawns) >> move_from(move)) & 1)

    def is_en_passant(self, move: int) -> bool:
        return self.is_pawn_move(move) and move_to(move) == self.ep and bool(self.ep)

    def is_capture(self, move: int) -> bool:
        _, them = self._sides()
        return bool((them >> move_to(move)) & 1) or self.is_en_passant(move)

    def is_legal(self) -> bool:
        """True when the side that just moved does not leave its king attacked."""
        us = self.black if self.turn else self.white
        them = self.white if self.turn else self.black
        occupied = us | them
        sq = lsb(self.kings & us)
        return not (
            (king_attacks(sq) & self.kings & them)
            or (rook_attacks(sq, occupied) & (self.rooks | self.queens) & them)
            or (bishop_attacks(sq, occupied) & (self.bishops | self.queens) & them)
            or (knight_attacks(sq) & self.knights & them)
            or (pawn_attacks(sq, not self.turn) & self.pawns & them)
        )

    def is_check(self) -> bool:
        """True when the side to move is in check."""
        us, them = self._sides()
        occupied = us | them
        sq = lsb(self.kings & us)
        return bool(
            (rook_attacks(sq, occupied) & (self.rooks | self.queens) & them)
            or (bishop_attacks(sq, occupied) & (self.bishops | self.queens) & them)
            or (knight_attacks(sq) & self.knights & them)
            or (pawn_attacks(sq, self.turn) & self.pawns & them)
        )

    def is_mate(self) -> bool:
        if not self.is_check():
            return False
        return not any(self.do_move(move).is_legal() for move in self.moves())

    def do_move(self, move: int) -> Position:
        """Return the position after ``move``; check ``is_legal`` on the result."""
        frm, to, promotes = move_from(move), move_to(move), move_promotes(move)
        white = _do_bb_move(self.white, frm, to)
        black = _do_bb_move(self.black, frm, to)
        kings = _do_bb_move(self.kings, frm, to)
        queens = _do_bb_move(self.queens, frm, to)
        rooks = _do_bb_move(self.rooks, frm, to)
        bishops = _do_bb_move(self.bishops, frm, to)
        knights = _do_bb_move(self.knights, frm, to)
        pawns = _do_bb_move(self.pawns, frm, to)
        ep = 0

        if promotes != Promotes.NONE:
            bit = 1 << to
            pawns &= ~bit
            if promotes == Promotes.QUEEN:
                queens |= bit
            elif promotes == Promotes.ROOK:
                rooks |= bit
            elif promotes == Promotes.BISHOP:
                bishops |= bit
            elif promotes == Promotes.KNIGHT:
                knights |= bit
            rule50 = 0
        elif (self.pawns >> frm) & 1:
            rule50 = 0
            double_push = (frm ^ to) == 16
            if double_push and self.turn and (
                pawn_attacks(frm + 8, True) & self.pawns & self.black
            ):
                ep = frm + 8
            if double_push and not self.turn and (
                pawn_attacks(frm - 8, False) & self.pawns & self.white
            ):
                ep = frm - 8
            elif to == self.ep:
                victim = ~(1 << (to - 8 if self.turn else to + 8)) & MASK64
                white &= victim
                black &= victim
                pawns &= victim
        elif ((self.white | self.black) >> to) & 1:
            rule50 = 0
        else:
            rule50 = (self.rule50 + 1) & 0xFF

        return Position(
            white=white,
            black=black,
            kings=kings,
            queens=queens,
            rooks=rooks,
            bishops=bishops,
            knights=knights,
            pawns=pawns,
            rule50=rule50,
            ep=ep,
            turn=not self.turn,
        )

    def legal_move(self, move: int) -> bool:
        return self.do_move(move).is_legal()

    def material_string(self, flip: bool) -> str:
        """Material of both sides in the form ``KQPvKRP``; ``flip`` lists black first."""
        colour = BLACK if flip else WHITE

        def side(c: int) -> str:
            return "".join(
                PIECE_CHARS[pt] * popcount(self.pieces_by_type(c, pt))
                for pt in range(KING, PAWN - 1, -1)
            )

        return side(colour) + "v" + side(colour ^ 1)