"""Win/draw/loss and distance-to-zero probing with capture and en passant resolution."""

from __future__ import annotations

from dataclasses import replace
from typing import NamedTuple

from .position import Position, move_from, move_promotes, move_to
from .results import Wdl, dtz_to_wdl
from .tablebase import ProbeError, Tablebases, WrongSideToMove

VALUE_PAWN = 100
VALUE_MATE = 32000
VALUE_DRAW = 0
MAX_MATE_PLY = 255

RESULT_FAILED = 0xFFFFFFFF
RESULT_CHECKMATE = 4  # WDL field set to a win
RESULT_STALEMATE = 2  # WDL field set to a draw

MOVE_STALEMATE = 0xFFFF
MOVE_CHECKMATE = 0xFFFE

_SCORE_ILLEGAL = 0x7FFF
_NO_BEST = 2**31 - 1

_WDL_TO_DTZ = (-1, -101, 0, 101, 1)
_WDL_TO_RANK = (-1000, -899, 0, 899, 1000)
_WDL_TO_VALUE = (
    -VALUE_MATE + MAX_MATE_PLY + 1,
    VALUE_DRAW - 2,
    VALUE_DRAW,
    VALUE_DRAW + 2,
    VALUE_MATE - MAX_MATE_PLY - 1,
)


class RootMoveScore(NamedTuple):
    """A legal root move with its table rank and display score."""

    move: int
    rank: int
    score: int


class RootProbe(NamedTuple):
    """Suggested move, root DTZ value and one packed result per legal move."""

    move: int
    dtz: int
    results: list[int]


def _pack(wdl: int, from_square: int, to_square: int, promotes: int, ep: bool, dtz: int) -> int:
    return (
        (int(wdl) & 0xF)
        | ((to_square << 4) & 0x3F0)
        | ((from_square << 10) & 0xFC00)
        | ((int(promotes) << 16) & 0x70000)
        | ((int(ep) << 19) & 0x80000)
        | ((dtz << 20) & 0xFFF00000)
    )


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division rounding towards zero."""
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


def _probe_ab(tables: Tablebases, position: Position, alpha: int, beta: int) -> int:
    for move in position.captures():
        if not position.is_capture(move):
            continue
        after = position.do_move(move)
        if not after.is_legal():
            continue
        value = -_probe_ab(tables, after, -beta, -alpha)
        if value > alpha:
            if value >= beta:
                return value
            alpha = value
    return max(alpha, tables.probe_wdl_table(position))


def _probe_wdl(tables: Tablebases, position: Position) -> tuple[int, int]:
    """WDL value and a flag: 2 when a capture (or only en passant) decides it, else 1."""
    best_cap = best_ep = -3
    for move in position.captures():
        if not position.is_capture(move):
            continue
        after = position.do_move(move)
        if not after.is_legal():
            continue
        value = -_probe_ab(tables, after, -2, -best_cap)
        if value > best_cap:
            if value == 2:
                return 2, 2
            if not position.is_en_passant(move):
                best_cap = value
            elif value > best_ep:
                best_ep = value

    value = tables.probe_wdl_table(position)

    if best_ep > best_cap:
        if best_ep > value:
            return best_ep, 2
        best_cap = best_ep

    if best_cap >= value:
        return best_cap, 1 + int(best_cap > 0)

    if best_ep > -3 and value == 0:
        has_other = any(
            not position.is_en_passant(move) and position.legal_move(move)
            for move in position.moves()
        )
        if not has_other and not position.is_check():
            return best_ep, 2

    return value, 1


def probe_wdl(tables: Tablebases, position: Position) -> int:
    """WDL value in -2..2 for the side to move; raises ProbeError on failure."""
    return _probe_wdl(tables, position)[0]


def probe_dtz(tables: Tablebases, position: Position) -> int:
    """Distance to zeroing for the side to move; -1 for a mated position."""
    wdl, flag = _probe_wdl(tables, position)
    if wdl == 0:
        return 0
    if flag == 2:
        return _WDL_TO_DTZ[wdl + 2]

    legal: list[int] = []
    if wdl > 0:
        legal = position.legal_moves()
        for move in legal:
            if not position.is_pawn_move(move) or position.is_capture(move):
                continue
            after = position.do_move(move)
            if not after.is_legal():
                continue
            if -probe_wdl(tables, after) == wdl:
                return _WDL_TO_DTZ[wdl + 2]

    try:
        dtz = tables.probe_dtz_table(position, wdl)
    except WrongSideToMove:
        pass
    else:
        return _WDL_TO_DTZ[wdl + 2] + (dtz if wdl > 0 else -dtz)

    if wdl > 0:
        best = _NO_BEST
        candidates = legal
    else:
        best = _WDL_TO_DTZ[wdl + 2]
        candidates = position.moves()

    for move in candidates:
        if position.is_capture(move) or position.is_pawn_move(move):
            continue
        after = position.do_move(move)
        if not after.is_legal():
            continue
        value = -probe_dtz(tables, after)
        if value == 1 and after.is_mate():
            best = 1
        elif wdl > 0:
            if 0 < value and value + 1 < best:
                best = value + 1
        elif value - 1 < best:
            best = value - 1
    return best


def _dtz_after(tables: Tablebases, after: Position) -> int:
    if after.rule50 == 0:
        return _WDL_TO_DTZ[-probe_wdl(tables, after) + 2]
    value = -probe_dtz(tables, after)
    if value > 0:
        return value + 1
    if value < 0:
        return value - 1
    return 0


def root_probe_dtz(
    tables: Tablebases, position: Position, has_repeated: bool, use_rule50: bool
) -> list[RootMoveScore]:
    """Rank and score every legal root move using the DTZ tables."""
    cnt50 = position.rule50
    bound = 900 if use_rule50 else 1
    ranked: list[RootMoveScore] = []
    for move in position.legal_moves():
        after = position.do_move(move)
        value = _dtz_after(tables, after)
        if value == 2 and after.is_mate():
            value = 1

        if value > 0:
            rank = 1000 if value + cnt50 <= 99 and not has_repeated else 1000 - (value + cnt50)
        elif value < 0:
            rank = -1000 if -value * 2 + cnt50 < 100 else -1000 + (-value + cnt50)
        else:
            rank = 0

        if rank >= bound:
            score = VALUE_MATE - MAX_MATE_PLY - 1
        elif rank > 0:
            score = _trunc_div(max(3, rank - 800) * VALUE_PAWN, 200)
        elif rank == 0:
            score = VALUE_DRAW
        elif rank > -bound:
            score = _trunc_div(min(-3, rank + 800) * VALUE_PAWN, 200)
        else:
            score = -VALUE_MATE + MAX_MATE_PLY + 1
        ranked.append(RootMoveScore(move, rank, score))
    return ranked


def root_probe_wdl(
    tables: Tablebases, position: Position, use_rule50: bool
) -> list[RootMoveScore]:
    """Rank and score every legal root move using only the WDL tables."""
    ranked: list[RootMoveScore] = []
    for move in position.legal_moves():
        value = -probe_wdl(tables, position.do_move(move))
        if not use_rule50:
            value = 2 if value > 0 else -2 if value < 0 else 0
        ranked.append(RootMoveScore(move, _WDL_TO_RANK[value + 2], _WDL_TO_VALUE[value + 2]))
    return ranked


def probe_root(tables: Tablebases, position: Position) -> RootProbe:
    """Pick a move preserving the table result; mate and stalemate give sentinel moves."""
    dtz = probe_dtz(tables, position)
    moves = position.moves()
    scores: list[int] = []
    results: list[int] = []
    num_draw = 0
    for move in moves:
        after = position.do_move(move)
        if not after.is_legal():
            scores.append(_SCORE_ILLEGAL)
            continue
        if dtz > 0 and after.is_mate():
            value = 1
        else:
            value = _dtz_after(tables, after)
        num_draw += int(value == 0)
        scores.append(value)
        results.append(
            _pack(
                dtz_to_wdl(position.rule50, value),
                move_from(move),
                move_to(move),
                move_promotes(move),
                position.is_en_passant(move),
                abs(value),
            )
        )

    scored = [(m, v) for m, v in zip(moves, scores) if v != _SCORE_ILLEGAL]

    if dtz > 0:
        winning = [(v, i) for i, (_, v) in enumerate(scored) if v > 0]
        if not winning:
            raise ProbeError("no winning move found")
        return RootProbe(scored[min(winning)[1]][0], dtz, results)

    if dtz < 0:
        best, best_move = 0, 0
        for move, value in scored:
            if value < best:
                best, best_move = value, move
        return RootProbe(MOVE_CHECKMATE if best == 0 else best_move, dtz, results)

    if num_draw == 0:
        return RootProbe(MOVE_STALEMATE, dtz, results)
    count = position.calc_key(not position.turn) % num_draw
    drawing = [move for move, value in scored if value == 0]
    return RootProbe(drawing[count], dtz, results)


def tb_probe_wdl(tables: Tablebases, position: Position) -> Wdl:
    """WDL result (loss 0 .. win 4) with the fifty-move counter ignored."""
    return Wdl(probe_wdl(tables, replace(position, rule50=0)) + 2)


def tb_probe_root(tables: Tablebases, position: Position) -> int:
    """Packed root result: WDL, suggested move and DTZ, or a mate/stalemate code."""
    root = probe_root(tables, position)
    if root.move == MOVE_CHECKMATE:
        return RESULT_CHECKMATE
    if root.move == MOVE_STALEMATE:
        return RESULT_STALEMATE
    return _pack(
        dtz_to_wdl(position.rule50, root.dtz),
        move_from(root.move),
        move_to(root.move),
        move_promotes(root.move),
        position.is_en_passant(root.move),
        abs(root.dtz),
    )