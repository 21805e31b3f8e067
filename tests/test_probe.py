import pytest

from endgametables.position import Position, move_from, move_to
from endgametables.probe import (
    probe_dtz,
    probe_root,
    probe_wdl,
    root_probe_dtz,
    root_probe_wdl,
    tb_probe_root,
    tb_probe_wdl,
)
from endgametables.tablebase import ProbeError, Tablebases

E1, E8, A1, H8, D1 = 4, 60, 0, 63, 3


def kings(white_sq, black_sq, turn=True, rule50=0):
    return Position(
        white=1 << white_sq,
        black=1 << black_sq,
        kings=(1 << white_sq) | (1 << black_sq),
        turn=turn,
        rule50=rule50,
    )


def with_white_queen():
    return Position(
        white=(1 << E1) | (1 << D1),
        black=1 << E8,
        kings=(1 << E1) | (1 << E8),
        queens=1 << D1,
    )


@pytest.fixture
def tables():
    with Tablebases("") as tb:
        yield tb


@pytest.mark.parametrize("turn", [True, False])
def test_bare_kings_are_drawn(tables, turn):
    pos = kings(E1, E8, turn)
    assert probe_wdl(tables, pos) == 0
    assert probe_dtz(tables, pos) == 0


def test_tb_probe_wdl_reports_draw(tables):
    assert tb_probe_wdl(tables, kings(E1, E8, rule50=30)) == 2


def test_root_probe_wdl_covers_legal_moves(tables):
    pos = kings(A1, H8)
    ranked = root_probe_wdl(tables, pos, True)
    assert [r.move for r in ranked] == pos.legal_moves()
    assert all(r.rank == 0 and r.score == 0 for r in ranked)


def test_root_probe_dtz_covers_legal_moves(tables):
    pos = kings(E1, E8)
    ranked = root_probe_dtz(tables, pos, False, True)
    assert len(ranked) == len(pos.legal_moves())
    assert all(r.rank == 0 and r.score == 0 for r in ranked)


def test_probe_root_picks_first_drawing_move(tables):
    pos = kings(E1, E8)
    root = probe_root(tables, pos)
    assert root.dtz == 0
    assert root.move == pos.legal_moves()[0]
    assert len(root.results) == len(pos.legal_moves())
    assert all(res & 0xF == 2 for res in root.results)
    assert all((res >> 10) & 0x3F == E1 for res in root.results)


def test_tb_probe_root_packs_move(tables):
    pos = kings(E1, E8)
    res = tb_probe_root(tables, pos)
    move = probe_root(tables, pos).move
    assert res & 0xF == 2
    assert (res >> 10) & 0x3F == move_from(move)
    assert (res >> 4) & 0x3F == move_to(move)
    assert res >> 20 == 0


def test_missing_table_raises(tables):
    pos = with_white_queen()
    with pytest.raises(ProbeError):
        probe_wdl(tables, pos)
    with pytest.raises(ProbeError):
        tb_probe_root(tables, pos)
    with pytest.raises(ProbeError):
        root_probe_wdl(tables, pos, True)


def test_missing_table_after_capture_raises(tables):
    pos = Position(
        white=1 << E1,
        black=(1 << E8) | (1 << 12),
        kings=(1 << E1) | (1 << E8),
        pawns=1 << 12,
    )
    with pytest.raises(ProbeError):
        probe_dtz(tables, pos)