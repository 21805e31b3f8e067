import pytest

from endgametables.bitboard import (
    bishop_attacks,
    iter_bits,
    king_attacks,
    knight_attacks,
    lsb,
    pawn_attacks,
    popcount,
    queen_attacks,
    rook_attacks,
)


@pytest.mark.parametrize("bb", [1, 0xFF000000000000FF, 0x8000000000000000, 0x0F0F0F0F])
def test_bit_helpers_agree(bb):
    squares = list(iter_bits(bb))
    assert squares == sorted(squares)
    assert len(squares) == popcount(bb)
    assert squares[0] == lsb(bb)
    assert sum(1 << s for s in squares) == bb


def test_empty_bitboard():
    assert popcount(0) == 0
    assert list(iter_bits(0)) == []
    with pytest.raises(ValueError):
        lsb(0)


def test_knight_corner():
    assert knight_attacks(0) == (1 << 10) | (1 << 17)


@pytest.mark.parametrize("attack", [knight_attacks, king_attacks])
def test_leaper_symmetry(attack):
    for a in range(64):
        for b in iter_bits(attack(a)):
            assert ((attack(b) >> a) & 1) == 1


def test_king_in_centre_has_all_neighbours():
    assert popcount(king_attacks(27)) == 8


def test_pawn_attacks_direction_and_symmetry():
    for square in range(64):
        for target in iter_bits(pawn_attacks(square, True)):
            assert target >> 3 == (square >> 3) + 1
            assert ((pawn_attacks(target, False) >> square) & 1) == 1
        for target in iter_bits(pawn_attacks(square, False)):
            assert target >> 3 == (square >> 3) - 1


def test_pawn_on_edge_file_attacks_one_square():
    assert popcount(pawn_attacks(8, True)) == 1
    assert popcount(pawn_attacks(15, False)) == 1


def test_rook_on_empty_board_covers_rank_and_file():
    for square in range(64):
        attacks = rook_attacks(square, 0)
        assert popcount(attacks) == 14
        assert ((attacks >> square) & 1) == 0
        for target in iter_bits(attacks):
            assert target & 7 == square & 7 or target >> 3 == square >> 3


def test_rook_stops_at_blocker():
    blocker = 1 << 3  # d1
    attacks = rook_attacks(0, blocker)
    rank = (1 << 1) | (1 << 2) | (1 << 3)
    file = sum(1 << (8 * k) for k in range(1, 8))
    assert attacks == rank | file
    assert ((attacks >> 4) & 1) == 0
    assert ((attacks >> 56) & 1) == 1


def test_bishop_stops_at_blocker_and_stays_on_diagonals():
    blocker = 1 << 27  # d4
    attacks = bishop_attacks(0, blocker)
    assert attacks == (1 << 9) | (1 << 18) | (1 << 27)
    assert ((attacks >> 36) & 1) == 0
    for target in iter_bits(bishop_attacks(20, 0)):
        assert abs((target & 7) - 4) == abs((target >> 3) - 2)


def test_slider_symmetry_with_occupancy():
    occupied = 0x0000100824000000
    for a in range(64):
        for b in iter_bits(bishop_attacks(a, occupied)):
            assert ((bishop_attacks(b, occupied) >> a) & 1) == 1
        for b in iter_bits(rook_attacks(a, occupied)):
            assert ((rook_attacks(b, occupied) >> a) & 1) == 1


def test_queen_is_union_of_rook_and_bishop():
    occupied = 0x00FF00000000FF00
    for square in range(64):
        assert queen_attacks(square, occupied) == (
            rook_attacks(square, occupied) | bishop_attacks(square, occupied)
        )


@pytest.mark.parametrize("square", [-1, 64])
def test_bad_square_rejected(square):
    with pytest.raises(ValueError):
        knight_attacks(square)
    with pytest.raises(ValueError):
        rook_attacks(square, 0)