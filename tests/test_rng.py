from itertools import islice

import pytest

from endgametables.rng import MASK64, Rng, rotate


def test_rotate_by_one_moves_low_bit_to_top():
    assert rotate(1, 1) == 1 << 63


def test_rotate_zero_is_identity():
    assert rotate(0xDEADBEEF, 0) == 0xDEADBEEF


@pytest.mark.parametrize("value", [1, 0x0123456789ABCDEF, MASK64, 0x8000000000000001])
@pytest.mark.parametrize("shift", [1, 9, 31, 63])
def test_rotate_round_trip(value, shift):
    rotated = rotate(value, shift)
    assert rotate(rotated, 64 - shift) == value
    assert rotated.bit_count() == value.bit_count()


@pytest.mark.parametrize("shift", [-1, 64, 100])
def test_rotate_rejects_bad_shift(shift):
    with pytest.raises(ValueError):
        rotate(5, shift)


def test_same_seed_same_sequence():
    a = Rng(12345)
    b = Rng(12345)
    assert [a.next_u64() for _ in range(20)] == [b.next_u64() for _ in range(20)]


def test_different_seeds_differ():
    a = Rng(1)
    b = Rng(2)
    assert [a.next_u64() for _ in range(5)] != [b.next_u64() for _ in range(5)]


def test_reseed_restarts_sequence():
    rng = Rng(99)
    first = [rng.next_u64() for _ in range(10)]
    rng.seed(99)
    assert [rng.next_u64() for _ in range(10)] == first


def test_values_fit_in_64_bits():
    rng = Rng(7)
    for value in islice(rng, 200):
        assert 0 <= value <= MASK64


def test_magic_is_and_of_three_outputs():
    a = Rng(2021)
    b = Rng(2021)
    for _ in range(10):
        x, y, z = b.next_u64(), b.next_u64(), b.next_u64()
        assert a.magic() == x & y & z


def test_magic_is_sparser_on_average():
    rng = Rng(42)
    magics = [rng.magic() for _ in range(100)]
    plain = [rng.next_u64() for _ in range(100)]
    assert sum(m.bit_count() for m in magics) < sum(p.bit_count() for p in plain)


def test_iteration_matches_next_u64():
    a = Rng(5)
    b = Rng(5)
    assert list(islice(a, 8)) == [b.next_u64() for _ in range(8)]