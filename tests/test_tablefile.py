import struct

import pytest

from endgametables.encoding import Material
from endgametables.tablefile import (
    CorruptTableError,
    TableKind,
    open_table,
    parse_table,
    setup_pairs,
)

A, B = 3, 1
KVK = Material.from_name("KvK")


def _leaf(value):
    return bytes([value, 0xF0, 0xFF])


_PAIR_AB = bytes([0x00, 0x10, 0x00])


def _pairs_header(idx_bits, syms=None):
    syms = syms if syms is not None else _leaf(A) + _leaf(B) + _PAIR_AB
    count = len(syms) // 3
    return (
        bytes([0x00, 6, idx_bits, 0])
        + struct.pack("<I", 1)
        + bytes([2, 2])
        + struct.pack("<H", 0)
        + struct.pack("<H", count)
        + syms
        + b"\x00" * (count & 1)
    )


def _pack_codes(symbols):
    bits = "".join(format(s, "02b") for s in symbols).ljust(64 * 8, "0")
    return int(bits, 2).to_bytes(64, "big")


def _expand(symbols):
    values = []
    for s in symbols:
        values += {0: [A], 1: [B], 2: [A, B]}[s]
    return values


def _magic(kind):
    return struct.pack("<I", kind.magic)


def _kvk_wdl(symbols, idx_bits=9):
    count = len(_expand(symbols))
    body = _magic(TableKind.WDL) + b"\x00" + bytes([0x00, 0x06, 0x0E])
    body += _pairs_header(idx_bits)
    body += struct.pack("<IH", 0, 1 << (idx_bits - 1))
    body += struct.pack("<H", count - 1)
    body += b"\x00" * (64 - len(body))
    return body + _pack_codes(symbols)


def test_kind_magic_numbers_accepted(tmp_path):
    wdl = struct.pack("<I", 0x5D23E871) + _kvk_wdl([0, 1])[4:]
    table = parse_table(wdl, KVK, False, KVK.key, TableKind.WDL)
    assert table.infos[0].precomp.decompress(0)[0] == A

    dtz = struct.pack("<I", 0xA50C66D7) + b"\x00" + bytes([0x00, 0x06, 0x0E, 0x80, 0])
    assert parse_table(dtz, KVK, False, KVK.key, TableKind.DTZ).dtz_maps == [None]
    with pytest.raises(CorruptTableError):
        parse_table(dtz, KVK, False, KVK.key, TableKind.WDL)

    path = tmp_path / ("KvK" + ".rtbw")
    path.write_bytes(wdl)
    opened = open_table(path, KVK, False, KVK.key, TableKind.WDL)
    try:
        assert opened.infos[0].precomp.decompress(1)[0] == B
    finally:
        opened.mapping.close()


def test_setup_pairs_header():
    blob = _pairs_header(9)
    pairs, nxt = setup_pairs(blob, 0, 462, TableKind.WDL)
    assert nxt == 24
    assert pairs.sym_len == [0, 0, 1]
    assert pairs.sizes == (6, 2, 64)
    assert pairs.min_len == 2


def test_setup_pairs_const_values():
    blob = bytes([0x80, 4])
    wdl, nxt = setup_pairs(blob, 0, 10, TableKind.WDL)
    dtz, _ = setup_pairs(blob, 0, 10, TableKind.DTZ)
    assert nxt == 2
    assert wdl.decompress(123)[0] == 4
    assert dtz.decompress(0)[0] == 0


def test_setup_pairs_rejects_bad_symbol_reference():
    syms = _leaf(A) + _leaf(B) + bytes([0x05, 0x00, 0x00])
    with pytest.raises(CorruptTableError):
        setup_pairs(_pairs_header(9, syms), 0, 462, TableKind.WDL)


def test_setup_pairs_rejects_truncated():
    with pytest.raises(CorruptTableError):
        setup_pairs(_pairs_header(9)[:12], 0, 462, TableKind.WDL)


@pytest.mark.parametrize(
    "symbols",
    [
        [2, 0, 1, 2, 1, 1],
        [0, 1, 1, 0, 2] * 8,
        [1] * 30 + [2] * 10,
    ],
)
def test_decompress_round_trip(symbols):
    table = parse_table(_kvk_wdl(symbols), KVK, False, KVK.key, TableKind.WDL)
    pairs = table.infos[0].precomp
    expected = _expand(symbols)
    assert [pairs.decompress(i)[0] for i in range(len(expected))] == expected


def test_unsplit_wdl_layout():
    table = parse_table(_kvk_wdl([0, 1]), KVK, False, KVK.key, TableKind.WDL)
    assert table.num_tables == 1
    assert table.split is False
    assert table.infos[1] is None
    assert table.infos[0].pieces == [6, 14]


def test_split_wdl_const_tables():
    body = _magic(TableKind.WDL) + b"\x01" + bytes([0x00, 0xE6, 0x6E])
    body += bytes([0x80, 4, 0x80, 0])
    table = parse_table(body, KVK, False, KVK.key, TableKind.WDL)
    assert table.split is True
    assert table.infos[0].pieces == [6, 14]
    assert table.infos[1].pieces == [14, 6]
    assert table.infos[0].precomp.decompress(5)[0] == 4
    assert table.infos[1].precomp.decompress(5)[0] == 0


def test_dtz_narrow_maps():
    body = _magic(TableKind.DTZ) + b"\x00" + bytes([0x00, 0x06, 0x0E])
    body += bytes([0x82, 0])
    body += bytes([1, 5, 0, 2, 7, 9, 0])
    table = parse_table(body, KVK, False, KVK.key, TableKind.DTZ)
    assert table.dtz_flags == [0x82]
    assert table.dtz_maps == [((5,), (), (7, 9), ())]
    assert len(table.infos) == 1


def test_dtz_wide_maps():
    body = _magic(TableKind.DTZ) + b"\x00" + bytes([0x00, 0x06, 0x0E])
    body += bytes([0x92, 0])
    body += struct.pack("<HH", 1, 300) + struct.pack("<H", 0)
    body += struct.pack("<HHH", 2, 1000, 2) + struct.pack("<H", 0)
    table = parse_table(body, KVK, False, KVK.key, TableKind.DTZ)
    assert table.dtz_maps == [((300,), (), (1000, 2), ())]


def test_dtz_without_map():
    body = _magic(TableKind.DTZ) + b"\x00" + bytes([0x00, 0x06, 0x0E]) + bytes([0x80, 0])
    table = parse_table(body, KVK, False, KVK.key, TableKind.DTZ)
    assert table.dtz_maps == [None]


def test_dtm_maps_and_loss_only():
    head = _magic(TableKind.DTM)
    pieces = bytes([0x00, 0x06, 0x0E]) + bytes([0x80, 0])
    maps = struct.pack("<HH", 1, 7) + struct.pack("<HHH", 2, 8, 9)
    table = parse_table(head + b"\x00" + pieces + maps, KVK, False, KVK.key, TableKind.DTM)
    assert table.dtm_maps == [(((7,), (8, 9)), None)]
    assert table.dtm_switched is False
    loss = parse_table(head + b"\x04" + pieces, KVK, False, KVK.key, TableKind.DTM)
    assert loss.dtm_loss_only is True
    assert loss.dtm_maps == [None]


def test_bad_magic():
    body = _magic(TableKind.DTZ) + _kvk_wdl([0])[4:]
    with pytest.raises(CorruptTableError):
        parse_table(body, KVK, False, KVK.key, TableKind.WDL)


def test_truncated_header():
    with pytest.raises(CorruptTableError):
        parse_table(_magic(TableKind.WDL) + b"\x00\x00", KVK, False, KVK.key, TableKind.WDL)


def test_truncated_block_data():
    data = _kvk_wdl([0, 1])[:70]
    with pytest.raises(CorruptTableError):
        parse_table(data, KVK, False, KVK.key, TableKind.WDL)


def test_open_table_from_file(tmp_path):
    symbols = [2, 2, 0, 1]
    path = tmp_path / ("KvK" + TableKind.WDL.suffix)
    path.write_bytes(_kvk_wdl(symbols))
    table = open_table(path, KVK, False, KVK.key, TableKind.WDL)
    try:
        pairs = table.infos[0].precomp
        expected = _expand(symbols)
        assert [pairs.decompress(i)[0] for i in range(len(expected))] == expected
    finally:
        table.mapping.close()


def test_open_table_empty_file(tmp_path):
    path = tmp_path / "KvK.rtbw"
    path.write_bytes(b"")
    with pytest.raises(CorruptTableError):
        open_table(path, KVK, False, KVK.key, TableKind.WDL)


def test_open_table_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        open_table(tmp_path / "KQvK.rtbw", KVK, False, KVK.key, TableKind.WDL)