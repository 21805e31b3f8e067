"""Reading compressed endgame table files: layout, headers and block decompression."""

from __future__ import annotations

import mmap
import os
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Union

from .bitboard import MASK64
from .encoding import EncInfo, Encoding, Material
from .position import calc_key_from_pieces

Buffer = Union[bytes, bytearray, memoryview, mmap.mmap]

MAX_SYMS = 4096
_LEAF = 0x0FFF


class CorruptTableError(ValueError):
    """A table file does not have the expected structure."""


class TableKind(IntEnum):
    """The three kinds of table file."""

    WDL = 0
    DTM = 1
    DTZ = 2

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self.value]

    @property
    def magic(self) -> int:
        return _MAGICS[self.value]


_SUFFIXES = (".rtbw", ".rtbm", ".rtbz")
_MAGICS = (0x5D23E871, 0x88AC504B, 0xA50C66D7)


def _check(data: Buffer, pos: int, width: int) -> None:
    if pos < 0 or pos + width > len(data):
        raise CorruptTableError(f"read of {width} bytes at {pos} is outside the table")


def _byte(data: Buffer, pos: int) -> int:
    _check(data, pos, 1)
    return data[pos]


def _unpack(fmt: str, data: Buffer, pos: int) -> int:
    _check(data, pos, struct.calcsize(fmt))
    return struct.unpack_from(fmt, data, pos)[0]


def _le16(data: Buffer, pos: int) -> int:
    return _unpack("<H", data, pos)


def _le32(data: Buffer, pos: int) -> int:
    return _unpack("<I", data, pos)


def _be32(data: Buffer, pos: int) -> int:
    return _unpack(">I", data, pos)


def _be64(data: Buffer, pos: int) -> int:
    return _unpack(">Q", data, pos)


@dataclass
class PairsData:
    """Decoder state for one compressed sub-table."""

    data: Buffer = field(repr=False)
    flags: int
    idx_bits: int = 0
    block_size: int = 0
    min_len: int = 0
    num_blocks: int = 0
    const_value: bytes = b"\x00\x00"
    offset: int = 0
    sym_pat: int = 0
    sym_len: list[int] = field(default_factory=list)
    base: list[int] = field(default_factory=list)
    sizes: tuple[int, int, int] = (0, 0, 0)
    index_table: int = 0
    size_table: int = 0
    block_data: int = 0

    def _block_length(self, block: int) -> int:
        if not 0 <= block < self.num_blocks:
            raise CorruptTableError(f"block {block} out of range")
        return _le16(self.data, self.size_table + 2 * block)

    def decompress(self, index: int) -> bytes:
        """Return the symbol pattern bytes stored for entry ``index``."""
        if not self.idx_bits:
            return self.const_value
        if index < 0:
            raise ValueError(f"index must be non-negative, got {index}")
        data = self.data
        main = index >> self.idx_bits
        lit = (index & ((1 << self.idx_bits) - 1)) - (1 << (self.idx_bits - 1))
        entry = self.index_table + 6 * main
        block = _le32(data, entry)
        lit += _le16(data, entry + 4)

        if lit < 0:
            while lit < 0:
                block -= 1
                lit += self._block_length(block) + 1
        else:
            while lit > self._block_length(block):
                lit -= self._block_length(block) + 1
                block += 1

        ptr = self.block_data + (block << self.block_size)
        code = _be64(data, ptr)
        ptr += 8
        bit_cnt = 0
        m = self.min_len
        base = self.base
        sym_len = self.sym_len

        while True:
            length = m
            while code < base[length - m]:
                length += 1
                if length - m >= len(base):
                    raise CorruptTableError("code does not match any length")
            sym = _le16(data, self.offset + 2 * (length - m))
            sym += (code - base[length - m]) >> (64 - length)
            if sym >= len(sym_len):
                raise CorruptTableError(f"symbol {sym} out of range")
            if lit < sym_len[sym] + 1:
                break
            lit -= sym_len[sym] + 1
            code = (code << length) & MASK64
            bit_cnt += length
            if bit_cnt >= 32:
                bit_cnt -= 32
                code |= (_be32(data, ptr) << bit_cnt) & MASK64
                ptr += 4

        pat = self.sym_pat
        while sym_len[sym]:
            w = pat + 3 * sym
            left = ((data[w + 1] & 0x0F) << 8) | data[w]
            if lit < sym_len[left] + 1:
                sym = left
            else:
                lit -= sym_len[left] + 1
                sym = (data[w + 2] << 4) | (data[w + 1] >> 4)

        w = pat + 3 * sym
        return bytes(data[w : w + 3])


def _symbol_children(data: Buffer, sym_pat: int, sym: int) -> Optional[tuple[int, int]]:
    w = sym_pat + 3 * sym
    _check(data, w, 3)
    right = (data[w + 2] << 4) | (data[w + 1] >> 4)
    if right == _LEAF:
        return None
    left = ((data[w + 1] & 0x0F) << 8) | data[w]
    return left, right


def _symbol_lengths(data: Buffer, sym_pat: int, num_syms: int) -> list[int]:
    """Number of extra values each symbol expands to (0 for a leaf)."""
    lengths = [0] * num_syms
    state = [0] * num_syms  # 0 unseen, 1 in progress, 2 done
    for start in range(num_syms):
        if state[start] == 2:
            continue
        stack = [start]
        while stack:
            sym = stack[-1]
            if state[sym] == 2:
                stack.pop()
                continue
            kids = _symbol_children(data, sym_pat, sym)
            if kids is None:
                state[sym] = 2
                stack.pop()
                continue
            if any(kid >= num_syms for kid in kids):
                raise CorruptTableError(f"symbol {sym} refers past the symbol table")
            pending = [kid for kid in kids if state[kid] != 2]
            if pending:
                if state[sym] == 1 or any(state[kid] == 1 for kid in pending):
                    raise CorruptTableError("symbol table contains a cycle")
                state[sym] = 1
                stack.extend(pending)
                continue
            lengths[sym] = lengths[kids[0]] + lengths[kids[1]] + 1
            state[sym] = 2
            stack.pop()
    return lengths


def setup_pairs(
    data: Buffer, offset: int, table_size: int, kind: TableKind
) -> tuple[PairsData, int]:
    """Parse a sub-table's decoder header at ``offset``; return it and the next offset."""
    kind = TableKind(kind)
    flags = _byte(data, offset)
    if flags & 0x80:
        value = _byte(data, offset + 1) if kind is TableKind.WDL else 0
        return PairsData(data=data, flags=flags, const_value=bytes([value, 0])), offset + 2

    block_size = _byte(data, offset + 1)
    idx_bits = _byte(data, offset + 2)
    real_blocks = _le32(data, offset + 4)
    num_blocks = real_blocks + _byte(data, offset + 3)
    max_len = _byte(data, offset + 8)
    min_len = _byte(data, offset + 9)
    if idx_bits == 0 or min_len < 1 or max_len > 64 or max_len < min_len:
        raise CorruptTableError("invalid code lengths in table header")
    h = max_len - min_len + 1
    num_syms = _le16(data, offset + 10 + 2 * h)
    if num_syms >= MAX_SYMS:
        raise CorruptTableError(f"too many symbols: {num_syms}")
    sym_pat = offset + 12 + 2 * h
    _check(data, sym_pat, 3 * num_syms)
    next_offset = sym_pat + 3 * num_syms + (num_syms & 1)

    num_indices = (table_size + (1 << idx_bits) - 1) >> idx_bits
    sizes = (6 * num_indices, 2 * num_blocks, real_blocks << block_size)

    sym_len = _symbol_lengths(data, sym_pat, num_syms)

    offsets = [_le16(data, offset + 10 + 2 * i) for i in range(h)]
    base = [0] * h
    for i in range(h - 2, -1, -1):
        base[i] = ((base[i + 1] + offsets[i] - offsets[i + 1]) & MASK64) // 2
    base = [(value << (64 - (min_len + i))) & MASK64 for i, value in enumerate(base)]

    pairs = PairsData(
        data=data,
        flags=flags,
        idx_bits=idx_bits,
        block_size=block_size,
        min_len=min_len,
        num_blocks=num_blocks,
        offset=offset + 10,
        sym_pat=sym_pat,
        sym_len=sym_len,
        base=base,
        sizes=sizes,
    )
    return pairs, next_offset


Map = tuple[int, ...]


@dataclass
class LoadedTable:
    """A parsed table file.

    ``infos`` holds one entry per sub-table; for WDL and DTM files the second
    half holds the other side to move and is ``None`` when the file is not
    split. ``dtz_maps[t]`` holds four value maps or ``None``; ``dtm_maps[t]``
    holds a pair of sides, each a pair of maps, the second side ``None`` when
    not split.
    """

    kind: TableKind
    data: Buffer = field(repr=False)
    infos: list[Optional[EncInfo]]
    num_tables: int
    split: bool = False
    dtm_loss_only: bool = False
    dtm_switched: bool = False
    dtz_flags: list[int] = field(default_factory=list)
    dtz_maps: list[Optional[tuple[Map, Map, Map, Map]]] = field(default_factory=list)
    dtm_maps: list[Optional[tuple]] = field(default_factory=list)
    mapping: Optional[mmap.mmap] = field(default=None, repr=False)


def _build_info(
    material: Material, header: bytes, shift: int, table: int, enc: Encoding
) -> EncInfo:
    try:
        return EncInfo.build(material, header, shift, table, enc)
    except ValueError as exc:
        raise CorruptTableError(f"bad sub-table header: {exc}") from exc


def _read_map(data: Buffer, pos: int, wide: bool) -> tuple[Map, int]:
    if wide:
        count = _le16(data, pos)
        _check(data, pos + 2, 2 * count)
        return tuple(struct.unpack_from(f"<{count}H", data, pos + 2)), pos + 2 + 2 * count
    count = _byte(data, pos)
    _check(data, pos + 1, count)
    return tuple(data[pos + 1 : pos + 1 + count]), pos + 1 + count


def parse_table(
    data: Buffer, material: Material, has_pawns: bool, key: int, kind: TableKind
) -> LoadedTable:
    """Lay out a whole table file held in ``data``."""
    kind = TableKind(kind)
    size = len(data)
    if size < 5 or _le32(data, 0) != kind.magic:
        raise CorruptTableError("corrupted table: bad magic")

    header_flags = data[4]
    split = kind is not TableKind.DTZ and bool(header_flags & 0x01)
    dtm_loss_only = kind is TableKind.DTM and bool(header_flags & 0x04)
    pos = 5

    if has_pawns:
        num = 6 if kind is TableKind.DTM else 4
        enc = Encoding.RANK if kind is TableKind.DTM else Encoding.FILE
    else:
        num = 1
        enc = Encoding.PIECE
    step = material.num + 1 + int(has_pawns and material.pawns[1] > 0)
    second_half = num if kind is not TableKind.DTZ else 0
    infos: list[Optional[EncInfo]] = [None] * (num + second_half)

    for t in range(num):
        _check(data, pos, step)
        header = bytes(data[pos : pos + step])
        infos[t] = _build_info(material, header, 0, t, enc)
        if split:
            infos[num + t] = _build_info(material, header, 4, t, enc)
        pos += step
    pos += pos & 1

    ordered: list[EncInfo] = []
    dtz_flags: list[int] = []
    for t in range(num):
        first = infos[t]
        first.precomp, pos = setup_pairs(data, pos, first.size, kind)
        ordered.append(first)
        if kind is TableKind.DTZ:
            dtz_flags.append(first.precomp.flags)
        if split:
            other = infos[num + t]
            other.precomp, pos = setup_pairs(data, pos, other.size, kind)
            ordered.append(other)

    dtm_maps: list[Optional[tuple]] = []
    if kind is TableKind.DTM:
        for _ in range(num):
            if dtm_loss_only:
                dtm_maps.append(None)
                continue
            sides: list[Optional[tuple[Map, Map]]] = []
            for _side in range(2 if split else 1):
                first_map, pos = _read_map(data, pos, True)
                second_map, pos = _read_map(data, pos, True)
                sides.append((first_map, second_map))
            if not split:
                sides.append(None)
            dtm_maps.append(tuple(sides))

    dtz_maps: list[Optional[tuple[Map, Map, Map, Map]]] = []
    if kind is TableKind.DTZ:
        for flags in dtz_flags:
            if not flags & 2:
                dtz_maps.append(None)
                continue
            wide = bool(flags & 16)
            if wide:
                pos += pos & 1
            maps = []
            for _ in range(4):
                values, pos = _read_map(data, pos, wide)
                maps.append(values)
            dtz_maps.append(tuple(maps))
        pos += pos & 1

    def claim(start: int, length: int) -> int:
        if length and start + length > size:
            raise CorruptTableError("table data runs past the end of the file")
        return start + length

    for info in ordered:
        info.precomp.index_table = pos
        pos = claim(pos, info.precomp.sizes[0])
    for info in ordered:
        info.precomp.size_table = pos
        pos = claim(pos, info.precomp.sizes[1])
    for info in ordered:
        pos = (pos + 0x3F) & ~0x3F
        info.precomp.block_data = pos
        pos = claim(pos, info.precomp.sizes[2])

    dtm_switched = (
        kind is TableKind.DTM
        and has_pawns
        and calc_key_from_pieces(infos[0].pieces[: material.num]) != key
    )

    return LoadedTable(
        kind=kind,
        data=data,
        infos=infos,
        num_tables=num,
        split=split,
        dtm_loss_only=dtm_loss_only,
        dtm_switched=dtm_switched,
        dtz_flags=dtz_flags,
        dtz_maps=dtz_maps,
        dtm_maps=dtm_maps,
    )


def open_table(
    path: Union[str, os.PathLike],
    material: Material,
    has_pawns: bool,
    key: int,
    kind: TableKind,
) -> LoadedTable:
    """Memory-map the file at ``path`` and parse it; the map stays in ``mapping``."""
    with open(path, "rb") as handle:
        try:
            mapping = mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ)
        except ValueError as exc:
            raise CorruptTableError(f"cannot map {path}: {exc}") from exc
    try:
        table = parse_table(mapping, material, has_pawns, key, kind)
    except Exception:
        mapping.close()
        raise
    table.mapping = mapping
    return table