"""Discovery of table files on disk and probing of single table entries."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from itertools import combinations_with_replacement, product
from typing import Optional, Union

from .bitboard import iter_bits
from .encoding import EncInfo, Encoding, Material, encode, leading_pawn
from .position import WHITE, Position, colour_of_piece, type_of_piece
from .tablefile import CorruptTableError, LoadedTable, TableKind, open_table

logger = logging.getLogger(__name__)

EMPTY_PATH = "<empty>"

# Piece letters in the order tables are enumerated.
_PIECE_ORDER = "QRBNP"

_WDL_TO_MAP = (1, 3, 0, 2, 0)
_PA_FLAGS = (8, 0, 0, 0, 4)


class ProbeError(Exception):
    """A table probe could not be answered."""


class WrongSideToMove(ProbeError):
    """The DTZ table only stores the other side to move for this position."""


@dataclass
class TableEntry:
    """One material signature found on disk and the tables loaded for it."""

    material: Material
    has_dtm: bool = False
    has_dtz: bool = False
    tables: dict[TableKind, LoadedTable] = field(default_factory=dict, repr=False)

    @property
    def name(self) -> str:
        return self.material.name

    @property
    def key(self) -> int:
        return self.material.key

    @property
    def num(self) -> int:
        return self.material.num

    @property
    def has_pawns(self) -> bool:
        return self.material.has_pawns

    @property
    def symmetric(self) -> bool:
        return self.material.symmetric


def _names(pattern: Sequence[Sequence[int]], split: int) -> Iterator[str]:
    for indices in pattern:
        letters = [_PIECE_ORDER[i] for i in indices]
        yield "K" + "".join(letters[:split]) + "vK" + "".join(letters[split:])


def _ascending(count: int) -> list[tuple[int, ...]]:
    return list(combinations_with_replacement(range(5), count))


def _table_names() -> Iterator[str]:
    """Every material signature with up to seven pieces, in probing order."""
    yield from _names([(i,) for i in range(5)], 1)
    yield from _names([(i, j) for i in range(5) for j in range(i, 5)], 1)
    yield from _names(_ascending(2), 2)
    yield from _names([a + (k,) for a, k in product(_ascending(2), range(5))], 2)
    yield from _names(_ascending(3), 3)
    yield from _names(
        [
            (i, j, k, m)
            for i in range(5)
            for j in range(i, 5)
            for k in range(i, 5)
            for m in range(j if i == k else k, 5)
        ],
        2,
    )
    yield from _names([a + (m,) for a, m in product(_ascending(3), range(5))], 3)
    yield from _names(_ascending(4), 4)
    yield from _names(_ascending(5), 5)
    yield from _names([a + (m,) for a, m in product(_ascending(4), range(5))], 4)
    yield from _names([a + b for a, b in product(_ascending(3), _ascending(2))], 3)


def _fill_squares(
    position: Position,
    pieces: Sequence[int],
    flip: bool,
    mirror: int,
    squares: list[int],
) -> None:
    """Append the squares of the next group of like pieces."""
    index = len(squares)
    if index >= len(pieces):
        raise ProbeError("position does not match the table's material")
    piece = pieces[index]
    colour = colour_of_piece(piece)
    if flip:
        colour ^= 1
    bb = position.pieces_by_type(colour, type_of_piece(piece))
    if not bb:
        raise ProbeError("position does not match the table's material")
    squares.extend(sq ^ mirror for sq in iter_bits(bb))


class Tablebases:
    """A set of endgame table files found under one or more directories."""

    def __init__(self, path: Union[str, os.PathLike] = "") -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, TableEntry] = {}
        self._all: list[TableEntry] = []
        self.paths: list[str] = []
        self.num_wdl = 0
        self.num_dtm = 0
        self.num_dtz = 0
        self.max_cardinality = 0
        self.max_cardinality_dtm = 0
        self.largest = 0
        self.init(path)

    def init(self, path: Union[str, os.PathLike]) -> None:
        """Forget any loaded tables and scan the directories in ``path``."""
        self.close()
        text = os.fspath(path)
        if not text or text == EMPTY_PATH:
            return
        self.paths = [part for part in text.split(os.pathsep) if part]
        for name in _table_names():
            self._add(name)
        self.largest = max(self.max_cardinality, self.max_cardinality_dtm)
        logger.info(
            "Found %d WDL, %d DTM and %d DTZ tablebase files. Largest %d-men",
            self.num_wdl,
            self.num_dtm,
            self.num_dtz,
            self.largest,
        )

    def close(self) -> None:
        """Release every mapped table and forget all entries."""
        with self._lock:
            for entry in self._all:
                for table in entry.tables.values():
                    if table.mapping is not None:
                        table.mapping.close()
                entry.tables.clear()
            self._all = []
            self._entries = {}
            self.paths = []
            self.num_wdl = self.num_dtm = self.num_dtz = 0
            self.max_cardinality = self.max_cardinality_dtm = 0
            self.largest = 0

    def __enter__(self) -> Tablebases:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _find(self, name: str, suffix: str) -> Optional[str]:
        for directory in self.paths:
            candidate = os.path.join(directory, name + suffix)
            if os.path.isfile(candidate):
                return candidate
        return None

    def _usable(self, name: str, suffix: str) -> bool:
        path = self._find(name, suffix)
        if path is None:
            return False
        if os.path.getsize(path) & 63 != 16:
            logger.warning("Incomplete tablebase file %s%s", name, suffix)
            return False
        return True

    def _add(self, name: str) -> None:
        if not self._usable(name, TableKind.WDL.suffix):
            return
        material = Material.from_name(name)
        entry = TableEntry(
            material=material,
            has_dtm=self._usable(name, TableKind.DTM.suffix),
            has_dtz=self._usable(name, TableKind.DTZ.suffix),
        )
        self.num_wdl += 1
        self.num_dtm += int(entry.has_dtm)
        self.num_dtz += int(entry.has_dtz)
        self.max_cardinality = max(self.max_cardinality, material.num)
        if entry.has_dtm:
            self.max_cardinality_dtm = max(self.max_cardinality_dtm, material.num)
        self._all.append(entry)
        self._entries[material.key] = entry
        self._entries.setdefault(material.mirrored_key, entry)

    def _load(self, entry: TableEntry, key: int, kind: TableKind) -> LoadedTable:
        table = entry.tables.get(kind)
        if table is not None:
            return table
        with self._lock:
            table = entry.tables.get(kind)
            if table is None:
                path = self._find(entry.name, kind.suffix)
                try:
                    if path is None:
                        raise FileNotFoundError(entry.name + kind.suffix)
                    table = open_table(
                        path, entry.material, entry.has_pawns, entry.key, kind
                    )
                except (OSError, CorruptTableError) as exc:
                    self._entries.pop(key, None)
                    raise ProbeError(
                        f"cannot load {entry.name}{kind.suffix}: {exc}"
                    ) from exc
                entry.tables[kind] = table
        return table

    def probe_table(self, position: Position, wdl: int, kind: TableKind) -> int:
        """Raw value stored for ``position`` in the table of the given kind.

        ``wdl`` selects the value map for DTZ and DTM tables and is ignored
        for WDL tables, whose result is the stored value minus two.
        """
        kind = TableKind(kind)
        if kind is TableKind.DTZ and not -2 <= wdl <= 2:
            raise ValueError(f"wdl must be in -2..2, got {wdl}")
        key = position.calc_key(False)
        if kind is TableKind.WDL and key == 0:
            return 0

        entry = self._entries.get(key)
        if entry is None:
            raise ProbeError(f"no table for {position.material_string(False)}")
        if (kind is TableKind.DTM and not entry.has_dtm) or (
            kind is TableKind.DTZ and not entry.has_dtz
        ):
            raise ProbeError(f"no {kind.suffix} table for {entry.name}")

        table = self._load(entry, key, kind)
        material = entry.material

        if not entry.symmetric:
            flip = key != entry.key
            bside = (position.turn == bool(WHITE)) == flip
            if kind is TableKind.DTM and entry.has_pawns and table.dtm_switched:
                flip = not flip
                bside = not bside
        else:
            flip = position.turn != bool(WHITE)
            bside = False
        side = int(bside)

        squares: list[int] = []
        t = 0
        flags = 0
        if not entry.has_pawns:
            enc = Encoding.PIECE
            if kind is TableKind.DTZ:
                flags = table.dtz_flags[0]
                if (flags & 1) != side and not entry.symmetric:
                    raise WrongSideToMove(entry.name)
            info = self._info(table, side if kind is not TableKind.DTZ else 0)
            while len(squares) < material.num:
                _fill_squares(position, info.pieces, flip, 0, squares)
        else:
            enc = Encoding.RANK if kind is TableKind.DTM else Encoding.FILE
            mirror = 0x38 if flip else 0
            _fill_squares(position, self._info(table, 0).pieces, flip, mirror, squares)
            try:
                t, squares = leading_pawn(squares, material, enc)
            except ValueError as exc:
                raise ProbeError(str(exc)) from exc
            if kind is TableKind.DTZ:
                flags = table.dtz_flags[t]
                if (flags & 1) != side and not entry.symmetric:
                    raise WrongSideToMove(entry.name)
            if kind is TableKind.DTZ:
                info = self._info(table, t)
            else:
                info = self._info(table, t + table.num_tables * side)
            while len(squares) < material.num:
                _fill_squares(position, info.pieces, flip, mirror, squares)

        try:
            index = encode(squares, info, material, enc)
            stored = info.precomp.decompress(index)
        except ValueError as exc:
            raise ProbeError(f"cannot decode {entry.name}{kind.suffix}: {exc}") from exc

        if kind is TableKind.WDL:
            return stored[0] - 2

        value = stored[0] + ((stored[1] & 0x0F) << 8)
        try:
            if kind is TableKind.DTM:
                if not table.dtm_loss_only:
                    sides = table.dtm_maps[t]
                    if sides is None or sides[side] is None or wdl not in (0, 1):
                        raise ProbeError(f"no DTM value map for {entry.name}")
                    value = sides[side][wdl][value]
            else:
                if flags & 2:
                    maps = table.dtz_maps[t]
                    if maps is None:
                        raise ProbeError(f"no DTZ value map for {entry.name}")
                    value = maps[_WDL_TO_MAP[wdl + 2]][value]
                if not (flags & _PA_FLAGS[wdl + 2]) or (wdl & 1):
                    value *= 2
        except IndexError as exc:
            raise ProbeError(f"value map of {entry.name} is too short") from exc
        return value

    @staticmethod
    def _info(table: LoadedTable, index: int) -> EncInfo:
        info = table.infos[index] if 0 <= index < len(table.infos) else None
        if info is None or info.precomp is None:
            raise ProbeError("table does not hold this side to move")
        return info

    def probe_wdl_table(self, position: Position) -> int:
        """Win/draw/loss value in -2..2 stored for ``position``."""
        return self.probe_table(position, 0, TableKind.WDL)

    def probe_dtz_table(self, position: Position, wdl: int) -> int:
        """Distance to zeroing stored for ``position`` with known outcome ``wdl``."""
        return self.probe_table(position, wdl, TableKind.DTZ)