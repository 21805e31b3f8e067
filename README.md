# endgametables

A pure Python library for reading Syzygy chess endgame tablebase files and
probing them for win/draw/loss (WDL) and distance-to-zeroing (DTZ) results.
It uses only the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `endgametables.position` – a frozen bitboard `Position` (square 0 is a1,
  63 is h8; `turn` is `True` when white is to move) with move generation
  (`moves`, `captures`, `legal_moves`), `do_move`, and the tests
  `is_check`, `is_mate`, `is_legal`, `is_capture`, `is_en_passant`,
  `is_pawn_move`. Moves are 16-bit integers built with
  `make_move(promotes, from_square, to_square)` and read back with
  `move_from`, `move_to` and `move_promotes`. `calc_key` gives the material
  key and `material_string` a name such as `KQvK`.
- `endgametables.bitboard` – `popcount`, `lsb`, `iter_bits` and attack sets
  for pawns, knights, kings, bishops, rooks and queens.
- `endgametables.tablebase` – `Tablebases`, which scans the directories in a
  path string for `.rtbw`, `.rtbm` and `.rtbz` files and maps a table into
  memory the first time it is probed. `probe_wdl_table` and
  `probe_dtz_table` read a single stored value without capture resolution.
  Use it as a context manager, or call `close()`, to release mapped files.
- `endgametables.probe` – the probing functions:
  - `probe_wdl(tables, position)` – WDL value in -2..2;
  - `probe_dtz(tables, position)` – distance to zeroing (-1 when mated);
  - `root_probe_dtz` / `root_probe_wdl` – a `RootMoveScore(move, rank, score)`
    for every legal move;
  - `probe_root` – a `RootProbe(move, dtz, results)` with a suggested move
    that keeps the result, plus one packed result per legal move;
  - `tb_probe_wdl` – a `Wdl` value with the fifty-move counter ignored;
  - `tb_probe_root` – the suggested move packed into a 32-bit result word.
- `endgametables.results` – the `Wdl` enum, `RootResult` with `pack()` and
  `RootResult.unpack()` for the 32-bit result word, `TbRootMove`, and
  `dtz_to_wdl`.
- `endgametables.encoding` and `endgametables.tablefile` – the table index
  encoding and the file parser and block decompressor used by `Tablebases`.
- `endgametables.rng` – `Rng`, a small deterministic 64-bit generator
  (`next_u64`, `magic`, iterable), and `rotate`.

## Example

```python
from endgametables.position import Position
from endgametables.probe import probe_dtz, probe_wdl, tb_probe_root
from endgametables.results import RootResult
from endgametables.tablebase import Tablebases

# White: king e1, queen d1. Black: king e8. White to move.
position = Position(
    white=(1 << 4) | (1 << 3),
    black=1 << 60,
    kings=(1 << 4) | (1 << 60),
    queens=1 << 3,
    turn=True,
)

with Tablebases("/path/to/syzygy") as tables:
    print(probe_wdl(tables, position))   # 2: win for the side to move
    print(probe_dtz(tables, position))
    print(RootResult.unpack(tb_probe_root(tables, position)))
```

Several directories may be given in one path string, separated by
`os.pathsep` (`:` on POSIX, `;` on Windows). An empty path or the string
`<empty>` leaves no tables loaded. After scanning, `num_wdl`, `num_dtm`,
`num_dtz` and `largest` report what was found; the count is also logged at
INFO level.

WDL values are from the side to move's point of view: loss, blessed loss
(a loss drawn by the fifty-move rule), draw, cursed win (a win drawn by the
fifty-move rule) and win. A probe that cannot be answered, for example
because a table is missing or damaged, raises `ProbeError`.

## What it does not do

- There is no command-line program; this is a library only.
- Positions are built from bitboards; there is no FEN or move-notation
  parser, and castling is not modelled.
- DTM (`.rtbm`) files are found, parsed and can be read with
  `Tablebases.probe_table`, but the probing functions in
  `endgametables.probe` use only WDL and DTZ tables.
- It does not search positions that are not in the tables.