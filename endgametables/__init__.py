"""Read and probe Syzygy chess endgame tablebases for WDL and DTZ results."""

__version__ = "0.1.0"