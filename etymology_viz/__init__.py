"""Etymology Visualizer - time-synced lyric enrichment (etymology, translation, sentiment)."""

__version__ = "0.1.0"
