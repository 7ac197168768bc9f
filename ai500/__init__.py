"""AI500 attention board: ranked perpetual-futures volume snapshots."""

__version__ = "1.0.0"
