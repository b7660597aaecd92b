"""Order & escrow lifecycle engine for a two-sided work marketplace."""

__version__ = "0.1.0"
