"""Arena Draw: bracket and standings engine for beach tennis stages."""

__version__ = "0.4.0"
