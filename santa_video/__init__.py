"""Santa call video render worker."""

__version__ = "0.1.0"
