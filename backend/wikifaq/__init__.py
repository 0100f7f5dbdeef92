"""Wikipedia FAQ generation pipeline."""

__version__ = "0.1.0"
