"""See Before Buy virtual try-on backend."""

__version__ = "1.0.0"
