"""Node problem detection: plugin results, condition sync, exporters and options."""

__version__ = "0.1.0"

__all__ = ["__version__"]