"""Watch an Encore project and regenerate its Restate adapters."""

__version__ = "0.1.0"
