"""devshell developer environment tooling."""

__version__ = "1.4.0"

__all__ = ['__version__']
