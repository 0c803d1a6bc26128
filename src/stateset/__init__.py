"""StateSet: commerce operations agent with file-driven event triggers."""

__version__ = "0.1.0"
