"""WSBApp trending-ticker watcher."""

__version__ = "0.1.0"
