"""Version information for neo-storage-core."""

__version__ = "0.1.0"
