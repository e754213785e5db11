"""Page-level reading, inspection and repair of bolt database files."""

__version__ = "0.1.0"