"""
File-backed persistence for the library.

This package contains:
- Record models with stable on-disk field names
- EntityStore: one JSON document per collection, atomic replace
- RecordCache: TTL cache of decoded collections
- Repository facades for books, users and rentals
"""

__version__ = "1.0.0"
