"""Strongbox - a local, single-user secret store.
Uses SQLite storage and libsodium cryptography via pynacl.
"""

__version__ = "1.0.0"
