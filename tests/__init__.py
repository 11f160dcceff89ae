"""
Notebox Test Suite.

This package contains:
- unit/: Unit tests (codec, stores, viewing keys, config, messages)
- integration/: Integration tests (service end to end, SQLite, HTTP gateway)
"""
