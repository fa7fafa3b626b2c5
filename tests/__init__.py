"""
Logbook Test Suite.

This package contains:
- unit/: Unit tests (validators, resolvers, services, store, config)
- integration/: Integration tests (HTTP API over a real SQLite store)
"""
