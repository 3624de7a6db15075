"""
cwlogs-writer Test Suite.

This package contains:
- unit/: Unit tests (in-memory transport, mocked aiobotocore client)
- integration/: Writer pool lifecycle against the in-memory transport
"""
