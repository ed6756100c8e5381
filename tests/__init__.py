"""
CodeClaw test suite.

Tests are organized by layer:
    tests/unit/         Unit tests (no network, fast)
    tests/integration/  Several components wired together (daemon, CLI)

Shared in-memory channel and engine doubles live in tests/stubs.py.

Run all tests:
    pytest

Run unit tests only:
    pytest tests/unit/
"""
