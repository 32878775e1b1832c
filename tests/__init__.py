"""Test suite for markerpack.

Test organization:
- fixtures/: In-memory pack builders (zip archives, PNG textures, trail binaries)
- unit/: Unit tests for individual modules

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
