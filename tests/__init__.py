"""Test suite for stagewise.

Test organization:
- fixtures/: Mock data generators and test utilities
- unit/: Unit tests for individual modules and end-to-end workflow runs

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
