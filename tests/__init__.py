"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/conftest.py - Fixtures, factories and the in-memory fake ClickUp API
- tests/test_*.py - One module per extractor component

Run with:
    pip install -e ".[test]"
    pytest
"""
