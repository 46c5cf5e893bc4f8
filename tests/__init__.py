"""
Test suite for the catalog ingester.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_catalog_merge_service.py -v
"""
