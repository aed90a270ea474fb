"""
Test suite for the freight tracking backend.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_tms_webhook_service.py -v
"""
