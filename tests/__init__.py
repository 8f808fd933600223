"""
PipraPay Gateway Test Suite

This package contains all tests for the gateway adapter including:
- Unit tests for the PipraPay client, checkout rendering and IPN handling
- SQLAlchemy billing service tests
- FastAPI route and sandbox gateway tests
"""
