"""
Test suite for AuthGate.

Run with: pytest tests/ -v
"""
