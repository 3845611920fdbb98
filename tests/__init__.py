from __future__ import annotations


# File: tests/__init__.py
# Test suite initializer


"""
Provides unit and integration test initialization for the console modules.
Each test file follows standard pytest discovery naming.
"""
