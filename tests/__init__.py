# tests/__init__.py
"""
Tests for the chatstore package.
"""
