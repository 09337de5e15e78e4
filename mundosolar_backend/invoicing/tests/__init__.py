"""Tests for invoice records."""
