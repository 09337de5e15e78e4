"""Tests for the reporting endpoints."""
