"""
Tests for the main application module.

Covers the shared models: staff users, clients and their portal
credentials, orders and order items.
"""
