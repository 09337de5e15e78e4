"""
External Service Mocks
======================

Mock implementations of the external services used in tests.

Available Mocks:
---------------
- GrowattMock: Mock Growatt monitoring API (login, plant list, plant detail)

Usage:
-----
from tests.mocks.growatt import GrowattMock

def test_sync(mock_growatt):
    mock_growatt.add_account("solar1", "secret")
"""
