"""Test helpers package for shared fixtures and mock factories."""

from tests.helpers.mock_factories import (
    FakeUnit,
    create_failing_store,
    create_linear_units,
)

__all__ = [
    "FakeUnit",
    "create_failing_store",
    "create_linear_units",
]
