"""Shared test fixtures."""

import pytest

from src.cl_common.identity import CallerIdentity


@pytest.fixture
def admin() -> CallerIdentity:
    return CallerIdentity(user_id=1, is_admin=True)
