"""
Shared test fixtures and configuration.

Test doubles live in tests/fakes.py and database seeding helpers in
tests/seed.py.
"""

import pytest

from src.config.settings import get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings for every test so environment changes do not leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
