"""
Shared test setup.

Settings are read from the environment at import time, so the
storage paths and OCR provider are pinned here before anything from
patternshield is imported.
"""

import os
import tempfile

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="patternshield-tests-")

os.environ["PATTERNSHIELD_HISTORY_DB"] = os.path.join(_TEST_DATA_DIR, "history.db")
os.environ["PATTERNSHIELD_COMMUNITY_DB"] = os.path.join(_TEST_DATA_DIR, "community.db")
os.environ["PATTERNSHIELD_OCR_PROVIDER"] = "none"
os.environ.pop("PATTERNSHIELD_API_KEYS", None)

import pytest  # noqa: E402

from patternshield.rules import default_registry  # noqa: E402


@pytest.fixture
def registry():
    """A fresh registry per test."""
    return default_registry()

