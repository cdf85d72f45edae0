"""
Pytest configuration file for lazyseq tests.

This file ensures that the project root is in the Python path so that the
test files can import lazyseq without an install, and sets up logging.
"""

import sys
from pathlib import Path

# Add the project root to the Python path
root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

import pytest

from lazyseq import setup_logging


@pytest.fixture(autouse=True, scope="session")
def session_logging():
    """Configure lazyseq logging once for the whole test session"""
    setup_logging()
    yield


@pytest.fixture
def tracked():
    """A list plus a callable that records every value passed through it"""
    calls = []

    def track(x):
        calls.append(x)
        return x

    return calls, track


@pytest.fixture
def counter():
    """Unbounded generator factory: 0, 1, 2, ..."""
    def infinite_counter():
        i = 0
        while True:
            yield i
            i += 1
    return infinite_counter
