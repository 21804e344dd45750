import shutil
from pathlib import Path

import pytest

from chat_archive import service, storage

TEST_DATA_DIR = Path("data-tests")


@pytest.fixture(autouse=True)
def clean_test_data():
    """Fresh data-tests/ and no leftover pass locks before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    storage.init_storage(TEST_DATA_DIR)
    service._locks.clear()
    yield
    # data-tests/ stays behind for inspection
