import logging
from collections.abc import Iterator

import pytest

from extrahop_backup.constants import APP_NAME


@pytest.fixture(autouse=True)
def reset_app_logger() -> Iterator[None]:
    """Detaches handlers added by `setup_logging` so tests don't leak streams."""
    yield
    logger = logging.getLogger(APP_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
