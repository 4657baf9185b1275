from __future__ import annotations

import logging

from keeperstat import logging_setup


def reset_keeperstat_logging() -> None:
    logging_setup.reset_logging()
    logging.getLogger().setLevel(logging.WARNING)
    logging.getLogger(logging_setup.ROOT_LOGGER_NAME).setLevel(logging.NOTSET)
