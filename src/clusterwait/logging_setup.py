"""
clusterwait - logging setup

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from clusterwait.config import Config
from collections.abc import Mapping

import logging
import sys

LOG = logging.getLogger(__name__)

HANDLER_NAME = "clusterwait"
SECRET_FIELDS = frozenset({"sasl_plain_password", "ssl_keyfile"})
MASK = "****"


def _make_handler(log_handler: str | None) -> logging.Handler | None:
    match log_handler:
        case "stdout" | None:
            return logging.StreamHandler(stream=sys.stdout)
        case "stderr":
            return logging.StreamHandler(stream=sys.stderr)
        case "systemd":
            from systemd import journal

            return journal.JournalHandler(SYSLOG_IDENTIFIER=HANDLER_NAME)
    return None


def configure_logging(*, config: Config, verbose: bool = False) -> None:
    """Install the configured root handler, `verbose` forces debug logging.

    A handler installed by an earlier call is replaced, not duplicated.
    """
    level = logging.DEBUG if verbose else config.log_level.upper()
    handler = _make_handler(config.log_handler)
    if handler is None:
        logging.basicConfig(level=level, format=config.log_format)
        LOG.warning("Log handler %s not recognized, root handler not set.", config.log_handler)
    else:
        handler.setFormatter(logging.Formatter(config.log_format))
        handler.set_name(HANDLER_NAME)
        for previous in [h for h in logging.root.handlers if h.get_name() == HANDLER_NAME]:
            logging.root.removeHandler(previous)
        logging.root.addHandler(handler)

    logging.root.setLevel(level)


def config_without_secrets(config: Config) -> Mapping[str, object]:
    """The config as a dict, with the secrets that are set masked."""
    return {
        key: MASK if key in SECRET_FIELDS and value is not None else value for key, value in config.model_dump().items()
    }


def log_config_without_secrets(config: Config) -> None:
    LOG.debug("Config %r", config_without_secrets(config))
