"""
clusterwait - command line interface

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from .config import Config, InvalidConfiguration, validate_config
from .errors import ClusterNotReadyError
from .logging_setup import configure_logging, log_config_without_secrets
from .readiness import await_cluster_ready
from .typing import ReadinessMode
from .wait_timeout import WaitTimeout
from collections.abc import Iterator, Sequence
from pydantic import ValidationError
from pydantic_settings import BaseSettings, JsonConfigSettingsSource, PydanticBaseSettingsSource
from typing import Type

import argparse
import contextlib
import logging

logger = logging.getLogger(__name__)

EXIT_NOT_READY = 1
EXIT_INTERRUPTED = 2
EXIT_INVALID_CONFIGURATION = 3


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="clusterwait",
        description="Wait until a Kafka cluster has the expected number of ready brokers",
    )
    parser.add_argument("--config", help="JSON configuration file path")
    parser.add_argument(
        "--bootstrap-servers",
        help="Comma separated list of <host>:<port> addresses used to discover the cluster",
    )
    parser.add_argument("--expected-brokers", type=int, help="Number of brokers the cluster must have")
    parser.add_argument(
        "--timeout",
        type=WaitTimeout,
        help=f"{WaitTimeout.__doc__} With the brokers mode the timeout applies to each broker.",
    )
    parser.add_argument("--poll-interval", type=WaitTimeout, help="Time between polls, in ISO8601 duration format.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ReadinessMode],
        help=(
            "'brokers' waits until every broker reports the expected cluster size, "
            "'topic' waits until a topic can be replicated to the expected number of brokers."
        ),
    )
    parser.add_argument("--topic", help="Topic name used by the 'topic' mode")
    parser.add_argument("--verbose", default=False, action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def get_config(args: argparse.Namespace) -> Config:
    """Returns the config for the readiness check.

    Command line arguments take precedence over environment variables, which take
    precedence over the optional JSON configuration file.
    """
    overrides = {
        "bootstrap_uri": args.bootstrap_servers,
        "expected_broker_count": args.expected_brokers,
        "wait_timeout": args.timeout.duration if args.timeout is not None else None,
        "poll_interval": args.poll_interval.duration if args.poll_interval is not None else None,
        "readiness_mode": args.mode,
        "consistency_topic": args.topic,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}

    if args.config is None:
        config = Config(**overrides)
    else:

        class CLIConfig(Config):
            @classmethod
            def settings_customise_sources(
                cls,
                settings_cls: Type[BaseSettings],
                init_settings: PydanticBaseSettingsSource,
                env_settings: PydanticBaseSettingsSource,
                dotenv_settings: PydanticBaseSettingsSource,
                file_secret_settings: PydanticBaseSettingsSource,
            ) -> tuple[
                PydanticBaseSettingsSource,
                PydanticBaseSettingsSource,
                JsonConfigSettingsSource,
                PydanticBaseSettingsSource,
                PydanticBaseSettingsSource,
            ]:
                return (
                    init_settings,
                    env_settings,
                    JsonConfigSettingsSource(settings_cls=settings_cls, json_file=args.config),
                    dotenv_settings,
                    file_secret_settings,
                )

        config = CLIConfig(**overrides)

    validate_config(config)
    return config


def dispatch(args: argparse.Namespace) -> None:
    config = get_config(args)
    configure_logging(config=config, verbose=args.verbose)
    log_config_without_secrets(config)
    await_cluster_ready(config)
    logger.info("Cluster at %s has %d ready broker(s)", config.bootstrap_uri, config.expected_broker_count)


@contextlib.contextmanager
def handle_keyboard_interrupt() -> Iterator[None]:
    try:
        yield
    except KeyboardInterrupt as e:
        # Not an error -- user choice -- and thus should not end up in a Python stacktrace.
        raise SystemExit(EXIT_INTERRUPTED) from e


@handle_keyboard_interrupt()
def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)

    try:
        dispatch(args)
    except (InvalidConfiguration, ValidationError) as e:
        logger.error("Invalid configuration: %s", e)
        raise SystemExit(EXIT_INVALID_CONFIGURATION) from e
    except ClusterNotReadyError as e:
        logger.error("Cluster did not become ready: %s", e)
        raise SystemExit(EXIT_NOT_READY) from e


if __name__ == "__main__":
    main()
