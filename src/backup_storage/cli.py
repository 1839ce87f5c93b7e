from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import ConfigurationError, CoreConfig, load_config
from .logger import configure_logging
from .manifest import RunReport
from .orchestrator import BackupOrchestrator
from .package import PackageError, parse_timestamp

DEFAULT_CONFIG_PATH = "/etc/backup-storage/config.yaml"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deliver staged backup packages to their storages.")
    parser.add_argument(
        "--config",
        default=os.getenv("BACKUP_STORAGE_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to configuration YAML file.",
    )
    parser.add_argument(
        "--trigger",
        help="Trigger of the model whose staged package should be delivered.",
    )
    parser.add_argument(
        "--time",
        help="Timestamp (YYYY.MM.DD.HH.MM.SS) of the staged package. Defaults to the most recent one.",
    )
    parser.add_argument(
        "--report",
        help="Write a JSON run report to this path.",
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List models defined in the configuration and exit.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL"),
        help="Log level (defaults to the configured level, then INFO).",
    )
    return parser.parse_args(argv)


def list_models(config: CoreConfig) -> None:
    for model in config.models:
        storages = ", ".join(
            f"{storage.type}:{storage.storage_id}" if storage.storage_id else storage.type
            for storage in model.storages
        )
        print(f"{model.trigger}\t{model.label}\t[{storages}]")


def log_report(report: RunReport) -> None:
    for storage in report.storages:
        if storage.error:
            continue
        logging.info(
            "%s %s backup to %s (%d older backup(s) removed)",
            storage.storage_name,
            "moved" if storage.strategy == "move" else "copied",
            storage.destination,
            len(storage.removed),
        )

    if report.success:
        logging.info("Delivery of %s (%s) succeeded", report.label, report.trigger)
    else:
        logging.error("Delivery of %s (%s) failed: %s", report.label, report.trigger, "; ".join(report.errors))


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or "INFO")

    config_path = Path(args.config).expanduser()
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 2

    if not args.log_level:
        configure_logging(config.log_level)

    if args.list_models:
        list_models(config)
        return 0

    if not args.trigger:
        logging.error("--trigger is required unless --list-models is given")
        return 2

    time = None
    if args.time:
        time = parse_timestamp(args.time)
        if time is None:
            logging.error("Invalid --time '%s'; expected YYYY.MM.DD.HH.MM.SS", args.time)
            return 2

    orchestrator = BackupOrchestrator(config=config)
    try:
        report = orchestrator.run(args.trigger, time)
    except (ConfigurationError, PackageError) as exc:
        logging.error("%s", exc)
        return 2

    if args.report:
        report.write(Path(args.report).expanduser())

    log_report(report)
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
