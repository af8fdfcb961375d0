import argparse
import asyncio
import importlib
import pkgutil
import sys
from pathlib import Path

from pydantic import ValidationError

import services.error  # installs global uncaught-exception hook
import services.logger as log
import services.media as media
import services.config_io as config_io
from services.config_schema import AppConfig
from services.gateway import Gateway, gateway
from drivers import BaseDriver
from drivers.registry import all_drivers

import drivers as _drivers_pkg

l = log.get_logger()


def load_drivers() -> dict[str, tuple[type, type]]:
    """Import every module and package under ``drivers/`` and return the registry.

    Drivers register themselves at import time; ``registry`` is skipped since
    it is what they import.
    """
    for _, mod_name, _ in pkgutil.iter_modules(_drivers_pkg.__path__):
        if mod_name != "registry":
            importlib.import_module(f"drivers.{mod_name}")
    return all_drivers()


def convert(src: Path, dst: Path) -> int:
    """Rewrite a config file in the format implied by *dst*'s extension."""
    if not src.is_file():
        print(f"Error: source file not found: {src}", file=sys.stderr)
        return 1
    try:
        config_io.save_config(config_io.load_config(src), dst)
    except Exception as e:
        print(f"Error converting {src}: {e}", file=sys.stderr)
        return 1
    print(f"Converted {src} → {dst}")
    return 0


def build_drivers(app: AppConfig, registry: dict, gw: Gateway) -> list[tuple[str, BaseDriver]]:
    """Instantiate one driver per configured instance, as ``("platform/id", driver)``."""
    built: list[tuple[str, BaseDriver]] = []
    for platform, (_, driver_cls) in registry.items():
        instances = getattr(app, platform, None) or {}
        for inst_id, cfg in instances.items():
            built.append((f"{platform}/{inst_id}", driver_cls(inst_id, cfg, gw)))
    return built


def _log_crash(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        l.error(f"Driver '{task.get_name()}' crashed: {task.exception()}")


async def run_drivers(drivers: list[tuple[str, BaseDriver]]) -> None:
    tasks = []
    for name, drv in drivers:
        task = asyncio.create_task(drv.start(), name=name)
        task.add_done_callback(_log_crash)
        tasks.append(task)
        l.info(f"Started driver: {name}")

    try:
        for task, result in zip(tasks, await asyncio.gather(*tasks, return_exceptions=True)):
            if isinstance(result, Exception):
                l.error(f"Driver '{task.get_name()}' exited with error: {result}")
    except asyncio.CancelledError:
        l.info("SlackRelay shutting down…")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        l.info("SlackRelay stopped.")


async def main():
    registry = load_drivers()

    l.info(f"Log file: {log.enable_file_log(str(config_io.log_path()))}")
    l.info("SlackRelay starting…")

    config_path = config_io.find_config(config_io.data_path())
    if config_path is None:
        l.critical(f"No config file found in: {config_io.data_path()} (tried config.json / .yaml / .toml)")
        return

    l.info(f"Loading config from: {config_path}")
    raw = config_io.load_config(config_path)

    # Mask secrets before validation errors get a chance to echo them.
    secrets = config_io.collect_sensitive(raw)
    log.register_sensitive(secrets)
    gateway.load_sensitive_values(secrets)

    try:
        app = AppConfig.model_validate(raw)
    except ValidationError as exc:
        l.critical(f"Config error in {config_path.name}:\n{exc}")
        return
    gateway.load_rules(app.gateways)

    drivers = build_drivers(app, registry, gateway)
    if not drivers:
        l.error("No drivers configured, nothing to do. Exiting.")
        return

    try:
        await run_drivers(drivers)
    finally:
        await media.close_session()


def cli() -> None:
    parser = argparse.ArgumentParser(prog="slackrelay", description="SlackRelay chat bridge")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the bridge (default)")

    conv = subparsers.add_parser("convert", help="Convert a config file between formats (json/yaml/toml)")
    conv.add_argument("src", type=Path, help="Source config file (e.g. config.json)")
    conv.add_argument("dst", type=Path, help="Destination config file (e.g. config.yaml)")

    args = parser.parse_args()

    if args.command == "convert":
        sys.exit(convert(args.src, args.dst))

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
