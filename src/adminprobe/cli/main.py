"""Command-line interface for adminprobe.

Provides commands for running the admin console suite, checking
configuration files and serving the loopback admin server.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

import click
import structlog

from adminprobe import __version__
from adminprobe.core.config import HarnessConfig
from adminprobe.harness import AdminHarness
from adminprobe.server import LoopbackAdminServer
from adminprobe.server import ServerConfig as LoopbackConfig

log = structlog.get_logger()


def _configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure structlog with appropriate log level filtering."""
    import logging

    if quiet:
        min_level = logging.WARNING
    elif verbose:
        min_level = logging.DEBUG
    else:
        min_level = logging.INFO

    def _filter_by_level(
        _logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        if getattr(logging, method_name.upper(), 0) < min_level:
            raise structlog.DropEvent
        return event_dict

    structlog.configure(
        processors=[
            _filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
    )


def _load_config(config_path: Path) -> HarnessConfig:
    """Load a configuration file, exiting with status 1 if it is invalid."""
    try:
        return HarnessConfig.from_yaml(config_path)
    except Exception as e:
        log.error("Configuration invalid", path=str(config_path), error=str(e))
        raise SystemExit(1) from e


@click.group()
@click.version_option(version=__version__, prog_name="adminprobe")
def cli() -> None:
    """adminprobe - Admin console conformance harness.

    Run the admin console suite against a document server described by a
    YAML configuration file.
    """


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.option(
    "--run-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds allowed for the whole run (overrides config)",
)
@click.option(
    "--insecure",
    is_flag=True,
    help="Do not verify the server certificate",
)
@click.option(
    "--skip-rmdoc",
    is_flag=True,
    help="Do not register the rmdoc notification step",
)
def run(
    config_path: Path,
    verbose: bool,
    quiet: bool,
    run_timeout: float | None,
    insecure: bool,
    skip_rmdoc: bool,
) -> None:
    """Run the admin console suite.

    CONFIG_PATH: Path to YAML configuration file

    Exits with code 0 if every step passed, 1 on failure, 2 on timeout.
    """
    _configure_logging(verbose=verbose, quiet=quiet)

    log.info("Loading configuration", path=str(config_path))
    config = _load_config(config_path)

    if run_timeout is not None:
        config.timeouts.run = run_timeout
    if insecure:
        config.server.verify_tls = False
    if skip_rmdoc:
        config.verify_rmdoc = False

    log.info(
        "Configuration loaded",
        server=config.server.uri,
        secure=config.secure_transport_available,
        run_timeout=config.timeouts.run,
    )

    try:
        with AdminHarness(config) as harness:
            verdict = harness.run()
    except KeyboardInterrupt as e:
        log.info("Interrupted by user")
        raise SystemExit(1) from e
    except Exception as e:
        log.error("Run failed", error=str(e))
        if verbose:
            import traceback

            traceback.print_exc()
        raise SystemExit(1) from e

    click.echo(f"Verdict: {verdict.value}")
    raise SystemExit(verdict.exit_code)


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
def validate(config_path: Path) -> None:
    """Validate configuration file.

    CONFIG_PATH: Path to YAML configuration file

    Exits with code 0 if valid, 1 if invalid.
    """
    config = _load_config(config_path)
    server = config.server
    log.info("Configuration valid", server=server.uri)

    click.echo(f"  Admin page: {server.admin_page_url}")
    click.echo(f"  Admin channel: {server.admin_ws_url}")
    click.echo(f"  Documents: {config.documents.directory}")
    for basename in (config.documents.primary, config.documents.secondary):
        found = (config.documents.directory / basename).is_file()
        click.echo(f"    {basename} ({'found' if found else 'missing'})")
    click.echo(
        f"  Timeouts: exchange={config.timeouts.exchange}s "
        f"run={config.timeouts.run}s connect={config.timeouts.connect}s"
    )


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
def steps(config_path: Path) -> None:
    """List the steps a run would execute.

    CONFIG_PATH: Path to YAML configuration file
    """
    config = _load_config(config_path)
    with AdminHarness(config) as harness:
        for number, step in enumerate(harness.steps, start=1):
            click.echo(f"  {number:2d}. {step.name}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Host to bind to")
@click.option("--port", "-p", type=int, default=9980, show_default=True, help="Port to listen on")
@click.option("--username", default="admin", show_default=True, help="Admin page user")
@click.option("--password", default="admin", help="Admin page password")
@click.option("--token", default="loopback-token", help="Value of the jwt login cookie")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def loopback(
    host: str, port: int, username: str, password: str, token: str, verbose: bool
) -> None:
    """Serve the loopback admin server.

    Point a configuration at http://HOST:PORT to dry-run the suite
    without a document server.
    """
    _configure_logging(verbose=verbose)

    server = LoopbackAdminServer(
        LoopbackConfig(host=host, port=port, username=username, password=password, token=token)
    )
    try:
        server.start()
    except KeyboardInterrupt:
        log.info("Interrupted by user")
    except OSError as e:
        log.error("Failed to start loopback server", host=host, port=port, error=str(e))
        raise SystemExit(1) from e
    finally:
        server.stop()


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
