from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import NoReturn, Optional

import typer

from birbs.config import Settings
from birbs.core.errors import BirbsError
from birbs.core.timeresolve import TimeResolver
from birbs.ingest import (
    EntryParser,
    InfluxSink,
    LineProtocolSink,
    PublishReport,
    publish_file,
    watch_file,
)
from birbs.logging_config import configure_logging

logger = logging.getLogger("birbs.cli")

app = typer.Typer(help="Bird detection API and time-series publisher")


def _load_settings(*required: str) -> Settings:
    """Read settings, configure logging and check required values."""
    settings = Settings.from_env()
    configure_logging(settings.log_filter, json_format=settings.log_json)
    return settings.require(*required)


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"error: {error}", err=True)
    raise typer.Exit(1)


def _stop_on_signals(stop_event: threading.Event) -> None:
    def handler(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def run_publish(
    file: Path,
    settings: Settings,
    watch: bool = False,
    dry_run: bool = False,
    skip_invalid: bool = False,
    stop_event: Optional[threading.Event] = None,
) -> PublishReport:
    """Publish a detections log once, or follow it until stopped."""
    parser = EntryParser(TimeResolver(settings.timezone))
    sink = LineProtocolSink() if dry_run else InfluxSink.from_settings(settings)
    try:
        if watch:
            return watch_file(file, parser, sink, stop_event=stop_event)
        return publish_file(file, parser, sink, skip_invalid=skip_invalid)
    finally:
        sink.close()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: $HOST or 0.0.0.0)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: $PORT or 3100)"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    from birbs.serving import create_app

    try:
        settings = _load_settings("database")
        api = create_app(settings)
    except BirbsError as e:
        _fail(e)

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info(f"listening on {bind_host}:{bind_port}")
    uvicorn.run(api, host=bind_host, port=bind_port, log_config=None)


@app.command()
def publish(
    file: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        help="BirdNET detections log (date;time;scientific;common;confidence)",
    ),
    watch: bool = typer.Option(
        False,
        "--watch",
        "-w",
        help="Keep running and publish entries as they are appended",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Print line protocol to stdout instead of writing to InfluxDB",
    ),
    skip_invalid: bool = typer.Option(
        False,
        "--skip-invalid",
        help="Log and skip malformed entries instead of stopping",
    ),
) -> None:
    """Publish detections to InfluxDB, once or continuously."""
    stop_event = threading.Event()
    try:
        settings = _load_settings() if dry_run else _load_settings(
            "influx_host", "influx_org", "influx_token"
        )
        if watch:
            _stop_on_signals(stop_event)
        report = run_publish(
            file,
            settings,
            watch=watch,
            dry_run=dry_run,
            skip_invalid=skip_invalid,
            stop_event=stop_event,
        )
    except (BirbsError, OSError) as e:
        _fail(e)

    typer.echo(f"Published {report.published} entries ({report.skipped} skipped)", err=True)


if __name__ == "__main__":
    app()
