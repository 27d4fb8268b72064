"""Command-line interface for the sleep apnea engine.

Provides live microphone monitoring, offline analysis of WAV recordings and
a listing of the bundled reference patterns.
"""

import json
import logging
import time
from dataclasses import asdict
from typing import Optional

import click

from . import __version__
from .config import MAX_SENSITIVITY, MIN_SENSITIVITY, GlobalConfig, setup_logging
from .engine import Detector
from .events import DetectionEvent
from .exceptions import ApneaEngineError, DeviceUnavailableError
from .recording import analyze_wav
from .reference import default_reference_library

logger = logging.getLogger(__name__)

SENSITIVITY = click.IntRange(MIN_SENSITIVITY, MAX_SENSITIVITY)


def load_config(path: Optional[str], verbose: bool) -> GlobalConfig:
    """Load the config file (or defaults) and configure logging."""
    try:
        config = GlobalConfig.load(path) if path else GlobalConfig()
    except ApneaEngineError as e:
        raise click.ClickException(str(e)) from e
    if verbose:
        config.system.log_level = "DEBUG"
    setup_logging(config.system)
    return config


def format_event(event: DetectionEvent) -> str:
    """One console line for an event."""
    stamp = time.strftime("%H:%M:%S", time.localtime(event.timestamp))
    line = f"{stamp}  {event}"
    sounds = [name for name, flag in asdict(event.detected_sounds).items() if flag]
    if sounds:
        line += f"  sounds: {', '.join(sounds)}"
    return line


@click.group()
@click.version_option(__version__, prog_name="sleep-apnea-engine")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Breathing pattern monitoring and apnea detection."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Configuration YAML file")
@click.option("--sensitivity", "-s", type=SENSITIVITY, help="Sensitivity level (1-10)")
@click.option("--interval", type=int, default=1000, show_default=True, help="Analysis interval in ms")
@click.pass_context
def listen(ctx: click.Context, config_path: Optional[str], sensitivity: Optional[int], interval: int) -> None:
    """Monitor breathing from the microphone until Ctrl+C."""
    config = load_config(config_path, ctx.obj["verbose"])
    detector = Detector.from_config(config)
    if sensitivity is not None:
        detector.set_sensitivity(sensitivity)

    try:
        detector.start()
    except DeviceUnavailableError as e:
        raise click.ClickException(str(e)) from e

    effective = detector.subscribe(lambda event: click.echo(format_event(event)), interval_ms=interval)
    click.echo(f"Listening (every {effective:.0f}ms). Press Ctrl+C to stop.")

    try:
        while detector.is_listening:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        events = detector.recent_events()
        detector.dispose()

    if events:
        click.echo(f"Stopped. Last event: {format_event(events[-1])}")
    else:
        click.echo("Stopped.")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_path", type=click.Path(exists=True), help="Configuration YAML file")
@click.option("--sensitivity", "-s", type=SENSITIVITY, help="Sensitivity level (1-10)")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
@click.option("--timeline", is_flag=True, help="Include every tick in the JSON output")
@click.pass_context
def analyze(
    ctx: click.Context,
    path: str,
    config_path: Optional[str],
    sensitivity: Optional[int],
    as_json: bool,
    timeline: bool,
) -> None:
    """Analyze a WAV recording."""
    config = load_config(config_path, ctx.obj["verbose"])
    level = sensitivity if sensitivity is not None else config.sensitivity

    try:
        result = analyze_wav(path, config=config.detector, audio=config.audio, sensitivity=level)
    except (ApneaEngineError, ValueError) as e:
        raise click.ClickException(f"Could not analyze {path}: {e}") from e

    if as_json:
        click.echo(json.dumps(result.to_dict(include_timeline=timeline), indent=2))
        return

    click.echo(f"Recording:        {path}")
    click.echo(f"Duration:         {result.duration:.1f}s ({result.ticks} ticks)")
    click.echo(f"Apnea episodes:   {result.apnea_event_count}")
    click.echo(f"Events per hour:  {result.events_per_hour:.1f}")
    click.echo(f"Max confidence:   {result.max_confidence:.2f}")
    click.echo(f"Mean confidence:  {result.mean_confidence:.2f}")
    click.echo(f"Severity:         {result.severity.value}")


@cli.command()
def patterns() -> None:
    """List the bundled reference breathing patterns."""
    library = default_reference_library()
    for category in library.categories():
        click.echo(f"{category.value}:")
        for pattern in library.patterns(category):
            click.echo(f"  {pattern.name:<24} {pattern.description}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
