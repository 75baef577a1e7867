"""CLI interface for dailyctl."""

import click
import sys
import time
from typing import Optional, Tuple
from pydantic import ValidationError
from .config import Settings
from .exceptions import ConfigError, LaunchError
from .executor import Executor
from .log import configure_logging
from .models import ExecutionStatus, ExitCode, MessageTag, ScheduleStatus
from .program import Program
from .schedule import ScheduleEngine


# Global settings instance
_settings: Optional[Settings] = None

EXIT_CODES = {
    ExecutionStatus.SUCCESS: ExitCode.SUCCESS,
    ExecutionStatus.RETRY: ExitCode.RETRY,
    ExecutionStatus.FAILED: ExitCode.FAILED,
    ExecutionStatus.INTERNAL_ERROR: ExitCode.FAILED,
}


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        try:
            _settings = Settings()
        except ValidationError as e:
            click.echo(f"✗ Invalid configuration: {e}", err=True)
            sys.exit(ExitCode.FAILED)
    return _settings


def _load_program(name: str, path: str) -> Program:
    try:
        return Program.from_path(name, path)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(ExitCode.FAILED)


def _parse_program(value: str) -> Tuple[str, str]:
    name, sep, path = value.partition("=")
    if not sep or not name or not path:
        raise click.BadParameter(f"expected NAME=PATH, got {value!r}")
    return name, path


@click.group()
@click.option("--log-level", default=None, help="Logging level (default from DAILYCTL_LOG_LEVEL)")
def cli(log_level: Optional[str]):
    """dailyctl - Run programs once a day, with retries"""
    configure_logging(log_level or get_settings().log_level)


@cli.command()
@click.argument("name")
@click.argument("path")
def run(name: str, path: str):
    """Run a program once and stream its output.

    Exits with the program's outcome: 0 success, 1 retry, 2 failed.

    Example:
        dailyctl run backup ./programs/backup/main
    """
    program = _load_program(name, path)
    executor = Executor(get_settings())

    try:
        execution = executor.execute(program)
    except LaunchError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(ExitCode.FAILED)

    # Every line is printed; the terminal is never a dropping subscriber.
    for message in execution.subscribe(replay=True, unbounded=True):
        click.echo(f"[{message.tag.value}] {message.text}", err=message.tag is MessageTag.ERR)

    execution.wait()
    symbol = "✓" if execution.status is ExecutionStatus.SUCCESS else "✗"
    click.echo(f"{symbol} {program.name} {execution.id}: {execution.status.value}")
    sys.exit(EXIT_CODES[execution.status])


@cli.command()
@click.option("--program", "programs", multiple=True, required=True, help="Program as NAME=PATH (repeatable)")
def serve(programs: Tuple[str, ...]):
    """Run every program daily until interrupted.

    Example:
        dailyctl serve --program backup=./backup/main --program report=./report/main
    """
    settings = get_settings()
    try:
        engine = ScheduleEngine(
            [_load_program(*_parse_program(p)) for p in programs],
            settings,
        )
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(ExitCode.FAILED)

    def echo_status(status: ScheduleStatus):
        click.echo(f"{status.program:<20} {status.state.value:<16} attempts={status.attempts}")

    engine.add_observer(echo_status)
    for program in engine.programs():
        schedule = engine.scheduler(program.name).schedule
        click.echo(f"Scheduling {program.name} daily at {schedule.daily_at.isoformat()}")

    try:
        engine.start()
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping schedulers (waiting for running programs)...")
        engine.stop()
        engine.join()
        click.echo("Schedulers stopped")


@cli.group()
def config():
    """Inspect configuration"""
    pass


@config.command()
def show():
    """Show effective configuration.

    Example:
        dailyctl config show
    """
    cfg = get_settings()
    timeout = f"{cfg.run_timeout_seconds:g} seconds" if cfg.run_timeout_seconds else "none"

    click.echo("\nCurrent Configuration:")
    click.echo(f"  daily-at:        {cfg.daily_at.isoformat()}")
    click.echo(f"  retry-delay:     {cfg.retry_delay_seconds:g} seconds")
    click.echo(f"  run-timeout:     {timeout}")
    click.echo(f"  message-buffer:  {cfg.message_buffer}")
    click.echo(f"  poll-interval:   {cfg.poll_interval_seconds:g} seconds")
    click.echo(f"  log-level:       {cfg.log_level}")
    click.echo()


if __name__ == "__main__":
    cli()
