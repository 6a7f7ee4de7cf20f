"""Command line interface for synthcap."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import click

from synthcap.dispatcher import CaptureDispatcher
from synthcap.errors import CaptureError
from synthcap.feed import apply_record, follow_feed, replay_feed
from synthcap.logging_utils import configure_logging, get_logger
from synthcap.parser import iter_capture, summarize_capture
from synthcap.synth.headers import parse_flags
from synthcap.viz import render_summary
from synthcap.writer import CaptureFileWriter

DEFAULT_FLAGS = "SP"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_STRICT = False

ENV_FLAGS = "SYNTHCAP_FLAGS"
ENV_POLL_INTERVAL = "SYNTHCAP_POLL_INTERVAL"
ENV_STRICT = "SYNTHCAP_STRICT"

LOGGER = get_logger(__name__)


@click.group()
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable debug logging output.",
)
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Also write log lines to this file.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_file: Path | None) -> None:
    """Synthesize packet captures from application payload feeds."""

    configure_logging(verbose, log_file)
    ctx.obj = {"verbose": verbose}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(raw)


def _resolve_config(value, env_var: str, default, cast):
    if value is not None:
        return value
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return cast(raw)
    except (ValueError, TypeError):
        LOGGER.warning("Invalid value for %s=%r; falling back to %s", env_var, raw, default)
        return default


def _build_dispatcher(output_path: Path, flags: str | None, strict: bool | None) -> CaptureDispatcher:
    flags_value = _resolve_config(flags, ENV_FLAGS, DEFAULT_FLAGS, str)
    strict_value = _resolve_config(strict, ENV_STRICT, DEFAULT_STRICT, _parse_bool)
    try:
        flag_byte = parse_flags(flags_value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--flags")
    return CaptureDispatcher(CaptureFileWriter(output_path), flags=flag_byte, strict=strict_value)


@cli.command("synth")
@click.option("--in", "feed_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="JSONL event feed")
@click.option("--out", "output_path", type=click.Path(dir_okay=False, path_type=Path), required=True, help="Capture file to create or extend")
@click.option("--flags", default=None, help=f"TCP flag letters for every segment (default {DEFAULT_FLAGS}; env {ENV_FLAGS})")
@click.option("--strict/--no-strict", default=None, help=f"Fail on events for untraced connections (env {ENV_STRICT})")
def synth_command(feed_path: Path, output_path: Path, flags: str | None, strict: bool | None) -> None:
    """Replay a finished event feed into a capture file."""

    dispatcher = _build_dispatcher(output_path, flags, strict)
    LOGGER.info("Replaying %s into %s", feed_path, output_path)
    try:
        counts = replay_feed(feed_path, dispatcher)
    except (CaptureError, OSError) as exc:
        raise click.ClickException(str(exc))
    finally:
        dispatcher.stop_all()

    click.echo(
        f"Connections opened: {counts['opened']}, closed: {counts['closed']}; "
        f"events: {counts['events']} (written: {counts['written']}, dropped: {counts['dropped']})"
    )
    click.echo(f"Capture written to {output_path} ({dispatcher.writer.records_written} records)")
    click.echo("Checksums are zero; disable checksum validation in your analyzer.")


@cli.command("follow")
@click.option("--in", "feed_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Growing JSONL event feed")
@click.option("--out", "output_path", type=click.Path(dir_okay=False, path_type=Path), required=True, help="Capture file to create or extend")
@click.option("--flags", default=None, help=f"TCP flag letters for every segment (default {DEFAULT_FLAGS}; env {ENV_FLAGS})")
@click.option(
    "--poll-interval",
    default=None,
    type=float,
    show_default=False,
    help=f"Maximum wait between feed checks (default {DEFAULT_POLL_INTERVAL}; env {ENV_POLL_INTERVAL})",
)
@click.option("--once", is_flag=True, default=False, help="Process what the feed holds now, then exit")
def follow_command(
    feed_path: Path,
    output_path: Path,
    flags: str | None,
    poll_interval: float | None,
    once: bool,
) -> None:
    """Continuously append records for a feed that is still being written."""

    dispatcher = _build_dispatcher(output_path, flags, False)
    poll_value = _resolve_config(poll_interval, ENV_POLL_INTERVAL, DEFAULT_POLL_INTERVAL, float)
    stop_event = threading.Event()
    if once:
        stop_event.set()
    else:
        click.echo(f"Press Ctrl+C to stop. Following {feed_path} into {output_path}.")

    try:
        for record in follow_feed(feed_path, poll_interval=poll_value, stop_event=stop_event):
            try:
                apply_record(dispatcher, record)
            except CaptureError as exc:
                LOGGER.warning("Ignoring %s record for %r: %s", record.kind, record.connection_id, exc)
    except KeyboardInterrupt:
        click.echo("Stopped following.")
    except OSError as exc:
        raise click.ClickException(str(exc))
    finally:
        dispatcher.stop_all()

    click.echo(f"Wrote {dispatcher.writer.records_written} records to {output_path}")


@cli.command("inspect")
@click.option("--in", "pcap_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Capture file")
@click.option("--limit", type=int, default=20, show_default=True, help="Records to print (0 for all)")
def inspect_command(pcap_path: Path, limit: int) -> None:
    """Print decoded records of a synthesized capture."""

    shown = 0
    try:
        for segment in iter_capture(pcap_path):
            if limit and shown >= limit:
                break
            click.echo(
                f"{segment.ts:.6f} IPv{segment.ip_version} {segment.flow_id} "
                f"seq={segment.seq} flags={segment.flags} len={len(segment.payload)}"
            )
            shown += 1
        summary = summarize_capture(pcap_path)
    except ValueError as exc:
        raise click.ClickException(f"Unable to read {pcap_path}: {exc}")

    click.echo(
        f"Records: {summary['records']} (IPv4: {summary['ipv4']}, IPv6: {summary['ipv6']}), "
        f"payload bytes: {summary['payload_bytes']}"
    )
    for flow_id, metrics in sorted(summary["flows"].items()):
        click.echo(f"  {flow_id}: {metrics['segments']} segments, {metrics['bytes']} bytes")


@cli.command("summary")
@click.option("--in", "pcap_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Capture file")
@click.option("--out-dir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Directory for summary.html")
def summary_command(pcap_path: Path, out_dir: Path | None) -> None:
    """Render a per-flow payload summary chart."""

    try:
        output_path = render_summary(pcap_path, output_dir=out_dir)
    except ValueError as exc:
        raise click.ClickException(f"Unable to read {pcap_path}: {exc}")
    click.echo(f"Summary written to {output_path}")
    LOGGER.info("Rendered summary from %s to %s", pcap_path, output_path)


if __name__ == "__main__":
    cli()
