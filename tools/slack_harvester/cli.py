"""CLI entry-point for the Slack media harvester."""

from __future__ import annotations

import logging
import sys
from dataclasses import replace

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .api import SlackAPI
from .config import DiskConfig, HarvesterConfig, S3Config, SlackConfig
from .errors import HarvesterError
from .harvester import Harvester
from .models import RunState

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )
    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("s3transfer").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def _print_stats(stats: dict) -> None:
    table = Table(title="Harvest Summary", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    for key, val in stats.items():
        table.add_row(key.capitalize(), str(val))
    console.print(table)


@click.group()
@click.option("--token", envvar="SLACK_TOKEN", required=True, help="Slack API access token")
@click.option("--storage-driver", envvar="STORAGE_DRIVER", default="disk", type=click.Choice(["disk", "s3"]), help="Where media is stored")
@click.option("--root", envvar="STORAGE_ROOT", default="/data", help="Storage root for the disk driver")
@click.option("--s3-endpoint", envvar="S3_ENDPOINT", default="http://localhost:9000", help="MinIO/S3 endpoint URL")
@click.option("--s3-access-key", envvar="S3_ACCESS_KEY", default="minioadmin", help="S3 access key")
@click.option("--s3-secret-key", envvar="S3_SECRET_KEY", default="minioadmin", help="S3 secret key")
@click.option("--s3-bucket", envvar="S3_BUCKET", default="slack-media", help="S3 bucket name")
@click.option("--request-delay", envvar="SLACK_REQUEST_DELAY", default=1.2, type=float, help="Seconds between Slack API calls")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, **kwargs: object) -> None:
    """Slack Media Harvester – Archive media shared in a Slack channel.

    Walks the channel history from a start time, downloads image
    attachments and shared files, and stores each unique file once.
    """
    _setup_logging(bool(kwargs.pop("verbose")))
    ctx.ensure_object(dict)
    # Options win; fields without an option still come from the environment
    ctx.obj["slack_cfg"] = replace(
        SlackConfig.from_env(),
        token=kwargs["token"],  # type: ignore[arg-type]
        request_delay=kwargs["request_delay"],  # type: ignore[arg-type]
    )
    ctx.obj["storage_driver"] = kwargs["storage_driver"]
    ctx.obj["disk_cfg"] = DiskConfig(root=kwargs["root"])  # type: ignore[arg-type]
    ctx.obj["s3_cfg"] = replace(
        S3Config.from_env(),
        endpoint=kwargs["s3_endpoint"],  # type: ignore[arg-type]
        access_key=kwargs["s3_access_key"],  # type: ignore[arg-type]
        secret_key=kwargs["s3_secret_key"],  # type: ignore[arg-type]
        bucket=kwargs["s3_bucket"],  # type: ignore[arg-type]
    )


def _make_config(ctx: click.Context, channel: str) -> HarvesterConfig:
    return HarvesterConfig(
        slack=ctx.obj["slack_cfg"],
        disk=ctx.obj["disk_cfg"],
        s3=ctx.obj["s3_cfg"],
        storage_driver=ctx.obj["storage_driver"],
        channel=channel,
    )


# ─── Commands ────────────────────────────────────────────────────


@cli.command()
@click.argument("channel")
@click.option("--from-time", "from_time", type=int, default=None, help="Epoch seconds to start from (default: 30 days ago)")
@click.pass_context
def scrape(ctx: click.Context, channel: str, from_time: int | None) -> None:
    """Download all media posted to a channel since FROM_TIME.

    Example: slack-harvester scrape general --from-time 1700000000
    """
    cfg = _make_config(ctx, channel)
    try:
        with Harvester(cfg) as h:
            console.print(f"[bold]Harvesting [cyan]#{channel.lstrip('#')}[/cyan]...[/bold]")
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TimeElapsedColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("Fetching history", total=None)

                def on_page(state: RunState) -> None:
                    progress.update(
                        task,
                        description=f"{state.total_messages} messages, {state.total_media} media",
                    )

                state = h.run(from_time, on_page=on_page)
    except HarvesterError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)
    console.print(f"[green]✓[/green] #{channel.lstrip('#')} harvested")
    _print_stats(state.as_dict())


@cli.command(name="channels")
@click.pass_context
def list_channels(ctx: click.Context) -> None:
    """List the channels visible to the token."""
    try:
        with SlackAPI(ctx.obj["slack_cfg"]) as api:
            table = Table(title="Slack Channels", show_header=True, header_style="bold cyan")
            table.add_column("Channel", style="bold")
            table.add_column("ID")
            table.add_column("Members", justify="right")
            for ch in sorted(api.iter_channels(), key=lambda x: x.get("name", "")):
                table.add_row(f"#{ch.get('name', '')}", ch.get("id", ""), str(ch.get("num_members", "")))
    except HarvesterError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
