"""
DIRHOUND command-line interface.

Usage:
    dirhound scan -u https://example.com -w common.txt
    dirhound scan -u https://example.com -w big.txt -t 50 --detect-wildcards --save-state scan.state
    dirhound scan -u https://example.com -w big.txt --resume scan.state
    dirhound scan --config scan.yaml --threads 10
"""

import asyncio
import sys
from typing import Any, Callable, Dict, Optional, Tuple

import click
from click.core import ParameterSource
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import __version__
from .core.config import ScanConfig, merge_settings
from .core.engine import ScanSession, SessionState, SessionSummary
from .core.errors import ConfigurationError, DirhoundError
from .core.log import configure_logging
from .core.wordlist import WordSource
from .output import ConsoleSink, MemorySink, MultiSink, OUTPUT_FORMATS, save_results
from .parsing import load_lines, parse_codes, parse_headers, parse_range


console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


# CLI option name -> (settings path, converter)
OPTION_SETTINGS: Dict[str, Tuple[Tuple[str, ...], Optional[Callable[[Any], Any]]]] = {
    "url": (("target",), None),
    "word_list": (("wordlist",), None),
    "threads": (("threads",), None),
    "timeout": (("timeout",), None),
    "retries": (("retries",), None),
    "insecure": (("verify_tls",), lambda v: not v),
    "follow_redirects": (("follow_redirects",), None),
    "cookie_jar": (("cookie_jar",), None),
    "proxy": (("proxy",), None),
    "header": (("headers",), parse_headers),
    "basic_auth": (("auth", "basic"), None),
    "bearer_token": (("auth", "bearer"), None),
    "auth_header": (("auth", "header"), None),
    "rotate_user_agent": (("evasion", "rotate_user_agent"), None),
    "rotate_ip_headers": (("evasion", "rotate_ip_headers"), None),
    "user_agents": (("evasion", "user_agents"), lambda p: tuple(load_lines(p))),
    "browser_headers": (("evasion", "browser_headers"), None),
    "delay_min": (("evasion", "delay_min"), None),
    "delay_max": (("evasion", "delay_max"), None),
    "backoff": (("evasion", "backoff_on_429"), None),
    "detect_wildcards": (("wildcard", "enabled"), None),
    "wildcard_tolerance": (("wildcard", "length_tolerance"), lambda pct: pct / 100.0),
    "filter_codes": (("filters", "exclude_codes"), parse_codes),
    "only_success": (("filters", "only_success"), None),
    "filter_size": (("filters", "size_range"), parse_range),
    "filter_time": (("filters", "max_time"), None),
    "filter_words": (("filters", "word_range"), parse_range),
    "resume": (("resume_file",), None),
    "save_state": (("state_file",), None),
    "checkpoint_every": (("checkpoint_every",), None),
    "grace_period": (("grace_period",), None),
}


def collect_settings(ctx: click.Context, params: Dict[str, Any], explicit_only: bool) -> Dict[str, Any]:
    """
    Turn CLI parameters into a nested ScanConfig settings dict.

    Args:
        ctx: Click context (used to tell explicit options from defaults)
        params: Parameter values
        explicit_only: Keep only options given on the command line
    """
    settings: Dict[str, Any] = {}
    for name, (path, converter) in OPTION_SETTINGS.items():
        value = params.get(name)
        if value is None:
            continue
        if explicit_only and ctx.get_parameter_source(name) in (ParameterSource.DEFAULT, None):
            continue

        if converter is not None:
            try:
                value = converter(value)
            except (ValueError, OSError) as e:
                raise click.BadParameter(str(e), param_hint=f"--{name.replace('_', '-')}")

        node = settings
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = value
    return settings


def build_config(ctx: click.Context, params: Dict[str, Any]) -> ScanConfig:
    config_file = params.get("config")
    if config_file:
        overrides = collect_settings(ctx, params, explicit_only=True)
        return ScanConfig.from_yaml(config_file, **overrides)
    return ScanConfig.create(**merge_settings({}, collect_settings(ctx, params, explicit_only=False)))


@click.group()
@click.version_option(version=__version__, prog_name="DIRHOUND")
def cli():
    """
    DIRHOUND - Concurrent Web Content Discovery

    Finds hidden files, directories and endpoints by probing wordlist
    entries, with wildcard detection and resumable scans.
    """
    pass


@cli.command()
@click.option("-u", "--url", help="Target base URL")
@click.option("-w", "--word-list", type=click.Path(dir_okay=False), help="Path to the wordlist file")
@click.option("-t", "--threads", default=20, type=int, show_default=True, help="Number of concurrent workers")
@click.option("--timeout", default=5.0, type=float, show_default=True, help="Request timeout in seconds")
@click.option("--retries", default=0, type=int, show_default=True, help="Retries for failed, 429 and 5xx requests")
@click.option("--insecure", is_flag=True, help="Do not verify TLS certificates")
@click.option("--follow-redirects", is_flag=True, help="Follow redirects instead of reporting them")
@click.option("--cookie-jar", is_flag=True, help="Persist cookies between requests")
@click.option("--proxy", help="HTTP proxy (e.g. http://127.0.0.1:8080)")
@click.option("-H", "--header", multiple=True, help="Custom header 'Name: value' (repeatable)")
@click.option("--basic-auth", help="Basic auth credentials user:password")
@click.option("--bearer-token", help="Bearer token")
@click.option("--auth-header", help="Raw Authorization header value")
@click.option("--rotate-user-agent", is_flag=True, help="Rotate User-Agent per request")
@click.option("--rotate-ip-headers", is_flag=True, help="Spoof X-Forwarded-For / X-Real-IP / True-Client-IP")
@click.option("--user-agents", type=click.Path(exists=True, dir_okay=False), help="File with User-Agent strings")
@click.option("--browser-headers", is_flag=True, help="Randomise Referer and Accept-* headers")
@click.option("--delay-min", default=0, type=int, show_default=True, help="Minimum delay between requests (ms)")
@click.option("--delay-max", default=0, type=int, show_default=True, help="Maximum delay between requests (ms)")
@click.option("--backoff", is_flag=True, help="Slow down automatically after 429 responses")
@click.option("--detect-wildcards", is_flag=True, help="Detect and suppress wildcard responses")
@click.option("--wildcard-tolerance", default=5.0, type=float, show_default=True, help="Wildcard size tolerance (%)")
@click.option("--filter-codes", multiple=True, help="Exclude these status codes (repeatable or comma separated)")
@click.option("--only-success", is_flag=True, help="Only report 2xx responses")
@click.option("--filter-size", help="Only report sizes in range, e.g. 100-500")
@click.option("--filter-time", type=int, help="Drop responses slower than this (ms)")
@click.option("--filter-words", help="Only report word counts in range, e.g. 50-200")
@click.option("--show-content-length", is_flag=True, help="Show content length of results")
@click.option("--show-response-time", is_flag=True, help="Show response time of results")
@click.option("--no-progress", is_flag=True, help="Hide the progress bar")
@click.option("--output-format", type=click.Choice(OUTPUT_FORMATS), default="text", show_default=True)
@click.option("--output-file", type=click.Path(dir_okay=False), help="Save results to this file")
@click.option("--resume", type=click.Path(dir_okay=False), help="Resume from this checkpoint file")
@click.option("--save-state", type=click.Path(dir_okay=False), help="Write checkpoints to this file")
@click.option("--checkpoint-every", default=100, type=int, show_default=True, help="Completions between checkpoints")
@click.option("--grace-period", default=10.0, type=float, show_default=True, help="Seconds to wait for in-flight requests on interrupt")
@click.option("--config", type=click.Path(exists=True, dir_okay=False), help="YAML config file")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v, -vv)")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def scan(ctx: click.Context, **params):
    """
    Scan a target for hidden content.

    Example:
        dirhound scan -u https://example.com -w common.txt --only-success
    """
    configure_logging(params["verbose"], params["json_logs"])

    try:
        config = build_config(ctx, params)
    except ConfigurationError as e:
        err_console.print(f"[bold red]Invalid configuration:[/bold red] {e}")
        sys.exit(EXIT_ERROR)

    print_banner(config)

    exit_code = asyncio.run(run_scan(
        config=config,
        show_progress=not params["no_progress"],
        show_content_length=params["show_content_length"],
        show_response_time=params["show_response_time"],
        output_file=params["output_file"],
        output_format=params["output_format"],
    ))
    sys.exit(exit_code)


def print_banner(config: ScanConfig):
    console.print("\n" + "=" * 80)
    console.print(f"DIRHOUND v{__version__} - Content Discovery")
    console.print("=" * 80 + "\n")

    console.print(f"[green]Target:[/green] {config.target}")
    console.print(f"[green]Wordlist:[/green] {config.wordlist}")
    console.print(f"[green]Threads:[/green] {config.threads}")
    console.print(f"[green]Timeout:[/green] {config.timeout}s")
    console.print(f"[green]Wildcards:[/green] {'[bold green]Detect[/bold green]' if config.wildcard.enabled else '[dim]Off[/dim]'}")
    if config.evasion.delay_max:
        console.print(f"[green]Delay:[/green] {config.evasion.delay_min}-{config.evasion.delay_max}ms")
    if config.resume_file:
        console.print(f"[green]Resume:[/green] {config.resume_file}")
    if config.checkpoint_path:
        console.print(f"[green]State file:[/green] {config.checkpoint_path}")
    console.print()


async def run_scan(
    config: ScanConfig,
    show_progress: bool = True,
    show_content_length: bool = False,
    show_response_time: bool = False,
    output_file: Optional[str] = None,
    output_format: str = "text",
) -> int:
    """
    Run a scan with console output and return the process exit code.
    """
    memory = MemorySink()
    sink = MultiSink(
        memory,
        ConsoleSink(
            console,
            show_content_length=show_content_length,
            show_response_time=show_response_time,
        ),
    )
    session = ScanSession(config, sink=sink)

    try:
        if show_progress:
            total = WordSource(config.wordlist).count()
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("[cyan]Initializing...", total=total)

                def on_event(event: str, data: dict):
                    if event in ("candidate_completed", "candidate_failed"):
                        progress.advance(task)
                    elif event == "state_changed" and data["state"] in (SessionState.RUNNING, SessionState.RESUMED):
                        progress.update(
                            task,
                            description="[cyan]Scanning...",
                            completed=session.tracker.start_offset,
                        )

                session.subscribe(on_event)
                summary = await session.run(install_signal_handlers=True)
        else:
            summary = await session.run(install_signal_handlers=True)

    except DirhoundError as e:
        err_console.print(f"\n[bold red]Error:[/bold red] {e}")
        return EXIT_ERROR

    print_summary(summary)

    if output_file:
        path = save_results(output_file, output_format, memory.results, summary.to_dict(), config.base_url)
        console.print(f"[green]Results saved to:[/green] {path}")

    if config.checkpoint_path:
        console.print(f"[green]Checkpoint:[/green] {config.checkpoint_path} (offset {summary.checkpoint_offset})")

    if summary.state == SessionState.CANCELLED:
        console.print("\n[yellow]Scan interrupted - resume with --resume[/yellow]")
        return EXIT_CANCELLED
    return EXIT_OK


def print_summary(summary: SessionSummary):
    table = Table(title="Summary", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    table.add_row("State", summary.state.value)
    if summary.resumed_from is not None:
        table.add_row("Resumed from", str(summary.resumed_from))
    table.add_row("Processed", str(summary.processed))
    table.add_row("Found", f"[green]{summary.accepted}[/green]")
    table.add_row("Errors", f"[red]{summary.failed}[/red]")
    table.add_row("Filtered", f"[yellow]{summary.filtered}[/yellow]")
    if summary.wildcard_entries:
        table.add_row("Wildcards", f"{summary.wildcards} ({summary.wildcard_entries} profile entries)")
    if summary.abandoned:
        table.add_row("Abandoned", str(summary.abandoned))
    table.add_row("Elapsed", f"{summary.elapsed:.2f}s")
    table.add_row("Rate", f"{summary.rate:.2f} req/sec")

    console.print()
    console.print(table)


@cli.command()
def version():
    """Show version information and capabilities"""
    console.print(f"\n[bold cyan]DIRHOUND v{__version__}[/bold cyan]")
    console.print("[cyan]Concurrent Web Content Discovery[/cyan]\n")

    table = Table(title="Engine Features")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Notes", style="yellow")

    table.add_row("Worker Pool", "asyncio workers with a shared cursor")
    table.add_row("Wildcard Detection", "Random-path baseline, status + size/signature match")
    table.add_row("Filters", "Status, 2xx-only, size, time, word count")
    table.add_row("Evasion", "UA rotation, spoofed IP headers, delay jitter, 429 back-off")
    table.add_row("Checkpoints", "Versioned state file, fingerprint-checked resume")
    table.add_row("Reports", ", ".join(OUTPUT_FORMATS))

    console.print(table)
    console.print()


if __name__ == "__main__":
    cli()
