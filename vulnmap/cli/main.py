# vulnmap/cli/main.py
import asyncio
import logging
import sys
import time
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .. import __version__
from ..config.scan_profiles import PROFILES, build_custom_config
from ..crawler.site_graph import PageStatus, SiteGraph
from ..errors import InvalidURL, UnreachableTarget
from ..reports.aggregator import ScanResult
from ..reports.generator import ReportGenerator, default_report_filename
from ..reports.narrative import NarrativeGenerator
from ..scanner.vuln_scanner import ScanType, VulnerabilityScanner


console = Console()

EXIT_OK = 0
EXIT_FAIL_ON = 1
EXIT_INVALID_URL = 2
EXIT_UNREACHABLE = 3

SEVERITY_COLORS = {
    "critical": "red",
    "high": "orange1",
    "medium": "yellow",
    "low": "blue",
    "info": "dim"
}

GRADE_COLORS = {"A": "green", "B": "green", "C": "yellow", "D": "red"}


class ScanTimer:
    """Track total scan duration and per-phase timings"""

    def __init__(self):
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.phase_times: dict = {}
        self._current_phase: Optional[str] = None
        self._phase_start: Optional[float] = None

    def start(self):
        self.start_time = time.perf_counter()
        self.phase_times = {}
        return self

    def stop(self):
        self.end_time = time.perf_counter()
        if self._current_phase:
            self.end_phase()
        return self

    def start_phase(self, phase_name: str):
        if self._current_phase:
            self.end_phase()
        self._current_phase = phase_name
        self._phase_start = time.perf_counter()
        return self

    def end_phase(self):
        if self._current_phase and self._phase_start:
            self.phase_times[self._current_phase] = time.perf_counter() - self._phase_start
            self._current_phase = None
            self._phase_start = None
        return self

    @property
    def total_duration(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.perf_counter()
        return end - self.start_time

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format duration in human-readable format"""
        if seconds < 1:
            return f"{seconds * 1000:.0f}ms"
        elif seconds < 60:
            return f"{seconds:.2f}s"
        minutes = int(seconds // 60)
        return f"{minutes}m {seconds % 60:.1f}s"


def setup_logging(verbose: bool):
    """Route engine logging through rich; DEBUG with -v, WARNING otherwise"""
    logger = logging.getLogger("vulnmap")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=True))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def load_config(profile: str, **overrides):
    """Named profile plus the command-line overrides that were given"""
    overrides = {name: value for name, value in overrides.items() if value is not None}
    # --rate-limit 0 disables rate limiting
    if overrides.get("requests_per_second") == 0:
        overrides["requests_per_second"] = None
    try:
        return build_custom_config(profile, **overrides)
    except ValidationError as e:
        raise click.UsageError(f"Invalid scan option: {e.errors()[0]['msg']}")


def normalize_target(target_url: str) -> str:
    if "://" not in target_url:
        target_url = "http://" + target_url
    return target_url


async def run_full_scan(
    target_url: str,
    scanner: VulnerabilityScanner,
    scan_type: str,
    timer: ScanTimer,
    narrative: Optional[NarrativeGenerator] = None
):
    """
    Crawl and scan the target behind a rich progress display.

    Returns:
        (ScanResult, narrative report or None)
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TextColumn("[cyan]{task.fields[status]}"),
        console=console,
        transient=True
    ) as progress:
        main_task = progress.add_task("[cyan]Phase 1: Crawling website...", total=100, status="")

        def scan_progress_callback(completed, total, message):
            if completed == 0:
                # Crawl finished, probe modules starting
                timer.start_phase("Vulnerability Scanning")
                progress.update(
                    main_task,
                    completed=30,
                    description="[cyan]Phase 2: Scanning for vulnerabilities...",
                    status=f"{len(scanner.graph)} pages"
                )
            elif total > 0:
                progress.update(
                    main_task,
                    completed=30 + (completed / total) * 70,
                    status=f"{message} ({completed}/{total})"
                )

        scanner.set_progress_callback(scan_progress_callback)

        timer.start_phase("Crawling")
        result = await scanner.scan(target_url, scan_type)
        timer.end_phase()
        progress.update(main_task, completed=100, description="[green]Scan complete!", status="Done")

    report = None
    if narrative is not None:
        timer.start_phase("Narrative Report")
        report = await narrative.generate(result.findings, result.target, result.scan_type)
        timer.end_phase()

    return result, report


def display_results(result: ScanResult, graph: Optional[SiteGraph], stats: dict, timer: ScanTimer):
    """Summary panel, severity breakdown and findings table"""
    color = GRADE_COLORS.get(result.score, "white")
    pages = len(graph) if graph is not None else 0
    summary_text = (
        f"[bold]Target:[/bold] {result.target}\n"
        f"[bold]Scan Type:[/bold] {result.scan_type}\n"
        f"[bold]Pages Crawled:[/bold] {pages}\n"
        f"[bold]Total Findings:[/bold] {result.total_findings}\n"
        f"[bold]Score:[/bold] [{color}]{result.score} ({result.label})[/{color}] - {result.numeric_score}/100\n"
        f"[bold]Duration:[/bold] {timer.format_duration(timer.total_duration)}"
    )
    if stats.get("stop_reason") not in (None, "exhausted"):
        summary_text += f"\n[yellow]Crawl stopped early: {stats['stop_reason']}[/yellow]"
    console.print(Panel(summary_text, title="Scan Summary", border_style="blue"))

    severity_table = Table(title="Severity Breakdown")
    severity_table.add_column("Severity", style="bold")
    severity_table.add_column("Count", justify="center")
    for sev, count in result.severity_counts.items():
        sev_color = SEVERITY_COLORS.get(sev, "white")
        severity_table.add_row(f"[{sev_color}]{sev.upper()}[/{sev_color}]", str(count))
    console.print(severity_table)

    if not result.findings:
        console.print(Panel(
            "[green]No vulnerabilities found![/green]",
            title="Results",
            border_style="green"
        ))
    else:
        vuln_table = Table(title="Vulnerabilities Found")
        vuln_table.add_column("ID", style="dim")
        vuln_table.add_column("Type", style="cyan")
        vuln_table.add_column("Severity")
        vuln_table.add_column("URL", overflow="fold")
        vuln_table.add_column("Parameter")

        for finding in result.findings:
            sev = finding.severity.value
            sev_color = SEVERITY_COLORS.get(sev, "white")
            vuln_table.add_row(
                finding.id or "",
                finding.title,
                f"[{sev_color}]{sev.upper()}[/{sev_color}]",
                finding.url,
                finding.parameter or "N/A"
            )
        console.print(vuln_table)

    if result.inconclusive:
        console.print(f"[yellow]{len(result.inconclusive)} check(s) were inconclusive; see the report for details[/yellow]")


def display_pages(graph: SiteGraph):
    table = Table(title=f"Site Map ({len(graph)} pages)")
    table.add_column("URL", overflow="fold")
    table.add_column("Status")
    table.add_column("Depth", justify="right")
    table.add_column("Links", justify="right")
    table.add_column("Forms", justify="right")

    for node in graph:
        status = node.status.value
        if node.status is not PageStatus.OK:
            status = f"[red]{status}[/red]"
        table.add_row(node.url, status, str(node.depth), str(len(node.links)), str(len(node.forms)))
    console.print(table)

    if graph.excluded:
        console.print(f"[dim]{len(graph.excluded)} URL(s) excluded[/dim]")


def write_file(path: str, content: str):
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)


@click.group()
@click.version_option(version=__version__)
def cli():
    """VulnMap - asynchronous web vulnerability scanner"""
    pass


@cli.command()
@click.argument('target_url')
@click.option('--type', '-T', 'scan_type',
              type=click.Choice([t.value for t in ScanType]),
              default='comprehensive', help='Scan type (default: comprehensive)')
@click.option('--profile', '-p', type=click.Choice(list(PROFILES)), default='standard',
              help='Scan profile (default: standard)')
@click.option('--depth', '-d', type=int, default=None, help='Maximum crawl depth')
@click.option('--max-pages', '-m', type=int, default=None, help='Maximum pages to crawl')
@click.option('--concurrency', '-c', type=int, default=None, help='Maximum concurrent requests')
@click.option('--timeout', '-t', type=float, default=None, help='Per-request timeout in seconds')
@click.option('--rate-limit', type=float, default=None, help='Max requests per second (0 = unlimited)')
@click.option('--time-budget', type=float, default=None, help='Crawl time budget in seconds')
@click.option('--output', '-o', default=None, help='Report file path (default: security-scan-<host>-<date>.json)')
@click.option('--format', '-f', 'output_format',
              type=click.Choice(['json', 'sarif']),
              default='json', help='Report format (default: json)')
@click.option('--report', '-r', 'report_path', default=None, help='Write a narrative markdown report to this path')
@click.option('--fail-on',
              type=click.Choice(['critical', 'high', 'medium', 'any', 'none']),
              default='critical', help='Severity threshold for non-zero exit (default: critical)')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def scan(target_url, scan_type, profile, depth, max_pages, concurrency, timeout, rate_limit,
         time_budget, output, output_format, report_path, fail_on, verbose):
    """Scan a target URL for vulnerabilities

    Examples:

        vulnmap scan http://example.com

        vulnmap scan http://example.com --type xss -d 2 -o report.sarif -f sarif

        vulnmap scan http://example.com --fail-on high --report report.md
    """
    setup_logging(verbose)
    config = load_config(
        profile,
        max_depth=depth,
        max_pages=max_pages,
        max_concurrency=concurrency,
        request_timeout=timeout,
        requests_per_second=rate_limit,
        time_budget=time_budget
    )
    target_url = normalize_target(target_url)

    console.print(f"\n[bold]Target:[/bold] {target_url}")
    console.print(f"[bold]Type:[/bold] {scan_type} | [bold]Profile:[/bold] {profile} | "
                  f"[bold]Depth:[/bold] {config.crawl.max_depth} | [bold]Max Pages:[/bold] {config.crawl.max_pages}\n")

    scanner = VulnerabilityScanner(config)
    narrative = NarrativeGenerator() if report_path else None
    timer = ScanTimer().start()

    try:
        result, report = asyncio.run(run_full_scan(target_url, scanner, scan_type, timer, narrative))
    except InvalidURL as e:
        console.print(f"[red]Invalid target URL: {e}[/red]")
        sys.exit(EXIT_INVALID_URL)
    except UnreachableTarget as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(EXIT_UNREACHABLE)
    except KeyboardInterrupt:
        timer.stop()
        console.print("\n[yellow]Scan interrupted by user[/yellow]")
        console.print(f"[dim]Elapsed time: {timer.format_duration(timer.total_duration)}[/dim]")
        sys.exit(130)

    timer.stop()
    display_results(result, scanner.graph, scanner.crawl_stats, timer)

    if verbose:
        for phase, duration in timer.phase_times.items():
            console.print(f"[dim]{phase}: {timer.format_duration(duration)}[/dim]")

    generator = ReportGenerator()
    if output_format == 'sarif':
        report_content = generator.generate_sarif_report(result)
    else:
        report_content = generator.generate_json_report(result)

    if output is None:
        output = default_report_filename(result.target)
        if output_format == 'sarif':
            output = output[:-len(".json")] + ".sarif"
    write_file(output, report_content)
    console.print(f"\n[green]Report saved to:[/green] {output}")

    if report is not None:
        write_file(report_path, report.report_text)
        note = " (generated locally)" if report.is_fallback else ""
        console.print(f"[green]Narrative report saved to:[/green] {report_path}{note}")

    sys.exit(generator.determine_exit_code(result, fail_on))


@cli.command()
@click.argument('target_url')
@click.option('--profile', '-p', type=click.Choice(list(PROFILES)), default='standard',
              help='Scan profile (default: standard)')
@click.option('--depth', '-d', type=int, default=None, help='Maximum crawl depth')
@click.option('--max-pages', '-m', type=int, default=None, help='Maximum pages to crawl')
@click.option('--concurrency', '-c', type=int, default=None, help='Maximum concurrent requests')
@click.option('--timeout', '-t', type=float, default=None, help='Per-request timeout in seconds')
@click.option('--output', '-o', default=None, help='Write the site map as JSON to this path')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def crawl(target_url, profile, depth, max_pages, concurrency, timeout, output, verbose):
    """Crawl a target and print its site map

    Example:

        vulnmap crawl http://example.com -d 2 -o sitemap.json
    """
    setup_logging(verbose)
    config = load_config(
        profile,
        max_depth=depth,
        max_pages=max_pages,
        max_concurrency=concurrency,
        request_timeout=timeout
    )
    scanner = VulnerabilityScanner(config)

    try:
        with console.status("[cyan]Crawling website..."):
            graph = asyncio.run(scanner.crawl(normalize_target(target_url)))
    except InvalidURL as e:
        console.print(f"[red]Invalid target URL: {e}[/red]")
        sys.exit(EXIT_INVALID_URL)
    except UnreachableTarget as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(EXIT_UNREACHABLE)

    if output:
        write_file(output, ReportGenerator().generate_sitemap_report(graph))
        console.print(f"[green]Site map saved to:[/green] {output}")
    else:
        display_pages(graph)


@cli.command()
def version():
    """Show version information"""
    console.print(f"[bold]VulnMap[/bold] version {__version__}")
    console.print("[dim]Asynchronous web vulnerability scanner[/dim]")


def main():
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
