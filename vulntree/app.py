"""Command-line front end: analyze one package and print the report."""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from vulntree.__version__ import __version__
from vulntree.analysis import analyze_package
from vulntree.config import Settings, get_settings
from vulntree.core.model import AnalysisReport
from vulntree.errors import VulntreeError
from vulntree.validation import parse_package_spec

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_ERROR = 2

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "moderate": "yellow",
    "low": "blue",
    "unknown": "dim",
}


def configure_logging(settings: Settings, level: Optional[str] = None) -> None:
    options = {
        "level": (level or settings.log_level).upper(),
        "format": "%(asctime)s - %(levelname)s - %(message)s",
        "force": True,
    }
    if settings.log_file:
        options["filename"] = settings.log_file
        options["filemode"] = "w"
    logging.basicConfig(**options)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vulntree",
        description="Find vulnerable and deprecated packages in an npm package's dependency tree.",
    )
    parser.add_argument("package", help="name, name@version or @scope/name@version")
    parser.add_argument("--max-depth", type=int, default=None, help="stop expanding below this depth")
    parser.add_argument("--json", action="store_true", help="print the report as JSON")
    parser.add_argument("--log-level", default=None, help="override VULNTREE_LOG_LEVEL")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def render_report(report: AnalysisReport, console: Console) -> None:
    counts = report.total_counts
    console.print(
        f"[b]{escape(report.package)}@{escape(report.version)}[/b]  "
        f"[b]Total:[/b] [blue]{report.total_packages}[/]  "
        f"[b]Vuln:[/b] [red]{len(report.vulnerable_packages)}[/]  "
        f"[b]Deprecated:[/b] [yellow]{len(report.deprecated_packages)}[/]  "
        f"[b]Unchecked:[/b] {report.failed_queries}"
    )

    if report.vulnerable_packages:
        table = Table(title="Vulnerable packages", show_lines=False)
        table.add_column("Package")
        table.add_column("Depth")
        table.add_column("Advisory")
        table.add_column("Severity")
        table.add_column("Path", overflow="fold")

        for pkg in report.vulnerable_packages:
            label = f"{escape(pkg.name)} [dim]{escape(pkg.version)}[/]"
            path = " > ".join(escape(p) for p in pkg.path)
            for vuln in pkg.vulnerabilities:
                style = SEVERITY_STYLES.get(vuln.severity, "")
                table.add_row(
                    label,
                    pkg.depth,
                    f"[link={vuln.url}]{escape(vuln.id)}[/link] {escape(vuln.summary)}",
                    f"[{style}]{vuln.severity}[/]",
                    path,
                )
                label, path = "", ""
        console.print(table)

    if report.deprecated_packages:
        table = Table(title="Deprecated packages")
        table.add_column("Package")
        table.add_column("Depth")
        table.add_column("Message", overflow="fold")
        for pkg in report.deprecated_packages:
            table.add_row(f"{escape(pkg.name)} [dim]{escape(pkg.version)}[/]", pkg.depth, escape(pkg.message))
        console.print(table)

    console.print(
        f"[bold red]{counts.critical} critical[/], [red]{counts.high} high[/], "
        f"[yellow]{counts.moderate} moderate[/], [blue]{counts.low} low[/] "
        f"({counts.total} total)"
    )


def exit_code(report: AnalysisReport) -> int:
    if report.total_counts.critical or report.total_counts.high:
        return EXIT_FINDINGS
    return EXIT_OK


def run(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings, args.log_level)
    console = console or Console()

    try:
        name, version = parse_package_spec(args.package)
        report = asyncio.run(analyze_package(name, version, settings=settings, max_depth=args.max_depth))
    except VulntreeError as e:
        logging.error(f"{e.status_code} {e.error_code}: {e.message}")
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_ERROR

    if args.json:
        console.print_json(json.dumps(report.to_dict()))
    else:
        render_report(report, console)

    return exit_code(report)
