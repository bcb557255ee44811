"""
CLI для Code Insight.

Usage:
    code-insight run                                 # All categories
    code-insight run --project-root ../app -c 20     # Custom root and concurrency
    code-insight category security                   # One category
    code-insight run --url https://example.com       # Include live-page accessibility audit
    code-insight run --ci-artifacts                  # Also write SARIF, JUnit and ci-summary.json
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import MAX_CONCURRENCY, MIN_CONCURRENCY, AuditConfig
from .core.errors import PersistenceError
from .core.models import AuditReport, Category
from .core.progress import LoggingProgressSubscriber, ProgressChannel, ProgressEvent, ProgressEventType
from .orchestrator import AuditOrchestrator
from .reports.generator import COMPREHENSIVE_REPORT_NAME, ReportGenerator

app = typer.Typer(
    name="code-insight",
    help="Code Insight: аудит фронтенд-проекта: security, performance, accessibility, testing, dependency",
)
console = Console()

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Настроить логирование."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


class RichProgressPrinter:
    """Печатает события категорий в консоль."""

    def __call__(self, event: ProgressEvent) -> None:
        if event.type == ProgressEventType.CATEGORY_STARTED:
            console.print(f"[blue]▶ {event.category}[/] started")
        elif event.type == ProgressEventType.CATEGORY_COMPLETED:
            console.print(f"[green]✔ {event.category}[/] {event.message}")
        elif event.type == ProgressEventType.CATEGORY_FAILED:
            console.print(f"[red]✖ {event.category}[/] failed: {event.message}")


def render_summary(report: AuditReport, categories: List[str]) -> Table:
    """Таблица сводки по категориям."""
    table = Table(title="📊 Audit summary")
    table.add_column("Category", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("High", justify="right", style="red")
    table.add_column("Medium", justify="right", style="yellow")
    table.add_column("Low", justify="right", style="green")
    table.add_column("Status", style="dim")

    for row in ReportGenerator(None).summary_rows(report, categories):
        table.add_row(
            row["category"],
            str(row["total"]),
            str(row["high"]),
            str(row["medium"]),
            str(row["low"]),
            "failed" if row["failed"] else "ok",
        )

    s = report.summary
    table.add_row(
        "[bold]all[/]",
        f"[bold]{s.total_issues}[/]",
        str(s.high_severity),
        str(s.medium_severity),
        str(s.low_severity),
        report.state.value,
    )
    return table


def build_config(
    project_root: Optional[Path],
    output_dir: Optional[Path],
    concurrency: Optional[int],
    urls: Optional[List[str]],
    no_external_tools: bool,
) -> AuditConfig:
    kwargs = {"page_urls": list(urls or [])}
    if project_root is not None:
        kwargs["project_root"] = project_root
    if output_dir is not None:
        kwargs["output_dir"] = output_dir
    if concurrency is not None:
        kwargs["concurrency"] = concurrency
    if no_external_tools:
        kwargs["use_external_tools"] = False
    return AuditConfig(**kwargs)


def execute(config: AuditConfig, category: Optional[Category], timeout: Optional[float]) -> AuditReport:
    """Запустить оркестратор; ошибки записи отчёта и таймаут завершают процесс с кодом 1."""
    channel = ProgressChannel()
    channel.subscribe(RichProgressPrinter())
    if logging.getLogger("code_insight").isEnabledFor(logging.DEBUG):
        channel.subscribe(LoggingProgressSubscriber())
    orchestrator = AuditOrchestrator(config, progress=channel)

    run = orchestrator.run_specific(category) if category else orchestrator.run_all()
    try:
        return asyncio.run(asyncio.wait_for(run, timeout=timeout) if timeout else run)
    except asyncio.TimeoutError:
        console.print(f"[red]❌ Audit timed out after {timeout:g}s[/]")
        raise typer.Exit(1)
    except PersistenceError as e:
        console.print(f"[red]❌ {e}[/]")
        raise typer.Exit(1)


def write_ci_artifacts(config: AuditConfig, report: AuditReport) -> None:
    """SARIF/JUnit/ci-summary рядом с итоговым отчётом; ошибка записи: код 1."""
    try:
        paths = ReportGenerator(config.output_dir).write_ci_artifacts(report)
    except PersistenceError as e:
        console.print(f"[red]❌ {e}[/]")
        raise typer.Exit(1)
    for path in paths:
        console.print(f"[dim]CI artifact: {path}[/]")


ProjectRootOption = typer.Option(None, "--project-root", "-p", help="Корень проверяемого проекта")
OutputDirOption = typer.Option(None, "--output-dir", "-o", help="Куда писать отчёты (по умолчанию корень проекта)")
ConcurrencyOption = typer.Option(
    None, "--concurrency", "-c", help=f"Параллельных задач на категорию ({MIN_CONCURRENCY}-{MAX_CONCURRENCY})"
)
UrlOption = typer.Option(None, "--url", help="URL страницы для Lighthouse (можно несколько)")
NoToolsOption = typer.Option(False, "--no-external-tools", help="Не запускать eslint/stylelint/npm/lighthouse")
TimeoutOption = typer.Option(None, "--timeout", help="Общий таймаут запуска, секунды")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Подробный лог")
CiArtifactsOption = typer.Option(False, "--ci-artifacts", help="Записать SARIF, JUnit XML и ci-summary.json")


@app.command()
def run(
    project_root: Optional[Path] = ProjectRootOption,
    output_dir: Optional[Path] = OutputDirOption,
    concurrency: Optional[int] = ConcurrencyOption,
    url: Optional[List[str]] = UrlOption,
    no_external_tools: bool = NoToolsOption,
    timeout: Optional[float] = TimeoutOption,
    verbose: bool = VerboseOption,
    ci_artifacts: bool = CiArtifactsOption,
):
    """🔍 Запустить все категории аудита."""
    load_dotenv()
    setup_logging(verbose)

    config = build_config(project_root, output_dir, concurrency, url, no_external_tools)
    report = execute(config, None, timeout)
    if ci_artifacts:
        write_ci_artifacts(config, report)

    names = [c.value for c in config.enabled_categories]
    console.print(render_summary(report, names))
    console.print(f"[dim]Report: {config.output_dir / COMPREHENSIVE_REPORT_NAME}[/]")


@app.command()
def category(
    name: str = typer.Argument(..., help="security | performance | accessibility | testing | dependency"),
    project_root: Optional[Path] = ProjectRootOption,
    output_dir: Optional[Path] = OutputDirOption,
    concurrency: Optional[int] = ConcurrencyOption,
    url: Optional[List[str]] = UrlOption,
    no_external_tools: bool = NoToolsOption,
    timeout: Optional[float] = TimeoutOption,
    verbose: bool = VerboseOption,
    ci_artifacts: bool = CiArtifactsOption,
):
    """🎯 Запустить одну категорию."""
    load_dotenv()
    setup_logging(verbose)

    try:
        selected = Category(name.lower())
    except ValueError:
        valid = ", ".join(c.value for c in Category)
        console.print(f"[red]Unknown category '{name}'. Expected one of: {valid}[/]")
        raise typer.Exit(2)

    config = build_config(project_root, output_dir, concurrency, url, no_external_tools)
    report = execute(config, selected, timeout)
    if ci_artifacts:
        write_ci_artifacts(config, report)

    console.print(render_summary(report, [selected.value]))
    console.print(f"[dim]Report: {config.output_dir / COMPREHENSIVE_REPORT_NAME}[/]")


if __name__ == "__main__":
    app()
