"""
Document Analysis CLI
=====================

Command line entry point for analysis runs and maintenance passes.

Usage:
    regscore-analyze
    regscore-analyze --domain housing --jurisdiction NY-NewYork-City
    regscore-analyze --domain housing --jurisdiction NY-NewYork-City --question-id 7
    regscore-analyze --skip-recent 2h
    regscore-analyze --scores-only
    regscore-analyze --fix-order
    regscore-analyze --set-grades --color-grades

Exit codes: 0 when no jurisdiction failed, 1 otherwise, 2 on bad usage.

Version: 0.1.0
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich import box
from rich.console import Console
from rich.table import Table

from services.document_analysis.embeddings import OpenAIEmbeddings
from services.document_analysis.gateway import ModelGateway
from services.document_analysis.orchestrator import (
    AnalysisOptions,
    AnalysisOrchestrator,
    OutcomeStatus,
    RunSummary,
)
from services.document_analysis.patterns import parse_duration
from services.document_analysis.rate_budget import RateBudgetManager
from services.document_analysis.similarity import InMemorySimilarityIndex
from services.document_analysis.storage import FileDocumentStore, FileQuestionCatalog
from shared.config import LLMProvider, settings
from shared.llm import create_llm_provider
from shared.logging import get_logger, setup_logging


logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="regscore-analyze",
        description="Answer domain questions against jurisdiction statutes and score them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--domain", help="Only this domain")
    parser.add_argument("--jurisdiction", help="Only this jurisdiction")
    parser.add_argument(
        "--question-id",
        help="Re-analyze one question (requires --domain and --jurisdiction)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-analyze every question regardless of stored answers",
    )
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Rebuild the similarity index for each analyzed jurisdiction",
    )
    parser.add_argument(
        "--skip-recent",
        type=parse_duration,
        metavar="DURATION",
        help="Skip jurisdictions analyzed within DURATION (e.g. 15m, 2h, 1d)",
    )
    parser.add_argument("--model", help="Completion model override")
    parser.add_argument(
        "--provider",
        choices=[p.value for p in LLMProvider],
        help="Completion provider override",
    )
    parser.add_argument("--data-dir", type=Path, help="Data directory override")

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument(
        "--scores-only",
        action="store_true",
        help="Recompute scores and gaps of stored records without re-answering",
    )
    modes.add_argument(
        "--fix-order",
        action="store_true",
        help="Re-order stored answers by catalog order",
    )
    modes.add_argument(
        "--set-grades",
        action="store_true",
        help="Copy reviewer grades from metadata into stored records",
    )
    parser.add_argument(
        "--color-grades",
        action="store_true",
        help="Read grades from the colour-coded metadata field",
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--json-logs", action="store_true", help="JSON log lines on stderr")

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.question_id and not (args.domain and args.jurisdiction):
        parser.error("--question-id requires --domain and --jurisdiction")

    return args


def render_summary(summary: RunSummary, console: Console | None = None) -> None:
    """Print one row per jurisdiction plus totals."""
    console = console or Console()

    table = Table(title="Analysis Run", box=box.ROUNDED)
    table.add_column("Domain", style="cyan", no_wrap=True)
    table.add_column("Jurisdiction", style="cyan")
    table.add_column("Status")
    table.add_column("Method")
    table.add_column("Questions", justify="right")
    table.add_column("Calls", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Note")

    styles = {
        OutcomeStatus.FAILED: "red",
        OutcomeStatus.SKIPPED: "yellow",
    }
    for outcome in summary.outcomes:
        style = styles.get(outcome.status, "green")
        table.add_row(
            outcome.domain_id,
            outcome.jurisdiction_id,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.method or "",
            str(outcome.questions_analyzed),
            str(outcome.model_calls),
            str(outcome.tokens),
            outcome.reason or "",
        )

    console.print(table)
    totals = ", ".join(f"{k}: {v}" for k, v in summary.as_dict().items() if v)
    console.print(totals or "Nothing to do")


async def run(args: argparse.Namespace) -> RunSummary:
    """Wire up the pipeline from settings and execute the selected pass."""
    data_dir = args.data_dir or settings.storage.data_dir
    store = FileDocumentStore(data_dir)
    catalogs = FileQuestionCatalog(data_dir)

    llm = create_llm_provider(
        LLMProvider(args.provider) if args.provider else None,
        model=args.model,
    )
    gateway = ModelGateway(llm, OpenAIEmbeddings(), RateBudgetManager())
    index = InMemorySimilarityIndex(settings.storage.index_path)

    orchestrator = AnalysisOrchestrator(store, catalogs, gateway, index)
    options = AnalysisOptions(
        domain=args.domain,
        jurisdiction=args.jurisdiction,
        force=args.force,
        reindex=args.reindex,
        question_id=args.question_id,
        skip_recent=args.skip_recent,
        color_grades=args.color_grades,
    )

    logger.info(
        "run_started",
        data_dir=str(data_dir),
        model=gateway.completion_model,
        domain=args.domain,
        jurisdiction=args.jurisdiction,
    )
    try:
        if args.scores_only:
            return await orchestrator.rescore(options)
        if args.fix_order:
            return await orchestrator.fix_order(options)
        if args.set_grades:
            return await orchestrator.set_grades(options)
        return await orchestrator.run(options)
    finally:
        await gateway.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(
        log_level="DEBUG" if args.verbose else settings.log_level.value,
        json_logs=args.json_logs or settings.json_logs or settings.is_production,
    )

    try:
        summary = asyncio.run(run(args))
    except ValueError as e:
        # Missing API keys and similar configuration problems
        logger.error("configuration_error", error=str(e))
        return 2
    except KeyboardInterrupt:
        logger.warning("run_interrupted")
        return 130

    render_summary(summary)
    return 1 if summary.count(OutcomeStatus.FAILED) else 0


if __name__ == "__main__":
    sys.exit(main())
