"""research-relay - multi-source research CLI

Plans a research task, gathers evidence from web search providers and the
local document index, and writes a cited report.
"""

import argparse
import asyncio
import sys

from research_relay.config import settings
from research_relay.errors import ReportNotFound
from research_relay.llm_client import get_generator
from research_relay.models.schemas import ResearchRequest
from research_relay.services.ingest import ingest_directory
from research_relay.services.logger import configure_logging
from research_relay.services.pipeline import ResearchPipeline
from research_relay.services.reports import ReportStore
from research_relay.services.vector_index import VectorIndex


def _build_request(args: argparse.Namespace) -> ResearchRequest:
    overrides = {
        "max_results": args.max_results,
        "total_words": args.words,
        "timeout_ms": args.timeout_ms,
        "language": args.language,
        "citation_style": args.style,
    }
    return ResearchRequest(
        task=args.task,
        include_local=not args.no_local,
        formats=["md"],
        **{key: value for key, value in overrides.items() if value is not None},
    )


async def run_research(args: argparse.Namespace) -> int:
    request = _build_request(args)
    pipeline = ResearchPipeline(generator=get_generator(args.provider, args.model))
    print(f"Research task: {request.task}")
    print("-" * 50)

    if args.blocking:
        summary = await pipeline.run(request)
        if summary.error:
            print(f"\n[!] Error: {summary.error}")
            return 1
        print(f"[*] Sub-questions: {len(summary.sub_questions)}")
        print(f"[*] Sources: {summary.sources_used} web, {summary.local_used} local")
        print(f"[*] Saved: {summary.report_path}")
        print(f"\n{summary.report_text}")
        return 0

    exit_code = 0
    async for event in pipeline.stream(request):
        event_type = event.event.value
        data = event.data

        if event_type == "status":
            print(f"\n[~] {data.get('message')}...")

        elif event_type == "phase":
            if data.get("phase") == "planning":
                for i, question in enumerate(data.get("subQuestions", []), 1):
                    print(f"  {i}. {question}")
            elif data.get("phase") == "retrieving":
                print(f"  [+] {data.get('sources')} web sources, {data.get('localSources')} local")

        elif event_type == "progress":
            print(f"  [{data.get('completed')}/{data.get('total')}] sub-questions searched")

        elif event_type == "completed":
            print(f"\n[*] {data.get('message')} ({data.get('sources')} sources)")
            print(f"   Saved: {data.get('report')}")
            print(f"\n{data.get('preview', '')}")

        elif event_type == "error":
            print(f"\n[!] Error: {data.get('message', 'Unknown error')}")
            exit_code = 1
    return exit_code


async def run_ingest(args: argparse.Namespace) -> int:
    result = await ingest_directory(args.root, VectorIndex())
    print(f"Ingested {result.files} files into {result.chunks} chunks")
    return 0


def show_stats(_: argparse.Namespace) -> int:
    stats = VectorIndex().stats()
    print(f"Index: {settings.index_path}")
    print(f"  items: {stats.item_count}")
    print(f"  updated: {stats.last_updated.isoformat() if stats.last_updated else 'never'}")
    return 0


def list_reports(_: argparse.Namespace) -> int:
    for info in ReportStore().list_reports():
        print(f"{info.modified_at:%Y-%m-%d %H:%M}  {info.size:>8}  {info.name}")
    return 0


def show_report(args: argparse.Namespace) -> int:
    try:
        print(ReportStore().read(args.name))
    except ReportNotFound as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="research-relay multi-source research tool")
    sub = parser.add_subparsers(dest="command", required=True)

    research = sub.add_parser("research", help="Run a research task")
    research.add_argument("task", help="Research task")
    research.add_argument("--provider", "-p", help="LLM provider (default: from config)")
    research.add_argument("--model", "-m", help="Model to use (default: from config)")
    research.add_argument("--max-results", type=int, help="Results per sub-question (1-20)")
    research.add_argument("--words", type=int, help="Target report length")
    research.add_argument("--timeout-ms", type=int, help="Per-request timeout")
    research.add_argument("--language", help="Report language")
    research.add_argument("--style", choices=["APA", "MLA"], help="Citation style")
    research.add_argument("--no-local", action="store_true", help="Skip the local document index")
    research.add_argument("--blocking", action="store_true", help="Wait for the full report")

    ingest = sub.add_parser("ingest", help="Index .md/.txt/.csv files from a directory")
    ingest.add_argument("root", help="Directory to ingest")

    sub.add_parser("stats", help="Show local index statistics")
    sub.add_parser("reports", help="List saved reports")
    show = sub.add_parser("show", help="Print a saved report")
    show.add_argument("name", help="Report file name")

    args = parser.parse_args()
    configure_logging()

    if args.command == "research":
        return asyncio.run(run_research(args))
    if args.command == "ingest":
        return asyncio.run(run_ingest(args))
    if args.command == "stats":
        return show_stats(args)
    if args.command == "reports":
        return list_reports(args)
    return show_report(args)


if __name__ == "__main__":
    sys.exit(main())
