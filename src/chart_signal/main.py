"""Entry point: serve the analysis API or analyze one chart from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import structlog

from chart_signal.analysis_orchestrator import AnalysisOrchestrator, AnalysisState
from chart_signal.config import Settings
from chart_signal.image_input import encode_image_file
from chart_signal.models.session import Session
from chart_signal.platform_client import AnalysisClient, StatsClient

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chart-signal", description="Trading chart screenshot analysis")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the analysis API")

    analyze = sub.add_parser("analyze", help="Analyze one chart screenshot")
    analyze.add_argument("image", help="Path to a JPEG, PNG, GIF or WebP screenshot")
    analyze.add_argument("--token", required=True, help="Platform access token")
    analyze.add_argument("--user-id", required=True, help="Platform user id")
    analyze.add_argument("--outcome", choices=("win", "loss"), help="Record the trade result afterwards")
    return parser


async def run_analysis(args: argparse.Namespace, settings: Settings) -> int:
    session = Session(user_id=args.user_id, access_token=args.token)
    orchestrator = AnalysisOrchestrator(
        settings=settings,
        analysis_client=AnalysisClient(settings),
        stats_client=StatsClient(settings),
        session=session,
    )
    try:
        orchestrator.set_image(encode_image_file(args.image))
        result = await orchestrator.analyze()
        if result is None:
            failure = orchestrator.error
            print(f"{failure.title}: {failure.message}", file=sys.stderr)
            return 1

        output = result.model_dump()
        output["direction"] = "sell" if result.is_sell else "buy"
        print(json.dumps(output, ensure_ascii=False, indent=2))

        if args.outcome and orchestrator.state == AnalysisState.COMPLETE:
            stats = await orchestrator.mark_outcome(args.outcome == "win")
            outcome = orchestrator.outcome
            record = {
                "outcome": outcome.label,
                "marked_at": outcome.marked_at.isoformat(),
                "stats": stats.model_dump(),
            }
            print(json.dumps(record, indent=2))
        return 0
    finally:
        orchestrator.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()

    if args.command == "serve":
        import uvicorn

        from chart_signal.server import create_app

        logger.info("server_starting", host=settings.HOST, port=settings.PORT)
        uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)
        return 0

    return asyncio.run(run_analysis(args, settings))


if __name__ == "__main__":
    sys.exit(main())
