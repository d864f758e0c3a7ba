"""
Cryptomind CLI - market prediction from the command line.

Usage:
    python cli.py analyze PAIR [--timeframe TF] [--stream] [--format FORMAT]
    python cli.py predict PAIR [--timeframe TF]
    python cli.py headlines PAIR [--limit N]
    python cli.py serve [--host HOST] [--port PORT]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from adapters import (
    AnthropicReasoningModel,
    CryptoCompareAdapter,
    InMemoryEntitlementGate,
    YahooChartAdapter,
)
from config import ConfigError, get_config, reload_config
from orchestration.pipeline import ProgressivePipeline
from orchestration.prediction import generate_prediction
from orchestration.reasoning import ReasoningOrchestrator
from presentation import AnalysisServer, ConsoleChannel, ReportData, generate_markdown_report


def build_provider() -> CryptoCompareAdapter:
    return CryptoCompareAdapter(index_provider=YahooChartAdapter())


def build_orchestrator() -> ReasoningOrchestrator:
    return ReasoningOrchestrator(AnthropicReasoningModel())


def _emit(content: str, output: str | None) -> None:
    if output:
        Path(output).write_text(content)
        print(f"Written to {output}", file=sys.stderr)
    else:
        print(content)


def cmd_analyze(args: argparse.Namespace) -> int:
    """Run the progressive pipeline and print the verdict."""
    provider = build_provider()
    channel = ConsoleChannel(output=sys.stderr, quiet=not args.stream)
    pipeline = ProgressivePipeline(provider, provider, build_orchestrator(), channel)

    verdict = asyncio.run(pipeline.run(args.pair.upper(), args.timeframe.upper()))

    if args.format == "json":
        _emit(json.dumps(verdict.to_dict(), indent=2, default=str), args.output)
    else:
        _emit(generate_markdown_report(ReportData(verdict, pipeline.trail.stages)), args.output)
    return 1 if verdict.degraded else 0


def cmd_predict(args: argparse.Namespace) -> int:
    """Direct prediction without stage narration."""
    verdict = asyncio.run(generate_prediction(
        args.pair.upper(), args.timeframe.upper(), build_provider(), build_orchestrator()
    ))
    print(json.dumps(verdict.to_dict(), indent=2, default=str))
    return 1 if verdict.degraded else 0


def cmd_headlines(args: argparse.Namespace) -> int:
    """Show recent headlines with keyword sentiment."""
    headlines = build_provider().fetch_headlines(args.pair.upper(), limit=args.limit)
    if not headlines:
        print("No headlines available.", file=sys.stderr)
        return 0

    for item in headlines:
        print(f"\n[{item.sentiment.value}] {item.title}")
        print(f"   {item.source} | {item.published_at}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the WebSocket server."""
    provider = build_provider()
    server = AnalysisServer(provider, provider, build_orchestrator(), InMemoryEntitlementGate())
    try:
        asyncio.run(server.serve(args.host, args.port))
    except KeyboardInterrupt:
        print("Shutting down", file=sys.stderr)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="cryptomind",
        description="Narrated market prediction pipeline",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v info, -vv debug")
    parser.add_argument("-c", "--config", help="Path to a TOML config file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Run the staged analysis for a pair")
    analyze_parser.add_argument("pair", help="Trading pair, e.g. BTC/USDT")
    analyze_parser.add_argument("-t", "--timeframe", default="M1", help="Entry timeframe (M1..W1)")
    analyze_parser.add_argument("--stream", action="store_true", help="Print every stage message")
    analyze_parser.add_argument(
        "-f", "--format",
        choices=["markdown", "json"],
        default="markdown",
        help="Output format",
    )
    analyze_parser.add_argument("-o", "--output", help="Output file path")
    analyze_parser.set_defaults(func=cmd_analyze)

    # Predict command
    predict_parser = subparsers.add_parser("predict", help="One-shot prediction")
    predict_parser.add_argument("pair", help="Trading pair, e.g. BTC/USDT")
    predict_parser.add_argument("-t", "--timeframe", default="M1", help="Entry timeframe")
    predict_parser.set_defaults(func=cmd_predict)

    # Headlines command
    news_parser = subparsers.add_parser("headlines", help="Show recent headlines")
    news_parser.add_argument("pair", help="Trading pair, e.g. BTC/USDT")
    news_parser.add_argument("-n", "--limit", type=int, default=10, help="Number of items")
    news_parser.set_defaults(func=cmd_headlines)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the WebSocket server")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # API keys may live in a local .env
    load_dotenv(Path.cwd() / ".env")

    try:
        if args.config:
            reload_config(args.config)
        else:
            get_config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
