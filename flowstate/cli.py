from __future__ import annotations

import argparse
from dataclasses import replace
import json
from pathlib import Path
import sys
from typing import Any

from .config import Settings, configure_logging
from .errors import FlowError
from .heuristics import interruption_cost
from .reporting import format_minutes
from .service import FlowService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowstate",
        description="FlowState: flow sessions, interruption cost and flow pattern analysis",
    )
    parser.add_argument("--db", default=None, help="SQLite database path (default from FLOWSTATE_DB_PATH)")
    parser.add_argument("--log-level", default=None, help="logging level (default from FLOWSTATE_LOG_LEVEL)")
    parser.add_argument("--json", action="store_true", help="print raw JSON results")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    start_parser = subparsers.add_parser("start", help="start a flow session")
    start_parser.add_argument("--user", required=True, help="owner id")
    start_parser.add_argument("--task", default="", help="what you are working on")

    end_parser = subparsers.add_parser("end", help="end a flow session")
    end_parser.add_argument("session_id", type=int)
    end_parser.add_argument("--quality", type=float, required=True, help="quality score 0-100")
    end_parser.add_argument("--trigger", action="append", default=[], help="what enabled focus (repeatable)")
    end_parser.add_argument("--breaker", action="append", default=[], help="what broke focus (repeatable)")

    interrupt_parser = subparsers.add_parser("interrupt", help="log an interruption")
    interrupt_parser.add_argument("session_id", type=int)
    interrupt_parser.add_argument("--type", dest="interruption_type", required=True, help="interruption kind")
    interrupt_parser.add_argument("--source", default="", help="who or what interrupted")

    cost_parser = subparsers.add_parser("cost", help="estimate the cost of an interruption")
    cost_parser.add_argument("--depth", type=float, required=True, help="current flow depth 0-100")
    cost_parser.add_argument("--rate", type=float, default=None, help="hourly rate")

    stats_parser = subparsers.add_parser("stats", help="flow statistics")
    stats_parser.add_argument("--user", required=True)
    stats_parser.add_argument("--days", type=int, default=7)

    analyze_parser = subparsers.add_parser("analyze", help="rebuild flow patterns")
    analyze_parser.add_argument("--user", required=True)
    analyze_parser.add_argument("--days", type=int, default=30)

    log_parser = subparsers.add_parser("log", help="list recent flow sessions")
    log_parser.add_argument("--user", required=True)
    log_parser.add_argument("--limit", type=int, default=20)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
    except FlowError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2
    if args.db:
        settings = replace(settings, db_path=Path(args.db))
    configure_logging(args.log_level or settings.log_level)

    if args.command == "serve":
        return _handle_serve(args, settings)
    if args.command == "cost":
        return _handle_cost(args, settings)

    try:
        service = FlowService.from_settings(settings)
        if args.command == "start":
            return _handle_start(args, service)
        if args.command == "end":
            return _handle_end(args, service)
        if args.command == "interrupt":
            return _handle_interrupt(args, service)
        if args.command == "stats":
            return _handle_stats(args, service)
        if args.command == "analyze":
            return _handle_analyze(args, service)
        if args.command == "log":
            return _handle_log(args, service)
    except FlowError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1

    parser.print_help()
    return 2


def _emit(args: argparse.Namespace, result: dict[str, Any], lines: list[str]) -> None:
    if args.json:
        print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
        return
    for line in lines:
        print(line)


def _handle_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    from .api.app import create_app

    uvicorn.run(create_app(settings=settings), host=args.host, port=args.port, log_level="info")
    return 0


def _handle_cost(args: argparse.Namespace, settings: Settings) -> int:
    rate = args.rate if args.rate is not None else settings.hourly_rate
    try:
        cost = interruption_cost(args.depth, rate)
    except FlowError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    _emit(
        args,
        cost.to_dict(),
        [
            f"Recovery: {cost.recovery_time_mins} min",
            f"Cost: ${cost.dollar_cost}",
            f"Productivity loss: {cost.productivity_loss_minutes} min",
            cost.message,
        ],
    )
    return 0


def _handle_start(args: argparse.Namespace, service: FlowService) -> int:
    result = service.sessions.start(args.user, args.task)
    lines = [f"Session {result.session_id} started ({result.time_of_day})."]
    lines.extend(f"- {tip}" for tip in result.tips)
    _emit(args, result.to_dict(), lines)
    return 0


def _handle_end(args: argparse.Namespace, service: FlowService) -> int:
    result = service.sessions.end(
        args.session_id,
        args.quality,
        triggers=args.trigger,
        breakers=args.breaker,
    )
    _emit(args, result.to_dict(), [result.message])
    return 0


def _handle_interrupt(args: argparse.Namespace, service: FlowService) -> int:
    result = service.sessions.log_interruption(args.session_id, args.interruption_type, args.source)
    _emit(args, result, [f"{result['message']} (total {result['interruptions']})"])
    return 0


def _handle_stats(args: argparse.Namespace, service: FlowService) -> int:
    result = service.dispatch("get_flow_stats", args.user, {"days": args.days})
    _emit(
        args,
        result,
        [
            f"[last {result['days']} days]",
            f"Flow time: {format_minutes(result['total_flow_minutes'])}",
            f"Sessions: {result['sessions_count']}",
            f"Average quality: {result['avg_quality']}",
            f"Average duration: {format_minutes(result['avg_duration'])}",
            f"Interruptions: {result['total_interruptions']} ({result['interruption_rate']} per session)",
        ],
    )
    return 0


def _handle_analyze(args: argparse.Namespace, service: FlowService) -> int:
    result = service.analyzer.analyze(args.user, window_days=args.days)
    lines = [result["message"]]
    patterns = result.get("patterns")
    if patterns:
        fingerprint = patterns.get("flow_fingerprint") or {}
        lines.append(f"Peak time: {fingerprint.get('peak_time') or '-'}")
        lines.append(f"Ideal session: {fingerprint.get('ideal_session_length') or '-'} min")
        lines.append(f"Superpower: {fingerprint.get('superpower') or '-'}")
        lines.append(f"Vulnerability: {fingerprint.get('vulnerability') or '-'}")
        lines.append(f"Confidence: {result['confidence']:.2f}")
    _emit(args, result, lines)
    return 0


def _handle_log(args: argparse.Namespace, service: FlowService) -> int:
    sessions = service.sessions.list_sessions(args.user, limit=args.limit)
    if args.json:
        _emit(args, {"sessions": [item.to_dict() for item in sessions]}, [])
        return 0
    if not sessions:
        print("No matching sessions.")
        return 0

    for item in sessions:
        start_text = item.started_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        if item.is_active:
            state_text = "active"
        else:
            state_text = f"{format_minutes(item.duration_minutes or 0)} q={item.quality_score}"
        task_text = item.task_context or "-"
        print(
            f"#{item.id} | {start_text} | {item.time_of_day} | {state_text} | "
            f"interruptions: {item.interruptions} | task: {task_text}"
        )
    return 0
