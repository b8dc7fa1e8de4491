"""AI-Link command line entrypoint."""

import argparse
import asyncio
import dataclasses
import json
import sys
from pathlib import Path
from typing import List, Optional

from ailink.agents.transport import HttpTransport
from ailink.api_server import run_server
from ailink.config import HubConfig
from ailink.errors import ConfigurationError
from ailink.logging_config import setup_logging
from ailink.tools.registry import get_all_schemas


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _load_config(args: argparse.Namespace) -> HubConfig:
    config = HubConfig.from_file(Path(args.config)) if args.config else HubConfig.from_env()
    overrides = {}
    for field_name in ("host", "port", "db_path", "api_key"):
        value = getattr(args, field_name, None)
        if value is not None:
            overrides[field_name] = value
    return dataclasses.replace(config, **overrides) if overrides else config


def cmd_serve(args: argparse.Namespace) -> int:
    config = _load_config(args)
    setup_logging(config.log_level, json_format=config.log_json, log_dir=config.log_dir)
    asyncio.run(run_server(config))
    return 0


async def _call(url: str, api_key: Optional[str], name: str, tool_args: dict) -> dict:
    transport = HttpTransport(url, api_key=api_key)
    try:
        return await transport.call(name, tool_args)
    finally:
        await transport.close()


def cmd_call(args: argparse.Namespace) -> int:
    try:
        tool_args = json.loads(args.args) if args.args else {}
    except ValueError as e:
        print(f"[ERROR] --args is not valid JSON: {e}", file=sys.stderr)
        return 1
    if not isinstance(tool_args, dict):
        print("[ERROR] --args must be a JSON object", file=sys.stderr)
        return 1

    config = _load_config(args)
    url = args.url or f"http://{config.host}:{config.port}"
    result = asyncio.run(_call(url, args.api_key or config.api_key, args.tool, tool_args))
    _print_json(result)
    return 0 if result.get("ok") else 1


def cmd_tools(args: argparse.Namespace) -> int:
    _print_json(get_all_schemas())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ailink", description="AI-Link agent coordination bus.")
    parser.add_argument("--config", help="JSON config file (default: environment)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP host and scheduler.")
    serve_parser.add_argument("--host")
    serve_parser.add_argument("--port", type=int)
    serve_parser.add_argument("--db", dest="db_path", help="SQLite database path.")
    serve_parser.set_defaults(func=cmd_serve)

    call_parser = subparsers.add_parser("call", help="Call one operation over HTTP.")
    call_parser.add_argument("tool", help="Operation name, e.g. list_tasks.")
    call_parser.add_argument("--args", help="Arguments as a JSON object.")
    call_parser.add_argument("--url", help="Hub base URL (default: configured host and port).")
    call_parser.add_argument("--api-key", dest="api_key")
    call_parser.set_defaults(func=cmd_call)

    tools_parser = subparsers.add_parser("tools", help="Print operation schemas.")
    tools_parser.set_defaults(func=cmd_tools)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except ConfigurationError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


def run(argv: Optional[List[str]] = None) -> None:
    raise SystemExit(main(argv))
