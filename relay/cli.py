"""Command line runtime for the HTTP API and the MCP server."""
from __future__ import annotations

import argparse
import logging
import socket
import threading
from typing import Callable

from starlette.applications import Starlette

from relay.utils.config import ENABLE_WRITES

StartSSE = Callable[[str, int], None]
RunStdIO = Callable[[], None]
ServeAPI = Callable[[Starlette, str, int], None]
AppFactory = Callable[[], Starlette]


def build_parser() -> argparse.ArgumentParser:
    """Create an argument parser for the runtime."""

    parser = argparse.ArgumentParser(description="agency-invoice-relay server")
    parser.add_argument(
        "--transport",
        type=str,
        default="sse",
        choices=["stdio", "sse"],
        help="sse: HTTP API plus MCP over SSE; stdio: MCP over stdio only (default: sse)",
    )
    parser.add_argument("--api-host", type=str, default="127.0.0.1", help="Host for the HTTP API")
    parser.add_argument("--api-port", type=int, default=8080, help="Port for the HTTP API")
    parser.add_argument(
        "--mcp-host",
        type=str,
        default="127.0.0.1",
        help="Host for the MCP SSE server",
    )
    parser.add_argument(
        "--mcp-port",
        type=int,
        default=8099,
        help="Port for the MCP SSE server",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _validate_port(logger: logging.Logger, value: int, *, flag: str) -> None:
    if value <= 0 or value > 65535:
        logger.error("Invalid %s: %s (must be between 1 and 65535)", flag, value)
        raise SystemExit(2)


def _ensure_bindable(logger: logging.Logger, host: str, port: int, *, label: str, flag: str) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as exc:  # pragma: no cover - depends on local env
            logger.error(
                "%s port %s is unavailable on %s: %s. Use %s to pick a free port.",
                label,
                port,
                host,
                exc.strerror or exc,
                flag,
            )
            raise SystemExit(1)


def run(
    args: argparse.Namespace,
    *,
    logger: logging.Logger,
    start_sse: StartSSE,
    run_stdio: RunStdIO,
    serve_api: ServeAPI,
    app_factory: AppFactory,
) -> None:
    """Start the configured transport."""

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)

    logger.info(
        "Starting invoice relay (transport=%s, api=%s:%s, mcp=%s:%s, mcp writes=%s)",
        args.transport,
        args.api_host,
        args.api_port,
        args.mcp_host,
        args.mcp_port,
        "enabled" if ENABLE_WRITES else "disabled",
    )

    if args.transport == "stdio":
        logger.debug("Transport: stdio (HTTP API disabled)")
        run_stdio()
        return

    _validate_port(logger, args.mcp_port, flag="--mcp-port")
    _validate_port(logger, args.api_port, flag="--api-port")
    if args.mcp_host == args.api_host and args.mcp_port == args.api_port:
        logger.error(
            "API port conflicts with MCP SSE port (%s:%s). Use --api-port to separate them.",
            args.api_host,
            args.api_port,
        )
        raise SystemExit(2)

    _ensure_bindable(logger, args.mcp_host, args.mcp_port, label="MCP SSE", flag="--mcp-port")
    _ensure_bindable(logger, args.api_host, args.api_port, label="HTTP API", flag="--api-port")

    if not ENABLE_WRITES:
        logger.warning("Write-capable MCP tools disabled (set MCP_ENABLE_WRITES=1 to enable writes).")

    thread = threading.Thread(target=start_sse, args=(args.mcp_host, args.mcp_port), daemon=True)
    thread.start()
    logger.debug("MCP SSE server listening on http://%s:%s", args.mcp_host, args.mcp_port)

    app = app_factory()
    logger.debug("HTTP API on http://%s:%s/invoices/native", args.api_host, args.api_port)
    try:
        serve_api(app, args.api_host, int(args.api_port))
    except OSError as exc:  # pragma: no cover - depends on local env
        logger.error(
            "Failed to start HTTP API on %s:%s: %s",
            args.api_host,
            args.api_port,
            exc.strerror or exc,
        )
        raise SystemExit(1)


__all__ = ["build_parser", "run"]
