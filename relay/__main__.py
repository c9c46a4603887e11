"""Entry point for python -m relay."""
from __future__ import annotations


def main() -> None:
    """Parse arguments and start the relay."""
    # Import here to avoid circular dependencies
    import logging

    import uvicorn

    from relay.app import MCP_SERVER, build_api_app
    from relay.cli import build_parser, run
    from relay.utils.logging import configure_root

    configure_root()
    logger = logging.getLogger("relay.cli")

    def _start_sse(host: str, port: int) -> None:
        """Launch the MCP SSE server."""
        MCP_SERVER.settings.host = host
        MCP_SERVER.settings.port = int(port)
        MCP_SERVER.run(transport="sse")

    def _run_stdio() -> None:
        """Run stdio transport."""
        MCP_SERVER.run()

    def _serve_api(app, host: str, port: int) -> None:
        uvicorn.run(app, host=host, port=port)

    parser = build_parser()
    args = parser.parse_args()

    run(
        args,
        logger=logger,
        start_sse=_start_sse,
        run_stdio=_run_stdio,
        serve_api=_serve_api,
        app_factory=build_api_app,
    )


if __name__ == "__main__":
    main()
