import argparse
import json
import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from relay.cli import build_parser, run
from relay.utils import config
from relay.utils.logging import configure_root, record_write_attempt


class ConfigureRootTests(unittest.TestCase):
    def setUp(self) -> None:
        self.root_logger = logging.getLogger()
        self.original_handlers = list(self.root_logger.handlers)
        self.original_level = self.root_logger.level

    def tearDown(self) -> None:
        self.root_logger.handlers = self.original_handlers
        self.root_logger.setLevel(self.original_level)

    def test_configure_root_forces_reconfiguration(self) -> None:
        dummy_handler = logging.StreamHandler()
        dummy_handler.setFormatter(logging.Formatter("%(message)s"))

        self.root_logger.handlers = [dummy_handler]
        self.root_logger.setLevel(logging.WARNING)

        configure_root()

        self.assertNotIn(dummy_handler, self.root_logger.handlers)
        self.assertEqual(self.root_logger.level, logging.INFO)
        self.assertTrue(self.root_logger.handlers)
        formatter = self.root_logger.handlers[0].formatter
        self.assertIsNotNone(formatter)
        self.assertEqual(formatter._fmt, "%(levelname)s:%(name)s:%(message)s")

    def test_debug_flag_raises_logger_level(self) -> None:
        configure_root()
        cli_logger = logging.getLogger("relay.cli")
        cli_logger_level = cli_logger.level

        args = argparse.Namespace(
            transport="stdio",
            api_host="127.0.0.1",
            api_port=8080,
            mcp_host="127.0.0.1",
            mcp_port=8099,
            debug=True,
        )
        stdio_calls: list[bool] = []

        try:
            run(
                args,
                logger=cli_logger,
                start_sse=lambda host, port: None,
                run_stdio=lambda: stdio_calls.append(True),
                serve_api=lambda app, host, port: None,
                app_factory=lambda: None,
            )
            self.assertEqual(cli_logger.getEffectiveLevel(), logging.DEBUG)
            self.assertEqual(stdio_calls, [True])
        finally:
            cli_logger.setLevel(cli_logger_level)


class CliTests(unittest.TestCase):
    def test_parser_defaults(self) -> None:
        args = build_parser().parse_args([])
        self.assertEqual(args.transport, "sse")
        self.assertEqual((args.api_port, args.mcp_port), (8080, 8099))

    def test_port_collision_exits(self) -> None:
        args = argparse.Namespace(
            transport="sse",
            api_host="127.0.0.1",
            api_port=8099,
            mcp_host="127.0.0.1",
            mcp_port=8099,
            debug=False,
        )
        with self.assertRaises(SystemExit) as ctx:
            run(
                args,
                logger=logging.getLogger("relay.cli"),
                start_sse=lambda host, port: None,
                run_stdio=lambda: None,
                serve_api=lambda app, host, port: None,
                app_factory=lambda: None,
            )
        self.assertEqual(ctx.exception.code, 2)

    def test_invalid_port_exits(self) -> None:
        args = argparse.Namespace(
            transport="sse",
            api_host="127.0.0.1",
            api_port=70000,
            mcp_host="127.0.0.1",
            mcp_port=8099,
            debug=False,
        )
        with self.assertRaises(SystemExit):
            run(
                args,
                logger=logging.getLogger("relay.cli"),
                start_sse=lambda host, port: None,
                run_stdio=lambda: None,
                serve_api=lambda app, host, port: None,
                app_factory=lambda: None,
            )


class WriteAuditTests(unittest.TestCase):
    def test_audit_line_written_when_configured(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            audit_path = Path(tmp) / "audit" / "writes.jsonl"
            with patch.object(config, "AUDIT_LOG_PATH", audit_path):
                record_write_attempt("upsert_agency", agency_id="ACME")

            lines = audit_path.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 1)
            entry = json.loads(lines[0])
            self.assertEqual(entry["action"], "upsert_agency")
            self.assertEqual(entry["agency_id"], "ACME")

    def test_no_audit_file_without_path(self) -> None:
        with patch.object(config, "AUDIT_LOG_PATH", None):
            with self.assertLogs("relay.audit", level="INFO"):
                record_write_attempt("create_native_invoice")


__all__ = ["ConfigureRootTests"]
