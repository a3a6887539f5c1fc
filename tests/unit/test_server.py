"""Tests for server wiring and the command line entry."""

import json
import warnings
from unittest.mock import patch

import pytest

from agencycal.__main__ import _create_parser
from agencycal.calendar.query_engine import CalendarQueryEngine
from agencycal.server import build_engine, build_store, make_app

pytestmark = pytest.mark.unit


class TestBuildStore:
    def test_empty_without_data_file(self) -> None:
        store = build_store({})
        assert store.events == ()
        assert store.tasks == ()

    def test_loads_data_file(self, tmp_path) -> None:
        path = tmp_path / "calendar.json"
        path.write_text(
            json.dumps(
                {"events": [{"id": "e1", "title": "T", "startTime": "2024-01-01T09:00:00Z", "createdById": "u1"}]}
            ),
            encoding="utf-8",
        )
        assert [e.id for e in build_store({"data_file": str(path)}).events] == ["e1"]


def test_build_engine_applies_settings(store) -> None:
    engine = build_engine({"max_page_limit": 20, "timezone": "Asia/Tokyo", "max_occurrences_per_rule": 7}, store)

    assert isinstance(engine, CalendarQueryEngine)
    assert engine.config.max_page_limit == 20
    assert engine.config.default_page_limit == 20
    assert engine.expander.max_occurrences == 7


def test_make_app_registers_routes(engine) -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        app = make_app(engine)
    paths = {resource.canonical for resource in app.router.resources()}

    assert len(app) == 0
    assert {
        "/api/events",
        "/api/events/deadlines",
        "/api/recurrence/validate",
        "/api/recurrence/patterns",
        "/api/recurrence/next",
        "/api/health",
    } <= paths


class TestCli:
    def test_parser_defaults(self) -> None:
        args = _create_parser().parse_args([])
        assert args.host is None
        assert args.port is None
        assert args.data_file is None
        assert args.debug is False

    def test_parser_options(self) -> None:
        args = _create_parser().parse_args(["--host", "0.0.0.0", "--port", "9000", "--data-file", "c.json", "--debug"])
        assert (args.host, args.port, args.data_file, args.debug) == ("0.0.0.0", 9000, "c.json", True)

    def test_run_server_applies_overrides(self, monkeypatch, tmp_path) -> None:
        from agencycal import run_server

        monkeypatch.chdir(tmp_path)
        for name in ("AGENCYCAL_WEB_HOST", "AGENCYCAL_WEB_PORT", "AGENCYCAL_DATA_FILE", "AGENCYCAL_DEBUG_LOGGING"):
            monkeypatch.delenv(name, raising=False)
        args = _create_parser().parse_args(["--port", "9100", "--data-file", "c.json", "--debug"])

        with patch("agencycal._init_logging"), patch("agencycal.server.start_server") as start:
            run_server(args)

        cfg = start.call_args.args[0]
        assert cfg["server_port"] == 9100
        assert cfg["data_file"] == "c.json"
        assert cfg["debug_logging"] is True
        assert "server_bind" not in cfg
