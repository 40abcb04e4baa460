"""Tests for JSON logging and the environment-sourced settings."""
from __future__ import annotations

import json
import logging
import sys

import pytest

from src.shared.config import RegistryCredentials, ServiceEnvironment
from src.shared.logging import JSONFormatter, build_context, build_id_var, setup_logging


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="src.pipeline_controller.pipeline",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestJSONFormatter:
    def test_emits_one_json_object(self) -> None:
        entry = json.loads(JSONFormatter("mean-pipeline").format(_record()))
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["service_name"] == "mean-pipeline"
        assert entry["logger"] == "src.pipeline_controller.pipeline"
        assert entry["build_id"] == ""

    def test_build_context_tags_records(self) -> None:
        formatter = JSONFormatter("mean-pipeline")
        with build_context(17):
            entry = json.loads(formatter.format(_record()))
        assert entry["build_id"] == "17"
        assert build_id_var.get() == ""

    def test_exception_included(self) -> None:
        record = _record()
        try:
            raise ValueError("bad image")
        except ValueError:
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"] == "bad image"


def test_setup_logging_replaces_handlers() -> None:
    logger = setup_logging("mean-pipeline", "debug")
    setup_logging("mean-pipeline", "debug")
    assert logger.name == "src"
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JSONFormatter)
    logger.handlers.clear()


class TestServiceEnvironment:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("MONGO_INITDB_ROOT_USERNAME", "MONGO_INITDB_DATABASE", "PORT"):
            monkeypatch.delenv(key, raising=False)
        env = ServiceEnvironment().as_env()
        assert env["MONGO_INITDB_ROOT_USERNAME"] == "root"
        assert env["MONGO_INITDB_DATABASE"] == "dd_db"
        assert env["PORT"] == "8080"

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MONGO_INITDB_ROOT_PASSWORD", "s3cret")
        monkeypatch.setenv("PORT", "9090")
        env = ServiceEnvironment().as_env()
        assert env["MONGO_INITDB_ROOT_PASSWORD"] == "s3cret"
        assert env["PORT"] == "9090"


class TestRegistryCredentials:
    def test_not_configured_without_password(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REGISTRY_USERNAME", "ci-bot")
        monkeypatch.delenv("REGISTRY_PASSWORD", raising=False)
        assert RegistryCredentials().configured is False

    def test_configured(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REGISTRY_USERNAME", "ci-bot")
        monkeypatch.setenv("REGISTRY_PASSWORD", "token")
        creds = RegistryCredentials()
        assert creds.configured is True
        assert creds.username == "ci-bot"
