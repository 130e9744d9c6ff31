"""
Tests for observability: logging setup and host health checks.
"""

import logging
from pathlib import Path

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.models.pipeline_config import PipelineConfig
from provisioner.core.observability.health import (
    HealthCheck,
    HealthReport,
    Status,
    check_adapters,
    check_host_tools,
    check_system_health,
    check_toolchain_caches,
)
from provisioner.core.observability.logging_config import _parse_level, set_run_id, setup_logging

# ── Logging ──────────────────────────────────────────────────────────


class TestLogging:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        set_run_id(None)
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_parse_level(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("nonsense") == logging.WARNING
        assert _parse_level(None) == logging.WARNING

    def test_console_handler(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.INFO

    def test_file_handler_carries_run_id(self, tmp_path: Path):
        log_file = tmp_path / "provision.log"
        setup_logging("ERROR", log_file=str(log_file), log_file_level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

        set_run_id("run-test-123")
        logging.getLogger("provisioner.test").info("stage done")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text()
        assert "[run-test-123]" in text
        assert "stage done" in text


# ── Health ───────────────────────────────────────────────────────────


class TestHealth:
    def test_most_severe_check_wins(self):
        report = HealthReport()
        assert report.status == Status.HEALTHY
        report.checks.append(HealthCheck("a", Status.HEALTHY))
        report.checks.append(HealthCheck("b", Status.UNKNOWN))
        assert report.status == Status.UNKNOWN
        report.checks.append(HealthCheck("c", Status.DEGRADED))
        assert report.status == Status.DEGRADED
        assert report.ok
        report.checks.append(HealthCheck("d", Status.UNHEALTHY))
        assert report.status == "unhealthy"
        assert not report.ok

    def test_host_tools(self):
        assert check_host_tools(("sh",)).status == "healthy"
        missing = check_host_tools(("sh", "definitely-not-installed-xyz"))
        assert missing.status == "unhealthy"
        assert "definitely-not-installed-xyz" in missing.message

    def test_adapters(self):
        assert check_adapters(AdapterRegistry()).status == "unknown"
        registry = AdapterRegistry(MockAdapter(adapter_name="shell"))
        assert check_adapters(registry).status == "healthy"
        registry.register(MockAdapter(adapter_name="git", available=False))
        assert check_adapters(registry).message == "Unavailable: git"

    def test_toolchain_caches(self, tmp_path: Path):
        config = PipelineConfig(
            tools=[{"name": "tools", "source": "https://x/tools.git", "destination": "tools"}],
            toolchain={
                "name": "rust",
                "bootstrap_uri": "https://sh.rustup.rs",
                "install_root": "cargo",
                "probe": "cargo",
            },
        ).resolved(tmp_path)
        assert check_toolchain_caches(config).status == "degraded"

        (tmp_path / "tools" / ".git").mkdir(parents=True)
        (tmp_path / "cargo" / "bin").mkdir(parents=True)
        probe = tmp_path / "cargo" / "bin" / "cargo"
        probe.write_text("#!/bin/sh\n")
        probe.chmod(0o755)
        assert check_toolchain_caches(config).status == "healthy"

    def test_system_health_to_dict(self):
        data = check_system_health(registry=AdapterRegistry()).to_dict()
        assert [c["name"] for c in data["components"]] == ["host_tools", "adapters"]
        assert data["timestamp"]
