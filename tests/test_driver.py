"""
Tests for the pipeline driver: transition table, ordering, fail-fast.
"""

import itertools
from pathlib import Path

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import PlatformMismatch
from provisioner.core.engine.driver import (
    InvalidTransition,
    PipelineDriver,
    advance,
    generate_run_id,
)
from provisioner.core.models.environment import EnvironmentContext
from provisioner.core.models.invocation import ExitResult
from provisioner.core.models.pipeline import PipelineState
from provisioner.core.models.pipeline_config import PipelineConfig
from provisioner.core.models.toolchain import InstallerSpec, ToolchainSpec
from provisioner.core.stages.builder import BuildInvoker
from provisioner.core.stages.fetcher import ToolFetcher
from provisioner.core.stages.installer import ToolchainInstaller
from provisioner.core.stages.preparer import WorkspacePreparer

S = PipelineState

# ── Transition table ─────────────────────────────────────────────────


class TestAdvance:
    @pytest.mark.parametrize(
        "state, expected",
        [
            (S.IDLE, S.FETCHING_TOOLS),
            (S.FETCHING_TOOLS, S.INSTALLING_TOOLCHAIN),
            (S.INSTALLING_TOOLCHAIN, S.PREPARING),
            (S.PREPARING, S.BUILDING),
            (S.BUILDING, S.SUCCEEDED),
        ],
    )
    def test_stage_completed(self, state, expected):
        assert advance(state, True) == expected

    @pytest.mark.parametrize(
        "state", [S.FETCHING_TOOLS, S.INSTALLING_TOOLCHAIN, S.PREPARING, S.BUILDING]
    )
    def test_stage_failed(self, state):
        assert advance(state, False) == S.FAILED

    @pytest.mark.parametrize("state", [S.SUCCEEDED, S.FAILED])
    def test_terminal_states(self, state):
        with pytest.raises(InvalidTransition):
            advance(state, True)

    def test_run_id_format(self):
        run_id = generate_run_id()
        assert run_id.startswith("run-")
        assert run_id != generate_run_id()


# ── Driver ───────────────────────────────────────────────────────────


class TestPipelineDriver:
    def _driver(
        self,
        tmp_path: Path,
        shell: MockAdapter,
        git: MockAdapter | None = None,
        prepare_platform: str = "unix",
        build_platform: str = "unix",
        toolchain: bool = True,
    ) -> PipelineDriver:
        git = git or MockAdapter(adapter_name="git", default_output="")
        tools = [
            ToolchainSpec(
                name="depot_tools",
                source="https://example.com/depot_tools.git",
                destination=tmp_path / "cache" / "depot_tools",
            )
        ]
        spec = InstallerSpec(
            name="rust",
            bootstrap_uri="https://sh.rustup.rs",
            install_root=tmp_path / "cargo",
            probe="cargo",
            variables={"CARGO_HOME": "{install_root}"},
        )
        return PipelineDriver(
            fetcher=ToolFetcher(git),
            tools=tools,
            installer=ToolchainInstaller(shell, downloader=lambda uri, timeout: b"#!/bin/sh\n"),
            toolchain=spec if toolchain else None,
            preparer=WorkspacePreparer(shell, prepare_platform),
            builder=BuildInvoker(shell, build_platform, "cli"),
            workspace=tmp_path / "workspace",
            env=EnvironmentContext.from_environ({"PATH": "/usr/bin:/bin"}),
            clock=itertools.count().__next__,
        )

    def test_success_visits_every_state(self, tmp_path: Path):
        driver = self._driver(tmp_path, MockAdapter(adapter_name="shell"))
        result = driver.run()

        assert result.succeeded
        assert result.exit_code == 0
        assert result.failed_stage is None
        assert driver.history == [
            S.IDLE,
            S.FETCHING_TOOLS,
            S.INSTALLING_TOOLCHAIN,
            S.PREPARING,
            S.BUILDING,
            S.SUCCEEDED,
        ]
        assert [r.stage for r in result.stages] == [
            "FetchingTools",
            "InstallingToolchain",
            "Preparing",
            "Building",
        ]

    def test_prepare_completes_before_build_starts(self, tmp_path: Path):
        result = self._driver(tmp_path, MockAdapter(adapter_name="shell")).run()
        prepare = result.stage("Preparing")
        build = result.stage("Building")
        assert prepare.started < prepare.ended <= build.started < build.ended

    def test_adapter_calls_in_order(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        self._driver(tmp_path, shell).run()
        order = [c.args[0] for c in shell.call_log]
        assert order == ["sh", "cargo", "./bin/prepare-workspace", "make"]

    def test_environment_accumulates_across_stages(self, tmp_path: Path):
        driver = self._driver(tmp_path, MockAdapter(adapter_name="shell"))
        driver.run()

        fetch_env = driver.environments["FetchingTools"]
        prepare_env = driver.environments["Preparing"]
        assert fetch_env.path_entries == ()
        assert prepare_env.search_path[0] == str(tmp_path / "cargo" / "bin")
        assert str(tmp_path / "cache" / "depot_tools") in prepare_env.search_path
        assert prepare_env.exported["CARGO_HOME"] == str(tmp_path / "cargo")

    def test_failing_preparer_stops_pipeline(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        shell.set_failure("./bin/prepare-workspace", exit_code=3, stderr="unknown platform\n")
        driver = self._driver(tmp_path, shell)

        result = driver.run()

        assert result.state == S.FAILED
        assert result.failed_stage == "Preparing"
        assert result.exit_code == 3
        assert result.stderr == "unknown platform\n"
        assert shell.calls_to("make") == []
        assert result.stage("Building") is None
        assert driver.history[-2:] == [S.PREPARING, S.FAILED]

    def test_failing_fetch_skips_everything_after(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        git = MockAdapter(adapter_name="git", default_output="")
        git.set_failure("clone", exit_code=128, stderr="fatal: unable to access\n")

        result = self._driver(tmp_path, shell, git=git).run()

        assert result.failed_stage == "FetchingTools"
        assert result.exit_code == 128
        assert shell.call_count == 0

    def test_failing_build_reports_build_exit_code(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        shell.set_failure("make", exit_code=2, stderr="make: *** [cli] Error 2\n")

        result = self._driver(tmp_path, shell).run()

        assert result.failed_stage == "Building"
        assert result.exit_code == 2
        assert result.stage("Preparing").status == "ok"

    def test_no_toolchain(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        result = self._driver(tmp_path, shell, toolchain=False).run()
        assert result.succeeded
        assert shell.calls_to("sh") == []

    def test_platform_mismatch_rejected_at_construction(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        with pytest.raises(PlatformMismatch):
            self._driver(tmp_path, shell, prepare_platform="unix", build_platform="windows")
        assert shell.call_count == 0

    def test_same_platform_reaches_both_stages(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        self._driver(tmp_path, shell, prepare_platform="linux", build_platform="linux").run()
        prepare = shell.calls_to("./bin/prepare-workspace")[0]
        build = shell.calls_to("make")[0]
        assert prepare.args[-1] == "linux"
        assert build.invocation.env["PLATFORM"] == "linux"

    def test_runs_only_once(self, tmp_path: Path):
        driver = self._driver(tmp_path, MockAdapter(adapter_name="shell"))
        driver.run()
        with pytest.raises(InvalidTransition):
            driver.run()

    def test_build_without_prepared_workspace_rejected(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell")
        driver = self._driver(tmp_path, shell)
        with pytest.raises(InvalidTransition, match="without a prepared workspace"):
            driver._run_stage(PipelineState.BUILDING)
        assert shell.calls_to("make") == []

    def test_success_collects_stage_output(self, tmp_path: Path):
        shell = MockAdapter(adapter_name="shell", default_output="")
        shell.set_response("make", ExitResult.success(adapter="shell", stdout="built cli\n"))
        result = self._driver(tmp_path, shell).run()
        assert result.stdout == "built cli\n"


class TestFromConfig:
    def test_wires_registry_adapters(self, tmp_path: Path):
        config = PipelineConfig(
            platform="unix",
            tools=[],
            toolchain=None,
        ).resolved(tmp_path)
        registry = AdapterRegistry(use_mocks=True)

        driver = PipelineDriver.from_config(config, registry)
        result = driver.run()

        assert result.succeeded
        assert driver.platform == "unix"
        shell = registry.require("shell")
        assert [c.args for c in shell.call_log] == [
            ["./bin/prepare-workspace", "unix"],
            ["make", "cli"],
        ]
