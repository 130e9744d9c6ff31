"""
End-to-end: the full pipeline against real local tools.

A local git repository stands in for the tool collection, a file://
script for the vendor bootstrap, and a Makefile for the build target.
"""

from pathlib import Path

from provisioner.core.models.environment import EnvironmentContext
from provisioner.core.persistence.audit import RunLedger
from provisioner.core.use_cases.run import run_pipeline


def _mtimes(*paths: Path) -> list[int]:
    return [p.stat().st_mtime_ns for p in paths]


class TestEndToEnd:
    def test_fresh_run_builds_artifact(self, tmp_path: Path, pipeline_file: Path):
        run = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())

        assert run.error is None
        result = run.result
        assert result is not None
        assert result.succeeded, result.stderr
        assert run.exit_code == 0
        artifact = tmp_path / "workspace" / "out" / "cli"
        assert artifact.read_text().strip() == "artifact for unix"
        assert (tmp_path / "cache" / "tools" / "bin" / "tools-hello").is_file()
        assert (tmp_path / "cache" / "cargo" / "bin" / "cargo").is_file()

    def test_rerun_reuses_caches(self, tmp_path: Path, pipeline_file: Path):
        tools = tmp_path / "cache" / "tools"
        cargo_bin = tmp_path / "cache" / "cargo" / "bin"
        first = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())
        assert first.result is not None and first.result.succeeded
        before = _mtimes(tools, tools / "bin", cargo_bin)

        second = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())

        assert second.result is not None
        assert second.result.succeeded, second.result.stderr
        assert _mtimes(tools, tools / "bin", cargo_bin) == before
        assert (tmp_path / "workspace" / "out" / "cli").stat().st_size > 0

    def test_runs_are_recorded(self, tmp_path: Path, pipeline_file: Path):
        run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())
        entries = RunLedger(tmp_path / ".state").entries()
        assert [e.state for e in entries] == ["Succeeded"]
        assert (tmp_path / ".state" / "stamps" / "tools.json").is_file()
        assert (tmp_path / ".state" / "stamps" / "rust.json").is_file()

    def test_tools_and_toolchain_visible_to_build(self, tmp_path: Path, pipeline_file: Path):
        makefile = tmp_path / "workspace" / "Makefile"
        makefile.write_text(
            "cli:\n"
            "\tmkdir -p out\n"
            "\ttools-hello > out/cli\n"
            "\tcargo --version >> out/cli\n"
            "\techo \"$$CARGO_HOME\" >> out/cli\n"
        )

        run = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())

        assert run.result is not None
        assert run.result.succeeded, run.result.stderr
        lines = (tmp_path / "workspace" / "out" / "cli").read_text().splitlines()
        assert lines == [
            "hello from tools",
            "cargo 1.0.0 (fake)",
            str((tmp_path / "cache" / "cargo").resolve()),
        ]

    def test_failed_build_reports_build_exit_code(self, tmp_path: Path, pipeline_file: Path):
        (tmp_path / "workspace" / "Makefile").write_text("cli:\n\t@echo compile error >&2; exit 3\n")

        run = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())

        assert run.result is not None
        assert run.result.failed_stage == "Building"
        assert run.exit_code == 2
        assert "compile error" in run.result.stderr

    def test_interrupted_clone_repaired_on_next_run(self, tmp_path: Path, pipeline_file: Path):
        (tmp_path / "cache" / "tools" / ".git").mkdir(parents=True)

        run = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())

        assert run.result is not None
        assert run.result.succeeded, run.result.stderr
        assert (tmp_path / "cache" / "tools" / "bin" / "tools-hello").is_file()

    def test_unusable_state_directory_keeps_run_outcome(self, tmp_path: Path, pipeline_file: Path):
        (tmp_path / ".state").write_text("not a directory")

        run = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())

        assert run.result is not None
        assert run.result.succeeded, run.result.stderr
        assert run.exit_code == 0
        assert (tmp_path / "workspace" / "out" / "cli").is_file()

    def test_unsavable_state_file_keeps_build_exit_code(self, tmp_path: Path, pipeline_file: Path):
        (tmp_path / ".state" / "current.json").mkdir(parents=True)
        (tmp_path / "workspace" / "Makefile").write_text("cli:\n\t@exit 3\n")

        run = run_pipeline(config_path=pipeline_file, env=EnvironmentContext.from_environ())

        assert run.result is not None
        assert run.result.failed_stage == "Building"
        assert run.exit_code == 2
        assert [e.failed_stage for e in RunLedger(tmp_path / ".state").entries()] == ["Building"]
