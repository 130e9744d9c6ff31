"""
Shared test fixtures and configuration.

Real-tool fixtures build everything locally: a git repository stands in
for the tool collection, a file:// shell script for the vendor
bootstrap, and a tiny Makefile for the build target. Nothing touches
the network.
"""

import shutil
import stat
import subprocess
import textwrap
from pathlib import Path

import pytest

FAKE_BOOTSTRAP = """\
#!/bin/sh
set -e
mkdir -p "$CARGO_HOME/bin"
cat > "$CARGO_HOME/bin/cargo" <<'EOF'
#!/bin/sh
echo "cargo 1.0.0 (fake)"
EOF
chmod +x "$CARGO_HOME/bin/cargo"
echo "installed into $CARGO_HOME"
"""

PREPARE_SCRIPT = """\
#!/bin/sh
set -e
echo "preparing for $1"
mkdir -p out
echo "$1" > out/.prepared
"""

MAKEFILE = "cli:\n\tmkdir -p out\n\techo \"artifact for $(PLATFORM)\" > out/cli\n"


def _make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _git(*args: str, cwd: Path) -> None:
    subprocess.run(
        ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def make_tool_repo(tmp_path: Path):
    """Factory for local git repositories holding a ``bin/<tool>`` script."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    def _make(name: str = "tools") -> Path:
        repo = tmp_path / "upstream" / name
        (repo / "bin").mkdir(parents=True)
        tool = repo / "bin" / f"{name}-hello"
        tool.write_text(f"#!/bin/sh\necho hello from {name}\n")
        _make_executable(tool)
        _git("init", "-q", cwd=repo)
        _git("add", ".", cwd=repo)
        _git("commit", "-q", "-m", "initial", cwd=repo)
        return repo

    return _make


@pytest.fixture
def tool_repo(make_tool_repo) -> Path:
    """A local git repository standing in for a tool collection."""
    return make_tool_repo("tools")


@pytest.fixture
def bootstrap_script(tmp_path: Path) -> Path:
    """A rustup-like bootstrap script that installs a fake cargo."""
    script = tmp_path / "upstream" / "bootstrap.sh"
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(FAKE_BOOTSTRAP)
    return script


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace with a preparation script and a ``cli`` make target."""
    if shutil.which("make") is None:
        pytest.skip("make not installed")
    root = tmp_path / "workspace"
    (root / "bin").mkdir(parents=True)
    prepare = root / "bin" / "prepare-workspace"
    prepare.write_text(PREPARE_SCRIPT)
    _make_executable(prepare)
    (root / "Makefile").write_text(MAKEFILE)
    return root


@pytest.fixture
def pipeline_file(tmp_path: Path, tool_repo: Path, bootstrap_script: Path, workspace: Path) -> Path:
    """A pipeline.yml wiring every real-tool fixture together."""
    content = textwrap.dedent(f"""\
        name: e2e
        platform: unix
        target: cli
        workspace: workspace
        tools:
          - name: tools
            source: {tool_repo}
            destination: cache/tools
            path_exports: [bin]
        toolchain:
          name: rust
          bootstrap_uri: {bootstrap_script.as_uri()}
          install_root: cache/cargo
          probe: cargo
          variables:
            CARGO_HOME: "{{install_root}}"
    """)
    path = tmp_path / "pipeline.yml"
    path.write_text(content)
    return path


@pytest.fixture(autouse=True)
def _no_platform_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a PLATFORM from the host environment out of every test."""
    monkeypatch.delenv("PLATFORM", raising=False)
