"""
State file persistence: atomic read/write for PipelineRunState.

State is stored as JSON in .state/current.json. Writes are atomic
(write to temp file, then rename) so a process killed mid-write
leaves the previous state intact.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from provisioner.core.models.state import PipelineRunState

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "current.json"


def default_state_path(state_dir: Path) -> Path:
    """Get the state file path inside a state directory."""
    return state_dir / DEFAULT_STATE_FILE


def atomic_write_text(path: Path, content: str, prefix: str = ".state_") -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    _fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(_fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def load_state(path: Path) -> PipelineRunState:
    """Load run state from a JSON file.

    Returns a fresh state if the file is missing or unreadable.
    """
    if not path.is_file():
        logger.info("No state file at %s, starting fresh", path)
        return PipelineRunState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = PipelineRunState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s, starting fresh", path, e)
        return PipelineRunState()
    except Exception as e:
        logger.warning("Cannot load state from %s: %s, starting fresh", path, e)
        return PipelineRunState()


def save_state(state: PipelineRunState, path: Path) -> None:
    """Save run state to a JSON file (atomic write)."""
    state.touch()
    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    try:
        atomic_write_text(path, content)
        logger.debug("State saved to %s", path)
    except Exception as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise
