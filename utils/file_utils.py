"""On-disk JSON helpers for the client key-value store."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional


def read_json_object(filepath: Path) -> Optional[dict]:
    """Load a JSON object from ``filepath``.

    Returns an empty dict when the file does not exist and ``None`` when it
    exists but does not hold a JSON object, leaving the caller to decide
    whether that is worth a warning.
    """
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def atomic_write_json(filepath: Path, data: Any, indent: Optional[int] = None) -> None:
    """Replace ``filepath`` with ``data`` serialized as JSON.

    The payload goes to a sibling temp file which is then moved over the
    target, so readers see either the old content or the new, never a mix.
    Missing parent directories are created.
    """
    serialized = json.dumps(data, indent=indent, ensure_ascii=False)

    filepath.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=filepath.parent, prefix=f'.{filepath.name}.', suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(serialized)
        os.replace(tmp_name, filepath)
    except BaseException:
        # Leave no stray temp file behind
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
