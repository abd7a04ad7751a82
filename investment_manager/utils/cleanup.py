# utils/cleanup.py
from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from flask import current_app


@contextmanager
def best_effort(label: str):
    """
    Run a cleanup step whose failure must not abort the surrounding write.
    Failures are logged with a traceback and then dropped.
    """
    try:
        yield
    except Exception:
        current_app.logger.exception("Best-effort cleanup failed: %s", label)


def _banner_dir() -> Optional[Path]:
    root = current_app.config.get("UPLOAD_ROOT") or ""
    if not root:
        return None
    return (Path(root) / "banners").resolve()


def remove_stale_banner(old_value: Optional[str], new_value: Optional[str] = None) -> bool:
    """
    Delete a previously stored banner file if it lives in our banner directory.
    Remote URLs, paths outside that directory and a file the new value still
    resolves to are left alone.
    Returns True when a file was removed.
    """
    if not old_value:
        return False
    banner_dir = _banner_dir()
    if banner_dir is None or "://" in old_value:
        return False

    if new_value and Path(new_value).name == Path(old_value).name:
        return False

    candidate = (banner_dir / Path(old_value).name).resolve()
    if candidate.parent != banner_dir or not candidate.is_file():
        return False

    with best_effort(f"remove banner {candidate}"):
        os.remove(candidate)
        current_app.logger.info("Removed stale banner %s", candidate)
        return True
    return False
