from __future__ import annotations

import sys
from pathlib import Path


def pytest_configure() -> None:
    """Ensure the repository root is on sys.path.

    The tests live inside the ``robustvcov`` package, so pytest may pick the
    package directory as rootdir. Importing the top-level package then fails
    unless its parent directory is on ``sys.path``.
    """

    repo_root = Path(__file__).resolve().parents[2]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)
