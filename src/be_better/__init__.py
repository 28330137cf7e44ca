"""Be Better: a small gamified habit tracker.

Completing habits earns experience points and coins; coins buy items. The
client keeps a local ledger of those figures and, when the user is logged
in, keeps it in step with the per-user ledger held by the API server.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("be_better")
except PackageNotFoundError:
    __version__ = "0.1.0"
