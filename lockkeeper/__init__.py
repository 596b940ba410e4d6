"""
lockkeeper — correct npm lockfile resolution for workspace repositories.

lockkeeper builds ``package-lock.json`` files from a root manifest and its
workspace members, applies targeted version bumps without disturbing
unrelated parts of the install tree, and refuses to write a lockfile that
a clean install would reject.

Features include:
    • Hoisting with conflict nesting, deterministic and minimal-diff
    • Partial updates that never rebuild the whole tree
    • Retention of nested optional-peer satisfiers
    • Clean-install validation and structural lockfile diffs
"""

from __future__ import annotations

from lockkeeper.__version__ import __version__

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "lockkeeper Contributors"
__license__ = "Apache-2.0"
__description__ = "Correct npm lockfile resolution and partial updates for workspaces."

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "__version__",
]
