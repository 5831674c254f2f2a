# =============================================================================
# chatcore - transactional consistency layer of a chat backend
# =============================================================================
"""
chatcore - chats, memberships and messages with update notifications.

Version is loaded from installed package metadata (pyproject.toml).
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version


def _get_version() -> str:
    try:
        return version("chatcore")
    except PackageNotFoundError:
        # running from a source checkout without `pip install -e .`
        return "0.1.0-unknown"


__version__: str = _get_version()
__description__: str = "chatcore - chat backend transactional core"

__all__ = [
    "__version__",
    "__description__",
]
