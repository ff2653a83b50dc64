"""Process-wide handle on the active BridgeRouter.

``create_app`` installs the router here; route handlers fetch it per
request so they need not import ``main``.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .router import BridgeRouter

_active_router: Optional["BridgeRouter"] = None


def set_router(router: Optional["BridgeRouter"]) -> None:
    """Install ``router`` as the active one; ``None`` uninstalls it."""
    global _active_router
    _active_router = router


def get_router() -> "BridgeRouter":
    if _active_router is None:
        raise RuntimeError("No BridgeRouter installed; create_app() sets one up")
    return _active_router
