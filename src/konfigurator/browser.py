"""Best-effort system browser launch."""

from __future__ import annotations

import logging
import webbrowser
from typing import Callable

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], bool]
"""Opens a URL and reports whether a browser was launched."""


def open_browser(url: str) -> bool:
    """Open *url* in the user's default browser.

    Returns:
        ``True`` if a browser was launched, ``False`` otherwise. Never raises.
    """
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        logger.debug("Browser launch failed: %s", exc)
        return False
    if not opened:
        logger.debug("No runnable browser found for %s", url)
    return bool(opened)


def no_browser(url: str) -> bool:
    """Opener used with ``--no-browser``: never launches anything."""
    return False
