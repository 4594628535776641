"""
System browser launchers used to show the provider's consent page.
"""

from __future__ import annotations

import logging
import webbrowser
from typing import Protocol

logger = logging.getLogger("cloudlink.browser")


class SystemBrowserLauncher(Protocol):
    """Opens a URL for the user. Returns False if nothing could be opened."""

    def open(self, url: str) -> bool: ...


class WebBrowserLauncher:
    """Opens URLs in the default browser via :mod:`webbrowser`."""

    def open(self, url: str) -> bool:
        try:
            opened = webbrowser.open(url)
        except webbrowser.Error as e:
            logger.warning("Could not launch a browser: %s", e)
            return False
        if not opened:
            logger.warning("No browser available to open the sign-in page")
        return opened
