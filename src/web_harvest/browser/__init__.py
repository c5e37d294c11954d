"""
Browser module for Web Harvest.

Provides Playwright-based browser automation with:
- Browser session lifecycle management
- Page context wrapper bound to an event observer
- In-page scripts for signals, discovery and media collection
"""

from web_harvest.browser.observer import (
    ConsoleEvent,
    DomEvent,
    Feed,
    NetworkEvent,
    Observer,
)
from web_harvest.browser.page_context import PageContext
from web_harvest.browser.session import BrowserSession

__all__ = [
    "BrowserSession",
    "PageContext",
    "Observer",
    "Feed",
    "NetworkEvent",
    "DomEvent",
    "ConsoleEvent",
]
