from __future__ import annotations

from typing import Protocol

from ..log import LogSink
from ..models import ActualCartLine, AddResult, Site


class DriverError(RuntimeError):
    """A single candidate could not be added.

    The message carries the detail that failure classification reads,
    e.g. ``"OUT_OF_STOCK: Pienas 2,5% 1L"`` or ``"NOT_FOUND: no products for 'milk'"``.
    """


class CartScraper(Protocol):
    def open_cart(self, session, log: LogSink) -> None: ...

    def snapshot(self, session, log: LogSink) -> list[ActualCartLine]:
        """Current cart contents; an empty list means the site is not supported."""
        ...


class SiteDriver(CartScraper, Protocol):
    """One retailer. Every add either returns what landed in the cart or raises."""

    site: Site

    def ensure_logged_in(self, session, log: LogSink) -> None: ...

    def add_by_url(self, session, url: str, quantity: int, log: LogSink) -> AddResult: ...

    def add_by_query(self, session, query: str, quantity: int, log: LogSink) -> AddResult: ...
