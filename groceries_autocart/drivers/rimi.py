from __future__ import annotations

from playwright.sync_api import Page

from ..log import LogSink
from ..models import ActualCartLine, AddResult, Site
from ..picker import ProductPicker, RuleBasedPicker, choose
from ..quantity import units_to_add
from .base import DriverError
from .common import (
    ProductCard,
    UNAVAILABLE_SELECTORS,
    accept_cookies,
    any_present,
    click_add_button,
    dismiss_overlays,
    first_visible,
    increment_quantity,
    page_heading,
)

BASE_URL = "https://www.rimi.lt/e-parduotuve"
CART_URL = f"{BASE_URL}/cart"

LOGIN_SELECTORS = ['a:has-text("Prisijungti")', 'button:has-text("Prisijungti")']

ADD_SELECTORS = [
    'button[data-gtm-click-name*="add_to_cart"]',
    'button[class*="js-add-to-cart"]',
    'button:has-text("Į krepšelį")',
]

SEARCH_SELECTORS = ['input[name="q"]', 'input[type="search"]', 'input[placeholder*="Ieškoti" i]']

CARD_SELECTOR = "li.product-grid__item, div.js-product-container"


class RimiDriver:
    site = Site.RIMI

    def __init__(self, picker: ProductPicker | None = None):
        self.picker = picker or RuleBasedPicker()

    def ensure_logged_in(self, session, log: LogSink) -> None:
        page: Page = session.page
        log.info("[rimi] Opening home page...")
        page.goto(BASE_URL, wait_until="domcontentloaded", timeout=45_000)
        accept_cookies(page)
        if any_present(page, LOGIN_SELECTORS):
            log.warn("[rimi] Not logged in; items go to an anonymous cart")
        else:
            log.info("[rimi] Already logged in (session restored)")

    def add_by_url(self, session, url: str, quantity: int, log: LogSink) -> AddResult:
        page: Page = session.page
        log.info(f"[rimi] Adding product from URL: {url}")
        page.goto(url, wait_until="domcontentloaded", timeout=45_000)
        page.wait_for_timeout(1500)
        title = page_heading(page, ["h1", ".product__name"], default=url)

        if not click_add_button(page, ADD_SELECTORS):
            if any_present(page, UNAVAILABLE_SELECTORS):
                raise DriverError(f"OUT_OF_STOCK: {title}")
            raise DriverError(f"Could not find add-to-cart button for {url}")

        page.wait_for_timeout(1000)
        added = increment_quantity(page, quantity) if quantity > 1 else 1
        dismiss_overlays(page)
        return AddResult(product_label=title, units_added=added)

    def add_by_query(self, session, query: str, quantity: int, log: LogSink) -> AddResult:
        page: Page = session.page
        log.info(f'[rimi] Searching for: "{query}"')
        plan = self.picker.plan(query, log)

        cards: list[ProductCard] = []
        for term in plan.variations:
            cards = self._search(page, term)
            if cards:
                break
            log.warn(f'[rimi] No products with "{term}"')
        if not cards:
            raise DriverError(f'NOT_FOUND: No products found for "{query}"')

        idx = choose(self.picker, query, [c.title for c in cards], log, quantity=quantity)
        if idx is None:
            raise DriverError(f'NOT_FOUND: No suitable product found for "{query}"')
        chosen = cards[idx]
        log.info(f'[rimi] Selected: "{chosen.title}"')
        target = units_to_add(query, quantity, chosen.title, log=log)
        if not click_add_button(chosen.element, ADD_SELECTORS):
            raise DriverError(f"Could not click add for {chosen.title}")
        page.wait_for_timeout(1000)
        added = increment_quantity(page, target) if target > 1 else 1
        dismiss_overlays(page)
        return AddResult(product_label=chosen.title, units_added=added)

    def _search(self, page: Page, term: str) -> list[ProductCard]:
        page.goto(BASE_URL, wait_until="domcontentloaded", timeout=45_000)
        search_input = first_visible(page, SEARCH_SELECTORS)
        if search_input is None:
            raise DriverError("Could not find search input")
        search_input.fill(term)
        search_input.press("Enter")
        page.wait_for_load_state("domcontentloaded")
        page.wait_for_timeout(2000)

        loc = page.locator(CARD_SELECTOR)
        cards: list[ProductCard] = []
        for i in range(min(loc.count(), 20)):
            el = loc.nth(i)
            name_el = first_visible(el, [".card__name", "p.card__name", "h3"], timeout=500)
            title = (name_el.text_content() or "").strip() if name_el else ""
            if title:
                cards.append(ProductCard(title=title, element=el))
        return cards

    def open_cart(self, session, log: LogSink) -> None:
        log.info("[rimi] Opening cart for review...")
        session.page.goto(CART_URL, wait_until="domcontentloaded", timeout=45_000)

    def snapshot(self, session, log: LogSink) -> list[ActualCartLine]:
        # TODO: read the Rimi cart page once its markup has been mapped.
        log.warn("[rimi] Cart scraping is not supported yet")
        return []
