from __future__ import annotations

import math
import re

from playwright.sync_api import Page

from ..log import LogSink
from ..models import ActualCartLine, AddResult, Site
from ..picker import ProductPicker, RuleBasedPicker, choose
from ..quantity import units_to_add, weighted_target
from .base import DriverError
from .common import (
    WEIGHT_TOLERANCE,
    ProductCard,
    UNAVAILABLE_SELECTORS,
    accept_cookies,
    adjust_weight,
    any_present,
    click_add_button,
    dismiss_overlays,
    first_visible,
    increment_quantity,
    page_heading,
)

BASE_URL = "https://www.barbora.lt"
CART_URL = f"{BASE_URL}/cart"

LOGIN_SELECTORS = [
    'a:has-text("Prisijungti")',
    'button:has-text("Prisijungti")',
    'a:has-text("Login")',
]

TITLE_SELECTORS = [
    "h1",
    '[class*="product-title"]',
    '[class*="product-name"]',
]

ADD_SELECTORS = [
    # The data attribute skips the wishlist button that shares the add-to-cart classes.
    'button[data-cnstrc-btn="add_to_cart"]',
    'button[class*="b-product-action-add"]',
    'button[class*="add-to-cart"]:not([data-cnstrc-btn="add_to_wishlist"])',
    'button[data-testid="add-to-cart"]',
]

SEARCH_SELECTORS = [
    'input[placeholder*="ieško" i]',
    'input[type="search"]',
    'input[name="search"]',
    'input[name="q"]',
    'header input[type="text"]',
]

CARD_SELECTORS = [
    'div[class*="group"][class*="relative"]',
    'article[class*="b-product"]',
    'div[class*="b-product-tile"]',
    '[data-testid*="product-card"]',
]

CARD_TITLE_SELECTORS = ["h3", "h2", '[class*="title"]', "a[title]"]

CONFIRM_SELECTORS = [
    '[role="dialog"] button:has-text("Pridėti")',
    'div[class*="modal"] button:has-text("Pridėti")',
    'div[class*="modal"] button:has-text("Į krepšelį")',
    'div[class*="modal"] button:has-text("Patvirtinti")',
]

CART_ITEM_SELECTOR = '[data-testid^="cart-item-"]'

MANUAL_LOGIN_WAIT_MS = 90_000

_CART_QTY_RE = re.compile(r"([0-9]+(?:[.,][0-9]+)?)\s*(units?|vnt|kg|g|l|ml)\b", re.IGNORECASE)


def parse_cart_quantity(text: str) -> tuple[float, str]:
    """Parse cart sidebar quantities such as ``"1 units"``, ``"0.5 kg"`` or ``"500 g"``."""
    m = _CART_QTY_RE.search(text or "")
    if not m:
        return 1.0, "units"
    qty = float(m.group(1).replace(",", "."))
    unit = m.group(2).lower()
    if unit in ("unit", "units", "vnt"):
        unit = "units"
    return qty, unit


class BarboraDriver:
    site = Site.BARBORA

    def __init__(self, picker: ProductPicker | None = None):
        self.picker = picker or RuleBasedPicker()

    def ensure_logged_in(self, session, log: LogSink) -> None:
        page: Page = session.page
        log.info("[barbora] Opening home page...")
        page.goto(BASE_URL, wait_until="domcontentloaded", timeout=45_000)
        accept_cookies(page)
        page.wait_for_timeout(2000)

        if not any_present(page, LOGIN_SELECTORS):
            log.info("[barbora] Already logged in (session restored)")
            return

        if not session.headful:
            raise DriverError("barbora: not logged in; run once with --headful and log in manually")

        log.warn("[barbora] Please log in manually in the browser window. Session will be saved.")
        log.warn(f"[barbora] Waiting {MANUAL_LOGIN_WAIT_MS // 1000} seconds for manual login...")
        page.wait_for_timeout(MANUAL_LOGIN_WAIT_MS)

    def add_by_url(self, session, url: str, quantity: int, log: LogSink) -> AddResult:
        page: Page = session.page
        log.info(f"[barbora] Adding product from URL: {url}")
        page.goto(url, wait_until="domcontentloaded", timeout=45_000)
        page.wait_for_timeout(2000)

        title = page_heading(page, TITLE_SELECTORS, default=url)

        if not click_add_button(page, ADD_SELECTORS):
            if any_present(page, UNAVAILABLE_SELECTORS):
                raise DriverError(f"OUT_OF_STOCK: {title}")
            raise DriverError(f"Could not find add-to-cart button for {url}")

        page.wait_for_timeout(1000)
        added = increment_quantity(page, quantity) if quantity > 1 else 1
        if added < quantity:
            log.warn(f"[barbora] Could not set quantity to {quantity}; cart shows {added}")
        dismiss_overlays(page)
        return AddResult(product_label=title, units_added=added)

    def add_by_query(self, session, query: str, quantity: int, log: LogSink) -> AddResult:
        page: Page = session.page
        log.info(f'[barbora] Searching for: "{query}"')
        plan = self.picker.plan(query, log)

        cards: list[ProductCard] = []
        for i, term in enumerate(plan.variations):
            log.info(f'[barbora] Trying search: "{term}"')
            cards = self._search(page, term)
            if cards:
                log.info(f'[barbora] Found {len(cards)} products with "{term}"')
                break
            if i < len(plan.variations) - 1:
                log.warn(f'[barbora] No products with "{term}", trying next variation...')
        if not cards:
            raise DriverError(f'NOT_FOUND: No products found for "{query}"')

        idx = choose(self.picker, query, [c.title for c in cards], log, quantity=quantity)
        if idx is None:
            raise DriverError(f'NOT_FOUND: No suitable product found for "{query}"')
        chosen = cards[idx]
        log.info(f'[barbora] Selected: "{chosen.title}"')
        if not chosen.available:
            raise DriverError(f"OUT_OF_STOCK: {chosen.title}")

        if not click_add_button(chosen.element, ['button:has-text("Į krepšelį")', 'button[class*="add"]']):
            raise DriverError(f"Could not click add for {chosen.title}")
        page.wait_for_timeout(1500)

        kg = weighted_target(query, quantity, chosen.title)
        if kg is not None:
            added = self._weigh(page, kg, log)
        else:
            target = units_to_add(query, quantity, chosen.title, log=log)
            added = increment_quantity(page, target) if target > 1 else 1
            if added < target:
                log.warn(f"[barbora] Could not set quantity to {target}; cart shows {added}")

        confirm = first_visible(page, CONFIRM_SELECTORS)
        if confirm is not None:
            confirm.click()
            log.info("[barbora] Confirmed addition to cart")
        dismiss_overlays(page)
        return AddResult(product_label=chosen.title, units_added=added)

    def _search(self, page: Page, term: str) -> list[ProductCard]:
        page.goto(BASE_URL, wait_until="domcontentloaded", timeout=45_000)
        page.wait_for_timeout(2000)
        search_input = first_visible(page, SEARCH_SELECTORS)
        if search_input is None:
            raise DriverError("Could not find search input")

        search_input.fill(term)
        search_input.press("Enter")
        page.wait_for_load_state("domcontentloaded")
        page.wait_for_timeout(2000)
        return self._collect_cards(page)

    def _weigh(self, page: Page, kg: float, log: LogSink) -> int:
        """Dial a loose item up to ``kg``; returns the whole kilograms now in the cart, at least 1."""
        log.info(f"[barbora] Weighted item, adjusting to {kg:g} kg...")
        weight = adjust_weight(page, kg)
        if weight is None:
            log.warn("[barbora] Could not read the weight selector; item is in the cart at its default weight")
            return 1
        if abs(weight - kg) > kg * WEIGHT_TOLERANCE:
            log.warn(f"[barbora] Could not adjust weight precisely: {weight:g} kg of {kg:g} kg")
        else:
            log.info(f"[barbora] Reached {weight:g} kg (target {kg:g} kg)")
        return max(1, math.ceil(round(weight, 9)))

    def _collect_cards(self, page: Page) -> list[ProductCard]:
        for sel in CARD_SELECTORS:
            loc = page.locator(sel)
            count = loc.count()
            if count == 0:
                continue
            cards: list[ProductCard] = []
            for i in range(min(count, 20)):
                el = loc.nth(i)
                title_el = first_visible(el, CARD_TITLE_SELECTORS, timeout=500)
                title = (title_el.text_content() or "").strip() if title_el else ""
                if not title:
                    continue
                unavailable = any(el.locator(s).count() > 0 for s in UNAVAILABLE_SELECTORS)
                cards.append(ProductCard(title=title, element=el, available=not unavailable))
            if cards:
                return cards
        return []

    def open_cart(self, session, log: LogSink) -> None:
        log.info("[barbora] Opening cart for review...")
        session.page.goto(CART_URL, wait_until="domcontentloaded", timeout=45_000)
        session.page.wait_for_timeout(2000)

    def snapshot(self, session, log: LogSink) -> list[ActualCartLine]:
        page: Page = session.page
        log.info("[barbora] Reading cart contents from sidebar...")
        page.wait_for_selector(".b-cart--scrollable-blocks-wrap--cart-content", timeout=5000)
        rows = page.locator(CART_ITEM_SELECTOR)
        lines: list[ActualCartLine] = []
        for i in range(rows.count()):
            row = rows.nth(i)
            name = (row.locator(".b-cart--item-title a").first.text_content() or "").strip()
            qty_text = (row.locator(".b-product-count-in-cart strong").first.text_content() or "").strip()
            price_el = row.locator(".b-next-cart-item--price").first
            price = (price_el.text_content() or "").strip() if price_el.count() else None
            qty, unit = parse_cart_quantity(qty_text)
            lines.append(ActualCartLine(product_label=name or "Unknown", quantity=qty, unit=unit, price=price or None))
            log.info(f'[barbora] Cart line {i + 1}: "{name}" - {qty:g} {unit}')
        return lines
