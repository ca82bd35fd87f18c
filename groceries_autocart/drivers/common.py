"""Page helpers shared by the retailer drivers.

Everything here is best effort: selectors on grocery sites change often, so
each helper tries a list of candidates and reports whether it got anywhere
instead of raising.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from playwright.sync_api import Locator, Page

COOKIE_LABELS = ("Sutinku", "Priimti", "Sutikti", "Accept")

ADD_BUTTON_LABELS = ("Į krepšelį", "Pridėti", "Add to cart")

UNAVAILABLE_SELECTORS = [
    'button:has-text("unavailable")',
    'div:has-text("Out of stock")',
    'div:has-text("Nėra sandėlyje")',
    '[class*="unavailable"]',
]

QUANTITY_SELECTORS = [
    'input[type="number"]',
    'input[aria-label*="quantity"]',
    'input[aria-label*="kiekis"]',
    '[data-testid*="quantity-input"]',
]

INCREMENT_SELECTORS = [
    'button[aria-label*="didinti"]',
    'button[aria-label*="increase" i]',
    'button[class*="increment"]',
    'button[class*="plus"]',
    '[data-testid*="increment"]',
]

WEIGHT_SELECTORS = [
    '[class*="weight"]',
    '[class*="kg"]',
    '[class*="quantity"]',
    'span:has-text("kg")',
]

_WEIGHT_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*kg\b", re.IGNORECASE)

# Weighed lines count as reached within 15% of the target.
WEIGHT_TOLERANCE = 0.15


@dataclass
class ProductCard:
    title: str
    element: Locator
    price: str | None = None
    available: bool = True


def accept_cookies(page: Page, labels: tuple[str, ...] = COOKIE_LABELS) -> None:
    page.wait_for_timeout(1000)
    for label in labels:
        try:
            btn = page.get_by_role("button", name=re.compile(label, re.IGNORECASE)).first
            if btn.is_visible():
                btn.click(timeout=2000)
                page.wait_for_timeout(500)
                return
        except Exception:
            continue


def first_visible(root: Page | Locator, selectors: list[str], *, timeout: int = 1000) -> Locator | None:
    for sel in selectors:
        try:
            loc = root.locator(sel).first
            if loc.count() > 0 and loc.is_visible(timeout=timeout):
                return loc
        except Exception:
            continue
    return None


def any_present(page: Page, selectors: list[str]) -> bool:
    for sel in selectors:
        try:
            if page.locator(sel).count() > 0:
                return True
        except Exception:
            continue
    return False


def page_heading(page: Page, selectors: list[str], default: str) -> str:
    el = first_visible(page, selectors)
    if el is None:
        return default
    try:
        text = (el.text_content() or "").strip()
    except Exception:
        return default
    return text or default


def click_add_button(root: Page | Locator, selectors: list[str]) -> bool:
    btn = first_visible(root, selectors, timeout=2000)
    if btn is None:
        for label in ADD_BUTTON_LABELS:
            try:
                cand = root.get_by_role("button", name=re.compile(label, re.IGNORECASE)).first
                if cand.count() > 0 and cand.is_visible(timeout=1000):
                    btn = cand
                    break
            except Exception:
                continue
    if btn is None:
        return False
    btn.click(timeout=2000)
    return True


def read_quantity(page: Page) -> int | None:
    el = first_visible(page, QUANTITY_SELECTORS)
    if el is None:
        return None
    try:
        raw = el.input_value()
    except Exception:
        raw = el.text_content() or ""
    m = re.search(r"\d+", raw or "")
    return int(m.group(0)) if m else None


def increment_quantity(page: Page, target: int) -> int:
    """Press "+" until the quantity widget shows ``target``.

    Returns the quantity believed to be in the cart afterwards.
    """
    current = read_quantity(page) or 1
    if current >= target:
        return current

    plus = first_visible(page, INCREMENT_SELECTORS)
    if plus is None:
        return current

    for _ in range(target - current):
        plus.click()
        page.wait_for_timeout(400)

    return read_quantity(page) or target


def dismiss_overlays(page: Page) -> None:
    try:
        page.keyboard.press("Escape")
        page.wait_for_timeout(300)
    except Exception:
        pass


def read_weight(page: Page) -> float | None:
    """Kilograms shown by the weight selector, e.g. ``"1,3 kg"``."""
    for sel in WEIGHT_SELECTORS:
        try:
            texts = page.locator(sel).all_text_contents()
        except Exception:
            continue
        for text in texts:
            m = _WEIGHT_RE.search(text)
            if m:
                return float(m.group(1).replace(",", "."))
    return None


def adjust_weight(page: Page, target_kg: float, *, max_clicks: int = 50) -> float | None:
    """Press "+" on a weight selector until it is within tolerance of ``target_kg``.

    Returns the last weight read, or None when no weight is shown.
    """
    current = read_weight(page)
    if current is None:
        return None

    plus = first_visible(page, INCREMENT_SELECTORS + ['button:has-text("+")'])
    if plus is None:
        return current

    clicks = 0
    while current < target_kg * (1 - WEIGHT_TOLERANCE) and clicks < max_clicks:
        plus.click()
        page.wait_for_timeout(500)
        new = read_weight(page)
        if new is None or new == current:
            # Stuck at the selector's maximum.
            break
        current = new
        clicks += 1
    return current
