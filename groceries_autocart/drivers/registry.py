from __future__ import annotations

from ..models import Site
from ..picker import ProductPicker
from .barbora import BarboraDriver
from .base import SiteDriver
from .rimi import RimiDriver


def build_drivers(*, picker: ProductPicker | None = None) -> dict[Site, SiteDriver]:
    """One driver per supported site, all sharing ``picker`` for query adds."""
    return {
        Site.BARBORA: BarboraDriver(picker),
        Site.RIMI: RimiDriver(picker),
    }


DRIVERS: dict[Site, SiteDriver] = build_drivers()


def get_driver(site: Site, registry: dict[Site, SiteDriver] | None = None) -> SiteDriver:
    reg = DRIVERS if registry is None else registry
    try:
        return reg[site]
    except KeyError:
        raise RuntimeError(f"No driver registered for site: {site.value}") from None
