from __future__ import annotations

from pathlib import Path

from playwright.sync_api import sync_playwright, BrowserContext, Page

from .models import Site

DEFAULT_USERDATA_DIR = ".userdata"
VIEWPORT = {"width": 1280, "height": 720}


class SessionError(RuntimeError):
    """The automation session for a site could not be started or logged in."""


def profile_dir(site: Site, base_dir: str = DEFAULT_USERDATA_DIR) -> Path:
    """Persistent browser profile for one site. Contents belong to the browser."""
    return Path(base_dir) / site.value


class SiteSession:
    """Persistent Chromium context for one site, checked out for a whole batch.

    Usage::

        with SiteSession(Site.BARBORA, headful=True) as session:
            driver.ensure_logged_in(session, log)
            driver.add_by_query(session, "pienas", 2, log)

    Cookies and login live in the profile directory, so a manual login in
    headful mode carries over to later headless runs. In headful mode exit
    waits for the user to close the window, so the cart can be reviewed by hand.
    """

    def __init__(self, site: Site, *, headful: bool = False, userdata_dir: str = DEFAULT_USERDATA_DIR):
        self.site = site
        self.headful = headful
        self.userdata_dir = userdata_dir
        self._pw = None
        self._context: BrowserContext | None = None
        self.page: Page | None = None

    def __enter__(self) -> "SiteSession":
        path = profile_dir(self.site, self.userdata_dir)
        try:
            path.mkdir(parents=True, exist_ok=True)
            self._pw = sync_playwright().start()
            self._context = self._pw.chromium.launch_persistent_context(
                str(path),
                headless=not self.headful,
                viewport=VIEWPORT,
                accept_downloads=False,
            )
            self.page = self._context.pages[0] if self._context.pages else self._context.new_page()
        except Exception as exc:
            self._shutdown()
            raise SessionError(f"Could not start browser for {self.site.value}: {exc}") from exc
        return self

    def __exit__(self, *exc):
        try:
            if self.headful and exc[0] is None and self._context is not None:
                # Block until the user closes the window after reviewing the cart.
                self._context.wait_for_event("close", timeout=0)
                self._context = None
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        try:
            if self._context:
                self._context.close()
        finally:
            if self._pw:
                self._pw.stop()
        self._pw = None
        self._context = None
        self.page = None
