from __future__ import annotations

import argparse
import sys

from .compare import OpenAIComparator, RuleBasedComparator
from .config import ENV_KEYS, Config
from .drivers.registry import DRIVERS, build_drivers, get_driver
from .log import LogSink
from .models import Site
from .picker import OpenAIPicker
from .report import summary_text, write_json
from .runner import RunOptions, Runner, load_requests
from .session import SiteSession

VERSION = "0.1.0"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="groceries-autocart")
    p.add_argument("--version", action="store_true", help="Print version and exit")

    sub = p.add_subparsers(dest="cmd", required=False)

    p_run = sub.add_parser("run", help="Fill carts from a JSON list of items and verify them")
    p_run.add_argument("items", help="JSON file: list of {site, url|query|alternatives, qty}")
    p_run.add_argument("--headful", action="store_true", default=None, help="Show the browser windows")
    p_run.add_argument("--no-verify", dest="verify", action="store_false", default=None, help="Skip cart verification")
    p_run.add_argument("--use-openai", action="store_true", default=None, help="Use OpenAI for product search and cart checks")
    p_run.add_argument("--report", default=None, help="Where to write the JSON report")
    p_run.add_argument("--jsonl", action="store_true", help="Stream progress as JSON lines instead of text")

    sub.add_parser("sites", help="List supported retailers")
    sub.add_parser("env", help="List recognised environment variables")

    p_cart = sub.add_parser("cart", help="Print the current cart of one site")
    p_cart.add_argument("site", choices=[s.value for s in Site])
    p_cart.add_argument("--headful", action="store_true", default=None)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    if args.version:
        print(VERSION)
        return 0

    if args.cmd is None:
        p.print_help()
        return 0

    if args.cmd == "sites":
        for site in DRIVERS:
            print(site.value)
        return 0

    if args.cmd == "env":
        for k in ENV_KEYS:
            print(k)
        return 0

    cfg = Config.from_env().with_overrides(headful=args.headful)

    if args.cmd == "cart":
        return _print_cart(Site(args.site), cfg)

    if args.cmd == "run":
        return _run(args, cfg)

    raise RuntimeError("unreachable")


def _run(args, cfg: Config) -> int:
    cfg = cfg.with_overrides(verify=args.verify, use_openai=args.use_openai, report_path=args.report)
    try:
        cfg.check()
    except RuntimeError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    if args.jsonl:
        log = LogSink(echo=False, on_line=lambda ln: print(ln.to_json(), flush=True))
    else:
        log = LogSink()

    try:
        requests = load_requests(args.items, log)
    except (OSError, ValueError) as exc:
        log.error(f"Could not read items: {exc}")
        return 2

    if cfg.use_openai:
        comparator = OpenAIComparator(api_key=cfg.openai_api_key, model=cfg.openai_model)
        drivers = build_drivers(picker=OpenAIPicker(api_key=cfg.openai_api_key, model=cfg.openai_model))
    else:
        comparator = RuleBasedComparator()
        drivers = build_drivers()

    runner = Runner(
        log,
        options=RunOptions(headful=cfg.headful, verify=cfg.verify, userdata_dir=cfg.userdata_dir),
        drivers=drivers,
        comparator=comparator,
    )
    result = runner.run(requests)

    if not args.jsonl:
        print("\n" + summary_text(result) + "\n")
    path = write_json(result, cfg.report_path)
    log.info(f"Report written to {path}")
    return 0


def _print_cart(site: Site, cfg: Config) -> int:
    log = LogSink()
    driver = get_driver(site)
    with SiteSession(site, headful=cfg.headful, userdata_dir=cfg.userdata_dir) as session:
        driver.open_cart(session, log)
        lines = driver.snapshot(session, log)

    if not lines:
        print("Cart is empty or cannot be read for this site.")
        return 1
    for i, ln in enumerate(lines, 1):
        print(f"{i}. {ln.product_label}  {ln.quantity:g} {ln.unit}  {ln.price or ''}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
