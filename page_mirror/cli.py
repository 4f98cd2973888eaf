import argparse
import logging
import sys
from typing import List, Optional
from urllib.parse import urlparse

from .config import DEFAULT_SOURCES, Settings, load_config_file
from .path_containers import Source
from .scraper import run


def parse_source(value: str) -> Source:
    selector, sep, attr = value.rpartition("@")
    if not sep or not selector.strip() or not attr.strip():
        raise argparse.ArgumentTypeError(f"expected SELECTOR@ATTR, got {value!r}")
    return Source(selector.strip(), attr.strip())


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Mirror pages and the resources they reference onto disk.",
        add_help=True,
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)

    p.add_argument("urls", nargs="+", metavar="url", help="http(s) URL(s)")
    p.add_argument("output_folder", help="output directory")
    p.add_argument("--max-depth", type=int, default=None, help="max reference depth")
    p.add_argument("--workers", type=int, default=16, help="concurrent downloads")
    p.add_argument(
        "--timeout", type=float, default=15.0, help="request timeout seconds"
    )
    p.add_argument(
        "--max-bytes", type=int, default=50_000_000, help="max bytes per file"
    )
    p.add_argument("--external", action="store_true", help="include third-party resources")
    p.add_argument(
        "--include", type=str, default=None, help="only request URLs matching regex"
    )
    p.add_argument("--exclude", type=str, default=None, help="skip URLs matching regex")
    p.add_argument(
        "--source",
        dest="sources",
        action="append",
        type=parse_source,
        default=None,
        help="SELECTOR@ATTR reference declaration, repeatable (replaces defaults)",
    )
    p.add_argument(
        "--default-filename",
        type=str,
        default="index.html",
        help="filename for directory-like page URLs",
    )
    p.add_argument(
        "--prettify-urls",
        action="store_true",
        help="drop the default filename from rewritten page links",
    )
    p.add_argument(
        "--header",
        action="append",
        default=[],
        help="extra request header 'Name: value'",
    )
    p.add_argument("--user-agent", type=str, default=None, help="User-Agent header")
    p.add_argument("--verbose", action="store_true", help="debug logging")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        cfg = load_config_file(preliminary.config)
        if isinstance(cfg, dict):
            flat = dict(cfg)
            for g in ("general", "crawl", "http"):
                if isinstance(cfg.get(g), dict):
                    flat.update(cfg[g])
            if "sources" in flat:
                flat["sources"] = [Source.from_mapping(s) for s in flat["sources"]]
            parser.set_defaults(**{k.replace("-", "_"): v for k, v in flat.items()})
    args = parser.parse_args(argv)
    return args


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings(
        urls=list(args.urls),
        directory=args.output_folder,
        sources=list(args.sources) if args.sources else list(DEFAULT_SOURCES),
        max_depth=None if args.max_depth is None else max(0, args.max_depth),
        default_filename=args.default_filename,
        prettify_urls=args.prettify_urls,
        timeout=args.timeout,
        workers=max(1, args.workers),
        max_bytes=max(1024, args.max_bytes),
        same_origin_only=not args.external,
        include=args.include,
        exclude=args.exclude,
        extra_headers=args.header or [],
        user_agent=args.user_agent,
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    for url in args.urls:
        if urlparse(url).scheme not in {"http", "https"}:
            print(f"Invalid URL {url}. Use http:// or https://")
            sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    settings = settings_from_args(args)
    print("Reminder: only mirror content you own or have permission to copy.")
    roots = run(settings)
    print("Mirroring complete")
    for root in roots:
        print(f"Saved {root.get_url()} to: {settings.directory}/{root.get_filename()}")


if __name__ == "__main__":
    main()
