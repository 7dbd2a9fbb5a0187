"""
Command line entry point.

Usage:
    python -m rimg_backend --folder ./images --port 3000
"""
import argparse
from pathlib import Path

from aiohttp import web

from rimg_shared import get_logger, set_level

from . import config
from .app import create_app
from .features.index import IndexSettings

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rimg", description="Serve a random image from a watched directory tree")
    p.add_argument("--folder", type=Path, default=None, help=f"image directory (default: {config.IMAGE_FOLDER})")
    p.add_argument("--host", default=config.HOST, help="bind address")
    p.add_argument("--port", type=int, default=config.PORT, help="listen port")
    p.add_argument("--no-watch", action="store_true", help="disable the filesystem watcher")
    p.add_argument("--log-level", default=config.LOG_LEVEL, help="DEBUG, INFO, WARNING or ERROR")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    set_level(args.log_level)

    settings = IndexSettings.from_config(
        root=args.folder.expanduser().resolve() if args.folder else None,
        watcher_enabled=False if args.no_watch else None,
    )
    app = create_app(settings)
    logger.info("Server starting on %s:%d (images: %s)", args.host, args.port, settings.root)
    web.run_app(app, host=args.host, port=args.port, print=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
