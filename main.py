#!/usr/bin/env python3
"""
Library Mirror - Main Entry Point
Mirrors the saved/finished library lists and archives every book locally.

Usage:
    python main.py                  # Sync lists, archive new books with audio
    python main.py --checkall       # Rescan whole lists instead of stopping at known books
    python main.py --no-update      # Only archive books already in the catalog
    python main.py --no-download    # Only sync the catalog
    python main.py --no-audio       # Skip chapter audio
    python main.py --headless       # No browser window (fails on human verification)
"""

import argparse
import asyncio
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

# Ensure we can import from project root
sys.path.insert(0, str(Path(__file__).parent))

import config
from archive.archiver import ContentArchiver
from archive.fetcher import BlobFetcher
from browser.engine import BrowserEngine
from catalog.store import CatalogStore
from catalog.sync import LibrarySync
from core.errors import ArchiverError
from core.logger import (
    setup_logging,
    log_startup_banner,
    log_section,
    log_subsection,
    log_success,
    log_warning,
    log_error,
)


@dataclass
class RunOptions:
    """Run-time switches."""
    checkall: bool = config.CHECKALL
    update: bool = config.UPDATE
    download: bool = config.DOWNLOAD
    audio: bool = config.AUDIO
    headless: bool = config.HEADLESS


def parse_args(argv: Optional[List[str]] = None) -> RunOptions:
    """Build RunOptions from the command line; defaults come from config/.env."""
    parser = argparse.ArgumentParser(description=f"{config.PROJECT_NAME} - library archiver")
    parser.add_argument("--checkall", action=argparse.BooleanOptionalAction, default=config.CHECKALL,
                        help="Scan whole lists instead of stopping at the first known book")
    parser.add_argument("--update", action=argparse.BooleanOptionalAction, default=config.UPDATE,
                        help="Sync the catalog from the library lists")
    parser.add_argument("--download", action=argparse.BooleanOptionalAction, default=config.DOWNLOAD,
                        help="Archive books that have no bundle yet")
    parser.add_argument("--audio", action=argparse.BooleanOptionalAction, default=config.AUDIO,
                        help="Download chapter audio")
    parser.add_argument("--headless", action=argparse.BooleanOptionalAction, default=config.HEADLESS,
                        help="Run the browser without a window")
    args = parser.parse_args(argv)
    return RunOptions(
        checkall=args.checkall,
        update=args.update,
        download=args.download,
        audio=args.audio,
        headless=args.headless,
    )


def print_configuration(options: RunOptions) -> None:
    """Print configuration summary."""
    log_section("Configuration", "📡")
    log_subsection(f"Catalog: {config.CATALOG_PATH}")
    log_subsection(f"Books: {config.BOOKS_DIR}")
    log_subsection(f"Diagnostic Log: {config.DIAGNOSTIC_LOG_PATH}")
    log_subsection(f"Update lists: {'ENABLED' if options.update else 'DISABLED'}"
                   f" ({'full rescan' if options.checkall else 'stop at known'})")
    log_subsection(f"Download books: {'ENABLED' if options.download else 'DISABLED'}")
    log_subsection(f"Audio: {'ENABLED' if options.audio else 'DISABLED'}")
    log_subsection(f"Browser: {'headless' if options.headless else 'headed'}")


async def run(options: RunOptions) -> int:
    """
    Run one mirror pass.

    The catalog is persisted and the browser closed on every way out,
    including fatal errors.

    Returns:
        Process exit code
    """
    with CatalogStore.open(config.CATALOG_PATH) as store:
        try:
            async with BrowserEngine(
                config.BROWSER_SESSIONS_DIR,
                config.BROWSER_SERVICE_NAME,
                headless=options.headless
            ) as engine:
                session = await engine.open_session()

                if options.update:
                    sync = LibrarySync(session, store)
                    for list_name in config.LIBRARY_LISTS:
                        await sync.crawl(list_name, allow_rescan=options.checkall)

                if options.download:
                    fetcher = BlobFetcher()
                    try:
                        archiver = ContentArchiver(
                            session, store, fetcher,
                            books_dir=config.BOOKS_DIR,
                            download_audio=options.audio,
                        )
                        for list_name in config.LIBRARY_LISTS:
                            await archiver.archive_list(list_name)
                    finally:
                        fetcher.close()

        except ArchiverError as e:
            log_error(f"Run aborted ({e.kind.value}): {e}")
            return 1
        except Exception as e:
            log_error(f"Run aborted by unexpected error: {e}")
            log_error(traceback.format_exc(), prefix=" ")
            return 1

    log_success("Mirror run complete")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    options = parse_args(argv)

    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    config.BOOKS_DIR.mkdir(parents=True, exist_ok=True)
    setup_logging(
        log_file_path=config.DIAGNOSTIC_LOG_PATH,
        level=config.LOG_LEVEL,
        log_to_file=config.LOG_TO_FILE,
        log_to_console=config.LOG_TO_CONSOLE
    )
    log_startup_banner(config.VERSION, config.PROJECT_NAME)
    print_configuration(options)

    try:
        return asyncio.run(run(options))
    except KeyboardInterrupt:
        print()  # New line after ^C
        log_warning("Interrupted - catalog saved, unfinished book will be retried next run")
        return 130


if __name__ == "__main__":
    sys.exit(main())
