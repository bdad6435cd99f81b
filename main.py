import argparse
import logging

from slotfeed.config import load_settings
from slotfeed.worker import build_fetcher, build_index, run_forever, run_once


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="slotfeed: booking availability from a schedule sheet")
    parser.add_argument(
        "--date",
        action="append",
        default=[],
        help="Date to report (any supported format). Repeatable. Default: all unavailable dates",
    )
    parser.add_argument("--watch", action="store_true", help="Keep refreshing the feed until interrupted")
    parser.add_argument("--verbose", action="store_true", help="Log skipped rows and fetch details")
    args = parser.parse_args()

    _setup_logging(args.verbose)
    settings = load_settings()

    with build_fetcher(settings) as fetcher:
        index = build_index(settings, fetcher)
        print(run_once(index, args.date))

        if args.watch:
            try:
                run_forever(index, settings)
            except KeyboardInterrupt:
                logging.getLogger(__name__).info("Watcher stopped.")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
