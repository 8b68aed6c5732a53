"""
CLI wrapper for compute_chart().

Usage:
    python -m qimen.run --name NAME --event "YYYY-MM-DD HH:MM" \
        --birth "YYYY-MM-DD HH:MM" --gender GENDER \
        [--now "YYYY-MM-DD HH:MM"] [--terms-file PATH] [--log-level LEVEL]
"""

import argparse
import logging
import sys

from qimen.astro_calendar import SolarTermTable
from qimen.config import EngineConfig
from qimen.create_chart import compute_chart
from qimen.errors import QimenError


def main(argv=None):
    parser = argparse.ArgumentParser(description="Compute a Qi Men chart and print it as JSON.")
    parser.add_argument("--name", required=True)
    parser.add_argument("--event", required=True, help="event timestamp, civil time")
    parser.add_argument("--birth", required=True, help="birth timestamp, civil time")
    parser.add_argument("--gender", required=True, choices=["male", "female", "男", "女"])
    parser.add_argument("--now", default=None, help="reference timestamp for the timeline")
    parser.add_argument("--terms-file", dest="terms_file", default=None,
                        help="section term feed, one instant per line")
    parser.add_argument("--log-level", dest="log_level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = EngineConfig.from_env()
        if args.terms_file:
            table = SolarTermTable.from_file(args.terms_file, config.civil)
        else:
            event = config.civil.localize(args.event)
            birth = config.civil.localize(args.birth)
            years = {event.year, birth.year}
            if args.now:
                years.add(config.civil.localize(args.now).year)
            span = set()
            for year in years:
                span.update((year - 1, year, year + 1))
            span = {y for y in span if 1900 <= y <= 2100}
            table = SolarTermTable.from_ephemeris(span, config.civil, config.ephe_path)

        result = compute_chart(
            event_ts=args.event,
            display_name=args.name,
            gender=args.gender,
            birth_ts=args.birth,
            table=table,
            config=config,
            now=args.now,
        )
    except QimenError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    print(result.to_json())
    return 0


if __name__ == "__main__":
    sys.exit(main())
