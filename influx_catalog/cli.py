# influx_catalog/cli.py
# The command-line entrypoint. Parses --mode and dispatches to onboarding, writing,
# listing measurements or the full write-then-read check.
import argparse
import sys

from influx_catalog.bootstrap.onboarding import Onboarder, bootstrap
from influx_catalog.config_loader import load_config, settings_from_config
from influx_catalog.consistency.visibility import wait_for_server
from influx_catalog.errors import CatalogError
from influx_catalog.logger import setup_logging
from influx_catalog.query.catalog import MeasurementCatalog
from influx_catalog.query.flux import STRATEGIES, strategy_for
from influx_catalog.scenario import run_catalog_check, sample_points
from influx_catalog.session import CatalogSession
from influx_catalog.storage.write_buffer import WriteBuffer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="influx-catalog")
    parser.add_argument("--config", "-c", default="config/config.yaml")
    parser.add_argument("--mode", choices=["onboard", "write", "measurements", "verify"], default="verify")
    parser.add_argument("--count", "-n", type=int, default=5, help="Number of sample points to write")
    parser.add_argument("--range", dest="range_start", default=None, help="Range start, e.g. -5y")
    parser.add_argument("--strategy", choices=list(STRATEGIES), default=None,
                        help="Catalog query shape")
    parser.add_argument("--log-level", default="INFO")
    return parser


def run(args, logger) -> int:
    settings = settings_from_config(load_config(args.config))
    logger.info("Loaded configuration for {} (org={}, bucket={})", settings.url, settings.org, settings.bucket)

    if args.mode == "onboard":
        settings.require_onboarding_fields()
        credential = Onboarder(settings.url, timeout_ms=settings.timeout_ms).onboard(
            settings.org, settings.bucket, settings.username, settings.password)
        print(f"Access token: {credential.token}")
        return 0

    credential = bootstrap(settings)
    strategy = strategy_for(args.strategy or settings.query_strategy)
    range_start = args.range_start or settings.range_start

    with CatalogSession(settings.url, credential, timeout_ms=settings.timeout_ms) as session:
        wait_for_server(session, settings.visibility)
        if args.mode == "write":
            buffer = WriteBuffer(session)
            buffer.write_points(settings.bucket, settings.org, sample_points(args.count))
            written = buffer.flush()
            print(f"Wrote {written} point(s) to {settings.bucket}")
        elif args.mode == "measurements":
            names = MeasurementCatalog(session, strategy).list_measurements(settings.bucket, start=range_start)
            for name in sorted(names):
                print(name)
        elif args.mode == "verify":
            check = run_catalog_check(session, settings.bucket, settings.org, count=args.count,
                                      policy=settings.visibility, catalog=MeasurementCatalog(session, strategy),
                                      start=range_start)
            print(f"expected={sorted(check.expected)} observed={sorted(check.observed)}")
            return 0 if check.ok else 1
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_level)
    try:
        return run(args, logger)
    except CatalogError as exc:
        logger.error("{}: {}", exc.code, exc.message)
        return 2
    except FileNotFoundError as exc:
        logger.error("{}", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
