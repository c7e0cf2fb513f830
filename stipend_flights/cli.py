"""Command-line interface for the stipend flight pricer"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiofiles
import orjson
from loguru import logger

from .cache import PersistentCache
from .config import DEFAULT_ARTIFACT_DIR, DEFAULT_CACHE_FILE, DEFAULT_LOG_FILE
from .cost_model import FlightCostModel
from .date_utils import format_date, travel_dates, validate_trip_dates
from .geo import CityDirectory
from .logging_config import setup_logging
from .models import Query
from .pricing import FlightPricer, scrape_flight_price, scrape_many


def resolve_dates(args: argparse.Namespace) -> Tuple[str, str]:
    """
    Outbound/return dates from --dates, or from the conference window.

    Raises:
        ValueError: If no dates are given or they are invalid
    """
    if args.dates:
        outbound, return_date = args.dates
    elif args.conference_start and args.conference_end:
        return travel_dates(args.conference_start, args.conference_end)
    else:
        raise ValueError("Provide --dates OUTBOUND RETURN or --conference-start/--conference-end")

    valid, error = validate_trip_dates(outbound, return_date)
    if not valid:
        raise ValueError(error)
    return format_date(outbound), format_date(return_date)


async def write_output(payload: Any, output: Optional[Path]) -> None:
    """Print JSON to stdout and, when requested, write it to a file"""
    json_bytes = orjson.dumps(payload, option=orjson.OPT_INDENT_2)
    sys.stdout.write(json_bytes.decode("utf-8") + "\n")
    sys.stdout.flush()
    if output is None:
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(output, "wb") as f:
        await f.write(json_bytes)
    logger.info(f"💾 Result written to {output}")


def record_actual_price(
    cache: PersistentCache, cities: CityDirectory, origin: str, destination: str, outbound: str, price: float
) -> Dict[str, Any]:
    """Store a known fare as a cost-model training observation"""
    distance = cities.distance_km(origin, destination)
    if not distance:
        raise ValueError(f"Cannot resolve a positive distance for {origin} → {destination}")
    entry = FlightCostModel(cache, cities=cities).record_observation(
        distance, origin, destination, price, observed_on=outbound
    )
    return {
        "origin": origin,
        "destination": destination,
        "distance_km": round(distance, 1),
        "actual_price": price,
        "model_price": entry.cost,
        "error": entry.metadata.error,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Round-trip airfare lookup for conference travel stipends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Trip
    trip_group = parser.add_argument_group("Trip")
    trip_group.add_argument("--origin", type=str, required=True, help="Origin city, e.g. 'Seoul, South Korea'")
    trip_group.add_argument("--destination", type=str, help="Destination city")
    trip_group.add_argument(
        "--destinations",
        type=str,
        nargs="+",
        help="Several destination cities priced as one batch",
    )
    trip_group.add_argument(
        "--dates",
        nargs=2,
        metavar=("OUTBOUND", "RETURN"),
        help="Outbound and return dates (YYYY-MM-DD)",
    )
    trip_group.add_argument("--conference-start", type=str, help="First conference day (YYYY-MM-DD)")
    trip_group.add_argument("--conference-end", type=str, help="Last conference day (YYYY-MM-DD)")

    # Pricing
    pricing_group = parser.add_argument_group("Pricing")
    pricing_group.add_argument(
        "--include-budget",
        action="store_true",
        help="Include non-alliance (budget) carriers",
    )
    pricing_group.add_argument(
        "--estimate-only",
        action="store_true",
        help="Skip live sources and use the distance-based estimate",
    )
    pricing_group.add_argument("--no-amadeus", action="store_true", help="Do not query Amadeus")
    pricing_group.add_argument(
        "--no-estimate",
        action="store_true",
        help="Return a null price instead of an estimate when live sources fail",
    )
    pricing_group.add_argument(
        "--record-actual",
        type=float,
        metavar="PRICE",
        help="Store PRICE as a known fare for training the cost model",
    )
    pricing_group.add_argument(
        "--max-concurrent",
        type=int,
        default=2,
        help="Browsers running at once in batch mode (default: 2)",
    )

    # Configuration
    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument("--cache", type=str, help=f"Cache file (default: {DEFAULT_CACHE_FILE})")
    config_group.add_argument("--cities-csv", type=str, help="Extra city coordinates (city,lat,lng,iata)")
    config_group.add_argument("--no-headless", action="store_true", help="Visible browser mode")
    config_group.add_argument(
        "--artifacts",
        type=str,
        default=str(DEFAULT_ARTIFACT_DIR),
        help="Directory for screenshots and HTML snapshots",
    )
    config_group.add_argument("--no-artifacts", action="store_true", help="Do not save diagnostics")
    config_group.add_argument("--output", type=str, help="Also write the JSON result to this file")
    config_group.add_argument("--verbose", action="store_true", help="Debug logging")
    config_group.add_argument("--quiet", action="store_true", help="Only warnings and errors on stderr")
    config_group.add_argument("--log-file", type=str, help="Log file path")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.destination and not args.destinations:
        parser.error("one of --destination or --destinations is required")

    log_file = Path(args.log_file) if args.log_file else DEFAULT_LOG_FILE
    setup_logging(verbose=args.verbose, log_file=log_file, quiet=args.quiet)

    output = Path(args.output) if args.output else None

    async def run():
        try:
            outbound, return_date = resolve_dates(args)
        except ValueError as e:
            logger.error(f"❌ {e}")
            sys.exit(1)

        cache = PersistentCache(Path(args.cache) if args.cache else DEFAULT_CACHE_FILE)
        cities = CityDirectory()
        if args.cities_csv:
            cities.load_csv(Path(args.cities_csv))

        destinations = args.destinations or [args.destination]
        logger.info(f"Trip dates: {outbound} → {return_date}")

        if args.record_actual is not None:
            try:
                summary = record_actual_price(
                    cache, cities, args.origin, destinations[0], outbound, args.record_actual
                )
            except ValueError as e:
                logger.error(f"❌ {e}")
                sys.exit(1)
            await write_output(summary, output)
            return

        if args.estimate_only:
            model = FlightCostModel(cache, cities=cities)
            results = []
            for destination in destinations:
                price, source = model.estimate_route(args.origin, destination)
                results.append({"destination": destination, "price": price, "source": source})
            await write_output(results if args.destinations else results[0], output)
            return

        pricer = FlightPricer(
            cache=cache,
            cities=cities,
            headless=not args.no_headless,
            use_amadeus=not args.no_amadeus,
            estimate_on_failure=not args.no_estimate,
            artifact_dir=None if args.no_artifacts else Path(args.artifacts),
        )

        if args.destinations:
            queries = [
                Query(args.origin, destination, outbound, return_date, args.include_budget)
                for destination in destinations
            ]
            results = await scrape_many(queries, concurrency=args.max_concurrent, pricer=pricer)
            payload = [
                dict(result.to_dict(), destination=query.destination)
                for query, result in zip(queries, results)
            ]
        else:
            result = await scrape_flight_price(
                args.origin,
                args.destination,
                {"outbound": outbound, "return": return_date},
                include_budget=args.include_budget,
                pricer=pricer,
            )
            payload = result.to_dict()

        await write_output(payload, output)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
