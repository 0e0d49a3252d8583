"""
Telemetry Sources - CLI.

============================================================
USAGE
============================================================
python -m telemetry_sources.cli fetch --results 10
python -m telemetry_sources.cli history --start "2024-01-01 00:00:00"
python -m telemetry_sources.cli probe --channel-id 12397 --api-key XXXX

Credentials default to THINGSPEAK_CHANNEL_ID / THINGSPEAK_API_KEY.
Client tuning is read from the THINGSPEAK_* environment variables.

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from telemetry_sources.client import ResilientChannelClient
from telemetry_sources.config import ChannelSettings, ClientConfig
from telemetry_sources.diagnostics import probe_connection
from telemetry_sources.exceptions import (
    ChannelClientError,
    ConfigurationError,
    FetchCancelledError,
    InvalidResponseError,
    NetworkError,
    NetworkErrorKind,
    ValidationError,
)
from telemetry_sources.models import MAX_RESULTS, ChannelPayload


logger = logging.getLogger(__name__)


NETWORK_MESSAGES = {
    NetworkErrorKind.NOT_FOUND: "Channel not found. Check the channel ID.",
    NetworkErrorKind.UNAUTHORIZED: "Invalid API key or insufficient permissions. Check your read key.",
    NetworkErrorKind.RATE_LIMITED: "ThingSpeak rate limit exceeded. Please try again later.",
    NetworkErrorKind.SERVER_ERROR: "ThingSpeak server error. Please try again later.",
    NetworkErrorKind.GENERIC: "Could not reach ThingSpeak. Check your connection.",
}


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="thingspeak-fetch",
        description="Fetch ThingSpeak channel feeds with retries, caching and fallbacks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  fetch     - Latest feed entries of a channel
  history   - Feed entries in a date range
  probe     - Check the direct and proxy paths

Examples:
  %(prog)s fetch --results 10
  %(prog)s history --start "2024-01-01 00:00:00" --end "2024-01-02 00:00:00"
  %(prog)s probe --proxy-url https://proxy.example.com/thingspeak
        """
    )
    
    parser.add_argument(
        "--channel-id",
        type=str,
        help="Channel ID (default: THINGSPEAK_CHANNEL_ID)",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        help="Read API key (default: THINGSPEAK_API_KEY)",
    )
    parser.add_argument(
        "--proxy-url",
        type=str,
        metavar="URL",
        help="Proxy endpoint used when the direct path fails",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    
    subparsers = parser.add_subparsers(dest="command", required=True)
    
    fetch_parser = subparsers.add_parser("fetch", help="Fetch the latest feed entries")
    fetch_parser.add_argument(
        "--results",
        type=int,
        default=None,
        metavar="N",
        help="Number of entries (default: THINGSPEAK_RESULTS or 100)",
    )
    fetch_parser.add_argument(
        "--bypass-cache",
        action="store_true",
        help="Skip the fresh-cache lookup",
    )
    
    history_parser = subparsers.add_parser("history", help="Fetch entries in a date range")
    history_parser.add_argument(
        "--start",
        type=str,
        required=True,
        metavar="'YYYY-MM-DD HH:MM:SS'",
        help="Range start (UTC)",
    )
    history_parser.add_argument(
        "--end",
        type=str,
        default=None,
        metavar="'YYYY-MM-DD HH:MM:SS'",
        help="Range end (UTC, default: now)",
    )
    
    subparsers.add_parser("probe", help="Check the direct and proxy paths")
    
    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def resolve_settings(args: argparse.Namespace, settings: ChannelSettings) -> ChannelSettings:
    """Overlay CLI credentials on the environment settings."""
    results = getattr(args, "results", None)
    return ChannelSettings(
        channel_id=args.channel_id or settings.channel_id,
        api_key=args.api_key or settings.api_key,
        results_to_fetch=settings.results_to_fetch if results is None else results,
    )


def validate_args(settings: ChannelSettings) -> List[str]:
    """Return a list of validation errors."""
    errors = []
    if not settings.is_configured():
        errors.append(
            "ThingSpeak credentials are missing or invalid. "
            "Pass --channel-id/--api-key or set THINGSPEAK_CHANNEL_ID/THINGSPEAK_API_KEY"
        )
    if not 1 <= settings.results_to_fetch <= MAX_RESULTS:
        errors.append(f"--results must be between 1 and {MAX_RESULTS}")
    return errors


def describe_error(error: ChannelClientError) -> str:
    """User-facing message for a typed client error."""
    if isinstance(error, NetworkError):
        return NETWORK_MESSAGES[error.kind]
    if isinstance(error, InvalidResponseError):
        return "ThingSpeak returned an unexpected response."
    if isinstance(error, FetchCancelledError):
        return "Fetch cancelled."
    if isinstance(error, (ValidationError, ConfigurationError)):
        return error.message
    return str(error)


def render_payload(payload: ChannelPayload) -> str:
    return json.dumps(payload.to_dict(), indent=2)


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(
    args: argparse.Namespace,
    settings: ChannelSettings,
    config: ClientConfig,
) -> int:
    """
    Async main entry point.
    
    Returns:
        Exit code
    """
    async with ResilientChannelClient(config) as client:
        try:
            if args.command == "probe":
                report = await probe_connection(client, settings.channel_id, settings.api_key)
                print(json.dumps(report.to_dict(), indent=2))
                return 0 if report.success else 1
            
            if args.command == "history":
                payload = await client.fetch_historical_data(
                    settings.channel_id,
                    settings.api_key,
                    start=args.start,
                    end=args.end,
                )
            else:
                payload = await client.fetch_channel(
                    settings.channel_id,
                    settings.api_key,
                    results=settings.results_to_fetch,
                    bypass_cache=args.bypass_cache,
                )
        except ChannelClientError as e:
            logger.debug(f"Fetch failed: {e.to_dict()}")
            print(f"Error: {describe_error(e)}", file=sys.stderr)
            return 1
    
    if payload.meta.is_degraded:
        source = "proxy" if payload.meta.via_proxy else "cache"
        print(f"Warning: showing degraded data from {source}", file=sys.stderr)
    
    print(render_payload(payload))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.
    
    Args:
        argv: Command line arguments (default: sys.argv[1:])
        
    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    
    try:
        settings = resolve_settings(args, ChannelSettings.from_env())
        config = ClientConfig.from_env()
        if args.proxy_url:
            config = replace(config, proxy_url=args.proxy_url)
    except (ConfigurationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    
    errors = validate_args(settings)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 2
    
    return asyncio.run(async_main(args, settings, config))


if __name__ == "__main__":
    sys.exit(main())
