from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import IO, List, Optional, Sequence

from .classifiers import BaseClassifier, classify, load_classifiers
from .client import DnsSd
from .codec import ReceivedMessage
from .config.config_parser import load_config
from .config.logging_config import init_logging
from .errors import FoglightError

logger = logging.getLogger("foglight.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="foglight", description="Discover and monitor mDNS / DNS-SD services"
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override logging.level (debug, info, warn, error, crit)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    disc = sub.add_parser("discover", help="Query for services and print responders")
    disc.add_argument("names", nargs="+", help="Service names, e.g. _googlecast._tcp.local")
    disc.add_argument("--wait", type=int, default=None, help="Seconds to collect responses")
    disc.add_argument(
        "--packets",
        action="store_true",
        help="Include the decoded response packet in each result",
    )

    mon = sub.add_parser("monitor", help="Print every mDNS message seen on the network")
    mon.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    return parser


def _emit(obj: dict, out: IO[str]) -> None:
    out.write(json.dumps(obj, sort_keys=True) + "\n")
    out.flush()


async def run_discover(
    client: DnsSd,
    names: Sequence[str],
    wait: Optional[int],
    classifiers: Sequence[BaseClassifier],
    out: IO[str],
    *,
    include_packets: bool = False,
) -> int:
    """
    Brief: Run one discovery and print one JSON object per responder.

    Inputs:
      - client: DnsSd instance
      - names: requested service names
      - wait: collection window in seconds (None uses the configured default)
      - classifiers: classifier chain applied to every descriptor
      - out: text stream for results
      - include_packets: keep the decoded packet in the output

    Outputs:
      - int: exit code (0)
    """
    descriptors = await client.discover(list(names), wait)
    for descriptor in descriptors:
        record = descriptor.to_dict()
        if not include_packets:
            record.pop("packet", None)
        result = classify(descriptor, classifiers)
        record["model_name"] = result.model_name if result else None
        record["family_name"] = result.family_name if result else None
        _emit(record, out)
    return 0


async def run_monitor(client: DnsSd, duration: Optional[float], out: IO[str]) -> int:
    def _print(received: ReceivedMessage) -> None:
        _emit({"address": received.address, "packet": received.message.to_dict()}, out)

    client.subscribe(_print)
    await client.start_monitoring()
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await client.close()
    return 0


def main(argv: Optional[List[str]] = None, *, out: Optional[IO[str]] = None) -> int:
    """
    Command line entry point.

    Args:
        argv: Command-line arguments.
        out: Stream for JSON results (default: stdout).

    Returns:
        An exit code: 0 on success, 1 on configuration or network errors.

    Example use:
        foglight discover _googlecast._tcp.local --wait 2
        foglight --log-level debug monitor --duration 30
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    out = out or sys.stdout

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    if args.log_level:
        cfg.logging["level"] = args.log_level

    init_logging(cfg.logging)
    if args.config:
        logger.debug("Loaded config from %s", args.config)

    try:
        classifiers = load_classifiers(cfg.classifiers)
    except (AttributeError, ImportError, KeyError, TypeError, ValueError) as exc:
        logger.error("Cannot load classifiers: %s", exc)
        return 1

    client = DnsSd(cfg)
    try:
        if args.command == "discover":
            return asyncio.run(
                run_discover(
                    client,
                    args.names,
                    args.wait,
                    classifiers,
                    out,
                    include_packets=args.packets,
                )
            )
        return asyncio.run(run_monitor(client, args.duration, out))
    except FoglightError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
