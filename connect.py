#!/usr/bin/env python3
"""
CLI host for the HTTP connectors.

Usage:
    connect read http --config source.json --limit 100 --output records.jsonl
    connect read http --config source.json --stop-when-empty --quiet
    connect write http --config destination.json --input records.jsonl
    connect params http source
"""

import argparse
import json
import logging
import sys
import threading
import time
from datetime import datetime
from pathlib import Path

from tqdm import tqdm

from connectors import REGISTRY
from src.engine import BackoffRetry, CheckpointStore, Record
from src.engine.errors import PartialWriteError

logger = logging.getLogger(__name__)


def load_config(path: str) -> dict[str, str]:
    """Read a JSON object of settings. Non-string values are stringified."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a JSON object")

    cfg = {}
    for key, value in data.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        cfg[str(key)] = value if isinstance(value, str) else json.dumps(value)
    return cfg


def cmd_read(args, connector):
    cfg = load_config(args.config)
    scope_key = args.scope or connector.connector_key
    store = CheckpointStore(args.state_dir)

    position, total = None, 0
    if not args.no_resume:
        position, total = store.get_last_checkpoint(scope_key)

    source = connector.new_source()
    source.configure(cfg)
    source.open(position)

    cancel = threading.Event()
    out = open(args.output, "a", encoding="utf-8") if args.output else sys.stdout
    pbar = (
        tqdm(total=args.limit or None, desc=f"Reading {scope_key}", unit="record")
        if not args.quiet
        else None
    )

    count = 0
    last_position = None
    try:
        while not args.limit or count < args.limit:
            try:
                record = source.read(cancel)
            except BackoffRetry:
                if args.stop_when_empty:
                    logger.info("No new records, stopping")
                    break
                logger.debug(f"No new records, backing off {args.backoff}s")
                time.sleep(args.backoff)
                continue

            out.write(json.dumps(record.to_json_dict()) + "\n")
            out.flush()
            source.ack(record.position)

            count += 1
            last_position = record.position
            if count % args.checkpoint_every == 0:
                store.save_checkpoint(scope_key, last_position, total + count)

            if pbar:
                pbar.update(1)
    except KeyboardInterrupt:
        cancel.set()
        raise
    finally:
        if last_position is not None:
            store.save_checkpoint(scope_key, last_position, total + count)
        if pbar:
            pbar.close()
        if out is not sys.stdout:
            out.close()
        source.teardown()

    print(f"Done! Read {count} records for {scope_key}", file=sys.stderr)
    return 0


def _read_records(f):
    for line_no, line in enumerate(f, 1):
        line = line.strip()
        if not line:
            continue
        try:
            yield Record.from_json_dict(json.loads(line))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"invalid record on line {line_no}: {e}") from e


def cmd_write(args, connector):
    cfg = load_config(args.config)
    dest = connector.new_destination()
    dest.configure(cfg)
    dest.open()

    inp = open(args.input, encoding="utf-8") if args.input else sys.stdin
    pbar = tqdm(desc="Writing", unit="record") if not args.quiet else None

    written = 0
    batch = []

    def flush():
        nonlocal written
        try:
            n = dest.write(batch)
        except PartialWriteError as e:
            written += e.written
            raise
        written += n
        if pbar:
            pbar.update(n)
        batch.clear()

    try:
        for record in _read_records(inp):
            batch.append(record)
            if len(batch) >= args.batch_size:
                flush()
        if batch:
            flush()
    finally:
        if pbar:
            pbar.close()
        if inp is not sys.stdin:
            inp.close()
        dest.teardown()
        logger.info(f"Wrote {written} records")

    print(f"Done! Wrote {written} records", file=sys.stderr)
    return 0


def cmd_params(args, connector):
    if args.role == "source":
        parameters = connector.source_parameters
    else:
        parameters = connector.destination_parameters

    for name, param in parameters.items():
        flags = []
        if param.required:
            flags.append("required")
        if param.default is not None:
            flags.append(f"default={param.default}")
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"{name}{suffix}\n    {param.description}")
    return 0


def main(argv=None):
    connector_keys = list(REGISTRY.keys())

    # Shared args inherited by all subcommands
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument("connector", choices=connector_keys, help="Connector")
    shared.add_argument("--quiet", action="store_true", help="Suppress progress bars")
    shared.add_argument(
        "--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"]
    )

    parser = argparse.ArgumentParser(description="HTTP connector host")
    sub = parser.add_subparsers(dest="command")

    # read <connector>
    read_p = sub.add_parser("read", parents=[shared], help="Run a source")
    read_p.add_argument("--config", required=True, help="JSON config file")
    read_p.add_argument("--limit", type=int, default=0, help="Stop after N records")
    read_p.add_argument("--output", help="Append records here (default: stdout)")
    read_p.add_argument("--state-dir", default="state", help="Checkpoint directory")
    read_p.add_argument("--scope", help="Checkpoint key (default: connector name)")
    read_p.add_argument(
        "--checkpoint-every", type=int, default=100, help="Checkpoint frequency"
    )
    read_p.add_argument("--no-resume", action="store_true", help="Don't resume from checkpoint")
    read_p.add_argument(
        "--stop-when-empty", action="store_true", help="Exit when a poll finds nothing"
    )
    read_p.add_argument(
        "--backoff", type=float, default=1.0, help="Seconds to wait after an empty poll"
    )

    # write <connector>
    write_p = sub.add_parser("write", parents=[shared], help="Run a destination")
    write_p.add_argument("--config", required=True, help="JSON config file")
    write_p.add_argument("--input", help="JSON lines file (default: stdin)")
    write_p.add_argument("--batch-size", type=int, default=10, help="Records per write")

    # params <connector> {source,destination}
    params_p = sub.add_parser("params", parents=[shared], help="Show declared parameters")
    params_p.add_argument("role", choices=["source", "destination"])

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # Logging setup
    handlers = [logging.StreamHandler()]
    if args.quiet:
        log_dir = Path("logs")
        log_dir.mkdir(exist_ok=True)
        log_file = log_dir / f"connect_{datetime.now().strftime('%Y%m%d')}.log"
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )

    connector = REGISTRY[args.connector]

    try:
        if args.command == "read":
            return cmd_read(args, connector)
        elif args.command == "write":
            return cmd_write(args, connector)
        elif args.command == "params":
            return cmd_params(args, connector)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
