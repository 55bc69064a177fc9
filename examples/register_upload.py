"""Sample ingestion step that records an upload through ingestdb."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from ingestdb import IngestDatabase, SchemaRequirementError, load_config


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", help="Inbox path of the uploaded file")
    parser.add_argument("user", help="Submitting user")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    config = load_config()
    logging.basicConfig(level=config.log_level.upper())

    with IngestDatabase.open(config.database, policy=config.retry, backend=config.backend) as database:
        try:
            file_id = database.register_file(args.path, args.user)
        except SchemaRequirementError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        message = json.dumps({"operation": "upload", "user": args.user, "filepath": args.path})
        database.mark_file_as_uploaded(file_id, args.user, message)
    print(f"registered {args.path} as {file_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
