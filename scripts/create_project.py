#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Create a project (and its API key) in the local SQLite event store.

Only the SQLite backend is handled here; Supabase projects are managed in the
Supabase dashboard.
"""

import argparse
import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pulseboard.common.errors import PulseboardError  # noqa: E402
from pulseboard.storage.db import SqliteStore  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a Pulseboard project and print its API key.")
    parser.add_argument("name", help="project display name")
    parser.add_argument(
        "--db",
        default=str(PROJECT_ROOT / "data" / "pulseboard.db"),
        help="SQLite database path (default: data/pulseboard.db under the repo root)",
    )
    parser.add_argument("--api-key", default=None, help="use this API key instead of generating one")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        store = SqliteStore(db_path=str(db_path))
    except PulseboardError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    try:
        project = store.create_project(args.name, api_key=args.api_key)
    except PulseboardError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    finally:
        store.close()

    print(json.dumps({"id": project.id, "name": project.name, "api_key": project.api_key}, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
