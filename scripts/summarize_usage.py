#!/usr/bin/env python3
"""Summarize docgen JSON-lines usage logs."""

from __future__ import annotations

import argparse
import json
from collections import Counter
from pathlib import Path
from typing import Any


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize docgen usage logs.")
    parser.add_argument("files", nargs="+", help="One or more JSONL usage log files.")
    parser.add_argument("--json", action="store_true", help="Output JSON.")
    parser.add_argument("--top", type=int, default=10, help="Parties listed in the summary.")
    return parser.parse_args()


def summarize_usage_files(paths: list[Path], *, top: int = 10) -> dict[str, Any]:
    document_type_counts: Counter[str] = Counter()
    user_counts: Counter[str] = Counter()
    party_counts: Counter[str] = Counter()
    days: Counter[str] = Counter()
    parse_errors = 0
    events_total = 0

    for path in paths:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except Exception:  # noqa: BLE001
            parse_errors += 1
            continue

        for line in lines:
            raw = line.strip()
            if not raw:
                continue

            try:
                payload = json.loads(raw)
            except Exception:  # noqa: BLE001
                parse_errors += 1
                continue

            if not isinstance(payload, dict) or "document_type" not in payload:
                parse_errors += 1
                continue

            events_total += 1
            document_type_counts[str(payload["document_type"])] += 1
            user_counts[str(payload.get("user") or "(anonymous)")] += 1

            party = payload.get("party")
            if isinstance(party, str) and party.strip():
                party_counts[party.strip()] += 1

            timestamp = payload.get("timestamp")
            if isinstance(timestamp, str) and len(timestamp) >= 10:
                days[timestamp[:10]] += 1

    return {
        "files": [str(path) for path in paths],
        "events_total": events_total,
        "parse_errors": parse_errors,
        "document_type_counts": dict(sorted(document_type_counts.items())),
        "user_counts": dict(sorted(user_counts.items())),
        "top_parties": [
            {"party": party, "count": count}
            for party, count in sorted(party_counts.items(), key=lambda item: (-item[1], item[0]))[
                :top
            ]
        ],
        "first_day": min(days) if days else None,
        "last_day": max(days) if days else None,
    }


def main() -> None:
    args = _parse_args()
    paths = [Path(item).expanduser() for item in args.files]
    summary = summarize_usage_files(paths, top=args.top)

    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2, sort_keys=True))
        return

    print("docgen Usage Summary")
    print(f"files={len(summary['files'])}")
    print(f"events_total={summary['events_total']}")
    print(f"parse_errors={summary['parse_errors']}")
    print(f"document_type_counts={summary['document_type_counts']}")
    print(f"user_counts={summary['user_counts']}")
    print(f"first_day={summary['first_day']} last_day={summary['last_day']}")
    for entry in summary["top_parties"]:
        print(f"party={entry['party']} count={entry['count']}")


if __name__ == "__main__":
    main()
