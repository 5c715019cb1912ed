#!/usr/bin/env python3
"""Run the campus data repairs and print what changed."""

import argparse
import json

from app import create_app
from maintenance import repair


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--report-only",
        action="store_true",
        help="Only print the campus report, change nothing",
    )
    parser.add_argument(
        "--fix-constraints",
        action="store_true",
        help="Also replace name-only unique constraints (PostgreSQL)",
    )
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if not args.report_only:
            result = repair.run_repairs()
            print("Repairs:")
            print(json.dumps(result, indent=2, ensure_ascii=False))

        if args.fix_constraints:
            print("Unique constraints:")
            print(json.dumps(repair.ensure_unique_constraints(), indent=2, ensure_ascii=False, default=str))

        print("Campus report:")
        print(json.dumps(repair.campus_report(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
