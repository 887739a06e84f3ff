#!/usr/bin/env python3
"""
Print the contents of a simulation results database.

Usage:
    python scripts/inspect_db.py outputs/design_comparison/ds_results.db
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dssim_tools.simulation import load_ds_results


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)

    db_path = Path(sys.argv[1])
    if not db_path.exists():
        print(f"Error: {db_path} not found")
        sys.exit(1)

    print(f"Inspecting {db_path}")
    results = load_ds_results(db_path)

    for name, df in results.items():
        print(f"\n--- {name} ({len(df)} rows) ---")
        print(df.head())

    estimates = results["estimates"]
    if len(estimates):
        print("\n--- Abundance by design ---")
        print(
            estimates.groupby("design")["abundance"]
            .agg(["count", "mean", "std"])
            .round(1)
        )

    errors = results["errors"]
    if len(errors):
        print("\n--- Failures by design and stage ---")
        print(errors.groupby(["design", "stage"]).size())


if __name__ == "__main__":
    main()
