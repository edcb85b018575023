#!/usr/bin/env python3
"""
Batch runner for building per-project defect datasets.

Usage:
    python build_datasets.py --project AVRO          # Build one project
    python build_datasets.py --all                   # Build every default project
    python build_datasets.py --all --diagnose        # ... and print a label report
    python build_datasets.py --all --monthly         # ... plus fixed tickets per month
    python build_datasets.py --status                # Check which datasets exist
"""

import argparse
from pathlib import Path

import pandas as pd

from defect_window import (
    DEFAULT_PROJECTS,
    diagnose_dataset,
    extract_dataset,
    extract_monthly_fixed_tickets,
)

# Configuration
OUTPUT_DIR = Path(__file__).parent / "output"


def dataset_path(output_dir: Path, project: str) -> Path:
    return output_dir / f"{project}_dataset.csv"


def monthly_path(output_dir: Path, project: str) -> Path:
    return output_dir / f"{project}_monthly_fixed.csv"


def run_projects(projects, output_dir: Path, diagnose: bool = False, monthly: bool = False) -> int:
    """Build and save the dataset of each project; returns how many succeeded"""
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"\n{'='*60}")
    print(f"BUILDING {len(projects)} PROJECT(S)")
    print(f"{'='*60}")
    print(f"Output: {output_dir}")

    done = 0
    for i, project in enumerate(projects, 1):
        print(f"\n[{i}/{len(projects)}] ", end="")
        try:
            dataset = extract_dataset(project)
            output_file = dataset.to_csv(dataset_path(output_dir, project))
            print(f"  Saved to: {output_file}")
            if diagnose:
                diagnose_dataset(dataset)
            if monthly:
                monthly_file = monthly_path(output_dir, project)
                extract_monthly_fixed_tickets(project).to_csv(monthly_file, index=False)
                print(f"  Saved to: {monthly_file}")
            done += 1
        except Exception as e:
            print(f"  ERROR: {e}")
            continue

    print(f"\n{'='*60}")
    print(f"COMPLETE: {done}/{len(projects)} projects")
    print(f"{'='*60}")

    return done


def show_status(projects, output_dir: Path):
    """Show which project datasets have been built"""
    print(f"\n{'='*60}")
    print("DATASET STATUS")
    print(f"{'='*60}")

    for project in projects:
        path = dataset_path(output_dir, project)
        if path.exists():
            df = pd.read_csv(path)
            buggy = int((df['Buggy'] == 'Yes').sum())
            status = f"DONE ({len(df)} rows, {buggy} buggy)"
        else:
            status = "PENDING"
        print(f"  {project:<15} {status}")


def main():
    parser = argparse.ArgumentParser(description='Build buggy-release datasets from Jira + git')
    parser.add_argument('--project', action='append', help='Jira project key (repeatable)')
    parser.add_argument('--all', action='store_true', help='Build every default project')
    parser.add_argument('--output-dir', type=Path, default=OUTPUT_DIR, help='Where CSV files go')
    parser.add_argument('--diagnose', action='store_true', help='Print a label quality report')
    parser.add_argument('--monthly', action='store_true', help='Also count fixed tickets per month')
    parser.add_argument('--status', action='store_true', help='Show progress status')
    args = parser.parse_args()

    projects = DEFAULT_PROJECTS if args.all else (args.project or [])

    if args.status:
        show_status(projects or DEFAULT_PROJECTS, args.output_dir)
        return

    if not projects:
        parser.print_help()
        print("\nExamples:")
        print("  python build_datasets.py --project AVRO     # One project")
        print("  python build_datasets.py --all              # All default projects")
        print("  python build_datasets.py --status           # Check progress")
        return

    run_projects([p.upper() for p in projects], args.output_dir, diagnose=args.diagnose, monthly=args.monthly)


if __name__ == "__main__":
    main()
