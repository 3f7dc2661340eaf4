import argparse
import logging
from typing import List

from recipe_ingest.flow import ingest_batch_flow
from recipe_ingest.profiles import list_profiles
from recipe_ingest.results import RunResult
from recipe_ingest.settings import get_settings


def print_summary(results: List[RunResult | BaseException]) -> None:
    ok = [r for r in results if isinstance(r, RunResult) and r.status == "ok"]
    failed = len(results) - len(ok)

    print("\nIngestion Summary")
    print("=" * 40)
    print(f"Profiles : {len(results)}")
    print(f"Success  : {len(ok)}")
    print(f"Failed   : {failed}")
    print()

    for r in ok:
        print(
            f"- {r.profile}: {r.processed_files}/{r.total_files} files, "
            f"{r.error_count} errors\n"
            f"  artifact: {r.output_file}"
        )

    if failed:
        print("\nFailures:")
        for r in results:
            if not isinstance(r, RunResult):
                print(f"- {type(r).__name__}: {r}")
            elif r.status != "ok":
                print(f"- {r.profile} [{r.status}]: {r.message}")
    print()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Extract structured recipe metadata from markdown files with an LLM"
    )
    parser.add_argument(
        "profiles",
        nargs="*",
        help=f"Profiles to run: {', '.join(list_profiles())} (default: all)",
    )

    args = parser.parse_args()
    unknown = [p for p in args.profiles if p not in list_profiles()]
    if unknown:
        parser.error(f"unknown profile(s): {', '.join(unknown)}")

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    results = ingest_batch_flow(args.profiles or None)

    print_summary(results)


if __name__ == "__main__":
    main()
