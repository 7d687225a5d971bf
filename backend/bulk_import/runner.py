# backend/bulk_import/runner.py
# CLI: import historical spreadsheets into stored submissions
#
#   python -m bulk_import.runner "CANN Contacts=exports/cann.xlsx" "CAS Registration=exports/cas.xlsx" --push

import argparse
import asyncio
import json
import sys
from typing import List, Optional, Tuple

from core import BulkImportError
from core.log import configure_logging
from forms.processor import FormProcessor, form_processor
from .config import DATA_SOURCES
from .service import BulkImportService, bulk_import_service


def parse_job(value: str) -> Tuple[str, str]:
    """'<data source>=<path>'"""
    source, sep, path = value.partition("=")
    if not sep or not path:
        raise argparse.ArgumentTypeError(f"expected '<data source>=<path>', got '{value}'")
    if source not in DATA_SOURCES:
        raise argparse.ArgumentTypeError(f"unknown data source '{source}' (choose from {', '.join(DATA_SOURCES)})")
    return source, path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import historical form data from Excel/CSV exports")
    parser.add_argument("jobs", nargs="+", type=parse_job, metavar="SOURCE=PATH",
                        help=f"data source ({' | '.join(DATA_SOURCES)}) and file path")
    parser.add_argument("--push", action="store_true",
                        help="push the imported submissions to Zoho CRM after importing")
    parser.add_argument("--log-level", default="INFO")
    return parser


def main(
    argv: Optional[List[str]] = None,
    service: BulkImportService = None,
    processor: FormProcessor = None
) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    service = service or bulk_import_service
    processor = processor or form_processor

    print("\n========== Starting Bulk Import ==========\n")
    created: List[int] = []
    exit_code = 0
    for source, path in args.jobs:
        print(f"Importing {source} from {path}...")
        try:
            result = service.import_from_file(path, source)
        except BulkImportError as e:
            print(f"{source} failed: {e.message}", file=sys.stderr)
            exit_code = 1
            continue
        print(json.dumps(result.model_dump(), indent=2))
        print(f"{source}: {result.success_count} success, {result.failed_count} failed, {result.skipped_count} skipped\n")
        created.extend(result.submission_ids)

    print("========== Import Complete ==========")
    print(f"Total Submissions Created: {len(created)}")

    if args.push and created:
        print("\n========== Pushing to Zoho CRM ==========\n")
        run = asyncio.run(processor.process_pending_submissions(created))
        for item in run.results:
            status = f"Zoho ID {item.zoho_crm_id}" if item.success else "; ".join(item.errors)
            print(f"[{item.submission_id}] {status}")
        print(f"Pushed: {run.successful} synced, {run.failed} failed")
        if run.failed:
            exit_code = 1
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
