"""Generate a server metrics report once and print it to stdout.

Usage:
    python -m scripts.run_report                      # all hosts, write files, email
    python -m scripts.run_report --no-email --days 3
    python -m scripts.run_report --summary-only       # print summaries, no render/email
"""

import argparse
import asyncio
import logging
import sys

from src.config import get_settings
from src.metrics.store import MetricsStore
from src.report.generator import NoMetricsError, generate_report, summarize_hosts

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)


async def main(args: argparse.Namespace) -> int:
    """Generate and print the report. Returns the process exit code."""
    store = MetricsStore.from_settings(get_settings())
    try:
        if args.summary_only:
            for entry in await summarize_hosts(store, args.days):
                print(f"## {entry['hostname']}\n\n{entry['summary']}\n")
            return 0

        result = await generate_report(store, args.days, send_email=not args.no_email, write_files=not args.no_files)
        print(result["markdown"])
        if result["pdf_path"]:
            print(f"PDF written to {result['pdf_path']}", file=sys.stderr)
        print(f"Emailed: {result['emailed']}", file=sys.stderr)
        return 0
    except NoMetricsError as e:
        print(str(e), file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Failed to generate report: {e}", file=sys.stderr)
        return 1
    finally:
        await store.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--days", type=int, default=None, help="Lookback window in days")
    parser.add_argument("--no-email", action="store_true", help="Do not email the report")
    parser.add_argument("--no-files", action="store_true", help="Do not write HTML/PDF files")
    parser.add_argument("--summary-only", action="store_true", help="Only print per-host summaries")
    sys.exit(asyncio.run(main(parser.parse_args())))
