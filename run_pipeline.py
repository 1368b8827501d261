#!/usr/bin/env python3
"""
Table-Driven Literature Review Pipeline

Usage:
    python run_pipeline.py --collection ABCD1234 --name "My review"
    python run_pipeline.py --collection ABCD1234 --name "My review" --excel
    python run_pipeline.py --collection ABCD1234 --name "My review" --mode pdf
    python run_pipeline.py --create-config      # Write config/review.yaml and exit
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from tablereview.aggregate import export_table_matrix
from tablereview.checkpoints import (
    checkpoint_final_review,
    checkpoint_source_review,
    display_progress,
)
from tablereview.config import load_config, write_default_config
from tablereview.exceptions import ConfigurationError, SynthesisError
from tablereview.llm import create_summarizer
from tablereview.log import console, setup_logging
from tablereview.mineru import MineruClient
from tablereview.pdf_text import PdfTextExtractor
from tablereview.review import ReviewPipeline
from tablereview.utils import ensure_dir, safe_filename
from tablereview.zotero_store import ZoteroItemStore

logger = logging.getLogger("run_pipeline")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Table-Driven Literature Review Pipeline")
    parser.add_argument("--config", type=Path, default=Path("config/review.yaml"),
                        help="Path to the YAML settings file")
    parser.add_argument("--collection",
                        help="Zotero collection key whose PDFs are reviewed")
    parser.add_argument("--name", default="Literature Review",
                        help="Title of the review note")
    parser.add_argument("--prompt", default=None,
                        help="Override the review prompt")
    parser.add_argument("--mode", choices=["tables", "pdf"], default="tables",
                        help="tables: fill one table per PDF first (default); pdf: review the PDFs directly")
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Number of tables filled in parallel (overrides config)")
    parser.add_argument("--excel", action="store_true",
                        help="Also export the filled tables as an Excel matrix")
    parser.add_argument("--output", type=Path, default=Path("output"),
                        help="Folder for the review markdown and exports")
    parser.add_argument("--yes", "-y", action="store_true",
                        help="Skip confirmation prompts")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--create-config", action="store_true",
                        help="Write a default config file and exit")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    if args.create_config:
        write_default_config(args.config)
        console.print(f"  Default config written to {args.config}")
        return 0

    load_dotenv()

    try:
        config = load_config(args.config)
        if args.concurrency is not None:
            config.fill_concurrency = args.concurrency
        config.validate()
        if not args.collection:
            raise ConfigurationError("--collection is required")
        store = ZoteroItemStore.from_config(config)
        summarizer = create_summarizer(config)
    except ConfigurationError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return 1

    mineru = None
    if config.use_mineru:
        mineru = MineruClient(
            config.mineru_api_key,
            store,
            poll_interval=config.mineru_poll_interval,
            max_polls=config.mineru_max_polls,
        )
    pipeline = ReviewPipeline(config, store, summarizer, PdfTextExtractor(store, mineru))

    # ===========================================================================
    # PHASE 1: COLLECT SOURCES
    # ===========================================================================

    console.print("\n" + "=" * 78)
    console.print("  PHASE 1: COLLECT SOURCES")
    console.print("=" * 78 + "\n")

    attachments = store.collection_pdf_attachments(args.collection)
    if not attachments:
        console.print(f"  ERROR: No PDF attachments found in collection {args.collection}")
        return 1

    pairs = pipeline.build_pairs(attachments)
    console.print(f"  Found {len(attachments)} PDFs for {len(pairs)} sources")

    if not args.yes:
        cached_ids = {s.id for s, _ in pairs if pipeline.cache.find(s)} if args.mode == "tables" else set()
        choice = checkpoint_source_review(pairs, config, cached_ids, args.name)
        if choice == 'q':
            console.print("\n  Aborted by user.")
            return 0

    # ===========================================================================
    # PHASE 2: GENERATE REVIEW
    # ===========================================================================

    console.print("\n" + "=" * 78)
    console.print("  PHASE 2: GENERATE REVIEW")
    console.print("=" * 78 + "\n")

    try:
        if args.mode == "pdf":
            result = pipeline.generate_pdf_review(
                args.collection, attachments, args.name, args.prompt, progress=display_progress
            )
        else:
            result = pipeline.generate_review(
                args.collection, attachments, args.name, args.prompt, progress=display_progress
            )
    except SynthesisError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return 1

    # ===========================================================================
    # PHASE 3: WRITE OUTPUTS
    # ===========================================================================

    ensure_dir(args.output)
    md_path = args.output / f"{safe_filename(args.name)}.md"
    md_path.write_text(result.content, encoding="utf-8")
    logger.info("Review written to %s", md_path)
    output_files = {"Review markdown": md_path, "Zotero note": result.note.key}

    if args.excel and result.tables:
        xlsx_path = args.output / f"{safe_filename(args.name)}_tables.xlsx"
        export_table_matrix(result.tables, result.pairs, xlsx_path)
        output_files["Table matrix"] = xlsx_path

    checkpoint_final_review(result, output_files)
    console.print("  [OK] Pipeline complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
