"""
Runs the PDF ingestion pipeline locally and pushes the chunks to a Dify dataset.

Example:
    python scripts/ingest_pdf.py <dataset_id> minutes.pdf --name "2023 General Assembly"
    python scripts/ingest_pdf.py <dataset_id> scan.pdf --dry-run
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.config import get_settings
from backend.dependencies import get_dify_client, get_ocr_page
from import_pipeline import chunking, import_pipeline

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingest a PDF into a Dify dataset")
    parser.add_argument("dataset_id", type=str, help="Target Dify dataset id")
    parser.add_argument("pdf", type=Path, help="Path to the PDF file")
    parser.add_argument(
        "--name", type=str, default=None, help="Document name (defaults to file name)"
    )
    parser.add_argument(
        "--no-ocr", action="store_true", help="Never fall back to Gemini OCR"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Convert and print chunk stats without uploading",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    pdf_data = args.pdf.read_bytes()
    name = args.name or args.pdf.name
    ocr_page = None if args.no_ocr else get_ocr_page()
    start_time = time.time()

    def on_progress(percent: float) -> None:
        logger.debug("Progress %.0f%%", percent)

    if args.dry_run:
        result = import_pipeline.convert_pdf_to_markdown_chunks(
            pdf_data,
            ocr_page=ocr_page,
            ocr_enabled=not args.no_ocr,
            render_scale=settings.ocr_render_scale,
            progress_callback=on_progress,
        )
        sizes = [chunking.count_units(chunk) for chunk in result.chunks]
        print(f"Method: {result.method.value}")
        print(f"Pages: {result.page_count} (skipped: {result.skipped_pages or 'none'})")
        print(
            f"Chunks: {len(sizes)} (units min {min(sizes)}, "
            f"max {max(sizes)}, avg {sum(sizes) / len(sizes):.0f})"
        )
        print(f"Took {time.time() - start_time:.2f}s")
        return 0

    result = import_pipeline.ingest_pdf(
        pdf_data,
        dataset_id=args.dataset_id,
        name=name,
        dify_client=get_dify_client(),
        ocr_page=ocr_page,
        ocr_enabled=not args.no_ocr,
        render_scale=settings.ocr_render_scale,
        progress_callback=on_progress,
    )
    print(
        f"Uploaded '{name}' to {result.dataset_id}: {result.chunk_count} chunks "
        f"via {result.method.value}, document {result.dify_document_id}, "
        f"batch {result.batch}"
    )
    print(f"Took {time.time() - start_time:.2f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
