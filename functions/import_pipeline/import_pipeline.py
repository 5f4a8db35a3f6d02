# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from import_pipeline import chunking, page_images, pdf_text
from shared.constants import CHUNK_SEPARATOR
from shared.types import ExtractionMethod

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
OcrPageFn = Callable[[bytes], str]
# Receives "EXTRACTING", "OCR" or "UPLOADING" as the pipeline moves on.
StageCallback = Callable[[str], None]

STAGE_EXTRACTING = "EXTRACTING"
STAGE_OCR = "OCR"
STAGE_UPLOADING = "UPLOADING"

# Dify splits pipeline uploads only on CHUNK_SEPARATOR.
PIPELINE_SEGMENT_MAX_TOKENS = 1000


class NoExtractableTextError(Exception):
    """Neither direct extraction nor OCR produced any text."""


@dataclass
class PdfConversionResult:
    chunks: List[str]
    method: ExtractionMethod
    page_count: int
    skipped_pages: List[int] = field(default_factory=list)


@dataclass
class IngestResult:
    dataset_id: str
    name: str
    method: ExtractionMethod
    chunk_count: int
    page_count: int
    skipped_pages: List[int]
    dify_document_id: Optional[str]
    batch: Optional[str]
    response: Dict[str, Any]


def _report(progress_callback: Optional[ProgressCallback], value: float) -> None:
    if progress_callback:
        progress_callback(min(100.0, max(0.0, value)))


def convert_pdf_to_markdown_chunks(
    pdf_data: bytes,
    ocr_page: Optional[OcrPageFn] = None,
    ocr_enabled: bool = True,
    render_scale: float = page_images.DEFAULT_RENDER_SCALE,
    max_chunk_units: int = chunking.DEFAULT_MAX_UNITS,
    progress_callback: Optional[ProgressCallback] = None,
    stage_callback: Optional[StageCallback] = None,
) -> PdfConversionResult:
    """
    Converts a PDF into Markdown chunks.

    Direct text extraction is tried first. When the extracted text does not
    pass pdf_text.is_text_extractable, every page is rendered to an image and
    sent through ocr_page instead.

    Args:
        pdf_data (bytes): The raw PDF.
        ocr_page: Callable turning a PNG page image into Markdown. Required
            for the OCR branch.
        ocr_enabled (bool): If false, never falls back to OCR.
        render_scale (float): Page render scale for OCR.
        max_chunk_units (int): Max chunk size for extracted text.
        progress_callback: Receives overall progress from 0 to 100.
        stage_callback: Told when extraction starts and when OCR takes over.

    Returns:
        PdfConversionResult: The chunks and how they were produced.

    Raises:
        ValueError: If the PDF cannot be read.
        NoExtractableTextError: If no chunk could be produced.
    """
    if stage_callback:
        stage_callback(STAGE_EXTRACTING)
    page_texts = pdf_text.extract_page_texts(pdf_data)
    page_count = len(page_texts)
    _report(progress_callback, 5)

    use_text = pdf_text.is_text_extractable(page_texts)
    if not use_text and (not ocr_enabled or ocr_page is None):
        # OCR unavailable: index whatever text exists rather than nothing.
        use_text = any(text.strip() for text in page_texts)
        if use_text:
            logger.warning(
                "PDF text is sparse and OCR is unavailable; using extracted text"
            )

    if use_text:
        logger.info("Using direct text extraction for %d pages", page_count)
        markdown = pdf_text.page_texts_to_markdown(page_texts)
        chunks = chunking.chunk_markdown(markdown, max_units=max_chunk_units)
        _report(progress_callback, 100)
        if not chunks:
            raise NoExtractableTextError("PDF contains no extractable text")
        return PdfConversionResult(
            chunks=chunks, method=ExtractionMethod.TEXT, page_count=page_count
        )

    if not ocr_enabled or ocr_page is None:
        raise NoExtractableTextError(
            "PDF has no extractable text and OCR is disabled"
        )

    logger.info("PDF text not extractable; falling back to OCR for %d pages", page_count)
    if stage_callback:
        stage_callback(STAGE_OCR)
    images = page_images.render_pdf_pages(
        pdf_data,
        scale=render_scale,
        progress_callback=lambda p: _report(progress_callback, 5 + p / 2),
    )
    _report(progress_callback, 55)

    rendered_pages = {page_number for page_number, _ in images}
    skipped_pages = [
        n for n in range(1, page_count + 1) if n not in rendered_pages
    ]
    chunks: List[str] = []
    for i, (page_number, image_bytes) in enumerate(images):
        logger.info("OCR page %d/%d", page_number, page_count)
        start_time = time.time()
        try:
            page_markdown = ocr_page(image_bytes)
        except Exception as e:
            # A failed page must not abort the whole document.
            logger.error("OCR failed on page %d: %s", page_number, e)
            skipped_pages.append(page_number)
        else:
            page_chunks = chunking.split_ocr_chunks(page_markdown)
            logger.info(
                "OCR page %d produced %d chunks in %.2fs",
                page_number,
                len(page_chunks),
                time.time() - start_time,
            )
            chunks.extend(page_chunks)
        _report(progress_callback, 55 + (i + 1) / len(images) * 45)

    _report(progress_callback, 100)
    if not chunks:
        raise NoExtractableTextError("OCR produced no text for any page")
    return PdfConversionResult(
        chunks=chunks,
        method=ExtractionMethod.OCR,
        page_count=page_count,
        skipped_pages=sorted(skipped_pages),
    )


def join_chunks(chunks: List[str]) -> str:
    return f"\n\n{CHUNK_SEPARATOR}\n\n".join(chunks)


def make_pipeline_process_rule() -> Dict[str, Any]:
    return {
        "mode": "custom",
        "rules": {
            "pre_processing_rules": [
                {"id": "remove_extra_spaces", "enabled": True},
                {"id": "remove_urls_emails", "enabled": False},
            ],
            "segmentation": {
                "separator": CHUNK_SEPARATOR,
                "max_tokens": PIPELINE_SEGMENT_MAX_TOKENS,
            },
        },
    }


def ingest_pdf(
    pdf_data: bytes,
    dataset_id: str,
    name: str,
    dify_client,
    ocr_page: Optional[OcrPageFn] = None,
    ocr_enabled: bool = True,
    render_scale: float = page_images.DEFAULT_RENDER_SCALE,
    indexing_technique: str = "high_quality",
    progress_callback: Optional[ProgressCallback] = None,
    stage_callback: Optional[StageCallback] = None,
    conversion_progress_weight: float = 0.9,
) -> IngestResult:
    """
    Converts a PDF to Markdown chunks and stores them as one knowledge-base document.

    Args:
        pdf_data (bytes): The raw PDF.
        dataset_id (str): The Dify dataset to store the document in.
        name (str): The document name in the knowledge base.
        dify_client: Client exposing create_document_by_text.
        ocr_page: OCR callable used when text extraction is insufficient.
        ocr_enabled (bool): If false, never falls back to OCR.
        render_scale (float): Page render scale for OCR.
        indexing_technique (str): "high_quality" or "economy".
        progress_callback: Receives overall progress from 0 to 100.
        stage_callback: Receives the current pipeline stage.
        conversion_progress_weight (float): Share of the progress bar used by
            conversion; the rest covers the upload.

    Returns:
        IngestResult: Details of the stored document.
    """
    conversion = convert_pdf_to_markdown_chunks(
        pdf_data,
        ocr_page=ocr_page,
        ocr_enabled=ocr_enabled,
        render_scale=render_scale,
        progress_callback=lambda p: _report(
            progress_callback, p * conversion_progress_weight
        ),
        stage_callback=stage_callback,
    )
    if stage_callback:
        stage_callback(STAGE_UPLOADING)
    logger.info(
        "Uploading %d chunks (%s) to dataset %s as '%s'",
        len(conversion.chunks),
        conversion.method.value,
        dataset_id,
        name,
    )
    response = dify_client.create_document_by_text(
        dataset_id,
        name=name,
        text=join_chunks(conversion.chunks),
        indexing_technique=indexing_technique,
        process_rule=make_pipeline_process_rule(),
    )
    _report(progress_callback, 100)

    document = response.get("document") or {}
    return IngestResult(
        dataset_id=dataset_id,
        name=name,
        method=conversion.method,
        chunk_count=len(conversion.chunks),
        page_count=conversion.page_count,
        skipped_pages=conversion.skipped_pages,
        dify_document_id=document.get("id"),
        batch=response.get("batch"),
        response=response,
    )
