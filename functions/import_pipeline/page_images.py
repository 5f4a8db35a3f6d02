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

"""
Renders PDF pages to PNG images for OCR.
"""

from __future__ import annotations

import io
import logging
from typing import Callable, List, Optional, Tuple

import pypdfium2 as pdfium

logger = logging.getLogger(__name__)

DEFAULT_RENDER_SCALE = 1.5


def render_pdf_pages(
    pdf_data: bytes,
    scale: float = DEFAULT_RENDER_SCALE,
    progress_callback: Optional[Callable[[float], None]] = None,
) -> List[Tuple[int, bytes]]:
    """
    Renders every page of the PDF to PNG bytes.

    Args:
        pdf_data (bytes): The raw PDF.
        scale (float): Render scale; 1.0 is 72 dpi.
        progress_callback: Called with a 0-100 value after each page.

    Returns:
        List[Tuple[int, bytes]]: (1-based page number, PNG bytes) in page
            order. Pages that fail to render are logged and left out.
    """
    try:
        pdf = pdfium.PdfDocument(pdf_data)
    except pdfium.PdfiumError as e:
        raise ValueError(f"Could not open PDF for rendering: {e}") from e

    images: List[Tuple[int, bytes]] = []
    try:
        page_count = len(pdf)
        logger.info("Rendering %d PDF pages at scale %.1f", page_count, scale)
        for index in range(page_count):
            try:
                page = pdf[index]
                pil_image = page.render(scale=scale).to_pil()
                buffer = io.BytesIO()
                pil_image.save(buffer, format="PNG")
                images.append((index + 1, buffer.getvalue()))
            except Exception as e:
                logger.error("Could not render page %d: %s", index + 1, e)
            if progress_callback:
                progress_callback((index + 1) / page_count * 100)
    finally:
        pdf.close()
    return images
