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
Direct text extraction from PDFs and the heuristic that decides whether the
extracted text is good enough to skip OCR.
"""

from __future__ import annotations

import io
import logging
import re
from typing import List

from pdfminer.high_level import extract_text as pdfminer_extract_text
from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

# A page with fewer meaningful characters than this is treated as image-only.
MIN_PAGE_CHARS = 30
# Below this many meaningful characters in total the document is not worth indexing as text.
MIN_DOCUMENT_CHARS = 100
MIN_TEXTUAL_PAGE_RATIO = 0.5
MAX_GARBAGE_RATIO = 0.1

# Letters, digits and CJK ideographs/kana count as meaningful.
_MEANINGFUL_CHAR = re.compile(r"[^\W_]", re.UNICODE)
# pdfminer emits "(cid:123)" for glyphs it cannot map; pypdf emits U+FFFD.
_GARBAGE_MARKER = re.compile(r"\(cid:\d+\)|\ufffd")
_SENTENCE_END = re.compile(r"[.!?\u3002\uff01\uff1f:\uff1a]$")


def extract_page_texts(pdf_data: bytes) -> List[str]:
    """
    Extracts the embedded text of every page.

    Args:
        pdf_data (bytes): The raw PDF.

    Returns:
        List[str]: One string per page, in page order ("" for pages without text).

    Raises:
        ValueError: If the bytes are not a readable PDF.
    """
    try:
        reader = PdfReader(io.BytesIO(pdf_data))
        pages = list(reader.pages)
    except (PdfReadError, OSError) as e:
        raise ValueError(f"Could not read PDF: {e}") from e

    page_texts: List[str] = []
    for index, page in enumerate(pages):
        try:
            page_texts.append(page.extract_text() or "")
        except Exception as e:
            logger.warning("Text extraction failed on page %d: %s", index + 1, e)
            page_texts.append("")
    return page_texts


def count_pages(pdf_data: bytes) -> int:
    try:
        return len(PdfReader(io.BytesIO(pdf_data)).pages)
    except (PdfReadError, OSError) as e:
        raise ValueError(f"Could not read PDF: {e}") from e


def extract_first_page_text(pdf_data: bytes) -> str:
    """Layout-aware text of the first page, used for metadata suggestions."""
    try:
        return pdfminer_extract_text(io.BytesIO(pdf_data), page_numbers=[0]) or ""
    except Exception as e:
        logger.warning("pdfminer could not read first page: %s", e)
        return ""


def meaningful_char_count(text: str) -> int:
    # Strip garbage markers first so "(cid:12)" does not count as "cid12".
    return len(_MEANINGFUL_CHAR.findall(_GARBAGE_MARKER.sub("", text)))


def garbage_ratio(text: str) -> float:
    meaningful = meaningful_char_count(text)
    garbage = len(_GARBAGE_MARKER.findall(text))
    if meaningful == 0:
        return 1.0 if garbage else 0.0
    return garbage / meaningful


def is_textual_page(text: str) -> bool:
    return (
        meaningful_char_count(text) >= MIN_PAGE_CHARS
        and garbage_ratio(text) < MAX_GARBAGE_RATIO
    )


def is_text_extractable(page_texts: List[str]) -> bool:
    """
    Decides whether direct extraction produced usable text.

    The document qualifies when at least half of its pages are textual and
    the total amount of meaningful text clears MIN_DOCUMENT_CHARS. Scanned
    documents typically fail the page ratio; PDFs with broken font maps fail
    the garbage check.
    """
    if not page_texts:
        return False
    textual_pages = sum(1 for text in page_texts if is_textual_page(text))
    if textual_pages / len(page_texts) < MIN_TEXTUAL_PAGE_RATIO:
        return False
    total_chars = sum(
        meaningful_char_count(text) for text in page_texts if is_textual_page(text)
    )
    return total_chars >= MIN_DOCUMENT_CHARS


def _normalize_line(line: str) -> str:
    return re.sub(r"[ \t\u3000]+", " ", line).strip()


_CJK_CHAR = re.compile(r"[\u3000-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uff00-\uffef]")


def _join_lines(lines: List[str]) -> str:
    # Japanese lines wrap mid-sentence and join without a space.
    joined = ""
    for line in lines:
        if joined and not (
            _CJK_CHAR.match(joined[-1]) and _CJK_CHAR.match(line[0])
        ):
            joined += " "
        joined += line
    return joined


def _page_to_paragraphs(text: str) -> List[str]:
    """
    Rebuilds paragraphs from hard-wrapped PDF lines.

    Blank lines always end a paragraph; otherwise a line that ends with
    sentence punctuation ends one.
    """
    paragraphs: List[str] = []
    current: List[str] = []
    for raw_line in _GARBAGE_MARKER.sub("", text).splitlines():
        line = _normalize_line(raw_line)
        if not line:
            if current:
                paragraphs.append(_join_lines(current))
                current = []
            continue
        current.append(line)
        if _SENTENCE_END.search(line):
            paragraphs.append(_join_lines(current))
            current = []
    if current:
        paragraphs.append(_join_lines(current))
    return paragraphs


def page_texts_to_markdown(page_texts: List[str]) -> str:
    """Joins extracted pages into Markdown paragraphs separated by blank lines."""
    paragraphs: List[str] = []
    for text in page_texts:
        paragraphs.extend(_page_to_paragraphs(text))
    return "\n\n".join(paragraphs)
