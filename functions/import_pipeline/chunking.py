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
Chunking of Markdown for knowledge-base storage.

Sizes are measured in "units": a whitespace-separated token, or a single
CJK character (Japanese text has no spaces, so each character counts as a
word). This keeps English and Japanese documents at comparable chunk sizes.
"""

from __future__ import annotations

import re
from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter

DEFAULT_MAX_UNITS = 1000

CHUNK_TAG_PATTERN = re.compile(r"<chunk>(.*?)</chunk>", re.DOTALL)

_CJK = r"\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\uff66-\uff9f"
_UNIT_PATTERN = re.compile(rf"[{_CJK}]|[^\s{_CJK}]+")
# Coarsest first. Separators stay at the end of the piece they close.
CHUNK_SEPARATORS = ["\n\n", "\n", "\u3002", ". ", " ", ""]


def count_units(text: str) -> int:
    return len(_UNIT_PATTERN.findall(text))


def split_ocr_chunks(markdown: str) -> List[str]:
    """
    Splits OCR output on <chunk>...</chunk> tags.

    Untagged output becomes a single chunk; blank output yields no chunks.
    """
    tagged = [m.strip() for m in CHUNK_TAG_PATTERN.findall(markdown)]
    tagged = [chunk for chunk in tagged if chunk]
    if tagged:
        return tagged
    # Tags present but all empty, or no tags at all.
    stripped = CHUNK_TAG_PATTERN.sub("", markdown).strip()
    return [stripped] if stripped else []


def chunk_markdown(
    text: str,
    max_units: int = DEFAULT_MAX_UNITS,
) -> List[str]:
    """
    Splits Markdown into chunks of at most max_units.

    Paragraphs are kept whole and packed together where they fit; a longer
    paragraph is split on lines, then sentences (Japanese or English), then
    words, and finally single characters.

    Args:
        text (str): Markdown with paragraphs separated by blank lines.
        max_units (int): Upper bound on chunk size.

    Returns:
        List[str]: Non-empty chunks in document order.
    """
    if max_units <= 0:
        raise ValueError("max_units must be positive")

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=max_units,
        chunk_overlap=0,
        separators=CHUNK_SEPARATORS,
        keep_separator="end",
        length_function=count_units,
    )
    return [chunk for chunk in splitter.split_text(text) if chunk.strip()]
