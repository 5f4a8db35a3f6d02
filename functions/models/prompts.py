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
Prompt text for Gemini OCR and Dify metadata suggestions.
"""

from typing import Iterable, Tuple

from shared.constants import AVAILABLE_BUILDINGS, DOCUMENT_TYPE_EXAMPLES

OCR_MARKDOWN_PROMPT = """
OCR the following page into Markdown. Tables should be formatted as HTML.
Do not surround your output with triple backticks.
Chunk the document into sections of roughly 250 - 1000 words.
Surround each chunk with <chunk> and </chunk> tags.
Preserve as much content as possible, including headings, tables, etc.
Don't try to output any image.
Output should be in Japanese if the original text is in Japanese.
"""

# Only this much extracted text is sent along with the analysis prompt.
MAX_ANALYSIS_TEXT_CHARS = 4000


def make_analyze_document_prompt(
    document_text: str,
    filename: str,
    buildings: Iterable[Tuple[str, str]] = AVAILABLE_BUILDINGS,
) -> str:
    building_lines = "\n   ".join(
        f"- {name} (ID: {building_id})" for building_id, name in buildings
    )
    excerpt = document_text.strip()[:MAX_ANALYSIS_TEXT_CHARS]
    if not excerpt:
        excerpt = "(no text could be extracted; rely on the file name)"
    return f"""
You are an assistant that analyzes condominium management documents.
Analyze the document below and extract or infer the following:

1. Document title: a title of at most 30 characters that summarizes the content.
2. Building: choose the related building from this list. If the document does
   not name one explicitly, pick the most likely one from its content.
   {building_lines}
3. Description: a summary of at most 100 characters of what the document is about.

Typical document types: {", ".join(DOCUMENT_TYPE_EXAMPLES)}.

File name: {filename}

Document text:
{excerpt}

Answer with JSON in the following format:
```json
{{
  "title": "Suggested title",
  "building": "building1",
  "buildingName": "Grand Palace Tokyo",
  "description": "Document description"
}}
```
"""
