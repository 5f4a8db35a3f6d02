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

import time
import logging
from google import genai
from google.genai import types
from models import prompts

logger = logging.getLogger(__name__)

DEFAULT_OCR_MODEL = "gemini-2.0-flash"
OCR_MAX_OUTPUT_TOKENS = 8192


class GeminiInvalidResponseException(Exception):
    pass


class GeminiNotConfiguredError(Exception):
    pass


def _make_client(api_key: str | None) -> genai.Client:
    if not api_key:
        raise GeminiNotConfiguredError("Gemini API key is not configured")
    return genai.Client(api_key=api_key)


def ocr_page_to_markdown(
    image_bytes: bytes,
    api_key: str | None,
    model: str = DEFAULT_OCR_MODEL,
    mime_type: str = "image/png",
) -> str:
    """
    Runs OCR on a single page image and returns Markdown.

    The prompt asks the model to wrap sections in <chunk> tags, so the output
    can be split with chunking.split_ocr_chunks.

    Args:
        image_bytes (bytes): The page image.
        api_key (str): The Gemini API key.
        model (str): The model to call with.
        mime_type (str): The image MIME type.

    Returns:
        str: The page as Markdown.
    """
    client = _make_client(api_key)
    start_time = time.time()
    response = client.models.generate_content(
        model=model,
        contents=[
            prompts.OCR_MARKDOWN_PROMPT,
            types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
        ],
        config=types.GenerateContentConfig(
            temperature=0, max_output_tokens=OCR_MAX_OUTPUT_TOKENS
        ),
    )
    logger.info(
        "Gemini OCR call (%s, %d bytes) took %.2fs",
        model,
        len(image_bytes),
        time.time() - start_time,
    )
    if not response.text:
        raise GeminiInvalidResponseException("Gemini returned an empty OCR result")
    return response.text
