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
Shared dataclasses and enums for the document portal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from shared.constants import (
    DEFAULT_ALLOWED_TYPES,
    DEFAULT_AI_MODEL,
    DEFAULT_AI_MAX_TOKENS,
    DEFAULT_MAX_FILE_SIZE_MB,
)


class IngestStatus(Enum):
    """Lifecycle of a knowledge-base ingestion job."""

    WAITING = "WAITING"
    EXTRACTING = "EXTRACTING"
    OCR = "OCR"
    UPLOADING = "UPLOADING"
    SUCCESS = "SUCCESS"
    ERROR_NO_TEXT = "ERROR_NO_TEXT"
    ERROR_KNOWLEDGE_BASE = "ERROR_KNOWLEDGE_BASE"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (
            IngestStatus.SUCCESS,
            IngestStatus.ERROR_NO_TEXT,
            IngestStatus.ERROR_KNOWLEDGE_BASE,
            IngestStatus.ERROR,
        )


class ExtractionMethod(Enum):
    TEXT = "text"
    OCR = "ocr"


@dataclass
class AiFeatureSettings:
    enabled: bool = True
    model: str = DEFAULT_AI_MODEL
    max_tokens: int = DEFAULT_AI_MAX_TOKENS


@dataclass
class StorageSettings:
    # Megabytes.
    max_file_size: int = DEFAULT_MAX_FILE_SIZE_MB
    allowed_types: List[str] = field(
        default_factory=lambda: list(DEFAULT_ALLOWED_TYPES)
    )


@dataclass
class FeatureToggles:
    ocr: bool = True
    ai_suggestions: bool = True
    cross_search: bool = True


@dataclass
class AppSettings:
    """Portal-wide settings editable from the admin screen."""

    id: str = "app"
    ai_features: AiFeatureSettings = field(default_factory=AiFeatureSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    features: FeatureToggles = field(default_factory=FeatureToggles)

    @property
    def max_file_size_bytes(self) -> int:
        return self.storage.max_file_size * 1024 * 1024


@dataclass
class AuthenticatedUser:
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.uid

    @property
    def initials(self) -> str:
        if self.name:
            parts = [p for p in self.name.split() if p]
            if len(parts) >= 2:
                return (parts[0][0] + parts[-1][0]).upper()
            if parts:
                return parts[0][:2].upper()
        if self.email:
            return self.email[:2].upper()
        return "??"
