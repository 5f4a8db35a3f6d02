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
Constants shared between the API, the worker and the import pipeline.
"""

DOCUMENTS_COLLECTION = "documents"
SETTINGS_COLLECTION = "settings"
APP_SETTINGS_DOCUMENT_ID = "app"

DATA_SOURCE_FIREBASE = "firebase"
DATA_SOURCE_MOCK = "mock"
DATA_SOURCES = (DATA_SOURCE_FIREBASE, DATA_SOURCE_MOCK)
DATA_SOURCE_COOKIE = "dataSource"
DATA_SOURCE_HEADER = "x-data-source"

DEFAULT_AI_MODEL = "gemini-2.0-flash"
DEFAULT_AI_MAX_TOKENS = 4000
DEFAULT_MAX_FILE_SIZE_MB = 10
DEFAULT_ALLOWED_TYPES = ("application/pdf", "image/jpeg", "image/png")

# Short labels stored on Document.type.
FILE_TYPE_LABELS = {
    "application/pdf": "PDF",
    "image/jpeg": "JPG",
    "image/png": "PNG",
}

DEFAULT_AVATAR_URL = "/placeholder.svg?height=32&width=32"
DEFAULT_PREVIEW_URL = "/placeholder.svg?height=500&width=400"

# Knowledge-base defaults.
DEFAULT_SEARCH_TOP_K = 3
DEFAULT_SEARCH_METHOD = "hybrid_search"
SEARCH_METHODS = (
    "hybrid_search",
    "semantic_search",
    "keyword_search",
    "full_text_search",
)
INDEXING_TECHNIQUES = ("high_quality", "economy")
DATASET_PERMISSIONS = ("only_me", "all_team_members", "partial_members")

# Chunk separator shared by the ingestion pipeline and the Dify process rule.
CHUNK_SEPARATOR = "###"

NO_ANSWER_MESSAGE = "No answer could be generated."

AVAILABLE_BUILDINGS = (
    ("building1", "Grand Palace Tokyo"),
    ("building2", "Sunshine Mansion"),
    ("building3", "Park Heights Yokohama"),
    ("building4", "Riverside Tower Osaka"),
    ("building5", "Green Hills Sapporo"),
)

DOCUMENT_TYPE_EXAMPLES = (
    "Meeting minutes",
    "Report",
    "Estimate",
    "Contract",
    "Inspection record",
)
