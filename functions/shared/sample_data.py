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
Sample building documents served by the "mock" data source.

Ids are ints here on purpose: the mock source goes through the same
normalization as Firestore data, which stringifies ids.
"""

from shared.constants import DEFAULT_AVATAR_URL, DEFAULT_PREVIEW_URL

SAMPLE_DOCUMENTS = [
    {
        "id": 1,
        "title": "General Assembly Minutes",
        "building": "Grand Palace Tokyo",
        "type": "PDF",
        "uploadedAt": "2023-12-15",
        "tags": ["minutes", "general assembly"],
        "description": (
            "Minutes of the second owners' association general assembly of "
            "FY2023. Main topics were the major repair plan and budget approval."
        ),
        "uploadedBy": {
            "name": "Taro Tanaka",
            "avatar": DEFAULT_AVATAR_URL,
            "initials": "TT",
        },
        "fileSize": "1.2 MB",
        "pages": 5,
        "previewUrl": DEFAULT_PREVIEW_URL,
        "relatedDocuments": [
            {"id": 2, "title": "Repair Work Estimate"},
            {"id": 5, "title": "Elevator Maintenance Report"},
        ],
    },
    {
        "id": 2,
        "title": "Repair Work Estimate",
        "building": "Sunshine Mansion",
        "type": "PDF",
        "uploadedAt": "2023-12-10",
        "tags": ["estimate", "repair"],
        "description": (
            "Estimate for exterior painting and waterproofing. The cheapest of "
            "three competing contractors was selected."
        ),
        "uploadedBy": {
            "name": "Hanako Sato",
            "avatar": DEFAULT_AVATAR_URL,
            "initials": "SH",
        },
        "fileSize": "3.5 MB",
        "pages": 12,
        "previewUrl": DEFAULT_PREVIEW_URL,
        "relatedDocuments": [{"id": 1, "title": "General Assembly Minutes"}],
    },
    {
        "id": 3,
        "title": "Fire Safety Equipment Inspection Report",
        "building": "Park Heights Yokohama",
        "type": "PDF",
        "uploadedAt": "2023-12-05",
        "tags": ["inspection", "fire safety"],
        "description": (
            "Annual fire safety inspection report. Part of the sprinkler system "
            "is faulty and needs repair."
        ),
        "uploadedBy": {
            "name": "Ichiro Suzuki",
            "avatar": DEFAULT_AVATAR_URL,
            "initials": "SI",
        },
        "fileSize": "2.8 MB",
        "pages": 8,
        "previewUrl": DEFAULT_PREVIEW_URL,
        "relatedDocuments": [],
    },
    {
        "id": 4,
        "title": "Parking Lot Terms of Use",
        "building": "Riverside Tower Osaka",
        "type": "PDF",
        "uploadedAt": "2023-11-28",
        "tags": ["rules", "parking"],
        "description": (
            "New terms of use for the parking lot, with updated fees and rules "
            "for visitor parking spaces."
        ),
        "uploadedBy": {
            "name": "Kenta Yamada",
            "avatar": DEFAULT_AVATAR_URL,
            "initials": "YK",
        },
        "fileSize": "0.9 MB",
        "pages": 3,
        "previewUrl": DEFAULT_PREVIEW_URL,
        "relatedDocuments": [],
    },
    {
        "id": 5,
        "title": "Elevator Maintenance Report",
        "building": "Green Hills Sapporo",
        "type": "PDF",
        "uploadedAt": "2023-11-20",
        "tags": ["inspection", "elevator"],
        "description": (
            "Periodic elevator maintenance report. No issues found; includes a "
            "notice about parts due for scheduled replacement."
        ),
        "uploadedBy": {
            "name": "Keiko Takahashi",
            "avatar": DEFAULT_AVATAR_URL,
            "initials": "TK",
        },
        "fileSize": "1.7 MB",
        "pages": 6,
        "previewUrl": DEFAULT_PREVIEW_URL,
        "relatedDocuments": [{"id": 1, "title": "General Assembly Minutes"}],
    },
]
