"""
Pydantic schemas for the document portal API.

Request and response bodies use the camelCase keys the web client sends.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.constants import DEFAULT_SEARCH_METHOD, DEFAULT_SEARCH_TOP_K


class HealthResponse(BaseModel):
    status: str = "ok"


class RelatedDocument(BaseModel):
    id: str
    title: str


class UploadedBy(BaseModel):
    name: str
    avatar: Optional[str] = None
    initials: Optional[str] = None


class KnowledgeBaseRef(BaseModel):
    datasetId: str
    documentId: Optional[str] = None
    batch: Optional[str] = None
    status: Optional[str] = None


class DocumentModel(BaseModel):
    """A building document as stored; unknown keys pass through."""

    model_config = ConfigDict(extra="allow")

    id: str
    title: str = ""
    building: str = ""
    type: Optional[str] = None
    uploadedAt: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    description: str = ""
    uploadedBy: Optional[UploadedBy] = None
    fileSize: Optional[str] = None
    pages: Optional[int] = None
    previewUrl: Optional[str] = None
    storagePath: Optional[str] = None
    relatedDocuments: List[RelatedDocument] = Field(default_factory=list)
    knowledgeBase: Optional[KnowledgeBaseRef] = None


class DocumentListResponse(BaseModel):
    documents: List[DocumentModel]


class DocumentResponse(BaseModel):
    document: DocumentModel


class CreateDocumentResponse(BaseModel):
    document: DocumentModel
    ingestJobId: Optional[str] = None


class DocumentUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    building: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    relatedDocuments: Optional[List[RelatedDocument]] = None


class SuccessResponse(BaseModel):
    success: bool = True


class FileUrlResponse(BaseModel):
    url: str


class AskRequest(BaseModel):
    query: str
    conversationId: Optional[str] = None


class AskResponse(BaseModel):
    answer: str
    conversationId: Optional[str] = None
    timestamp: str


class ExtractTextRequest(BaseModel):
    imageBase64: Optional[str] = None
    mimeType: str = "image/png"


class ExtractTextResponse(BaseModel):
    markdown: str


class CreateDatasetRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    permission: str = "only_me"
    indexingTechnique: str = "high_quality"


class SearchRequest(BaseModel):
    query: Optional[str] = None
    topK: int = Field(DEFAULT_SEARCH_TOP_K, ge=1, le=100)
    searchMethod: str = DEFAULT_SEARCH_METHOD


class DatasetSearchRequest(SearchRequest):
    # The key is required; null searches with an empty query.
    query: Optional[str]


class CreateTextDocumentRequest(BaseModel):
    name: Optional[str] = None
    text: Optional[str] = None
    indexingTechnique: str = "high_quality"
    metadata: Optional[dict] = None


class SuggestedMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    building: Optional[str] = None
    buildingName: Optional[str] = None
    description: Optional[str] = None


class AnalyzeResponse(BaseModel):
    success: bool = True
    metadata: SuggestedMetadata
    rawResponse: dict


class IngestJobResponse(BaseModel):
    jobId: str
    status: str
    stage: str
    progressPercent: float
    datasetId: str
    filename: str
    documentId: Optional[str] = None
    method: Optional[str] = None
    chunkCount: Optional[int] = None
    pageCount: Optional[int] = None
    difyDocumentId: Optional[str] = None
    difyBatch: Optional[str] = None
    error: Optional[str] = None


class AiFeaturesModel(BaseModel):
    enabled: bool = True
    model: str
    maxTokens: int = Field(..., gt=0)


class StorageSettingsModel(BaseModel):
    maxFileSize: int = Field(..., gt=0)
    allowedTypes: List[str]


class FeatureTogglesModel(BaseModel):
    ocr: bool = True
    aiSuggestions: bool = True
    crossSearch: bool = True


class AppSettingsModel(BaseModel):
    id: str = "app"
    aiFeatures: AiFeaturesModel
    storage: StorageSettingsModel
    features: FeatureTogglesModel
