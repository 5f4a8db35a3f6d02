"""
Backend package for the document portal API.

This package provides a FastAPI application over Firebase (Firestore,
Storage, Auth) and Dify, plus the job records, queue and worker that run
PDF ingestion into the knowledge base.
"""
