"""
Document vault core package.

The ingestion subsystem turns files dropped into an ingress folder (or
uploaded over HTTP) into deduplicated, durably stored documents with
extracted text. It exposes dataclasses for documents and jobs, a pluggable
repository, storage helpers with an atomic relocator, text extraction over
OCR and page-rendering collaborators, and workers that report progress
through a persisted job tracker.
"""
