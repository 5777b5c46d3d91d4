"""
HTTP clients for the OCR and PDF rendering services.

Both services speak multipart uploads in and JSON out. Any transport error,
non-200 status or `error` field in the payload becomes a `CollaboratorError`.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, List, Optional

import httpx

from .errors import CollaboratorError


class _ServiceClient:
    service_name = "service"

    def __init__(self, base_url: str, timeout: float = 120.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def _post(self, path: str, files: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.client.post(url, files=files)
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"failed to call {self.service_name}: {exc}") from exc
        if resp.status_code != 200:
            raise CollaboratorError(
                f"{self.service_name} returned error status {resp.status_code}: {resp.text[:200]}"
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise CollaboratorError(f"failed to decode {self.service_name} response: {exc}") from exc
        if not isinstance(payload, dict):
            raise CollaboratorError(f"unexpected {self.service_name} response: {payload!r}")
        if payload.get("error"):
            raise CollaboratorError(f"{self.service_name} error: {payload['error']}")
        return payload

    def close(self) -> None:
        self.client.close()


class HttpOcrClient(_ServiceClient):
    service_name = "OCR service"

    def recognize(self, image: bytes, filename: str) -> str:
        payload = self._post("/ocr", files={"image": (filename, image, "application/octet-stream")})
        return payload.get("text") or ""


class HttpPageRenderer(_ServiceClient):
    service_name = "PDF service"

    def render(self, document: bytes) -> List[bytes]:
        payload = self._post("/pdf/to-image", files={"pdf": ("document.pdf", document, "application/pdf")})
        encoded = payload.get("images")
        if encoded is None and payload.get("image"):
            encoded = [payload["image"]]
        if not encoded:
            raise CollaboratorError("PDF service returned no page images")
        try:
            return [base64.b64decode(item) for item in encoded]
        except (binascii.Error, TypeError) as exc:
            raise CollaboratorError(f"failed to decode page image: {exc}") from exc
