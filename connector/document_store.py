"""Document database client utilities.

This module provides a thin HTTP client for the clinic's hosted document
database and a schedule store built on top of it. The client manages session
handling with retries and structured error reporting; the store maps physician
settings and appointment documents onto the availability engine's contracts.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from availability.booking_index import is_archived
from availability.policy import Policy
from availability.store import StoreAPIError, StoreError, WriteResult

__all__ = ["DocumentScheduleStore", "DocumentStoreClient", "query_equal", "query_not_equal"]


# Library module: handlers are left to the hosting application.
logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.5
DEFAULT_PAGE_LIMIT = 100

DEFAULT_ENDPOINT = os.getenv("DOCUMENT_STORE_ENDPOINT", "https://cloud.appwrite.io/v1")
DEFAULT_PROJECT_ID = os.getenv("DOCUMENT_STORE_PROJECT_ID")
DEFAULT_API_KEY = os.getenv("DOCUMENT_STORE_API_KEY")
DEFAULT_DATABASE_ID = os.getenv("DATABASE_ID")
DEFAULT_SETTINGS_COLLECTION_ID = os.getenv("DOCTOR_SETTINGS_COLLECTION_ID", "doctor_settings")
DEFAULT_APPOINTMENT_COLLECTION_ID = os.getenv("APPOINTMENT_COLLECTION_ID")


def query_equal(attribute: str, value: Any) -> str:
    return json.dumps({"method": "equal", "attribute": attribute, "values": [value]})


def query_not_equal(attribute: str, value: Any) -> str:
    return json.dumps({"method": "notEqual", "attribute": attribute, "values": [value]})


def _query_limit(limit: int) -> str:
    return json.dumps({"method": "limit", "values": [limit]})


def _query_offset(offset: int) -> str:
    return json.dumps({"method": "offset", "values": [offset]})


class DocumentStoreClient:
    """Client for the document database's REST API."""

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        project_id: Optional[str] = DEFAULT_PROJECT_ID,
        api_key: Optional[str] = DEFAULT_API_KEY,
        database_id: Optional[str] = DEFAULT_DATABASE_ID,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not endpoint:
            raise ValueError("endpoint must be provided")
        if not project_id or not api_key:
            raise ValueError("project_id and api_key must be provided")
        if not database_id:
            raise ValueError("database_id must be provided")

        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.api_key = api_key
        self.database_id = database_id
        self.timeout = timeout
        self._session = session or self._build_session(
            max_retries=max_retries, backoff_factor=backoff_factor
        )

    def _build_session(self, *, max_retries: int, backoff_factor: float) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            status=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET", "PUT", "DELETE", "OPTIONS"),
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _collection_path(self, collection_id: str) -> str:
        if not collection_id:
            raise ValueError("collection_id must be provided")
        return f"databases/{self.database_id}/collections/{collection_id}/documents"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_payload: Optional[Dict[str, Any]] = None,
        expected_status: Union[int, Tuple[int, ...]] = (200,),
    ) -> Dict[str, Any]:
        if isinstance(expected_status, int):
            expected_status = (expected_status,)

        url = f"{self.endpoint}/{path.lstrip('/')}"
        headers = {
            "X-Appwrite-Project": self.project_id,
            "X-Appwrite-Key": self.api_key,
            "Accept": "application/json",
        }

        try:
            response = self._session.request(
                method=method.upper(),
                url=url,
                params=params,
                json=json_payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Request to document store failed: %s", exc)
            raise StoreAPIError("Failed to execute request to document store") from exc

        if response.status_code not in expected_status:
            self._log_error_response(response)
            raise StoreAPIError(
                f"Document store responded with unexpected status {response.status_code}: {response.text}"
            )

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("Invalid JSON received from document store: %s", exc)
            raise StoreAPIError("Document store response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise StoreAPIError("Document store response must be a JSON object")
        return payload

    @staticmethod
    def _log_error_response(response: Response) -> None:
        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                parsed = response.json()
                logger.error("Document store error response: status=%s body=%s", response.status_code, parsed)
                return
            except ValueError:
                pass
        logger.error(
            "Document store error response: status=%s body=%s", response.status_code, response.text[:2048]
        )

    def list_documents(
        self,
        collection_id: str,
        queries: Sequence[str] = (),
        *,
        page_limit: int = DEFAULT_PAGE_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Return every document matching ``queries``, following pagination."""

        documents: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page_queries = list(queries) + [_query_limit(page_limit), _query_offset(offset)]
            payload = self._request(
                "GET", self._collection_path(collection_id), params={"queries[]": page_queries}
            )
            page = payload.get("documents") or []
            if not isinstance(page, list):
                raise StoreAPIError("Document list response is missing 'documents'")
            documents.extend(item for item in page if isinstance(item, dict))
            total = payload.get("total")
            offset += len(page)
            if not page or len(page) < page_limit or (isinstance(total, int) and offset >= total):
                return documents

    def create_document(
        self, collection_id: str, data: Dict[str, Any], *, document_id: str = "unique()"
    ) -> Dict[str, Any]:
        if not isinstance(data, dict) or not data:
            raise ValueError("data must be a non-empty dictionary")
        return self._request(
            "POST",
            self._collection_path(collection_id),
            json_payload={"documentId": document_id, "data": data},
            expected_status=(200, 201),
        )

    def update_document(
        self, collection_id: str, document_id: str, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        if not document_id:
            raise ValueError("document_id must be provided")
        return self._request(
            "PATCH",
            f"{self._collection_path(collection_id)}/{document_id}",
            json_payload={"data": data},
        )


class DocumentScheduleStore:
    """Policy and appointment store backed by :class:`DocumentStoreClient`."""

    def __init__(
        self,
        client: DocumentStoreClient,
        *,
        settings_collection_id: str = DEFAULT_SETTINGS_COLLECTION_ID,
        appointment_collection_id: Optional[str] = DEFAULT_APPOINTMENT_COLLECTION_ID,
    ) -> None:
        if not settings_collection_id or not appointment_collection_id:
            raise ValueError("settings and appointment collection ids must be provided")
        self._client = client
        self._settings_collection_id = settings_collection_id
        self._appointment_collection_id = appointment_collection_id

    def _find_settings(self, physician_id: str) -> Optional[Dict[str, Any]]:
        documents = self._client.list_documents(
            self._settings_collection_id, [query_equal("doctorId", physician_id)]
        )
        return documents[0] if documents else None

    def read_policy(self, physician_id: str) -> Optional[Policy]:
        document = self._find_settings(physician_id)
        if document is None:
            logger.info("No availability settings stored for %s", physician_id)
            return None
        availability = document.get("availability")
        if isinstance(availability, str):
            # Some deployments keep the rules as a JSON-encoded string attribute.
            try:
                availability = json.loads(availability)
            except ValueError as exc:
                raise StoreAPIError(f"Stored availability for {physician_id} is not valid JSON") from exc
        if not isinstance(availability, Mapping):
            return None
        return Policy.from_document(availability)

    def write_policy(self, physician_id: str, policy: Policy) -> WriteResult:
        data = {"doctorId": physician_id, "availability": json.dumps(policy.to_document())}
        try:
            existing = self._find_settings(physician_id)
            if existing is None:
                self._client.create_document(self._settings_collection_id, data)
            else:
                self._client.update_document(self._settings_collection_id, str(existing.get("$id")), data)
        except StoreError as exc:
            logger.error("Failed to save availability for %s: %s", physician_id, exc)
            return WriteResult(success=False, error=str(exc))
        logger.info("Saved availability settings for %s", physician_id)
        return WriteResult(success=True)

    def read_appointments(self, physician_id: str) -> List[Dict[str, Any]]:
        documents = self._client.list_documents(
            self._appointment_collection_id,
            [query_equal("primaryPhysician", physician_id), query_not_equal("status", "cancelled")],
        )
        return [document for document in documents if not is_archived(document)]

    def create_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._client.create_document(self._appointment_collection_id, data)
