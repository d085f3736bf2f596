"""
Interface for reading and writing the off-chain submission mirror.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import os

import requests
from bittensor.utils.btlogging import logging

from campaign_engine.constants import (
    DEFAULT_MIRROR_TABLE,
    DEFAULT_STORE_TIMEOUT,
    ENV_SUPABASE_KEY,
    ENV_SUPABASE_URL,
)
from campaign_engine.domain.mirror import MirrorStatus, SubmissionMirror
from campaign_engine.errors import MirrorNotFoundError, MirrorStoreError


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class IMirrorStore(ABC):
    """Interface for the submission mirror store."""

    @abstractmethod
    def get(self, mirror_id: str) -> SubmissionMirror:
        """
        Load one mirror row.

        Raises:
            MirrorNotFoundError: If no row has this id
            MirrorStoreError: If the store could not be read
        """
        pass

    @abstractmethod
    def update(self, mirror_id: str, fields: Dict[str, Any]) -> None:
        """
        Overwrite the given columns of one mirror row.

        Raises:
            MirrorStoreError: If the write failed
        """
        pass

    @abstractmethod
    def list_by_status(self, status: MirrorStatus) -> List[SubmissionMirror]:
        """
        List mirrors in a given status, most recent first.

        Returns:
            List of mirrors. Empty list if unavailable.
        """
        pass


class SupabaseMirrorStore(IMirrorStore):
    """
    Mirror store backed by a Supabase table through its PostgREST endpoint.

    Uses the service role key; row-level security does not apply.
    """

    def __init__(
        self,
        supabase_url: str = None,
        service_key: str = None,
        table: str = DEFAULT_MIRROR_TABLE,
        timeout: int = DEFAULT_STORE_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize mirror store.

        Args:
            supabase_url: Project URL. If not provided, must be set via SUPABASE_URL env var.
            service_key: Service role key. If not provided, must be set via SUPABASE_SERVICE_ROLE_KEY env var.
            table: Table holding submission rows
            timeout: Per-request timeout in seconds
            session: Optional requests session (connection reuse, tests)

        Raises:
            ValueError: If the URL or key is neither passed nor set in environment.
        """
        self.supabase_url = (supabase_url or os.getenv(ENV_SUPABASE_URL) or "").rstrip("/")
        self.service_key = service_key or os.getenv(ENV_SUPABASE_KEY)
        if not self.supabase_url:
            raise ValueError(f"{ENV_SUPABASE_URL} must be set as environment variable or passed as parameter")
        if not self.service_key:
            raise ValueError(f"{ENV_SUPABASE_KEY} must be set as environment variable or passed as parameter")
        self.table = table
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def _url(self) -> str:
        return f"{self.supabase_url}/rest/v1/{self.table}"

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    def get(self, mirror_id: str) -> SubmissionMirror:
        try:
            response = self.session.get(
                self._url,
                params={"id": f"eq.{mirror_id}", "select": "*"},
                headers=self._headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            raise MirrorStoreError(f"Failed to load mirror {mirror_id}: {e}") from e
        except ValueError as e:
            raise MirrorStoreError(f"Failed to parse mirror {mirror_id} response: {e}") from e

        if not rows:
            raise MirrorNotFoundError(f"Mirror {mirror_id} not found")
        return SubmissionMirror.from_row(rows[0])

    def update(self, mirror_id: str, fields: Dict[str, Any]) -> None:
        payload = dict(fields)
        payload.setdefault("updated_at", utc_now_iso())
        try:
            response = self.session.patch(
                self._url,
                params={"id": f"eq.{mirror_id}"},
                json=payload,
                headers={**self._headers, "Prefer": "return=representation"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            raise MirrorStoreError(f"Failed to update mirror {mirror_id}: {e}") from e
        except ValueError as e:
            raise MirrorStoreError(f"Failed to parse update response for mirror {mirror_id}: {e}") from e

        if not rows:
            raise MirrorNotFoundError(f"Mirror {mirror_id} not found for update")
        logging.debug(f"Updated mirror {mirror_id}: {sorted(payload)}")

    def list_by_status(self, status: MirrorStatus) -> List[SubmissionMirror]:
        try:
            response = self.session.get(
                self._url,
                params={"status": f"eq.{status.value}", "select": "*", "order": "created_at.desc"},
                headers=self._headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
            mirrors = [SubmissionMirror.from_row(row) for row in rows]
            logging.info(f"Fetched {len(mirrors)} mirrors with status {status.value}")
            return mirrors
        except requests.exceptions.RequestException as e:
            logging.warning(f"Failed to list mirrors with status {status.value}: {e}")
            return []
        except (ValueError, KeyError, TypeError) as e:
            logging.warning(f"Failed to parse mirror list for status {status.value}: {e}")
            return []
