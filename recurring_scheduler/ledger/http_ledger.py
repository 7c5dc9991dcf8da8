"""
HTTP ledger client — materializes transactions through a remote ledger API.

Endpoint::

    POST {base_url}/transactions
      → Auth: Bearer {api_key}   (omitted when no key is configured)
      → Body: TransactionSpec as JSON (dates as ISO-8601 strings)
      → Returns: {"transaction_id": "...", "created_at": "..."}  (2xx)

``id`` is accepted in place of ``transaction_id``. Any non-2xx response
raises ``httpx.HTTPStatusError``; a 2xx response without an id raises
``ValueError``. The engine wraps both into ``LedgerFailureError``.

Credential setup (.env, gitignored)::

  RECURRING_SCHEDULER_LEDGER_BACKEND=http
  RECURRING_SCHEDULER_LEDGER_BASE_URL=https://ledger.example.com/api
  RECURRING_SCHEDULER_LEDGER_API_KEY=your_api_key
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from recurring_scheduler.models.ledger import TransactionRef, TransactionSpec
from recurring_scheduler.utils.time_utils import parse_iso_datetime

logger = logging.getLogger(__name__)


class HttpLedgerClient:
    """``Ledger`` backed by a remote HTTP API.

    Args:
        base_url: API root, e.g. ``"https://ledger.example.com/api"``.
        api_key: Bearer token; no ``Authorization`` header when ``None``.
        timeout_seconds: Per-request timeout.
        client: Pre-built ``httpx.Client`` (tests pass one with a
            ``MockTransport``). Created on demand when omitted.
    """

    TRANSACTIONS_PATH = "/transactions"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

    def create_transaction(self, spec: TransactionSpec) -> TransactionRef:
        """POST ``spec`` to the ledger and return the created transaction's reference.

        Raises:
            httpx.HTTPStatusError: On non-2xx API response.
            httpx.HTTPError: On transport failures (timeouts, refused connections).
            ValueError: If the response carries no transaction id.
        """
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        resp = self._get_client().post(
            f"{self.base_url}{self.TRANSACTIONS_PATH}",
            json=spec.model_dump(mode="json"),
            headers=headers,
            timeout=self.timeout_seconds,
        )
        resp.raise_for_status()

        data = resp.json()
        transaction_id = data.get("transaction_id") or data.get("id")
        if not transaction_id:
            raise ValueError(
                f"Ledger response from {self.base_url} did not include a transaction id."
            )
        logger.debug(
            "Ledger created transaction %s for household=%s", transaction_id, spec.household_id
        )
        return TransactionRef(
            transaction_id=str(transaction_id),
            created_at=parse_iso_datetime(data.get("created_at")),
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client()
        return self._client
