import logging
from collections import deque

import httpx

logger = logging.getLogger(__name__)


class Uploader:
    """Posts batches to the backend; failed batches wait in a bounded retry queue."""

    def __init__(self, endpoint, timeout_s=5.0, retry_limit=20, client=None):
        self.endpoint = endpoint
        self.timeout_s = timeout_s
        self.pending = deque()
        self.retry_limit = retry_limit
        self._client = client
        self._owns_client = client is None

    @property
    def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def _post(self, batch):
        try:
            response = await self.client.post(self.endpoint, json=batch.to_payload(), timeout=self.timeout_s)
        except httpx.RequestError as e:
            logger.error("HTTP request failed: %s", e)
            return False
        if response.is_success:
            logger.info("Sent batch %d (%d samples) to %s", batch.sequence, len(batch), self.endpoint)
            return True
        logger.error("Server responded with %d: %s", response.status_code, response.text)
        return False

    def enqueue(self, batch):
        if self.retry_limit <= 0:
            logger.warning("Retries disabled, dropping batch %d", batch.sequence)
            return
        if len(self.pending) >= self.retry_limit:
            dropped = self.pending.popleft()
            logger.warning("Retry queue full, dropping batch %d (%d samples)", dropped.sequence, len(dropped))
        self.pending.append(batch)

    async def send(self, batch):
        if await self._post(batch):
            return True
        self.enqueue(batch)
        return False

    async def retry_pending(self):
        """Resend queued batches oldest first; stop at the first failure."""
        sent = 0
        while self.pending:
            if not await self._post(self.pending[0]):
                break
            self.pending.popleft()
            sent += 1
        return sent

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
