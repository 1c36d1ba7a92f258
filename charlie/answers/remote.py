from typing import Optional

import httpx
from loguru import logger

from answers.corpus import Corpus


class RemoteCorpusSource:
    """Fetches the question corpus from a JSON endpoint.

    The credential travels in a single header (``secret-key`` for the
    hosted JSON bins the corpus is usually edited in).
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        key_header: str = "secret-key",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.key_header = key_header
        self.timeout = timeout
        self._transport = transport

    async def fetch(self) -> Corpus:
        """Download and validate the corpus.

        Raises:
            httpx.HTTPError: on transport failure or non-2xx status.
            pydantic.ValidationError / ValueError: on malformed data.
        """
        headers = {self.key_header: self.api_key} if self.api_key else {}
        async with httpx.AsyncClient(transport=self._transport) as client:
            resp = await client.get(self.endpoint, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
        corpus = Corpus.model_validate(resp.json())
        logger.debug("[CORPUS] Fetched {} books from {}", len(corpus.books), self.endpoint)
        return corpus
