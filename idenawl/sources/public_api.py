"""
Client for the public Idena REST API (the secondary source).

Used for the pieces the node does not hand us directly: last-epoch info with
the discrimination threshold, validation summaries, bad flip authors, and the
ceremony blocks scanned in degraded mode.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, FrozenSet, Iterator, Optional, Set, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from idenawl.errors import NotFound, SourceUnavailable
from idenawl.sources.schemas import (
    ApiAddress,
    ApiAuthor,
    ApiBlock,
    ApiEnvelope,
    ApiEpoch,
    ApiEpochLast,
    ApiIdentity,
    ApiTransaction,
    ApiValidationSummary,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_PUBLIC_API_URL = "https://api.idena.io"
PAGE_LIMIT = 100


class PublicApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_PUBLIC_API_URL,
        api_key: str = "",
        *,
        timeout_s: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._bad_authors: Dict[int, FrozenSet[str]] = {}
        self._lock = threading.Lock()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiEnvelope:
        q = dict(params or {})
        if self.api_key:
            q["apikey"] = self.api_key
        url = f"{self.base_url}/api/{path.lstrip('/')}"
        try:
            r = requests.get(url, params=q or None, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise SourceUnavailable(f"public api {path}: {exc}") from exc
        if r.status_code == 404:
            raise NotFound(f"public api {path}: not found")
        try:
            r.raise_for_status()
            data = r.json()
        except requests.RequestException as exc:
            raise SourceUnavailable(f"public api {path}: {exc}") from exc
        except ValueError as exc:
            raise SourceUnavailable(f"public api {path}: invalid json") from exc

        try:
            env = ApiEnvelope.model_validate(data)
        except ValidationError as exc:
            raise SourceUnavailable(f"public api {path}: bad envelope") from exc
        if env.error is not None:
            raise SourceUnavailable(f"public api {path}: {env.error.message}")
        return env

    def _result(self, path: str, model: Type[M], params: Optional[Dict[str, Any]] = None) -> M:
        env = self._get(path, params)
        if env.result is None:
            raise NotFound(f"public api {path}: empty result")
        try:
            return model.model_validate(env.result)
        except ValidationError as exc:
            raise SourceUnavailable(f"public api {path}: {exc.error_count()} decode error(s)") from exc

    def _pages(self, path: str, model: Type[M]) -> Iterator[M]:
        token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"limit": PAGE_LIMIT}
            if token:
                params["continuationToken"] = token
            env = self._get(path, params)
            items = env.result or []
            if not isinstance(items, list):
                raise SourceUnavailable(f"public api {path}: result is not a list")
            for item in items:
                try:
                    yield model.model_validate(item)
                except ValidationError as exc:
                    raise SourceUnavailable(f"public api {path}: decode error") from exc
            token = env.continuation_token
            if not token:
                return

    # --- epochs ---

    def epoch_last(self) -> ApiEpochLast:
        return self._result("Epoch/Last", ApiEpochLast)

    def epoch(self, epoch: int) -> ApiEpoch:
        return self._result(f"Epoch/{int(epoch)}", ApiEpoch)

    # --- blocks ---

    def block(self, height: int) -> ApiBlock:
        return self._result(f"Block/{int(height)}", ApiBlock)

    def block_senders(self, height: int) -> Set[str]:
        """Lowercased senders of every transaction in block `height`."""
        senders: Set[str] = set()
        for tx in self._pages(f"Block/{int(height)}/Txs", ApiTransaction):
            if tx.sender:
                senders.add(tx.sender.strip().lower())
        return senders

    # --- validation results ---

    def validation_summary(self, epoch: int, address: str) -> ApiValidationSummary:
        return self._result(f"Epoch/{int(epoch)}/Identity/{address}/ValidationSummary", ApiValidationSummary)

    def bad_authors(self, epoch: int) -> FrozenSet[str]:
        """Addresses reported for bad flips in `epoch`. Cached per epoch."""
        with self._lock:
            cached = self._bad_authors.get(int(epoch))
        if cached is not None:
            return cached

        out: Set[str] = set()
        try:
            for item in self._pages(f"Epoch/{int(epoch)}/Authors/Bad", ApiAuthor):
                addr = item.address or item.author
                if addr:
                    out.add(addr.strip().lower())
        except NotFound:
            # No bad authors recorded for this epoch.
            pass

        frozen = frozenset(out)
        with self._lock:
            self._bad_authors[int(epoch)] = frozen
        logger.debug("epoch %d: %d bad flip authors", epoch, len(frozen))
        return frozen

    # --- identities ---

    def identity(self, address: str) -> ApiIdentity:
        return self._result(f"Identity/{address}", ApiIdentity)

    def address_stake(self, address: str) -> ApiAddress:
        return self._result(f"Address/{address}", ApiAddress)

