from __future__ import annotations

import logging
from typing import Any, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from idenawl.errors import NotFound, SourceUnavailable
from idenawl.sources.schemas import (
    NodeBlock,
    NodeEpoch,
    NodeEpochIdentity,
    NodeGlobalState,
    NodeIdentity,
    NodeLastBlock,
    RpcEnvelope,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class NodeRpcClient:
    """Idena node JSON-RPC client (the primary source)."""

    def __init__(self, node_url: str, api_key: str = "", *, timeout_s: float = 10.0) -> None:
        self.node_url = node_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s

    def _call(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": 1}
        if self.api_key:
            payload["key"] = self.api_key
        try:
            r = requests.post(self.node_url, json=payload, timeout=self.timeout_s)
            r.raise_for_status()
            data = r.json()
        except requests.RequestException as exc:
            raise SourceUnavailable(f"node rpc {method}: {exc}") from exc
        except ValueError as exc:
            raise SourceUnavailable(f"node rpc {method}: invalid json") from exc

        try:
            env = RpcEnvelope.model_validate(data)
        except ValidationError as exc:
            raise SourceUnavailable(f"node rpc {method}: bad envelope") from exc
        if env.error is not None:
            raise SourceUnavailable(f"node rpc {method}: {env.error.message or env.error.code}")
        return env.result

    def _decode(self, method: str, model: Type[M], result: Any) -> M:
        try:
            return model.model_validate(result)
        except ValidationError as exc:
            raise SourceUnavailable(f"node rpc {method}: {exc.error_count()} decode error(s)") from exc

    def epoch(self) -> NodeEpoch:
        return self._decode("dna_epoch", NodeEpoch, self._call("dna_epoch", []))

    def global_state(self) -> NodeGlobalState:
        return self._decode("dna_globalState", NodeGlobalState, self._call("dna_globalState", []))

    def epoch_identities(self, epoch: int) -> List[NodeEpochIdentity]:
        result = self._call("dna_epochIdentities", [int(epoch), 0])
        if result is None:
            return []
        if not isinstance(result, list):
            raise SourceUnavailable("node rpc dna_epochIdentities: result is not a list")
        return [self._decode("dna_epochIdentities", NodeEpochIdentity, item) for item in result]

    def identity(self, address: str) -> NodeIdentity:
        result = self._call("dna_identity", [address])
        if not result:
            raise NotFound(f"identity {address} unknown to node")
        return self._decode("dna_identity", NodeIdentity, result)

    def last_block(self) -> NodeLastBlock:
        return self._decode("bcn_lastBlock", NodeLastBlock, self._call("bcn_lastBlock", []))

    def block(self, height: int) -> Optional[NodeBlock]:
        result = self._call("bcn_blockAt", [int(height)])
        if result is None:
            return None
        return self._decode("bcn_blockAt", NodeBlock, result)
