from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from idenawl.core.eligibility import MIN_STAKE
from idenawl.sources.public_api import DEFAULT_PUBLIC_API_URL
from idenawl.sources import discovery, quota
from idenawl.store.database import DEFAULT_DATABASE_URL
from idenawl.utils.env import _env_bool, _env_decimal, _env_float, _env_int, _env_str


@dataclass(frozen=True)
class NodeSourceConfig:
    url: str
    api_key: str
    timeout_s: float


@dataclass(frozen=True)
class PublicApiConfig:
    base_url: str
    api_key: str
    timeout_s: float


@dataclass(frozen=True)
class FallbackQuotaConfig:
    global_limit: int
    global_window_s: float
    per_address_limit: int
    per_address_window_s: float


@dataclass(frozen=True)
class DiscoveryConfig:
    marker_offset: int
    marker_search_blocks: int
    required_tx_blocks: int
    max_scan_blocks: int


@dataclass(frozen=True)
class StorageConfig:
    database_url: str
    data_dir: str
    roster_file: Optional[str]


@dataclass(frozen=True)
class IndexerEnvConfig:
    node: Optional[NodeSourceConfig]
    public: PublicApiConfig
    quota: FallbackQuotaConfig
    discovery: DiscoveryConfig
    storage: StorageConfig
    fetch_concurrency: int
    poll_interval_s: float
    min_stake: Decimal
    orchestrator_enabled: bool
    cors_origins: List[str]
    log_level: str


def _die(msg: str) -> None:
    raise SystemExit(f"[idenawl] {msg}")


def _positive_int(name: str, default: int) -> int:
    try:
        v = _env_int(name, default)
    except ValueError:
        _die(f"{name} must be an integer.")
    if v <= 0:
        _die(f"{name} must be > 0. Got: {v}")
    return v


def _positive_float(name: str, default: float) -> float:
    try:
        v = _env_float(name, default)
    except ValueError:
        _die(f"{name} must be a number.")
    if v <= 0:
        _die(f"{name} must be > 0. Got: {v}")
    return v


def load_indexer_env() -> IndexerEnvConfig:
    """Load indexer configuration from env/.env with strict validation."""
    timeout_s = _positive_float("IDENAWL_REQUEST_TIMEOUT_S", 10.0)

    node_url = _env_str("IDENAWL_NODE_URL", "").rstrip("/")
    node_cfg: Optional[NodeSourceConfig] = None
    if node_url:
        if not node_url.startswith("http"):
            _die(f"IDENAWL_NODE_URL must be http(s). Got: {node_url!r}")
        node_cfg = NodeSourceConfig(
            url=node_url,
            api_key=_env_str("IDENAWL_NODE_API_KEY", ""),
            timeout_s=timeout_s,
        )

    public_url = (_env_str("IDENAWL_PUBLIC_API_URL", DEFAULT_PUBLIC_API_URL) or DEFAULT_PUBLIC_API_URL).rstrip("/")
    if not public_url.startswith("http"):
        _die(f"IDENAWL_PUBLIC_API_URL must be http(s). Got: {public_url!r}")
    public_cfg = PublicApiConfig(
        base_url=public_url,
        api_key=_env_str("IDENAWL_PUBLIC_API_KEY", ""),
        timeout_s=timeout_s,
    )

    quota_cfg = FallbackQuotaConfig(
        global_limit=_positive_int("IDENAWL_FALLBACK_GLOBAL_LIMIT", quota.GLOBAL_LIMIT),
        global_window_s=_positive_float("IDENAWL_FALLBACK_GLOBAL_WINDOW_S", float(quota.GLOBAL_WINDOW_S)),
        per_address_limit=_positive_int("IDENAWL_FALLBACK_ADDRESS_LIMIT", quota.PER_ADDRESS_LIMIT),
        per_address_window_s=_positive_float("IDENAWL_FALLBACK_ADDRESS_WINDOW_S", float(quota.PER_ADDRESS_WINDOW_S)),
    )

    try:
        marker_offset = _env_int("IDENAWL_MARKER_OFFSET", discovery.MARKER_OFFSET)
    except ValueError:
        _die("IDENAWL_MARKER_OFFSET must be an integer.")
    if marker_offset < 0:
        _die(f"IDENAWL_MARKER_OFFSET must be >= 0. Got: {marker_offset}")
    discovery_cfg = DiscoveryConfig(
        marker_offset=marker_offset,
        marker_search_blocks=_positive_int("IDENAWL_MARKER_SEARCH_BLOCKS", discovery.MARKER_SEARCH_BLOCKS),
        required_tx_blocks=_positive_int("IDENAWL_REQUIRED_TX_BLOCKS", discovery.REQUIRED_TX_BLOCKS),
        max_scan_blocks=_positive_int("IDENAWL_MAX_SCAN_BLOCKS", discovery.MAX_SCAN_BLOCKS),
    )
    if discovery_cfg.max_scan_blocks < discovery_cfg.required_tx_blocks:
        _die("IDENAWL_MAX_SCAN_BLOCKS must be >= IDENAWL_REQUIRED_TX_BLOCKS.")

    storage_cfg = StorageConfig(
        database_url=_env_str("IDENAWL_DATABASE_URL", DEFAULT_DATABASE_URL) or DEFAULT_DATABASE_URL,
        data_dir=_env_str("IDENAWL_DATA_DIR", "data") or "data",
        roster_file=_env_str("IDENAWL_ROSTER_FILE", "") or None,
    )

    try:
        min_stake = _env_decimal("IDENAWL_MIN_STAKE", str(MIN_STAKE))
    except ValueError as exc:
        _die(str(exc))
    if min_stake < 0:
        _die(f"IDENAWL_MIN_STAKE must be >= 0. Got: {min_stake}")

    concurrency = _positive_int("IDENAWL_FETCH_CONCURRENCY", 5)
    if concurrency > 5:
        _die(f"IDENAWL_FETCH_CONCURRENCY must be <= 5. Got: {concurrency}")

    cors_raw = _env_str("IDENAWL_CORS_ORIGINS", "*") or "*"
    cors_origins = [o.strip() for o in cors_raw.split(",") if o.strip()]

    return IndexerEnvConfig(
        node=node_cfg,
        public=public_cfg,
        quota=quota_cfg,
        discovery=discovery_cfg,
        storage=storage_cfg,
        fetch_concurrency=concurrency,
        poll_interval_s=_positive_float("IDENAWL_POLL_INTERVAL_S", 60.0),
        min_stake=min_stake,
        orchestrator_enabled=_env_bool("IDENAWL_ORCHESTRATOR_ENABLED", True),
        cors_origins=cors_origins,
        log_level=(_env_str("IDENAWL_LOG_LEVEL", "INFO") or "INFO").upper(),
    )
