from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timezone
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from idenawl import __version__
from idenawl.errors import WhitelistError
from idenawl.indexer.cache import CurrentWhitelist
from idenawl.indexer.config import IndexerEnvConfig, load_indexer_env
from idenawl.indexer.orchestrator import EpochOrchestrator
from idenawl.indexer.schemas import (
    EligibilityOut,
    EpochOut,
    IdentityOut,
    MerkleProofOut,
    MerkleRootOut,
    PredictionOut,
    ProofStepOut,
    WhitelistOut,
)
from idenawl.indexer.service import WhitelistService
from idenawl.sources.adapter import IdentityDataSource
from idenawl.sources.discovery import AddressDiscovery
from idenawl.sources.node_rpc import NodeRpcClient
from idenawl.sources.public_api import PublicApiClient
from idenawl.sources.quota import FallbackQuota
from idenawl.store.artifacts import WhitelistArtifacts
from idenawl.store.database import init_db, make_engine, make_session_factory
from idenawl.store.snapshots import SnapshotStore, canonical_amount
from idenawl.utils.env import _env_str
from idenawl.utils.log import setup_logging

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "invalid_address": 400,
    "not_found": 404,
    "rate_limited": 429,
    "source_unavailable": 503,
    "marker_not_found": 503,
    "inconsistent": 500,
}


@dataclass
class IndexerRuntime:
    service: WhitelistService
    orchestrator: Optional[EpochOrchestrator] = None
    orchestrator_enabled: bool = False
    cors_origins: Optional[List[str]] = None


def build_runtime(cfg: IndexerEnvConfig) -> IndexerRuntime:
    engine = make_engine(cfg.storage.database_url)
    init_db(engine)
    store = SnapshotStore(make_session_factory(engine))
    artifacts = WhitelistArtifacts(cfg.storage.data_dir)
    cache = CurrentWhitelist()

    node = None
    if cfg.node is not None:
        node = NodeRpcClient(cfg.node.url, cfg.node.api_key, timeout_s=cfg.node.timeout_s)
    public = PublicApiClient(cfg.public.base_url, cfg.public.api_key, timeout_s=cfg.public.timeout_s)
    quota = FallbackQuota(
        global_limit=cfg.quota.global_limit,
        global_window_s=cfg.quota.global_window_s,
        per_address_limit=cfg.quota.per_address_limit,
        per_address_window_s=cfg.quota.per_address_window_s,
    )
    sources = IdentityDataSource(node, public, quota, concurrency=cfg.fetch_concurrency)
    discovery = AddressDiscovery(
        public,
        marker_offset=cfg.discovery.marker_offset,
        marker_search_blocks=cfg.discovery.marker_search_blocks,
        required_tx_blocks=cfg.discovery.required_tx_blocks,
        max_scan_blocks=cfg.discovery.max_scan_blocks,
    )
    orchestrator = EpochOrchestrator(
        sources,
        discovery,
        store,
        artifacts,
        cache,
        min_stake=cfg.min_stake,
        roster_file=cfg.storage.roster_file,
        poll_interval_s=cfg.poll_interval_s,
    )
    service = WhitelistService(cache, store, artifacts, sources, min_stake=cfg.min_stake)
    return IndexerRuntime(
        service=service,
        orchestrator=orchestrator,
        orchestrator_enabled=cfg.orchestrator_enabled,
        cors_origins=cfg.cors_origins,
    )


def _runtime(request: Request) -> IndexerRuntime:
    return request.app.state.runtime


def create_app(runtime: Optional[IndexerRuntime] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rt: Optional[IndexerRuntime] = app.state.runtime
        if rt is None:
            cfg = load_indexer_env()
            setup_logging(cfg.log_level)
            rt = build_runtime(cfg)
            app.state.runtime = rt
        orch = rt.orchestrator
        if orch is not None and rt.orchestrator_enabled:
            orch.initialize()
            orch.start()
        try:
            yield
        finally:
            if orch is not None and rt.orchestrator_enabled:
                orch.stop()

    app = FastAPI(title="idenawl Epoch Whitelist Indexer", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime

    if runtime is not None and runtime.cors_origins is not None:
        origins = runtime.cors_origins
    else:
        origins = [o.strip() for o in (_env_str("IDENAWL_CORS_ORIGINS", "*") or "*").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(WhitelistError)
    async def whitelist_error(request: Request, exc: WhitelistError):
        status = ERROR_STATUS.get(exc.code, 500)
        if status >= 500:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=status, content={"error": exc.code, "detail": exc.message})

    @app.get("/healthz")
    def healthz(request: Request):
        rt = _runtime(request)
        st = rt.service.cache.get()
        orch = rt.orchestrator
        return {
            "ok": True,
            "version": __version__,
            "epoch": st.epoch if st is not None else None,
            "state": orch.state.value if orch is not None else None,
            "last_error": orch.last_error if orch is not None else None,
            "last_check_ts": orch.last_check_ts if orch is not None else None,
        }

    @app.get("/whitelist/current", response_model=WhitelistOut)
    def whitelist_current(request: Request):
        v = _runtime(request).service.current()
        return WhitelistOut(epoch=v.epoch, merkle_root=v.merkle_root, count=len(v.addresses), addresses=list(v.addresses))

    @app.get("/whitelist/epoch/{epoch}", response_model=WhitelistOut)
    def whitelist_epoch(epoch: int, request: Request):
        v = _runtime(request).service.for_epoch(epoch)
        return WhitelistOut(epoch=v.epoch, merkle_root=v.merkle_root, count=len(v.addresses), addresses=list(v.addresses))

    @app.get("/whitelist/check", response_model=EligibilityOut)
    def whitelist_check(request: Request, address: str = Query(...), epoch: Optional[int] = None):
        c = _runtime(request).service.check(address, epoch)
        ident = None
        if c.record is not None:
            ident = IdentityOut(
                state=c.record.state,
                stake=canonical_amount(c.record.stake),
                penalized=c.record.penalized,
                flip_reported=c.record.flip_reported,
            )
        return EligibilityOut(address=c.address, epoch=c.epoch, eligible=c.eligible, reason=c.reason, identity=ident)

    @app.get("/merkle_root", response_model=MerkleRootOut)
    def merkle_root(request: Request, epoch: Optional[int] = None):
        e, root = _runtime(request).service.merkle_root(epoch)
        return MerkleRootOut(epoch=e, merkle_root=root)

    @app.get("/merkle_proof", response_model=MerkleProofOut)
    def merkle_proof(request: Request, address: str = Query(...), epoch: Optional[int] = None):
        p = _runtime(request).service.merkle_proof(address, epoch)
        return MerkleProofOut(
            address=p.address,
            epoch=p.epoch,
            merkle_root=p.merkle_root,
            proof=[ProofStepOut(**s.to_dict()) for s in p.proof],
        )

    @app.get("/epochs", response_model=list[EpochOut])
    def epochs(request: Request, limit: int = Query(20, ge=1, le=100)):
        out: List[EpochOut] = []
        for r in _runtime(request).service.epochs(limit=limit):
            out.append(
                EpochOut(
                    epoch=r.epoch,
                    merkle_root=r.merkle_root,
                    threshold=canonical_amount(r.threshold),
                    address_count=r.address_count,
                    source=r.source,
                    block=r.block,
                    created_at=int(r.created_at.replace(tzinfo=timezone.utc).timestamp()) if r.created_at else None,
                )
            )
        return out

    @app.get("/eligibility/{address}/prediction", response_model=PredictionOut)
    def prediction(address: str, request: Request):
        p = _runtime(request).service.predict(address)
        return PredictionOut(
            address=p.address,
            epoch=p.epoch,
            eligible_now=p.eligible_now,
            state=p.state,
            stake=canonical_amount(p.stake),
            hint=p.hint,
            prediction=p.prediction,
        )

    return app


app = create_app()
