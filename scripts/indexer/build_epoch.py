from __future__ import annotations

import sys
from pathlib import Path

# Allow running as a script without requiring `PYTHONPATH=.`.
REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import argparse
import logging
from decimal import Decimal

from idenawl.errors import WhitelistError
from idenawl.indexer.app import build_runtime
from idenawl.indexer.config import load_indexer_env
from idenawl.utils.log import setup_logging

logger = logging.getLogger("build_epoch")


def main(argv=None) -> int:
    """Build (or rebuild) one epoch's whitelist without starting the API."""
    p = argparse.ArgumentParser(description="Build the eligibility whitelist for one epoch.")
    p.add_argument("--epoch", type=int, default=None, help="Epoch to build (default: latest network epoch).")
    p.add_argument("--threshold", type=Decimal, default=None, help="Human stake threshold override (iDNA).")
    args = p.parse_args(argv)

    cfg = load_indexer_env()
    setup_logging(cfg.log_level)
    rt = build_runtime(cfg)
    orch = rt.orchestrator

    try:
        info = orch.latest_epoch_info()
        epoch = args.epoch if args.epoch is not None else info.epoch
        if args.threshold is not None:
            threshold = args.threshold
        else:
            threshold = info.threshold if epoch == info.epoch else None
        if threshold is None:
            logger.error("no threshold known for epoch %d; pass --threshold", epoch)
            return 2
        state = orch.build(epoch, threshold)
    except WhitelistError as exc:
        logger.error("build failed: %s: %s", exc.code, exc.message)
        return 1

    print(f"epoch={state.epoch} eligible={len(state.addresses)} merkle_root={state.merkle_root or '<empty>'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
