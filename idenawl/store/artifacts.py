"""
Per-epoch whitelist artifact: `whitelist_epoch_<E>.json`.

    {"merkle_root": "<hex or empty>", "addresses": ["0x...", ...]}

Older deployments wrote a bare JSON array of addresses; those files are still
readable and their root is recomputed on load. A current-layout file must
carry a root that its own address list reproduces.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union

from idenawl.core.address import dedupe_sorted
from idenawl.core.merkle import build_root
from idenawl.errors import Inconsistent, InvalidAddress, NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WhitelistArtifact:
    epoch: int
    merkle_root: str
    addresses: List[str]


class WhitelistArtifacts:
    def __init__(self, data_dir: Union[str, Path]) -> None:
        self.data_dir = Path(data_dir)

    def path(self, epoch: int) -> Path:
        return self.data_dir / f"whitelist_epoch_{int(epoch)}.json"

    def write(self, epoch: int, addresses: Sequence[str], merkle_root: str) -> Path:
        """Write atomically: readers see the old file or the new one, never a torn write."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        target = self.path(epoch)
        body = {"merkle_root": merkle_root, "addresses": list(addresses)}
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=str(self.data_dir),
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            try:
                json.dump(body, tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            except Exception:
                tmp.close()
                os.unlink(tmp_name)
                raise
        try:
            os.replace(tmp_name, target)
        except OSError:
            os.unlink(tmp_name)
            raise
        logger.info("wrote %s (%d addresses)", target, len(body["addresses"]))
        return target

    def read(self, epoch: int) -> WhitelistArtifact:
        p = self.path(epoch)
        if not p.is_file():
            raise NotFound(f"no whitelist artifact for epoch {epoch}")
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise Inconsistent(f"{p.name} is unreadable: {exc}") from exc

        try:
            if isinstance(data, list):
                addresses = dedupe_sorted(data)
                return WhitelistArtifact(epoch=int(epoch), merkle_root=build_root(addresses), addresses=addresses)
            if isinstance(data, dict) and isinstance(data.get("addresses"), list):
                if "merkle_root" not in data:
                    raise Inconsistent(f"{p.name}: merkle_root is missing")
                root = data["merkle_root"]
                if not isinstance(root, str):
                    raise Inconsistent(f"{p.name}: merkle_root is not a string")
                addresses = dedupe_sorted(data["addresses"])
                if build_root(addresses) != root:
                    raise Inconsistent(f"{p.name}: addresses do not reproduce merkle_root")
                return WhitelistArtifact(epoch=int(epoch), merkle_root=root, addresses=addresses)
        except (InvalidAddress, TypeError) as exc:
            raise Inconsistent(f"{p.name}: bad address list: {exc}") from exc
        raise Inconsistent(f"{p.name}: unexpected layout")
