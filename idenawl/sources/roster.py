from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Union

from idenawl.core.address import dedupe_sorted, is_valid_address

logger = logging.getLogger(__name__)


def load_roster(path: Union[str, Path]) -> List[str]:
    """
    Read an explicit address roster.

    Accepts a JSON array of addresses or a text file with one address per
    line (`#` starts a comment). Invalid entries are skipped with a warning.
    """
    text = Path(path).read_text(encoding="utf-8")

    entries: List[str] = []
    stripped = text.lstrip()
    if stripped.startswith("["):
        data = json.loads(stripped)
        entries = [x for x in data if isinstance(x, str)]
    else:
        for line in text.splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                entries.append(line)

    valid = []
    for e in entries:
        if is_valid_address(e):
            valid.append(e)
        else:
            logger.warning("roster %s: skipping invalid address %r", path, e)
    out = dedupe_sorted(valid)
    logger.info("roster %s: %d addresses", path, len(out))
    return out
