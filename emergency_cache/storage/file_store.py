from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from ..exceptions import CacheStoreError
from .base import CacheStore, encode_key


class FileCacheStore(CacheStore):
    def __init__(self, path: str) -> None:
        self.root = Path(path or ".")

    def path_for(self, key: str) -> Path:
        return self.root / encode_key(key)

    def get(self, key: str) -> Optional[bytes]:
        target = self.path_for(key)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as err:
            raise CacheStoreError(f"Error getting cache item for key {key}: {err}", key=key) from err

    def put(self, key: str, payload: bytes) -> None:
        target = self.path_for(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(payload)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as err:
            raise CacheStoreError(f"Error setting cache item for key {key}: {err}", key=key) from err

    def describe(self) -> str:
        return f"file ({self.root})"
