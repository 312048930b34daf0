import os
import glob
import hashlib
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .diagnostics import Diagnostic
from .ir import Workflow

# Bump when the IR layout changes so stale entries are ignored.
CACHE_SCHEMA = 1


# ─── CachedFragment: Validated on-disk snapshot ──────────────────
class CachedFragment(BaseModel):
    """Serializable parse result of one source file."""
    schema_version: int = CACHE_SCHEMA
    origin: str
    digest: str
    timestamp: str
    fragment: Dict[str, Any]
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class FragmentStore:
    """Persists parsed (unresolved) fragments keyed by path and content digest."""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = str(base_path)
        os.makedirs(self.base_path, exist_ok=True)

    @staticmethod
    def digest(origin: str, content: str) -> str:
        h = hashlib.sha256()
        h.update(f"{CACHE_SCHEMA}\0{origin}\0".encode("utf-8"))
        h.update(content.encode("utf-8"))
        return h.hexdigest()

    def _path_for(self, digest: str) -> str:
        return os.path.join(self.base_path, f"{digest}.json")

    def load(self, origin: str, content: str) -> Optional[Tuple[Workflow, List[Diagnostic]]]:
        """Return the cached parse of ``content`` or None on a miss or stale entry."""
        path = self._path_for(self.digest(origin, content))
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                entry = CachedFragment.model_validate_json(f.read())
            if entry.schema_version != CACHE_SCHEMA:
                return None
            fragment = Workflow.from_dict(entry.fragment)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            # Unreadable entries count as misses; the next save overwrites them.
            logger.debug("fragment store entry {} unreadable: {}", path, e)
            return None
        logger.debug("fragment store hit: {}", origin)
        return fragment, list(entry.diagnostics)

    def save(self, origin: str, content: str, fragment: Workflow, diagnostics: List[Diagnostic]) -> str:
        """Write an entry and return its path."""
        digest = self.digest(origin, content)
        entry = CachedFragment(
            origin=origin,
            digest=digest,
            timestamp=datetime.now().isoformat(),
            fragment=fragment.to_dict(),
            diagnostics=diagnostics,
        )
        path = self._path_for(digest)
        tmp = f"{path}.{os.getpid()}.{threading.get_ident()}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(entry.model_dump_json())
        os.replace(tmp, path)
        return path

    def list_entries(self) -> List[str]:
        """Cached entry files, newest first."""
        files = glob.glob(os.path.join(self.base_path, "*.json"))
        files.sort(key=os.path.getmtime, reverse=True)
        return files

    def clear(self) -> int:
        files = self.list_entries()
        for f in files:
            os.remove(f)
        return len(files)
