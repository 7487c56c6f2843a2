# curlytpl/core/filestore.py
"""
File-store collaborator used by the compiler: raw template reads (BOM-stripped),
atomic artifact writes, existence checks and modification times.
"""
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol
import structlog

from curlytpl.util import strip_utf8_bom

log = structlog.get_logger(__name__)

class FileStore(Protocol):
    def load_text(self, path: Path) -> Optional[bytes]: ...
    def write_text(self, path: Path, data: bytes) -> bool: ...
    def exists(self, path: Path) -> bool: ...
    def mod_time(self, path: Path) -> int: ...

class LocalFileStore:
    """FileStore backed by the local filesystem."""

    def load_text(self, path: Path) -> Optional[bytes]:
        # returns None when the file cannot be read.
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            log.warning("file_read_failed", path=str(path), error=str(e))
            return None
        return strip_utf8_bom(data)

    def write_text(self, path: Path, data: bytes) -> bool:
        # writes to a sibling temp file, then renames over the target so readers never see a partial artifact.
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        except OSError as e:
            log.error("artifact_directory_unwritable", path=str(path), error=str(e))
            return False
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except OSError as e:
            log.error("artifact_write_failed", path=str(path), error=str(e))
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            return False
        log.debug("artifact_written", path=str(path), size=len(data))
        return True

    def exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def mod_time(self, path: Path) -> int:
        # nanosecond resolution keeps "strictly newer" comparisons meaningful for fast edits.
        return Path(path).stat().st_mtime_ns
