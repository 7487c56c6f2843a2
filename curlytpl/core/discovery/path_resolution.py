from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple
import structlog

from curlytpl.config.settings import CompileMode
from curlytpl.core.filestore import FileStore

log = structlog.get_logger(__name__)

ARTIFACT_SUFFIX = ".py"

@dataclass(frozen=True)
class CompileLocation:
    # cache subdirectory plus placement mode; maps (root, name) to one artifact path.
    directory: str
    mode: CompileMode = CompileMode.RELATIVE

    def artifact_root(self, root: Path) -> Path:
        if self.mode is CompileMode.ABSOLUTE:
            # the shared cache mirrors each template root underneath itself.
            root_parts = root.parts[1:] if root.is_absolute() else root.parts
            return Path(self.directory).joinpath(*root_parts)
        return root / self.directory

    def artifact_path(self, root: Path, filename: str) -> Path:
        return self.artifact_root(root) / (filename + ARTIFACT_SUFFIX)

class PathResolver:
    """Finds the template root that provides a requested template."""

    def __init__(self, paths: Iterable[Path], location: CompileLocation, filestore: FileStore):
        self._paths: Tuple[Path, ...] = tuple(Path(p) for p in paths)
        self.location = location
        self.filestore = filestore

    @property
    def paths(self) -> Tuple[Path, ...]:
        return self._paths

    def raw_path(self, root: Path, filename: str) -> Path:
        return root / filename

    def artifact_path(self, root: Path, filename: str) -> Path:
        return self.location.artifact_path(root, filename)

    def find(self, filename: str) -> Optional[Path]:
        # first root holding the raw file or its artifact wins; None means not found.
        for root in self._paths:
            if self.filestore.exists(self.raw_path(root, filename)) or self.filestore.exists(self.artifact_path(root, filename)):
                log.debug("template_root_resolved", template=filename, root=str(root))
                return root
        log.debug("template_root_not_found", template=filename, searched=[str(p) for p in self._paths])
        return None

    def find_source(self, filename: str) -> Optional[Path]:
        # raw source path under the resolved root, used for compile-time includes.
        root = self.find(filename)
        if root is None:
            return None
        raw = self.raw_path(root, filename)
        return raw if self.filestore.exists(raw) else None
