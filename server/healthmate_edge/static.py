"""Read-only lookup of files in the SPA build directory."""

import logging
import os
import stat
from typing import NamedTuple, Optional

from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

logger = logging.getLogger(__name__)


class Asset(NamedTuple):
    path: str
    stat_result: os.stat_result


class AssetRoot:
    """Resolves URL paths to files under the build directory via ``StaticFiles``.

    Lookups never raise for missing files: ``resolve`` returns None and the
    caller moves on to the next routing stage.
    """

    def __init__(self, directory: str, index_file: str = "index.html"):
        self.directory = os.path.realpath(directory)
        self.index_file = index_file
        self.available = os.path.isdir(self.directory)
        if not self.available:
            logger.warning(f"Static directory {self.directory} does not exist; serving no assets")
        self.files = StaticFiles(directory=self.directory, check_dir=False)

    def _lookup(self, relative: str) -> Optional[Asset]:
        full_path, stat_result = self.files.lookup_path(relative)
        if stat_result is None:
            return None
        return Asset(full_path, stat_result)

    def resolve(self, url_path: str) -> Optional[Asset]:
        if not self.available:
            return None

        parts = [p for p in url_path.split("/") if p]
        # Hidden files and traversal segments are never served
        if any(p.startswith(".") or "\\" in p or "\x00" in p for p in parts):
            return None

        relative = os.path.normpath(os.path.join(*parts)) if parts else "."
        asset = self._lookup(relative)
        if asset is not None and stat.S_ISDIR(asset.stat_result.st_mode):
            asset = self._lookup(os.path.join(relative, self.index_file))
        if asset is None or not stat.S_ISREG(asset.stat_result.st_mode):
            return None
        return asset

    def index(self) -> Optional[Asset]:
        """The SPA entry document, if it exists."""
        if not self.available:
            return None
        asset = self._lookup(self.index_file)
        if asset is None or not stat.S_ISREG(asset.stat_result.st_mode):
            return None
        return asset

    def response(self, asset: Asset, scope: Scope) -> Response:
        """FileResponse for ``asset``, or 304 when the client copy is current."""
        return self.files.file_response(asset.path, asset.stat_result, scope)
