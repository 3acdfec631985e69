# object_store.py -- Object store for git objects
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# kloon is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Git object store interfaces and implementation.

Both stores share one contract: ``put(type_name, payload)`` returns the
object's hex SHA, ``get(sha)`` returns ``(type_name, payload)``. Storing an
object that is already present is a no-op.
"""

__all__ = [
    "BaseObjectStore",
    "DiskObjectStore",
    "MemoryObjectStore",
    "hex_to_filename",
]

import logging
import os
import zlib
from collections.abc import Iterator

from .errors import CorruptObject, ObjectFormatException, ObjectNotFound
from .file import GitFile, ensure_dir_exists
from .objects import (
    OBJECT_TYPES,
    ObjectID,
    ShaFile,
    obj_sha,
    object_header,
    split_object_header,
    valid_hexsha,
)

logger = logging.getLogger(__name__)

# Loose objects are never modified once written.
LOOSE_MODE = 0o444


def hex_to_filename(path: str | os.PathLike[str], hex: ObjectID) -> str:
    """Takes a hex sha and returns its filename relative to the given path."""
    path = os.fspath(path)
    hex_str = hex.decode("ascii")
    return os.path.join(path, hex_str[:2], hex_str[2:])


class BaseObjectStore:
    """Object store interface."""

    def put(self, type_name: bytes, payload: bytes) -> ObjectID:
        """Store an object and return its hex SHA."""
        raise NotImplementedError(self.put)

    def get(self, sha: ObjectID) -> tuple[bytes, bytes]:
        """Return ``(type_name, payload)`` for an object.

        Raises:
          ObjectNotFound: if the object is not in this store
        """
        raise NotImplementedError(self.get)

    def __contains__(self, sha: object) -> bool:
        raise NotImplementedError(self.__contains__)

    def __iter__(self) -> Iterator[ObjectID]:
        raise NotImplementedError(self.__iter__)

    def add_object(self, obj: ShaFile) -> ObjectID:
        """Add a single parsed object to this store."""
        return self.put(obj.type_name, obj.as_raw_string())

    def __getitem__(self, sha: ObjectID) -> ShaFile:
        """Obtain an object as a parsed ShaFile."""
        type_name, payload = self.get(sha)
        return ShaFile.from_raw_string(type_name, payload)

    @staticmethod
    def _check_type(type_name: bytes) -> None:
        if type_name not in OBJECT_TYPES:
            raise ValueError(f"unknown object type {type_name!r}")


class MemoryObjectStore(BaseObjectStore):
    """Object store that keeps all objects in memory.

    Used as the object cache of a single clone: the pack decoder fills it
    and the working tree is built from it.
    """

    def __init__(self) -> None:
        self._data: dict[ObjectID, tuple[bytes, bytes]] = {}

    def put(self, type_name: bytes, payload: bytes) -> ObjectID:
        self._check_type(type_name)
        sha = obj_sha(type_name, payload)
        self._data.setdefault(sha, (type_name, bytes(payload)))
        return sha

    def get(self, sha: ObjectID) -> tuple[bytes, bytes]:
        try:
            return self._data[sha]
        except KeyError:
            raise ObjectNotFound(sha) from None

    def __contains__(self, sha: object) -> bool:
        return sha in self._data

    def __iter__(self) -> Iterator[ObjectID]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


class DiskObjectStore(BaseObjectStore):
    """Git-style loose object store that exists on disk."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        loose_compression_level: int = -1,
        fsync_object_files: bool = False,
    ) -> None:
        """Open an object store.

        Args:
          path: Path of the object store (usually ``.git/objects``)
          loose_compression_level: zlib compression level for loose objects
          fsync_object_files: whether to fsync object files for durability
        """
        self.path = path
        self.loose_compression_level = loose_compression_level
        self.fsync_object_files = fsync_object_files

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.path!r})>"

    @classmethod
    def init(cls, path: str | os.PathLike[str], **kwargs: object) -> "DiskObjectStore":
        """Create the object directory (if needed) and open a store on it."""
        ensure_dir_exists(path)
        return cls(path, **kwargs)  # type: ignore[arg-type]

    def _get_shafile_path(self, sha: ObjectID) -> str:
        if not valid_hexsha(sha):
            raise ValueError(f"invalid object id {sha!r}")
        return hex_to_filename(self.path, sha)

    def put(self, type_name: bytes, payload: bytes) -> ObjectID:
        self._check_type(type_name)
        sha = obj_sha(type_name, payload)
        path = self._get_shafile_path(sha)
        if os.path.exists(path):
            return sha
        ensure_dir_exists(os.path.dirname(path))
        data = zlib.compress(
            object_header(type_name, len(payload)) + payload,
            self.loose_compression_level,
        )
        with GitFile(path, "wb", mask=LOOSE_MODE, fsync=self.fsync_object_files) as f:
            f.write(data)
        logger.debug("wrote %s object %s", type_name.decode("ascii"), sha.decode("ascii"))
        return sha

    def get(self, sha: ObjectID) -> tuple[bytes, bytes]:
        """Read a loose object.

        Raises:
          ObjectNotFound: no such object
          CorruptObject: the file could not be inflated or parsed
        """
        if not valid_hexsha(sha):
            raise ObjectNotFound(sha)
        path = hex_to_filename(self.path, sha)
        try:
            with GitFile(path, "rb") as f:
                compressed = f.read()
        except FileNotFoundError:
            raise ObjectNotFound(sha) from None
        try:
            raw = zlib.decompress(compressed)
        except zlib.error as exc:
            raise CorruptObject(sha, f"decompression failed: {exc}") from exc
        try:
            return split_object_header(raw)
        except ObjectFormatException as exc:
            raise CorruptObject(sha, str(exc)) from exc

    def __contains__(self, sha: object) -> bool:
        if not isinstance(sha, bytes) or not valid_hexsha(sha):
            return False
        return os.path.exists(hex_to_filename(self.path, sha))

    def __iter__(self) -> Iterator[ObjectID]:
        return self.iter_loose_objects()

    def iter_loose_objects(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs of all loose objects."""
        try:
            bases = sorted(os.listdir(self.path))
        except FileNotFoundError:
            return
        for base in bases:
            if len(base) != 2:
                continue
            for rest in sorted(os.listdir(os.path.join(self.path, base))):
                sha = os.fsencode(base + rest)
                if valid_hexsha(sha):
                    yield sha
