# file.py -- Safe access to repository files
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

"""Safe access to repository files.

Writes follow git's lock file protocol: data for ``foo`` goes to
``foo.lock`` and is renamed over ``foo`` only once it has been completely
written, so readers never observe a partial object or ref.
"""

__all__ = [
    "FileLocked",
    "GitFile",
    "LockedFile",
    "ensure_dir_exists",
]

import os
import warnings
from types import TracebackType
from typing import IO

PathLike = str | os.PathLike[str]


def ensure_dir_exists(dirname: PathLike) -> None:
    """Ensure a directory exists, creating it and its parents if necessary."""
    os.makedirs(dirname, exist_ok=True)


class FileLocked(Exception):
    """File is already locked."""

    def __init__(self, filename: PathLike, lockfilename: str) -> None:
        """Initialize FileLocked.

        Args:
          filename: Name of the file that is locked
          lockfilename: Name of the lock file
        """
        self.filename = filename
        self.lockfilename = lockfilename
        super().__init__(filename, lockfilename)


def GitFile(
    filename: PathLike, mode: str = "rb", mask: int = 0o644, fsync: bool = False
) -> "IO[bytes] | LockedFile":
    """Open a repository file, using the lock file protocol for writes.

    Only binary read ('rb') and write ('wb') modes are supported.

    Args:
      filename: Path to the file
      mode: 'rb' or 'wb'
      mask: Permission bits for newly written files
      fsync: Whether to fsync() the data before renaming it into place
    """
    if mode == "wb":
        return LockedFile(filename, mask=mask, fsync=fsync)
    if mode == "rb":
        return open(filename, "rb")
    raise OSError(f"unsupported mode {mode!r} for repository files")


class LockedFile:
    """Write-only file that replaces its target atomically on close.

    Note: You *must* call close() or abort(), typically by using the
        object as a context manager.
    """

    def __init__(self, filename: PathLike, mask: int = 0o644, fsync: bool = False) -> None:
        self._filename = os.fspath(filename)
        self._lockfilename = self._filename + ".lock"
        self._fsync = fsync
        try:
            fd = os.open(
                self._lockfilename,
                os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0),
                mask,
            )
        except FileExistsError as exc:
            raise FileLocked(filename, self._lockfilename) from exc
        self._file = os.fdopen(fd, "wb")
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return whether the file is closed."""
        return self._closed

    def write(self, data: bytes) -> int:
        return self._file.write(data)

    def abort(self) -> None:
        """Close and discard the lock file without touching the target."""
        if self._closed:
            return
        self._file.close()
        try:
            os.remove(self._lockfilename)
        except FileNotFoundError:
            pass
        self._closed = True

    def close(self) -> None:
        """Close the file, moving the lock file over the target."""
        if self._closed:
            return
        self._file.flush()
        if self._fsync:
            os.fsync(self._file.fileno())
        self._file.close()
        try:
            os.replace(self._lockfilename, self._filename)
        finally:
            self.abort()

    def __del__(self) -> None:
        if not getattr(self, "_closed", True):
            warnings.warn(f"unclosed {self!r}", ResourceWarning, stacklevel=2)
            self.abort()

    def __enter__(self) -> "LockedFile":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self._filename!r})>"
