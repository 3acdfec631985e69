# worktree.py -- Writing the contents of a commit to a directory
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

"""Materialize a commit's tree as files on disk.

Objects are only ever read from the object cache passed in; nothing is
fetched from disk or the network while checking out.
"""

__all__ = [
    "INVALID_DOTNAMES",
    "build_file_from_blob",
    "materialize_commit",
    "materialize_tree",
    "validate_path_element",
]

import logging
import os
import stat

from .errors import (
    CheckoutError,
    InvalidTreeEntryName,
    MissingBlobObject,
    MissingCommitObject,
    MissingTreeObject,
    ObjectNotFound,
)
from .object_store import BaseObjectStore
from .objects import BLOB, COMMIT, TREE, ObjectID, S_ISGITLINK, parse_tree, valid_hexsha

logger = logging.getLogger(__name__)

INVALID_DOTNAMES = (b".git", b".", b"..", b"")

_TREE_PREFIX = b"tree "


def validate_path_element(element: bytes) -> bool:
    """Check that a tree entry name is safe to create inside the target."""
    if b"/" in element or b"\0" in element:
        return False
    return element.lower() not in INVALID_DOTNAMES


def build_file_from_blob(
    contents: bytes, mode: int, target_path: bytes, *, honor_filemode: bool = True
) -> os.stat_result:
    """Build a file or symlink on disk from blob contents.

    Args:
      contents: The blob payload
      mode: File mode from the tree entry
      target_path: Path to write to
      honor_filemode: Whether to apply the executable bit from mode
    Returns: stat object for the file
    """
    if stat.S_ISLNK(mode):
        if os.path.lexists(target_path):
            os.unlink(target_path)
        try:
            os.symlink(contents, target_path)
        except (OSError, NotImplementedError) as e:
            # Fall back to a plain file holding the link target.
            logger.debug("cannot create symlink %r (%s), writing a file", target_path, e)
            with open(target_path, "wb") as f:
                f.write(contents)
    else:
        with open(target_path, "wb") as f:
            f.write(contents)
        if honor_filemode and mode & stat.S_IXUSR:
            os.chmod(target_path, 0o755)
    return os.lstat(target_path)


def _read(cache: BaseObjectStore, sha: ObjectID, kind: bytes) -> bytes | None:
    try:
        type_name, payload = cache.get(sha)
    except ObjectNotFound:
        return None
    if type_name != kind:
        return None
    return payload


def materialize_tree(
    cache: BaseObjectStore,
    tree_id: ObjectID,
    target: str | bytes | os.PathLike[str],
    *,
    honor_filemode: bool = True,
) -> int:
    """Write a tree and everything below it to target.

    Args:
      cache: Object cache holding the tree, its subtrees and blobs
      tree_id: Hex SHA of the tree
      target: Directory to write to; created if missing
      honor_filemode: Whether to mark executable entries executable
    Returns: The number of files written
    Raises:
      MissingTreeObject: a tree is not in the cache
      MissingBlobObject: a blob is not in the cache
      InvalidTreeEntryName: an entry would escape target or write to .git
    """
    payload = _read(cache, tree_id, TREE)
    if payload is None:
        raise MissingTreeObject(tree_id)
    target_path = os.fsencode(os.fspath(target))
    os.makedirs(target_path, exist_ok=True)
    count = 0
    for entry in parse_tree(payload):
        if not validate_path_element(entry.name):
            raise InvalidTreeEntryName(entry.name)
        full_path = os.path.join(target_path, entry.name)
        if entry.is_dir():
            count += materialize_tree(
                cache, entry.sha, full_path, honor_filemode=honor_filemode
            )
        elif S_ISGITLINK(entry.mode):
            # Submodule contents are not part of this repository.
            os.makedirs(full_path, exist_ok=True)
        else:
            contents = _read(cache, entry.sha, BLOB)
            if contents is None:
                raise MissingBlobObject(entry.sha)
            build_file_from_blob(
                contents, entry.mode, full_path, honor_filemode=honor_filemode
            )
            logger.debug("wrote %r", full_path)
            count += 1
    return count


def materialize_commit(
    cache: BaseObjectStore,
    commit_id: ObjectID,
    target: str | bytes | os.PathLike[str],
    *,
    honor_filemode: bool = True,
) -> int:
    """Check out the tree of a commit into target.

    Returns: The number of files written
    Raises:
      MissingCommitObject: the commit is not in the cache
    """
    payload = _read(cache, commit_id, COMMIT)
    if payload is None:
        raise MissingCommitObject(commit_id)
    start = payload.find(_TREE_PREFIX)
    tree_id = payload[start + len(_TREE_PREFIX) : start + len(_TREE_PREFIX) + 40]
    if start == -1 or not valid_hexsha(tree_id):
        raise CheckoutError(f"commit {commit_id.decode('ascii')} has no tree header")
    count = materialize_tree(cache, tree_id, target, honor_filemode=honor_filemode)
    logger.debug("checked out %d files from %s", count, commit_id.decode("ascii"))
    return count
