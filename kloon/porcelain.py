# porcelain.py -- Porcelain-like layer on top of kloon
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

"""Simple wrapper that provides porcelain-like functions on top of kloon.

Currently implemented:
 * cat_file
 * clone
 * commit_tree
 * hash_object
 * init
 * ls_tree
 * write_tree

These functions are meant to behave similarly to the git subcommands.
Differences in behaviour are considered bugs.

Functions should generally accept both unicode strings and bytestrings
"""

__all__ = [
    "Error",
    "cat_file",
    "clone",
    "commit_tree",
    "hash_object",
    "init",
    "ls_tree",
    "pretty_format_tree_entry",
    "write_advertised_refs",
    "write_tree",
]

import logging
import os
import stat
import sys
import time
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import TextIO

import urllib3

from .client import HttpGitClient
from .config import Config
from .object_store import MemoryObjectStore
from .objects import (
    BLOB,
    COMMIT,
    TREE,
    Commit,
    ObjectID,
    S_ISGITLINK,
    TreeEntry,
    obj_sha,
    parse_tree,
    serialize_tree,
)
from .pack import DEFAULT_MAX_DELTA_DEPTH, decode_pack
from .protocol import RefAdvertisement
from .refs import HEADREF, DiskRefsContainer
from .repo import CONTROLDIR, Repo, get_user_identity
from .worktree import materialize_commit

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "utf-8"

RepoPath = str | os.PathLike[str] | Repo


class Error(Exception):
    """Porcelain-based error."""


@contextmanager
def _noop_context_manager(obj: Repo) -> Iterator[Repo]:
    """Context manager that has the same api as closing but does nothing."""
    yield obj


def open_repo_closing(path_or_repo: RepoPath) -> AbstractContextManager[Repo]:
    """Open an argument that can be a repository or a path for a repository."""
    if isinstance(path_or_repo, Repo):
        return _noop_context_manager(path_or_repo)
    return Repo(path_or_repo)


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode(DEFAULT_ENCODING)
    return value


def init(path: str | os.PathLike[str] = ".") -> Repo:
    """Create a new git repository.

    Args:
      path: Path to repository.
    Returns: A Repo instance
    """
    return Repo.init(path, mkdir=True)


def cat_file(repo: RepoPath, sha: str | bytes, pretty: bool = False) -> bytes:
    """Return the payload of an object.

    With pretty, a tree is rendered one entry per line as ls_tree does.
    """
    with open_repo_closing(repo) as r:
        type_name, payload = r.object_store.get(_to_bytes(sha))
    if pretty and type_name == TREE:
        return "".join(
            pretty_format_tree_entry(name, mode, entry_sha)
            for mode, name, entry_sha in parse_tree(payload)
        ).encode(DEFAULT_ENCODING)
    return payload


def hash_object(
    repo: RepoPath | None, path: str | os.PathLike[str], write: bool = True
) -> ObjectID:
    """Compute the blob id of a file, optionally storing it.

    Args:
      repo: Repository to store the blob in (only needed with write)
      path: File to hash
      write: Whether to store the blob
    Returns: Hex SHA of the blob
    """
    with open(path, "rb") as f:
        data = f.read()
    if not write:
        return obj_sha(BLOB, data)
    if repo is None:
        raise Error("a repository is needed to store objects")
    with open_repo_closing(repo) as r:
        return r.object_store.put(BLOB, data)


def pretty_format_tree_entry(
    name: bytes, mode: int, hexsha: bytes, encoding: str = DEFAULT_ENCODING
) -> str:
    """Pretty format tree entry.

    Args:
      name: Name of the directory entry
      mode: Mode of entry
      hexsha: Hexsha of the referenced object
      encoding: Character encoding for the name
    Returns: string describing the tree entry
    """
    if S_ISGITLINK(mode):
        kind = "commit"
    elif stat.S_ISDIR(mode):
        kind = "tree"
    else:
        kind = "blob"
    return "{:04o} {} {}\t{}\n".format(
        mode,
        kind,
        hexsha.decode("ascii"),
        name.decode(encoding, "replace"),
    )


def ls_tree(
    repo: RepoPath,
    treeish: str | bytes,
    outstream: TextIO = sys.stdout,
    recursive: bool = False,
    name_only: bool = False,
) -> None:
    """List contents of a tree.

    Args:
      repo: Path to the repository
      treeish: Tree id (or commit id) to list
      outstream: Output stream (defaults to stdout)
      recursive: Whether to recursively list files
      name_only: Only print item name
    """

    def list_tree(r: Repo, treeid: bytes, base: bytes) -> None:
        _, payload = r.object_store.get(treeid)
        for mode, name, sha in parse_tree(payload):
            if base:
                name = base + b"/" + name
            if name_only:
                outstream.write(name.decode(DEFAULT_ENCODING, "replace") + "\n")
            else:
                outstream.write(pretty_format_tree_entry(name, mode, sha))
            if stat.S_ISDIR(mode) and recursive:
                list_tree(r, sha, name)

    with open_repo_closing(repo) as r:
        sha = _to_bytes(treeish)
        type_name, _ = r.object_store.get(sha)
        if type_name == COMMIT:
            sha = r.object_store[sha].tree  # type: ignore[attr-defined]
        elif type_name != TREE:
            raise Error(f"{sha.decode('ascii')} is a {type_name.decode('ascii')}, not a tree")
        list_tree(r, sha, b"")


def _write_tree(r: Repo, path: bytes) -> ObjectID | None:
    entries = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.name == os.fsencode(CONTROLDIR):
                continue
            st = entry.stat(follow_symlinks=False)
            if stat.S_ISDIR(st.st_mode):
                sha = _write_tree(r, entry.path)
                if sha is None:
                    # git does not track empty directories
                    continue
                entries.append(TreeEntry(stat.S_IFDIR, entry.name, sha))
            elif stat.S_ISLNK(st.st_mode):
                sha = r.object_store.put(BLOB, os.readlink(entry.path))
                entries.append(TreeEntry(stat.S_IFLNK, entry.name, sha))
            elif stat.S_ISREG(st.st_mode):
                with open(entry.path, "rb") as f:
                    sha = r.object_store.put(BLOB, f.read())
                mode = 0o100755 if st.st_mode & stat.S_IXUSR else 0o100644
                entries.append(TreeEntry(mode, entry.name, sha))
    if not entries:
        return None
    return r.object_store.put(TREE, serialize_tree(entries))


def write_tree(repo: RepoPath, path: str | os.PathLike[str] | None = None) -> ObjectID:
    """Store a directory as trees and blobs, skipping ``.git``.

    Args:
      repo: Repository to store the objects in
      path: Directory to store (defaults to the working directory of repo)
    Returns: Hex SHA of the top level tree
    """
    with open_repo_closing(repo) as r:
        root = os.fsencode(os.fspath(path if path is not None else r.path))
        sha = _write_tree(r, root)
        if sha is None:
            sha = r.object_store.put(TREE, b"")
        return sha


def _local_timezone(now: float) -> int:
    return time.localtime(now).tm_gmtoff // 60 * 60


def commit_tree(
    repo: RepoPath,
    tree: str | bytes,
    parents: list[str | bytes] | None = None,
    message: str | bytes = b"",
    author: bytes | None = None,
    committer: bytes | None = None,
) -> ObjectID:
    """Create a new commit object.

    Args:
      repo: Path to repository
      tree: An existing tree object
      parents: Parent commit ids
      message: Commit message
      author: Optional author name and email
      committer: Optional committer name and email
    Returns: Hex SHA of the commit
    """
    with open_repo_closing(repo) as r:
        config = r.get_config()
        now = time.time()
        commit = Commit()
        commit.tree = _to_bytes(tree)
        commit.parents = [_to_bytes(p) for p in (parents or [])]
        commit.author = author or get_user_identity(config, "AUTHOR")
        commit.committer = committer or get_user_identity(config, "COMMITTER")
        commit.author_time = commit.commit_time = int(now)
        commit.author_timezone = commit.commit_timezone = _local_timezone(now)
        message = _to_bytes(message)
        if message and not message.endswith(b"\n"):
            message += b"\n"
        commit.message = message
        return r.object_store.add_object(commit)


def write_advertised_refs(
    refs: DiskRefsContainer, advertisement: RefAdvertisement
) -> ObjectID | None:
    """Point HEAD at the advertised branch and record the branch's SHA.

    Returns: The SHA HEAD resolves to, or None for an empty remote
    """
    refs.set_symbolic_ref(HEADREF, advertisement.branch)
    head = advertisement.resolve_head()
    if head is not None:
        refs.set_ref(advertisement.branch, head)
    return head


def clone(
    source: str,
    target: str | os.PathLike[str] | None = None,
    *,
    config: Config | None = None,
    pool_manager: urllib3.PoolManager | None = None,
) -> Repo:
    """Clone a remote repository over smart HTTP.

    Args:
      source: URL of the repository to clone
      target: Directory to clone into; derived from source if None
      config: Configuration for the HTTP client; the new repository's
        configuration if None
      pool_manager: urllib3 pool manager to use
    Returns: The new repository
    """
    if target is None:
        target = source.rstrip("/").rsplit("/", 1)[-1]
        if target.endswith(".git"):
            target = target[: -len(".git")]
    if os.path.isdir(target) and os.listdir(target):
        raise Error(f"destination path '{os.fspath(target)}' already exists and is not empty")

    r = Repo.init(target, mkdir=True)
    repo_config = r.get_config()
    if config is None:
        config = repo_config
    client = HttpGitClient(source, pool_manager=pool_manager, config=config)

    advertisement = client.discover_refs()
    head = write_advertised_refs(r.refs, advertisement)
    if head is None:
        logger.warning("You appear to have cloned an empty repository.")
        return r

    pack_data = client.fetch_pack(head)
    cache = MemoryObjectStore()
    max_delta_depth = repo_config.get_int(b"pack", b"maxDeltaDepth", DEFAULT_MAX_DELTA_DEPTH)
    decode_pack(
        pack_data,
        store=r.object_store,
        cache=cache,
        max_delta_depth=max_delta_depth,  # type: ignore[arg-type]
    )
    logger.info("Received %d objects", len(cache))
    materialize_commit(
        cache,
        head,
        r.path,
        honor_filemode=bool(repo_config.get_boolean(b"core", b"fileMode", True)),
    )
    return r
