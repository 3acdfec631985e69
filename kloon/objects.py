# objects.py -- Access to base git objects
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

"""Access to base git objects.

An object is a ``(type_name, payload)`` pair. Its name is the SHA-1 of
``b"<type_name> <len(payload)>\\0" + payload``, handled here as 40 byte
lowercase hex strings (``ObjectID``).
"""

__all__ = [
    "BLOB",
    "COMMIT",
    "OBJECT_TYPES",
    "S_IFGITLINK",
    "TAG",
    "TREE",
    "TYPE_NUMS",
    "Blob",
    "Commit",
    "ObjectID",
    "ShaFile",
    "Tag",
    "Tree",
    "TreeEntry",
    "format_timezone",
    "hex_to_sha",
    "obj_sha",
    "object_class",
    "object_header",
    "parse_timezone",
    "parse_tree",
    "serialize_tree",
    "sha_to_hex",
    "sorted_tree_items",
    "split_object_header",
    "valid_hexsha",
]

import binascii
import stat
from collections.abc import Iterable, Iterator
from hashlib import sha1
from typing import ClassVar, NamedTuple

from .errors import ObjectFormatException, UnknownObjectType

ObjectID = bytes

BLOB = b"blob"
TREE = b"tree"
COMMIT = b"commit"
TAG = b"tag"

OBJECT_TYPES = (COMMIT, TREE, BLOB, TAG)

# Type numbers as used in pack entry headers.
TYPE_NUMS = {1: COMMIT, 2: TREE, 3: BLOB, 4: TAG}

S_IFGITLINK = 0o160000

_TREE_HEADER = b"tree"
_PARENT_HEADER = b"parent"
_AUTHOR_HEADER = b"author"
_COMMITTER_HEADER = b"committer"
_OBJECT_HEADER = b"object"
_TYPE_HEADER = b"type"
_TAG_HEADER = b"tag"
_TAGGER_HEADER = b"tagger"


def S_ISGITLINK(m: int) -> bool:
    """Check if a mode indicates a submodule."""
    return stat.S_IFMT(m) == S_IFGITLINK


def sha_to_hex(sha: bytes) -> ObjectID:
    """Takes a binary sha and returns its 40 byte hex form."""
    hexsha = binascii.hexlify(sha)
    if len(hexsha) != 40:
        raise ValueError(f"Incorrect length of sha1 string: {hexsha!r}")
    return hexsha


def hex_to_sha(hex: bytes | str) -> bytes:
    """Takes a hex sha and returns a binary sha."""
    if len(hex) != 40:
        raise ValueError(f"Incorrect length of hexsha: {hex!r}")
    try:
        return binascii.unhexlify(hex)
    except binascii.Error as exc:
        raise ValueError(exc.args[0]) from exc


def valid_hexsha(hex: bytes | str) -> bool:
    """Check whether a value looks like a 40 character hex sha."""
    if len(hex) != 40:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, binascii.Error):
        return False
    return True


def object_header(type_name: bytes, length: int) -> bytes:
    """Return the framing header for an object of the given type and size."""
    return type_name + b" " + str(length).encode("ascii") + b"\0"


def obj_sha(type_name: bytes, payload: bytes) -> ObjectID:
    """Compute the hex SHA of an object."""
    sha = sha1(object_header(type_name, len(payload)))
    sha.update(payload)
    return sha.hexdigest().encode("ascii")


def split_object_header(raw: bytes) -> tuple[bytes, bytes]:
    """Split framed object data into its type name and payload.

    Raises:
      ObjectFormatException: no NUL, an unknown type, or a size that does
        not match the payload
    """
    end = raw.find(b"\0")
    if end == -1:
        raise ObjectFormatException("no NUL byte after object header")
    header = raw[:end]
    try:
        type_name, size_text = header.split(b" ", 1)
        size = int(size_text)
    except ValueError:
        raise ObjectFormatException(f"malformed object header {header!r}") from None
    if type_name not in OBJECT_TYPES:
        raise ObjectFormatException(f"unknown object type {type_name!r}")
    payload = raw[end + 1 :]
    if size != len(payload):
        raise ObjectFormatException(
            f"object header declares {size} bytes, payload has {len(payload)}"
        )
    return type_name, payload


def object_class(type_name: bytes) -> type["ShaFile"]:
    """Get the object class corresponding to the given type name.

    Raises:
      UnknownObjectType: for anything but blob, tree, commit and tag
    """
    try:
        return _TYPE_MAP[type_name]
    except KeyError:
        raise UnknownObjectType(f"unknown object type {type_name!r}") from None


class ShaFile:
    """A git object."""

    type_name: ClassVar[bytes]

    @classmethod
    def from_raw_string(cls, type_name: bytes, data: bytes) -> "ShaFile":
        """Create an object of the indicated type from its payload."""
        obj = object_class(type_name)()
        obj._deserialize(data)
        return obj

    @classmethod
    def from_string(cls, data: bytes) -> "ShaFile":
        """Create an object of this class from its payload."""
        obj = cls()
        obj._deserialize(data)
        return obj

    def _deserialize(self, data: bytes) -> None:
        raise NotImplementedError(self._deserialize)

    def _serialize(self) -> bytes:
        raise NotImplementedError(self._serialize)

    def as_raw_string(self) -> bytes:
        """Return the payload of this object."""
        return self._serialize()

    @property
    def id(self) -> ObjectID:
        """The hex SHA of this object."""
        return obj_sha(self.type_name, self.as_raw_string())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ShaFile) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id.decode('ascii')}>"


class Blob(ShaFile):
    """A Git Blob object."""

    type_name = BLOB

    def __init__(self) -> None:
        super().__init__()
        self.data = b""

    def _deserialize(self, data: bytes) -> None:
        self.data = data

    def _serialize(self) -> bytes:
        return self.data


class TreeEntry(NamedTuple):
    """A single entry of a tree."""

    mode: int
    name: bytes
    sha: ObjectID

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)


def parse_tree(text: bytes) -> Iterator[TreeEntry]:
    """Parse a tree payload.

    Args:
      text: Serialized tree
    Returns: iterator of TreeEntry, in the order they are stored
    Raises:
      ObjectFormatException: if the tree is malformed
    """
    count = 0
    length = len(text)
    while count < length:
        mode_end = text.find(b" ", count)
        if mode_end == -1:
            raise ObjectFormatException("tree entry without mode terminator")
        mode_text = text[count:mode_end]
        try:
            mode = int(mode_text, 8)
        except ValueError:
            raise ObjectFormatException(f"invalid mode {mode_text!r}") from None
        name_end = text.find(b"\0", mode_end)
        if name_end == -1:
            raise ObjectFormatException("tree entry without name terminator")
        name = text[mode_end + 1 : name_end]
        count = name_end + 21
        if count > length:
            raise ObjectFormatException("tree entry sha is truncated")
        yield TreeEntry(mode, name, sha_to_hex(text[name_end + 1 : count]))


def sorted_tree_items(entries: Iterable[TreeEntry]) -> list[TreeEntry]:
    """Sort tree entries by the raw bytes of their names."""
    return sorted(entries, key=lambda entry: entry.name)


def serialize_tree(entries: Iterable[TreeEntry]) -> bytes:
    """Serialize tree entries, sorting them by name first.

    Directory modes come out without a leading zero (``40000``).
    """
    chunks = []
    for entry in sorted_tree_items(entries):
        chunks.append(b"%o %s\0%s" % (entry.mode, entry.name, hex_to_sha(entry.sha)))
    return b"".join(chunks)


class Tree(ShaFile):
    """A Git tree object."""

    type_name = TREE

    def __init__(self) -> None:
        super().__init__()
        self._entries: dict[bytes, TreeEntry] = {}

    def _deserialize(self, data: bytes) -> None:
        self._entries = {entry.name: entry for entry in parse_tree(data)}

    def _serialize(self) -> bytes:
        return serialize_tree(self._entries.values())

    def add(self, name: bytes, mode: int, sha: ObjectID) -> None:
        """Add or replace an entry."""
        if not name or b"/" in name or b"\0" in name:
            raise ObjectFormatException(f"invalid tree entry name {name!r}")
        self._entries[name] = TreeEntry(mode, name, sha)

    def __getitem__(self, name: bytes) -> TreeEntry:
        return self._entries[name]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def items(self) -> list[TreeEntry]:
        """Return the entries sorted the way they are serialized."""
        return sorted_tree_items(self._entries.values())


def parse_timezone(text: bytes) -> int:
    """Parse a timezone like ``+0100`` into an offset in seconds."""
    if len(text) != 5 or text[:1] not in (b"+", b"-") or not text[1:].isdigit():
        raise ObjectFormatException(f"invalid timezone {text!r}")
    sign = -1 if text[:1] == b"-" else 1
    hours = int(text[1:3])
    minutes = int(text[3:5])
    return sign * (hours * 3600 + minutes * 60)


def format_timezone(offset: int) -> bytes:
    """Format a timezone offset in seconds as ``+hhmm``."""
    if offset % 60 != 0:
        raise ValueError("Unable to handle non-minute offset.")
    sign = "-" if offset < 0 else "+"
    offset = abs(offset)
    return f"{sign}{offset // 3600:02d}{(offset // 60) % 60:02d}".encode("ascii")


def _parse_identity_line(value: bytes) -> tuple[bytes, int | None, int | None]:
    """Split ``Name <email> <time> <tz>`` into identity, time and timezone."""
    try:
        identity, time_text, tz_text = value.rsplit(b" ", 2)
        return identity, int(time_text), parse_timezone(tz_text)
    except (ValueError, ObjectFormatException):
        return value, None, None


def _format_identity_line(identity: bytes, time: int | None, timezone: int | None) -> bytes:
    if time is None or timezone is None:
        return identity
    return identity + b" " + str(time).encode("ascii") + b" " + format_timezone(timezone)


def _parse_headers(data: bytes) -> tuple[list[tuple[bytes, bytes]], bytes]:
    """Split a commit or tag payload into ordered headers and the message.

    Continuation lines (leading space) are folded into the previous value.
    """
    headers: list[tuple[bytes, bytes]] = []
    header_text, sep, message = data.partition(b"\n\n")
    if not sep and header_text.endswith(b"\n"):
        header_text = header_text[:-1]
    for line in (header_text.split(b"\n") if header_text else []):
        if line.startswith(b" "):
            if not headers:
                raise ObjectFormatException("continuation line without header")
            key, value = headers[-1]
            headers[-1] = (key, value + b"\n" + line[1:])
            continue
        key, _, value = line.partition(b" ")
        headers.append((key, value))
    return headers, message


class Commit(ShaFile):
    """A git commit object."""

    type_name = COMMIT

    def __init__(self) -> None:
        super().__init__()
        self.tree: ObjectID | None = None
        self.parents: list[ObjectID] = []
        self.author = b""
        self.author_time: int | None = None
        self.author_timezone: int | None = None
        self.committer = b""
        self.commit_time: int | None = None
        self.commit_timezone: int | None = None
        self.message = b""
        self.extra: list[tuple[bytes, bytes]] = []

    def _deserialize(self, data: bytes) -> None:
        headers, self.message = _parse_headers(data)
        self.parents = []
        self.extra = []
        for key, value in headers:
            if key == _TREE_HEADER:
                self.tree = value
            elif key == _PARENT_HEADER:
                self.parents.append(value)
            elif key == _AUTHOR_HEADER:
                self.author, self.author_time, self.author_timezone = (
                    _parse_identity_line(value)
                )
            elif key == _COMMITTER_HEADER:
                self.committer, self.commit_time, self.commit_timezone = (
                    _parse_identity_line(value)
                )
            else:
                self.extra.append((key, value))
        if self.tree is None:
            raise ObjectFormatException("commit has no tree")

    def _serialize(self) -> bytes:
        if self.tree is None:
            raise ObjectFormatException("commit has no tree")
        lines = [_TREE_HEADER + b" " + self.tree]
        lines.extend(_PARENT_HEADER + b" " + parent for parent in self.parents)
        lines.append(
            _AUTHOR_HEADER
            + b" "
            + _format_identity_line(self.author, self.author_time, self.author_timezone)
        )
        lines.append(
            _COMMITTER_HEADER
            + b" "
            + _format_identity_line(self.committer, self.commit_time, self.commit_timezone)
        )
        for key, value in self.extra:
            lines.append(key + b" " + value.replace(b"\n", b"\n "))
        return b"\n".join(lines) + b"\n\n" + self.message


class Tag(ShaFile):
    """A git annotated tag object."""

    type_name = TAG

    def __init__(self) -> None:
        super().__init__()
        self.object: ObjectID | None = None
        self.object_type: bytes | None = None
        self.name = b""
        self.tagger: bytes | None = None
        self.message = b""
        self._raw = b""

    def _deserialize(self, data: bytes) -> None:
        self._raw = data
        headers, self.message = _parse_headers(data)
        for key, value in headers:
            if key == _OBJECT_HEADER:
                self.object = value
            elif key == _TYPE_HEADER:
                self.object_type = value
            elif key == _TAG_HEADER:
                self.name = value
            elif key == _TAGGER_HEADER:
                self.tagger = value

    def _serialize(self) -> bytes:
        # Tags are only ever read, keep their exact bytes.
        return self._raw


_TYPE_MAP: dict[bytes, type[ShaFile]] = {
    BLOB: Blob,
    TREE: Tree,
    COMMIT: Commit,
    TAG: Tag,
}
