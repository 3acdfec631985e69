# pack.py -- Decoding of packfiles received from a remote
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

"""Classes for dealing with packed git objects.

A pack is a 12 byte header followed by a series of entries. Each entry is
either a complete object (zlib compressed) or a delta against another
object, which is identified either by its offset earlier in the same pack
(ofs-delta) or by its SHA (ref-delta).

The checksum trailer is not verified: the pack is only ever decoded from a
buffer that was received in full.
"""

__all__ = [
    "DEFAULT_MAX_DELTA_DEPTH",
    "DELTA_TYPES",
    "OFS_DELTA",
    "PACK_HEADER_SIZE",
    "PACK_SIGNATURE",
    "REF_DELTA",
    "PackDecoder",
    "UnpackedObject",
    "decode_pack",
    "read_pack_header",
    "read_zlib_stream",
    "unpack_object",
]

import logging
import zlib
from collections.abc import Iterator
from struct import unpack_from

from .delta import apply_delta
from .errors import (
    BaseObjectNotFound,
    CorruptPackEntry,
    DeltaChainTooDeep,
    InvalidDeltaBaseOffset,
    InvalidPackHeader,
    TruncatedStream,
    UnknownObjectType,
)
from .object_store import BaseObjectStore, MemoryObjectStore
from .objects import TYPE_NUMS, ObjectID, sha_to_hex
from .varint import decode_entry_header, decode_offset

logger = logging.getLogger(__name__)

PACK_SIGNATURE = b"PACK"
PACK_HEADER_SIZE = 12

OFS_DELTA = 6
REF_DELTA = 7

DELTA_TYPES = (OFS_DELTA, REF_DELTA)

DEFAULT_MAX_DELTA_DEPTH = 256

_ZLIB_BUFSIZE = 65536


def read_pack_header(data: bytes) -> tuple[int, int]:
    """Read the header of a pack.

    Args:
      data: Buffer starting with the pack
    Returns: Tuple of (pack version, number of objects)
    Raises:
      TruncatedStream: fewer than 12 bytes are available
      InvalidPackHeader: bad signature or unsupported version
    """
    if len(data) < PACK_HEADER_SIZE:
        raise TruncatedStream(f"pack of {len(data)} bytes is too short for a header")
    if data[:4] != PACK_SIGNATURE:
        raise InvalidPackHeader(f"Invalid pack header {bytes(data[:4])!r}")
    (version,) = unpack_from(">L", data, 4)
    if version not in (2, 3):
        raise InvalidPackHeader(f"Version was {version}")
    (num_objects,) = unpack_from(">L", data, 8)
    return version, num_objects


def read_zlib_stream(
    data: bytes, offset: int, buffer_size: int = _ZLIB_BUFSIZE
) -> tuple[bytes, int]:
    """Inflate one zlib stream embedded in a larger buffer.

    The buffer is fed to the decompressor in slices until zlib reports the
    end of the stream; the declared size of the entry is not consulted.

    Args:
      data: Buffer holding the stream (and usually more data after it)
      offset: Offset of the first compressed byte
      buffer_size: Size of the slices handed to zlib
    Returns: Tuple of (decompressed bytes, number of compressed bytes consumed)
    Raises:
      TruncatedStream: the buffer ends before the stream does
      CorruptPackEntry: zlib rejected the data
    """
    view = memoryview(data)
    end = len(view)
    decomp_obj = zlib.decompressobj()
    decomp_chunks = []
    pos = offset
    while not decomp_obj.eof:
        if pos >= end:
            raise TruncatedStream(f"EOF before end of zlib stream starting at {offset}")
        add = view[pos : pos + buffer_size]
        try:
            decomp_chunks.append(decomp_obj.decompress(add))
        except zlib.error as exc:
            raise CorruptPackEntry(offset, str(exc)) from exc
        pos += len(add) - len(decomp_obj.unused_data)
    return b"".join(decomp_chunks), pos - offset


class UnpackedObject:
    """An entry read from a pack, before or after delta resolution.

    ``obj_type_name`` and ``obj_data`` start out empty for deltas and are
    filled in once the base has been found.
    """

    __slots__ = [
        "comp_len",  # Length of the compressed data.
        "decomp_data",  # Decompressed entry data (delta instructions for deltas).
        "decomp_len",  # Size declared in the entry header.
        "delta_base",  # Distance to the base (ofs-delta) or base hex SHA (ref-delta).
        "header_len",  # Length of the entry header, including any delta base.
        "obj_data",  # Resolved object payload.
        "obj_type_name",  # Resolved object type.
        "offset",  # Offset in its pack.
        "pack_type_num",  # Type of this entry in the pack (may be a delta).
        "sha",  # Hex SHA once resolved.
    ]

    def __init__(
        self,
        pack_type_num: int,
        offset: int,
        *,
        delta_base: int | ObjectID | None = None,
        decomp_len: int | None = None,
    ) -> None:
        self.pack_type_num = pack_type_num
        self.offset = offset
        self.delta_base = delta_base
        self.decomp_len = decomp_len
        self.decomp_data = b""
        self.comp_len = 0
        self.header_len = 0
        self.sha: ObjectID | None = None
        if pack_type_num in DELTA_TYPES:
            self.obj_type_name: bytes | None = None
            self.obj_data: bytes | None = None
        else:
            self.obj_type_name = TYPE_NUMS[pack_type_num]
            self.obj_data = None

    @property
    def end(self) -> int:
        """Offset of the byte just past this entry."""
        return self.offset + self.header_len + self.comp_len

    def __repr__(self) -> str:
        data = [f"{s}={getattr(self, s)!r}" for s in self.__slots__ if s != "decomp_data"]
        return "{}({})".format(self.__class__.__name__, ", ".join(data))


def unpack_object(data: bytes, offset: int) -> UnpackedObject:
    """Read a single pack entry without resolving deltas.

    Args:
      data: Pack buffer
      offset: Offset of the entry
    Returns: An UnpackedObject with ``decomp_data``, ``header_len`` and
        ``comp_len`` set, and ``obj_data`` set for non-delta entries
    """
    type_num, size, pos = decode_entry_header(data, offset)
    delta_base: int | ObjectID | None
    if type_num == OFS_DELTA:
        delta_base, pos = decode_offset(data, pos)
    elif type_num == REF_DELTA:
        if pos + 20 > len(data):
            raise TruncatedStream(f"ref delta base at {pos} is truncated")
        delta_base = sha_to_hex(bytes(data[pos : pos + 20]))
        pos += 20
    elif type_num in TYPE_NUMS:
        delta_base = None
    else:
        raise UnknownObjectType(f"unknown pack entry type {type_num} at offset {offset}")

    unpacked = UnpackedObject(type_num, offset, delta_base=delta_base, decomp_len=size)
    unpacked.header_len = pos - offset
    unpacked.decomp_data, unpacked.comp_len = read_zlib_stream(data, pos)
    if type_num not in DELTA_TYPES:
        unpacked.obj_data = unpacked.decomp_data
    return unpacked


class PackDecoder:
    """Decode every entry of a pack into an object cache.

    Resolved entries are remembered by offset so that an ofs-delta finds its
    base without decoding it again, however long the chain. A base that was
    not seen as an entry boundary is decoded on demand, recursively; only
    that recursion is bounded by ``max_delta_depth``.
    """

    def __init__(
        self,
        data: bytes,
        store: BaseObjectStore | None = None,
        cache: BaseObjectStore | None = None,
        max_delta_depth: int = DEFAULT_MAX_DELTA_DEPTH,
    ) -> None:
        """Create a decoder.

        Args:
          data: The complete pack, starting with its signature
          store: Store every resolved object is persisted to (optional)
          cache: Object cache; a fresh MemoryObjectStore when omitted
          max_delta_depth: Maximum nesting of on-demand base decoding
        """
        self._data = data
        self.store = store
        self.cache = cache if cache is not None else MemoryObjectStore()
        self.max_delta_depth = max_delta_depth
        self.version, self.num_objects = read_pack_header(data)
        self._offset_index: dict[int, ObjectID] = {}

    def _resolve_ofs_base(self, unpacked: UnpackedObject, depth: int) -> tuple[bytes, bytes]:
        assert isinstance(unpacked.delta_base, int)
        base_offset = unpacked.offset - unpacked.delta_base
        if unpacked.delta_base == 0 or base_offset < PACK_HEADER_SIZE:
            raise InvalidDeltaBaseOffset(unpacked.offset, base_offset)
        try:
            base_sha = self._offset_index[base_offset]
        except KeyError:
            base = self._resolve_at(base_offset, depth + 1)
            assert base.obj_type_name is not None and base.obj_data is not None
            return base.obj_type_name, base.obj_data
        return self.cache.get(base_sha)

    def _resolve(self, unpacked: UnpackedObject, depth: int = 0) -> UnpackedObject:
        """Fill in the type and payload of an entry, then record it."""
        if unpacked.pack_type_num == OFS_DELTA:
            base_type, base_data = self._resolve_ofs_base(unpacked, depth)
            unpacked.obj_type_name = base_type
            unpacked.obj_data = apply_delta(base_data, unpacked.decomp_data)
        elif unpacked.pack_type_num == REF_DELTA:
            assert isinstance(unpacked.delta_base, bytes)
            if unpacked.delta_base not in self.cache:
                raise BaseObjectNotFound(unpacked.delta_base)
            base_type, base_data = self.cache.get(unpacked.delta_base)
            unpacked.obj_type_name = base_type
            unpacked.obj_data = apply_delta(base_data, unpacked.decomp_data)

        assert unpacked.obj_type_name is not None and unpacked.obj_data is not None
        unpacked.sha = self.cache.put(unpacked.obj_type_name, unpacked.obj_data)
        if self.store is not None:
            self.store.put(unpacked.obj_type_name, unpacked.obj_data)
        self._offset_index[unpacked.offset] = unpacked.sha
        logger.debug(
            "resolved type %d entry at offset %d as %s %s",
            unpacked.pack_type_num,
            unpacked.offset,
            unpacked.obj_type_name.decode("ascii"),
            unpacked.sha.decode("ascii"),
        )
        return unpacked

    def _resolve_at(self, offset: int, depth: int) -> UnpackedObject:
        if depth > self.max_delta_depth:
            raise DeltaChainTooDeep(offset, self.max_delta_depth)
        return self._resolve(unpack_object(self._data, offset), depth)

    def get_object_at(self, offset: int) -> tuple[bytes, bytes]:
        """Resolve the entry starting at offset.

        Returns: Tuple of (type name, payload)
        """
        try:
            sha = self._offset_index[offset]
        except KeyError:
            pass
        else:
            return self.cache.get(sha)
        unpacked = self._resolve_at(offset, 0)
        assert unpacked.obj_type_name is not None and unpacked.obj_data is not None
        return unpacked.obj_type_name, unpacked.obj_data

    def iter_unpacked(self) -> Iterator[UnpackedObject]:
        """Decode the entries in pack order, yielding each once resolved."""
        logger.debug(
            "decoding pack version %d with %d objects", self.version, self.num_objects
        )
        pos = PACK_HEADER_SIZE
        for _ in range(self.num_objects):
            unpacked = self._resolve(unpack_object(self._data, pos))
            pos = unpacked.end
            yield unpacked

    def decode(self) -> BaseObjectStore:
        """Decode the whole pack and return the object cache."""
        for _ in self.iter_unpacked():
            pass
        return self.cache


def decode_pack(
    data: bytes,
    store: BaseObjectStore | None = None,
    cache: BaseObjectStore | None = None,
    max_delta_depth: int = DEFAULT_MAX_DELTA_DEPTH,
) -> BaseObjectStore:
    """Decode a pack, storing every object it contains.

    Args:
      data: The complete pack
      store: Store the objects are written to, if any
      cache: Cache the objects are collected in
      max_delta_depth: Maximum nesting of on-demand base decoding
    Returns: The object cache, holding every object in the pack
    """
    return PackDecoder(
        data, store=store, cache=cache, max_delta_depth=max_delta_depth
    ).decode()
