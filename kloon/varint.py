# varint.py -- Variable-width integer framings used by packs and deltas
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

"""Variable-width integer encoding/decoding.

Git packs use three different framings that look alike but do not share
arithmetic, so each one gets its own pair of functions:

- delta size: 7 bits per byte, little-endian, high bit means "more". Used
  for the base and result sizes at the start of a delta.
- entry header: the first byte carries the 3-bit object type in bits 4-6
  and the lowest 4 bits of the size; every following byte adds 7 more bits.
- offset: big-endian 7-bit groups where every continuation adds one before
  shifting, ``acc = ((acc + 1) << 7) | low7``. Used by offset deltas.

All decoders take a buffer and a start offset and return
``(value, new_offset)``.
"""

__all__ = [
    "decode_entry_header",
    "decode_offset",
    "decode_size",
    "encode_entry_header",
    "encode_offset",
    "encode_size",
]

from .errors import TruncatedStream


def _byte_at(data: bytes, pos: int, what: str) -> int:
    try:
        return data[pos]
    except IndexError:
        raise TruncatedStream(f"buffer ended while reading {what} at {pos}") from None


def encode_size(value: int) -> bytes:
    """Encode an integer using the delta size framing.

    Args:
      value: Non-negative integer to encode
    Returns:
      Encoded bytes
    """
    if value < 0:
        raise ValueError(f"cannot encode negative size {value}")
    ret = bytearray()
    c = value & 0x7F
    value >>= 7
    while value:
        ret.append(c | 0x80)
        c = value & 0x7F
        value >>= 7
    ret.append(c)
    return bytes(ret)


def decode_size(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a delta size framed integer.

    Args:
      data: Bytes to decode from
      offset: Starting offset in data
    Returns:
      tuple of (decoded_value, new_offset)
    """
    value = 0
    shift = 0
    pos = offset
    while True:
        byte = _byte_at(data, pos, "delta size")
        pos += 1
        value |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return value, pos


def encode_entry_header(type_num: int, size: int) -> bytes:
    """Encode the type and size header of a pack entry."""
    if not 0 <= type_num <= 7:
        raise ValueError(f"type number {type_num} does not fit in 3 bits")
    header = bytearray()
    c = (type_num << 4) | (size & 0x0F)
    size >>= 4
    while size:
        header.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    header.append(c)
    return bytes(header)


def decode_entry_header(data: bytes, offset: int = 0) -> tuple[int, int, int]:
    """Decode the type and size header of a pack entry.

    Args:
      data: Pack buffer
      offset: Offset of the entry
    Returns:
      tuple of (type_num, size, new_offset)
    """
    byte = _byte_at(data, offset, "entry header")
    pos = offset + 1
    type_num = (byte >> 4) & 0x07
    size = byte & 0x0F
    shift = 4
    while byte & 0x80:
        byte = _byte_at(data, pos, "entry header")
        pos += 1
        size |= (byte & 0x7F) << shift
        shift += 7
    return type_num, size, pos


def encode_offset(value: int) -> bytes:
    """Encode a negative delta base offset (stored as a positive number)."""
    if value < 0:
        raise ValueError(f"cannot encode negative offset {value}")
    ret = [value & 0x7F]
    value >>= 7
    while value:
        value -= 1
        ret.insert(0, 0x80 | (value & 0x7F))
        value >>= 7
    return bytes(ret)


def decode_offset(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode an offset delta base distance.

    Args:
      data: Pack buffer
      offset: Offset of the first byte of the encoded distance
    Returns:
      tuple of (distance, new_offset)
    """
    byte = _byte_at(data, offset, "delta offset")
    pos = offset + 1
    value = byte & 0x7F
    while byte & 0x80:
        byte = _byte_at(data, pos, "delta offset")
        pos += 1
        value = ((value + 1) << 7) | (byte & 0x7F)
    return value, pos
