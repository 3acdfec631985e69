# delta.py -- Applying git binary deltas
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

"""Reconstruction of objects from git binary deltas.

A delta starts with the base size and the result size (delta size framing,
see :mod:`kloon.varint`) followed by a sequence of instructions:

- ``1xxxxxxx``: copy from the base. Bits 0-3 select which of up to four
  little-endian offset bytes follow, bits 4-6 which of up to three length
  bytes follow. A length of zero means 0x10000.
- ``0nnnnnnn`` with n > 0: insert the next n bytes of the delta verbatim.
- ``00000000``: reserved.
"""

__all__ = [
    "COPY_LENGTH_DEFAULT",
    "apply_delta",
    "encode_copy_command",
    "get_delta_header",
]

from .errors import (
    DeltaBaseSizeMismatch,
    DeltaCopyOutOfRange,
    DeltaResultSizeMismatch,
    InvalidDeltaOpcode,
    TruncatedStream,
)
from .varint import decode_size

# Copy length used when none of the length bits are set.
COPY_LENGTH_DEFAULT = 0x10000


def get_delta_header(delta: bytes) -> tuple[int, int, int]:
    """Read the declared sizes from the start of a delta.

    Returns: tuple of (base_size, result_size, offset of first instruction)
    """
    base_size, index = decode_size(delta, 0)
    result_size, index = decode_size(delta, index)
    return base_size, result_size, index


def encode_copy_command(offset: int, length: int) -> bytes:
    """Encode a single copy instruction, omitting zero bytes."""
    scratch = bytearray([0x80])
    for i in range(4):
        if offset & (0xFF << i * 8):
            scratch.append((offset >> i * 8) & 0xFF)
            scratch[0] |= 1 << i
    if length != COPY_LENGTH_DEFAULT:
        for i in range(3):
            if length & (0xFF << i * 8):
                scratch.append((length >> i * 8) & 0xFF)
                scratch[0] |= 1 << (4 + i)
    return bytes(scratch)


def apply_delta(base: bytes, delta: bytes) -> bytes:
    """Apply a delta instruction stream to a base.

    Args:
      base: Base object contents
      delta: Delta instructions, including the size header
    Returns: The reconstructed contents
    Raises:
      DeltaBaseSizeMismatch: the base is not the size the delta expects
      DeltaCopyOutOfRange: a copy reaches past the end of the base
      InvalidDeltaOpcode: the reserved opcode 0 was found
      DeltaResultSizeMismatch: the output is not the declared size
      TruncatedStream: an instruction runs past the end of the delta
    """
    base_size, result_size, index = get_delta_header(delta)
    if base_size != len(base):
        raise DeltaBaseSizeMismatch(base_size, len(base))
    delta_length = len(delta)
    out = bytearray()

    def next_byte() -> int:
        nonlocal index
        if index >= delta_length:
            raise TruncatedStream("delta ended inside a copy instruction")
        value = delta[index]
        index += 1
        return value

    while index < delta_length:
        cmd = delta[index]
        index += 1
        if cmd & 0x80:
            cp_off = 0
            for i in range(4):
                if cmd & (1 << i):
                    cp_off |= next_byte() << (i * 8)
            cp_size = 0
            for i in range(3):
                if cmd & (1 << (4 + i)):
                    cp_size |= next_byte() << (i * 8)
            if cp_size == 0:
                cp_size = COPY_LENGTH_DEFAULT
            if cp_off + cp_size > base_size:
                raise DeltaCopyOutOfRange(cp_off, cp_size, base_size)
            out += base[cp_off : cp_off + cp_size]
        elif cmd:
            if index + cmd > delta_length:
                raise TruncatedStream(
                    f"insert of {cmd} bytes runs past end of delta at {index}"
                )
            out += delta[index : index + cmd]
            index += cmd
        else:
            raise InvalidDeltaOpcode(f"invalid delta opcode 0 at offset {index - 1}")

    if len(out) != result_size:
        raise DeltaResultSizeMismatch(result_size, len(out))
    return bytes(out)
