# utils.py -- Test utilities for kloon.
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

"""Utility functions common to kloon tests."""

import struct
import zlib
from hashlib import sha1
from io import BytesIO

from urllib3.response import HTTPResponse

from kloon.delta import COPY_LENGTH_DEFAULT, encode_copy_command
from kloon.objects import TYPE_NUMS, hex_to_sha, obj_sha
from kloon.pack import DELTA_TYPES, OFS_DELTA, REF_DELTA
from kloon.protocol import pkt_line
from kloon.varint import encode_entry_header, encode_offset, encode_size


def pack_header(num_objects: int, version: int = 2) -> bytes:
    return b"PACK" + struct.pack(">LL", version, num_objects)


def pack_entry(type_num: int, data: bytes, delta_base: int | bytes | None = None) -> bytes:
    """Encode a single pack entry.

    Args:
      type_num: Pack type number
      data: Object payload, or delta instructions for delta types
      delta_base: Distance to the base for ofs-delta, hex SHA for ref-delta
    """
    ret = encode_entry_header(type_num, len(data))
    if type_num == OFS_DELTA:
        assert isinstance(delta_base, int)
        ret += encode_offset(delta_base)
    elif type_num == REF_DELTA:
        assert isinstance(delta_base, bytes)
        ret += hex_to_sha(delta_base)
    return ret + zlib.compress(data)


def create_delta(base: bytes, target: bytes) -> bytes:
    """Create a delta that copies the common prefix and inserts the rest."""
    delta = encode_size(len(base)) + encode_size(len(target))
    prefix = 0
    while prefix < min(len(base), len(target)) and base[prefix] == target[prefix]:
        prefix += 1
    for offset in range(0, prefix, COPY_LENGTH_DEFAULT):
        delta += encode_copy_command(offset, min(COPY_LENGTH_DEFAULT, prefix - offset))
    rest = target[prefix:]
    for i in range(0, len(rest), 127):
        chunk = rest[i : i + 127]
        delta += bytes([len(chunk)]) + chunk
    return delta


def build_pack(objects_spec, version: int = 2):
    """Build test pack data from a concise spec.

    Args:
      objects_spec: A list of (type_num, obj). For non-delta types, obj
        is the payload of the object. For delta types, obj is a tuple of
        (base, data), where base is the index in objects_spec of the base
        and data is the full, non-deltified payload of the object.
    Returns: Tuple of (pack data, expected), where expected is a list with
        one (offset, type_name, payload, hex sha) tuple per entry
    """
    full_objects = {}
    for i, (type_num, obj) in enumerate(objects_spec):
        if type_num in DELTA_TYPES:
            base, data = obj
            type_name = full_objects[base][0]
        else:
            type_name, data = TYPE_NUMS[type_num], obj
        full_objects[i] = (type_name, data, obj_sha(type_name, data))

    f = BytesIO()
    f.write(pack_header(len(objects_spec), version))
    offsets = {}
    for i, (type_num, obj) in enumerate(objects_spec):
        offset = f.tell()
        offsets[i] = offset
        if type_num == OFS_DELTA:
            base, data = obj
            delta = create_delta(full_objects[base][1], data)
            f.write(pack_entry(type_num, delta, offset - offsets[base]))
        elif type_num == REF_DELTA:
            base, data = obj
            delta = create_delta(full_objects[base][1], data)
            f.write(pack_entry(type_num, delta, full_objects[base][2]))
        else:
            f.write(pack_entry(type_num, obj))
    f.write(sha1(f.getvalue()).digest())

    expected = [
        (offsets[i], *full_objects[i]) for i in range(len(objects_spec))
    ]
    return f.getvalue(), expected


def advertisement(refs, capabilities=b"multi_ack side-band-64k ofs-delta"):
    """Body of an info/refs response advertising refs (list of (name, sha))."""
    body = pkt_line(b"# service=git-upload-pack\n") + b"0000"
    for i, (name, sha) in enumerate(refs):
        line = sha + b" " + name
        if i == 0:
            line += b"\0" + capabilities
        body += pkt_line(line + b"\n")
    return body + b"0000"


class PoolManagerMock:
    """Stand-in for a urllib3 pool manager serving canned responses.

    responses maps a URL suffix to (status, body); every request made is
    recorded in ``requests`` as (method, url, headers, body).
    """

    def __init__(self, responses) -> None:
        self.headers: dict[str, str] = {}
        self.responses = responses
        self.requests: list[tuple[str, str, dict, bytes | None]] = []

    def request(
        self,
        method,
        url,
        body=None,
        headers=None,
        preload_content=True,
        timeout=None,
    ):
        self.requests.append((method, url, headers or {}, body))
        for suffix, (status, data) in self.responses.items():
            if url.endswith(suffix):
                break
        else:
            status, data = 404, b""
        return HTTPResponse(
            body=BytesIO(data),
            headers={},
            status=status,
            request_method=method,
            request_url=url,
            preload_content=preload_content,
        )
