# protocol.py -- Shared parts of the git smart protocol
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

"""Generic functions for talking the git smart protocol."""

__all__ = [
    "CAPABILITIES_REF",
    "DEFAULT_BRANCH",
    "FLUSH_PKT",
    "HEAD_REF",
    "PktLineReader",
    "RefAdvertisement",
    "ZERO_SHA",
    "extract_capabilities",
    "parse_ref_advertisement",
    "pkt_line",
]

import logging
from collections.abc import Iterator

from .errors import GitProtocolError
from .objects import ObjectID, valid_hexsha

logger = logging.getLogger(__name__)

ZERO_SHA = b"0" * 40

FLUSH_PKT = b"0000"

HEAD_REF = b"HEAD"
CAPABILITIES_REF = b"capabilities^{}"
CAPABILITY_SYMREF = b"symref"

# Branch HEAD points at when the remote does not tell us better.
DEFAULT_BRANCH = b"refs/heads/master"
# Branches tracked when the remote does not advertise HEAD, in order.
TRACKED_BRANCHES = (b"refs/heads/main", b"refs/heads/master")


def pkt_line(data: bytes | None) -> bytes:
    """Wrap data in a pkt-line.

    Args:
      data: The data to wrap, as a str or None.
    Returns: The data prefixed with its length in pkt-line format; if data was
        None, returns the flush-pkt ('0000').
    """
    if data is None:
        return FLUSH_PKT
    return ("%04x" % (len(data) + 4)).encode("ascii") + data


class PktLineReader:
    """Cursor over a buffer of pkt-lines.

    The buffer is never modified; ``offset`` tracks how far reading got.
    """

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = data
        self.offset = offset

    def eof(self) -> bool:
        return self.offset >= len(self._data)

    def read_pkt_line(self) -> bytes | None:
        """Read the next pkt-line.

        Returns: The payload of the line, or None for a flush-pkt
        Raises:
          GitProtocolError: the length prefix is not valid hex, is below
            four, or runs past the end of the buffer
        """
        sizestr = self._data[self.offset : self.offset + 4]
        if len(sizestr) < 4:
            raise GitProtocolError(f"truncated pkt-line length at offset {self.offset}")
        try:
            size = int(sizestr, 16)
        except ValueError as exc:
            raise GitProtocolError(f"Invalid pkt-line length {sizestr!r}") from exc
        if size == 0:
            self.offset += 4
            return None
        if size < 4:
            raise GitProtocolError(f"Invalid pkt-line length {sizestr!r}")
        end = self.offset + size
        if end > len(self._data):
            raise GitProtocolError(
                f"pkt-line at offset {self.offset} claims {size} bytes, "
                f"only {len(self._data) - self.offset} available"
            )
        pkt = self._data[self.offset + 4 : end]
        self.offset = end
        return pkt

    def read_pkt_seq(self) -> Iterator[bytes]:
        """Read a sequence of pkt-lines up to the next flush-pkt."""
        while not self.eof():
            pkt = self.read_pkt_line()
            if pkt is None:
                return
            yield pkt

    def __iter__(self) -> Iterator[bytes | None]:
        """Iterate over every remaining pkt-line, flush-pkts included."""
        while not self.eof():
            yield self.read_pkt_line()


def extract_capabilities(text: bytes) -> tuple[bytes, list[bytes]]:
    """Extract a capabilities list from a string, if present.

    Args:
      text: String to extract from
    Returns: Tuple with text with capabilities removed and list of capabilities
    """
    if b"\0" not in text:
        return text, []
    text, capabilities = text.rstrip().split(b"\0", 1)
    return (text, capabilities.strip().split())


class RefAdvertisement:
    """Refs and capabilities advertised by an upload-pack server.

    Attributes:
      refs: ref name -> hex SHA, in the order advertised
      capabilities: capability strings from the first ref line
      head: SHA advertised for HEAD, if any
      branch: branch HEAD should point at locally
      branch_sha: SHA of ``branch`` as advertised, if any
    """

    def __init__(
        self,
        refs: dict[bytes, ObjectID] | None = None,
        capabilities: list[bytes] | None = None,
    ) -> None:
        self.refs = dict(refs or {})
        self.capabilities = list(capabilities or [])
        self.head = self.refs.get(HEAD_REF)
        self.branch = self._find_branch()
        self.branch_sha = self.refs.get(self.branch)

    def symrefs(self) -> dict[bytes, bytes]:
        """Symbolic refs announced through the ``symref`` capability."""
        ret = {}
        for capability in self.capabilities:
            key, _, value = capability.partition(b"=")
            if key == CAPABILITY_SYMREF and b":" in value:
                src, dst = value.split(b":", 1)
                ret[src] = dst
        return ret

    def _find_branch(self) -> bytes:
        target = self.symrefs().get(HEAD_REF)
        if target is not None:
            return target
        for name in self.refs:
            if name in TRACKED_BRANCHES:
                return name
        return DEFAULT_BRANCH

    def resolve_head(self) -> ObjectID | None:
        """SHA HEAD resolves to: the HEAD line, else the tracked branch."""
        if self.head is not None:
            return self.head
        return self.branch_sha

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(refs={self.refs!r}, "
            f"capabilities={self.capabilities!r})"
        )


def parse_ref_advertisement(data: bytes) -> RefAdvertisement:
    """Parse the body of an ``info/refs?service=git-upload-pack`` response.

    Service announcement lines (starting with ``#``) and flush-pkts are
    skipped; the capability list is split off the first ref line.

    Raises:
      GitProtocolError: on malformed framing or an ``ERR`` line
    """
    refs: dict[bytes, ObjectID] = {}
    capabilities: list[bytes] | None = None
    for pkt in PktLineReader(data):
        if not pkt or pkt.startswith(b"#"):
            continue
        line = pkt.rstrip(b"\n")
        if capabilities is None and b"\0" in line:
            line, capabilities = extract_capabilities(line)
        try:
            sha, ref = line.split(None, 1)
        except ValueError:
            raise GitProtocolError(f"malformed ref line {pkt!r}") from None
        if sha == b"ERR":
            raise GitProtocolError(ref.decode("utf-8", "replace"))
        if not valid_hexsha(sha):
            raise GitProtocolError(f"invalid object id in ref line {pkt!r}")
        if ref == CAPABILITIES_REF and sha == ZERO_SHA:
            continue
        refs.setdefault(ref, sha)
    logger.debug("remote advertised %d refs", len(refs))
    return RefAdvertisement(refs, capabilities)
