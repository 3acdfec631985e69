# errors.py -- errors for kloon
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

"""kloon-related exception classes.

None of these are retried internally; a clone either completes or raises
one of them.
"""

__all__ = [
    "ApplyDeltaError",
    "BaseObjectNotFound",
    "CheckoutError",
    "CorruptObject",
    "CorruptPackEntry",
    "DeltaBaseSizeMismatch",
    "DeltaChainTooDeep",
    "DeltaCopyOutOfRange",
    "DeltaResultSizeMismatch",
    "FileFormatException",
    "GitProtocolError",
    "InvalidDeltaBaseOffset",
    "InvalidDeltaOpcode",
    "InvalidPackHeader",
    "InvalidTreeEntryName",
    "MissingBlobObject",
    "MissingCommitObject",
    "MissingTreeObject",
    "NotGitRepository",
    "ObjectFormatException",
    "ObjectNotFound",
    "PackSignatureNotFound",
    "TransportFailure",
    "TruncatedStream",
    "UnknownObjectType",
]


def _hex(sha: bytes) -> str:
    if len(sha) == 20:
        return sha.hex()
    return sha.decode("ascii", "replace")


class ObjectNotFound(KeyError):
    """A requested object is not present in an object store."""

    def __init__(self, sha: bytes) -> None:
        """Initialize an ObjectNotFound exception.

        Args:
            sha: The hex (or binary) SHA of the missing object.
        """
        self.sha = sha
        super().__init__(sha)

    def __str__(self) -> str:
        return f"object {_hex(self.sha)} not found"


class FileFormatException(Exception):
    """Base class for exceptions relating to reading git file formats."""


class CorruptObject(FileFormatException):
    """A loose object could not be decompressed or parsed."""

    def __init__(self, sha: bytes, reason: str) -> None:
        """Initialize a CorruptObject exception.

        Args:
            sha: SHA of the offending object.
            reason: Human readable description of the problem.
        """
        self.sha = sha
        self.reason = reason
        super().__init__(f"object {_hex(sha)} is corrupt: {reason}")


class ObjectFormatException(FileFormatException):
    """Indicates an error parsing an object."""


class TruncatedStream(FileFormatException):
    """A buffer ended before a complete value or stream could be read."""


class InvalidPackHeader(FileFormatException):
    """The fixed pack header has a bad signature or an unsupported version."""


class CorruptPackEntry(FileFormatException):
    """The compressed data of a pack entry could not be inflated."""

    def __init__(self, offset: int, reason: str) -> None:
        """Initialize a CorruptPackEntry exception.

        Args:
            offset: Offset of the entry in the pack.
            reason: Description of the failure.
        """
        self.offset = offset
        super().__init__(f"corrupt pack entry at offset {offset}: {reason}")


class UnknownObjectType(FileFormatException):
    """An object type number or name is not one we know about."""


class ApplyDeltaError(Exception):
    """Indicates that applying a delta failed."""


class DeltaBaseSizeMismatch(ApplyDeltaError):
    """The base object does not have the size declared by the delta."""

    def __init__(self, expected: int, got: int) -> None:
        """Initialize a DeltaBaseSizeMismatch exception.

        Args:
            expected: Base size declared in the delta header.
            got: Actual length of the base.
        """
        self.expected = expected
        self.got = got
        super().__init__(f"unexpected base size: delta expects {expected}, got {got}")


class DeltaResultSizeMismatch(ApplyDeltaError):
    """The reconstructed object does not have the size declared by the delta."""

    def __init__(self, expected: int, got: int) -> None:
        """Initialize a DeltaResultSizeMismatch exception.

        Args:
            expected: Result size declared in the delta header.
            got: Length actually produced.
        """
        self.expected = expected
        self.got = got
        super().__init__(f"delta result size {got} does not match declared {expected}")


class DeltaCopyOutOfRange(ApplyDeltaError):
    """A copy command reaches beyond the end of the base."""

    def __init__(self, offset: int, length: int, base_size: int) -> None:
        """Initialize a DeltaCopyOutOfRange exception.

        Args:
            offset: Copy offset into the base.
            length: Copy length.
            base_size: Length of the base.
        """
        self.offset = offset
        self.length = length
        self.base_size = base_size
        super().__init__(
            f"copy of {length} bytes at offset {offset} exceeds base of {base_size} bytes"
        )


class InvalidDeltaOpcode(ApplyDeltaError):
    """A delta stream contains the reserved opcode 0."""


class DeltaChainTooDeep(InvalidDeltaOpcode):
    """Offset-delta base resolution recursed deeper than allowed."""

    def __init__(self, offset: int, max_depth: int) -> None:
        """Initialize a DeltaChainTooDeep exception.

        Args:
            offset: Pack offset at which the limit was hit.
            max_depth: The configured limit.
        """
        self.offset = offset
        self.max_depth = max_depth
        super().__init__(
            f"delta base at offset {offset} nests deeper than {max_depth} levels"
        )


class InvalidDeltaBaseOffset(ApplyDeltaError):
    """An offset delta points at itself or before the start of the pack."""

    def __init__(self, offset: int, base_offset: int) -> None:
        """Initialize an InvalidDeltaBaseOffset exception.

        Args:
            offset: Offset of the delta entry.
            base_offset: Computed offset of its base.
        """
        self.offset = offset
        self.base_offset = base_offset
        super().__init__(
            f"offset delta at {offset} refers to invalid base offset {base_offset}"
        )


class BaseObjectNotFound(ApplyDeltaError):
    """The base of a ref delta is not among the objects decoded so far."""

    def __init__(self, sha: bytes) -> None:
        """Initialize a BaseObjectNotFound exception.

        Args:
            sha: SHA of the missing base object.
        """
        self.sha = sha
        super().__init__(f"delta base {_hex(sha)} not found")


class GitProtocolError(Exception):
    """Git protocol exception."""

    def __eq__(self, other: object) -> bool:
        """Check equality between GitProtocolError instances."""
        return isinstance(other, GitProtocolError) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class PackSignatureNotFound(GitProtocolError):
    """A fetch response was received but contains no pack data."""

    def __init__(self, response_length: int) -> None:
        """Initialize a PackSignatureNotFound exception.

        Args:
            response_length: Length of the response body that was scanned.
        """
        self.response_length = response_length
        super().__init__(
            f"no pack signature in fetch response of {response_length} bytes"
        )


class TransportFailure(GitProtocolError):
    """The HTTP transport failed or returned an unexpected status."""


class NotGitRepository(Exception):
    """Indicates that no Git repository was found."""


class CheckoutError(Exception):
    """Base class for errors while materializing a working tree."""


class MissingCommitObject(CheckoutError):
    """The commit to check out is not in the object cache."""

    def __init__(self, sha: bytes) -> None:
        """Initialize a MissingCommitObject exception."""
        self.sha = sha
        super().__init__(f"commit {_hex(sha)} not found")


class MissingTreeObject(CheckoutError):
    """A tree referenced during checkout is not in the object cache."""

    def __init__(self, sha: bytes) -> None:
        """Initialize a MissingTreeObject exception."""
        self.sha = sha
        super().__init__(f"tree {_hex(sha)} not found")


class MissingBlobObject(CheckoutError):
    """A blob referenced during checkout is not in the object cache."""

    def __init__(self, sha: bytes) -> None:
        """Initialize a MissingBlobObject exception."""
        self.sha = sha
        super().__init__(f"blob {_hex(sha)} not found")


class InvalidTreeEntryName(CheckoutError):
    """A tree entry name would escape or clobber the working tree."""

    def __init__(self, name: bytes) -> None:
        """Initialize an InvalidTreeEntryName exception."""
        self.name = name
        super().__init__(f"refusing to check out tree entry {name!r}")
