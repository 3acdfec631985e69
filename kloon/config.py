# config.py - Reading and writing Git config files
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

"""Reading and writing Git configuration files.

Section and variable names are case insensitive, subsection names are not.
Values are kept as bytes. Include directives and line continuations are not
supported.
"""

__all__ = [
    "Config",
    "ConfigDict",
    "ConfigFile",
]

import os
import sys
from collections.abc import Iterator
from typing import IO

from .file import GitFile, LockedFile

Section = tuple[bytes, ...]
SectionLike = bytes | str | tuple[bytes | str, ...]
Name = bytes
NameLike = bytes | str
Value = bytes
ValueLike = bytes | str


def lower_key(key: Section | Name) -> Section | Name:
    """Normalize a section or name for case-insensitive lookup.

    Only the section name part of a section tuple is lowered.
    """
    if isinstance(key, bytes):
        return key.lower()
    if len(key) > 1:
        return (key[0].lower(), *key[1:])
    return (key[0].lower(),)


class Config:
    """A Git configuration."""

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Retrieve the contents of a configuration setting.

        Args:
          section: Tuple with section name and optional subsection name
          name: Variable name
        Returns:
          Contents of the setting
        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get)

    def get_multivar(self, section: SectionLike, name: NameLike) -> Iterator[Value]:
        """Retrieve every value of a multivar setting."""
        raise NotImplementedError(self.get_multivar)

    def get_boolean(
        self, section: SectionLike, name: NameLike, default: bool | None = None
    ) -> bool | None:
        """Retrieve a configuration setting as boolean.

        Args:
          section: Tuple with section name and optional subsection name
          name: Name of the setting
          default: Default value if setting is not found
        Returns:
          Contents of the setting
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        if value.lower() in (b"true", b"yes", b"on", b"1"):
            return True
        elif value.lower() in (b"false", b"no", b"off", b"0", b""):
            return False
        raise ValueError(f"not a valid boolean string: {value!r}")

    def get_int(
        self, section: SectionLike, name: NameLike, default: int | None = None
    ) -> int | None:
        """Retrieve a configuration setting as an integer.

        The ``k``, ``m`` and ``g`` suffixes scale by powers of 1024.
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        text = value.strip().lower()
        scale = 1
        if text[-1:] in (b"k", b"m", b"g"):
            scale = 1024 ** (b"kmg".index(text[-1:]) + 1)
            text = text[:-1]
        try:
            return int(text) * scale
        except ValueError:
            raise ValueError(f"not a valid integer: {value!r}") from None

    def set(self, section: SectionLike, name: NameLike, value: ValueLike | bool) -> None:
        """Set a configuration value."""
        raise NotImplementedError(self.set)

    def sections(self) -> Iterator[Section]:
        """Iterate over the sections."""
        raise NotImplementedError(self.sections)

    def has_section(self, name: Section) -> bool:
        """Check if a specified section exists."""
        return lower_key(name) in (lower_key(s) for s in self.sections())


class ConfigDict(Config):
    """Git configuration stored in a dictionary."""

    def __init__(self, encoding: str | None = None) -> None:
        if encoding is None:
            encoding = sys.getdefaultencoding()
        self.encoding = encoding
        # lowered section -> (section as written, [(name, value), ...])
        self._values: dict[Section, tuple[Section, list[tuple[Name, Value]]]] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._values!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, self.__class__) and other._values == self._values

    def _check_section_and_name(
        self, section: SectionLike, name: NameLike
    ) -> tuple[Section, Name]:
        if not isinstance(section, tuple):
            section = (section,)
        checked_section = tuple(
            subsection.encode(self.encoding)
            if not isinstance(subsection, bytes)
            else subsection
            for subsection in section
        )
        if not isinstance(name, bytes):
            name = name.encode(self.encoding)
        return checked_section, name

    def _section_values(self, section: Section) -> list[tuple[Name, Value]]:
        return self._values[lower_key(section)][1]  # type: ignore[index]

    def get_multivar(self, section: SectionLike, name: NameLike) -> Iterator[Value]:
        section, name = self._check_section_and_name(section, name)
        name = name.lower()
        candidates = [section] if len(section) == 1 else [section, (section[0],)]
        for candidate in candidates:
            try:
                values = self._section_values(candidate)
            except KeyError:
                continue
            found = [v for (n, v) in values if n.lower() == name]
            if found:
                return iter(found)
        raise KeyError(name)

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Get a configuration value; the last one wins for multivars.

        Raises:
          KeyError: if the value is not set
        """
        return list(self.get_multivar(section, name))[-1]

    def _encode_value(self, value: ValueLike | bool) -> Value:
        if isinstance(value, bool):
            return b"true" if value else b"false"
        if not isinstance(value, bytes):
            return value.encode(self.encoding)
        return value

    def set(self, section: SectionLike, name: NameLike, value: ValueLike | bool) -> None:
        section, name = self._check_section_and_name(section, name)
        value = self._encode_value(value)
        _, values = self._values.setdefault(lower_key(section), (section, []))  # type: ignore[arg-type]
        lowered = name.lower()
        values[:] = [(n, v) for (n, v) in values if n.lower() != lowered]
        values.append((name, value))

    def add(self, section: SectionLike, name: NameLike, value: ValueLike | bool) -> None:
        """Add a value to a setting, creating a multivar if needed."""
        section, name = self._check_section_and_name(section, name)
        _, values = self._values.setdefault(lower_key(section), (section, []))  # type: ignore[arg-type]
        values.append((name, self._encode_value(value)))

    def items(self, section: SectionLike) -> Iterator[tuple[Name, Value]]:
        """Iterate over the (name, value) pairs of a section."""
        section, _ = self._check_section_and_name(section, b"")
        try:
            return iter(list(self._section_values(section)))
        except KeyError:
            return iter([])

    def sections(self) -> Iterator[Section]:
        return iter([written for (written, _) in self._values.values()])


def _format_string(value: bytes) -> bytes:
    if (
        value.startswith((b" ", b"\t"))
        or value.endswith((b" ", b"\t"))
        or b"#" in value
        or b";" in value
    ):
        return b'"' + _escape_value(value) + b'"'
    else:
        return _escape_value(value)


_ESCAPE_TABLE = {
    ord(b"\\"): ord(b"\\"),
    ord(b'"'): ord(b'"'),
    ord(b"n"): ord(b"\n"),
    ord(b"t"): ord(b"\t"),
    ord(b"b"): ord(b"\b"),
}
_COMMENT_CHARS = [ord(b"#"), ord(b";")]
_WHITESPACE_CHARS = [ord(b"\t"), ord(b" ")]


def _parse_string(value: bytes) -> bytes:
    value_array = bytearray(value.strip())
    ret = bytearray()
    whitespace = bytearray()
    in_quotes = False
    i = 0
    while i < len(value_array):
        c = value_array[i]
        if c == ord(b"\\"):
            i += 1
            if i >= len(value_array):
                raise ValueError("escape character at end of value")
            try:
                v = _ESCAPE_TABLE[value_array[i]]
            except KeyError:
                raise ValueError(
                    f"escape character followed by unknown character {value_array[i]!r}"
                ) from None
            ret.extend(whitespace)
            whitespace = bytearray()
            ret.append(v)
        elif c == ord(b'"'):
            in_quotes = not in_quotes
        elif c in _COMMENT_CHARS and not in_quotes:
            # the rest of the line is a comment
            break
        elif c in _WHITESPACE_CHARS and not in_quotes:
            whitespace.append(c)
        else:
            ret.extend(whitespace)
            whitespace = bytearray()
            ret.append(c)
        i += 1

    if in_quotes:
        raise ValueError("missing end quote")

    return bytes(ret)


def _escape_value(value: bytes) -> bytes:
    """Escape a value."""
    value = value.replace(b"\\", b"\\\\")
    value = value.replace(b"\n", b"\\n")
    value = value.replace(b"\t", b"\\t")
    value = value.replace(b'"', b'\\"')
    return value


def _check_variable_name(name: bytes) -> bool:
    return bool(name) and all(c.isalnum() or c == "-" for c in name.decode("ascii", "replace"))


def _check_section_name(name: bytes) -> bool:
    return bool(name) and all(
        c.isalnum() or c in "-." for c in name.decode("ascii", "replace")
    )


def _strip_comments(line: bytes) -> bytes:
    string_open = False
    for i, character in enumerate(line):
        # Comment characters outside balanced quotes denote comment start
        if character == ord(b'"'):
            string_open = not string_open
        elif not string_open and character in _COMMENT_CHARS:
            return line[:i]
    return line


def _parse_section_header_line(line: bytes) -> tuple[Section, bytes]:
    # Parse section header ("[bla]")
    line = _strip_comments(line).rstrip()
    in_quotes = False
    for i, c in enumerate(line):
        if c == ord(b'"'):
            in_quotes = not in_quotes
        if c == ord(b"]") and not in_quotes:
            last = i
            break
    else:
        raise ValueError("expected trailing ]")
    pts = line[1:last].split(b" ", 1)
    line = line[last + 1 :]
    if not _check_section_name(pts[0]):
        raise ValueError(f"invalid section name {pts[0]!r}")
    section: Section
    if len(pts) == 2:
        if pts[1][:1] != b'"' or pts[1][-1:] != b'"':
            raise ValueError(f"Invalid subsection {pts[1]!r}")
        section = (pts[0], pts[1][1:-1])
    else:
        pts = pts[0].split(b".", 1)
        if len(pts) == 2:
            section = (pts[0], pts[1])
        else:
            section = (pts[0],)
    return section, line


class ConfigFile(ConfigDict):
    """A Git configuration file, like .git/config."""

    def __init__(self, encoding: str | None = None) -> None:
        super().__init__(encoding=encoding)
        self.path: str | None = None

    @classmethod
    def from_file(cls, f: IO[bytes]) -> "ConfigFile":
        """Read configuration from a file-like object.

        Raises:
          ValueError: on a syntax error
        """
        ret = cls()
        section: Section | None = None
        for lineno, line in enumerate(f.readlines()):
            if lineno == 0 and line.startswith(b"\xef\xbb\xbf"):
                line = line[3:]
            line = line.lstrip()
            if line[:1] == b"[":
                section, line = _parse_section_header_line(line)
                ret._values.setdefault(lower_key(section), (section, []))  # type: ignore[arg-type]
            if _strip_comments(line).strip() == b"":
                continue
            if section is None:
                raise ValueError(f"setting {line!r} without section")
            try:
                setting, value = line.split(b"=", 1)
            except ValueError:
                setting = _strip_comments(line)
                value = b"true"
            setting = setting.strip()
            if not _check_variable_name(setting):
                raise ValueError(f"invalid variable name {setting!r}")
            ret._section_values(section).append((setting, _parse_string(value)))
        return ret

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "ConfigFile":
        """Read configuration from a file on disk."""
        abs_path = os.fspath(path)
        with GitFile(abs_path, "rb") as f:
            ret = cls.from_file(f)  # type: ignore[arg-type]
        ret.path = abs_path
        return ret

    def write_to_path(self, path: str | os.PathLike[str] | None = None) -> None:
        """Write configuration to a file on disk."""
        if path is None:
            if self.path is None:
                raise ValueError("No path specified and no default path available")
            path = self.path
        with GitFile(path, "wb") as f:
            self.write_to_file(f)

    def write_to_file(self, f: IO[bytes] | LockedFile) -> None:
        """Write configuration to a file-like object."""
        for section, values in self._values.values():
            try:
                section_name, subsection_name = section
            except ValueError:
                (section_name,) = section
                subsection_name = None
            if subsection_name is None:
                f.write(b"[" + section_name + b"]\n")
            else:
                f.write(b"[" + section_name + b' "' + subsection_name + b'"]\n')
            for key, value in values:
                f.write(b"\t" + key + b" = " + _format_string(value) + b"\n")
