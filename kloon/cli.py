#
# kloon - Simple command-line interface to kloon
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

"""Simple command-line interface to kloon.

Each subcommand operates on the repository in the current directory,
except ``init`` and ``clone`` which create one.
"""

__all__ = ["Command", "commands", "main"]

import argparse
import logging
import os
import signal
import sys
import types
from collections.abc import Sequence

from . import porcelain
from .errors import (
    ApplyDeltaError,
    CheckoutError,
    FileFormatException,
    GitProtocolError,
    NotGitRepository,
    ObjectNotFound,
)
from .file import FileLocked
from .log_utils import default_logging_config

logger = logging.getLogger(__name__)

# Failures reported as a message and exit status 1 rather than a traceback.
KLOON_ERRORS = (
    ApplyDeltaError,
    CheckoutError,
    FileFormatException,
    FileLocked,
    GitProtocolError,
    NotGitRepository,
    ObjectNotFound,
    porcelain.Error,
)


def signal_int(signal: int, frame: types.FrameType | None) -> None:
    """Handle interrupt signal by exiting."""
    sys.exit(1)


def _write_line(text: str) -> None:
    sys.stdout.write(text + "\n")


class Command:
    """A kloon subcommand."""

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_init(Command):
    """Create an empty Git repository or reinitialize an existing one."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="kloon init")
        parser.add_argument(
            "path", nargs="?", default=os.getcwd(), help="Repository path"
        )
        parsed_args = parser.parse_args(args)
        repo = porcelain.init(parsed_args.path)
        _write_line(f"Initialized empty Git repository in {repo.controldir()}")


class cmd_cat_file(Command):
    """Provide the content of a repository object."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="kloon cat-file")
        parser.add_argument(
            "-p", dest="pretty", action="store_true", help="Pretty-print trees"
        )
        parser.add_argument("object", help="Object id")
        parsed_args = parser.parse_args(args)
        payload = porcelain.cat_file(
            ".", parsed_args.object, pretty=parsed_args.pretty
        )
        sys.stdout.flush()
        sys.stdout.buffer.write(payload)
        sys.stdout.buffer.flush()


class cmd_hash_object(Command):
    """Compute an object id, optionally storing the blob."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="kloon hash-object")
        parser.add_argument(
            "-w", dest="write", action="store_true", help="Write the object"
        )
        parser.add_argument("file", help="File to hash")
        parsed_args = parser.parse_args(args)
        sha = porcelain.hash_object(
            "." if parsed_args.write else None, parsed_args.file, write=parsed_args.write
        )
        _write_line(sha.decode("ascii"))


class cmd_ls_tree(Command):
    """List the contents of a tree object."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="kloon ls-tree")
        parser.add_argument(
            "-r", "--recursive", action="store_true", help="Recursively list tree contents."
        )
        parser.add_argument("--name-only", action="store_true", help="Only display name.")
        parser.add_argument("treeish", help="Tree or commit id")
        parsed_args = parser.parse_args(args)
        porcelain.ls_tree(
            ".",
            parsed_args.treeish,
            outstream=sys.stdout,
            recursive=parsed_args.recursive,
            name_only=parsed_args.name_only,
        )


class cmd_write_tree(Command):
    """Create a tree object from the working directory."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="kloon write-tree")
        parser.parse_args(args)
        _write_line(porcelain.write_tree(".").decode("ascii"))


class cmd_commit_tree(Command):
    """Create a new commit object."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="kloon commit-tree")
        parser.add_argument("tree", help="Tree id")
        parser.add_argument(
            "-p", dest="parents", action="append", default=[], help="Parent commit id"
        )
        parser.add_argument("-m", dest="message", required=True, help="Commit message")
        parsed_args = parser.parse_args(args)
        sha = porcelain.commit_tree(
            ".", parsed_args.tree, parsed_args.parents, parsed_args.message
        )
        _write_line(sha.decode("ascii"))


class cmd_clone(Command):
    """Clone a repository into a new directory."""

    def run(self, args: Sequence[str]) -> None:
        parser = argparse.ArgumentParser(prog="kloon clone")
        parser.add_argument("source", help="Repository to clone from")
        parser.add_argument("target", nargs="?", help="Directory to clone into")
        parsed_args = parser.parse_args(args)
        repo = porcelain.clone(parsed_args.source, parsed_args.target)
        logger.info("Cloned into %s", repo.path)


commands: dict[str, type[Command]] = {
    "cat-file": cmd_cat_file,
    "clone": cmd_clone,
    "commit-tree": cmd_commit_tree,
    "hash-object": cmd_hash_object,
    "init": cmd_init,
    "ls-tree": cmd_ls_tree,
    "write-tree": cmd_write_tree,
}


def main(argv: Sequence[str] | None = None) -> int | None:
    """Main entry point for the kloon CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        parser = argparse.ArgumentParser(
            prog="kloon", description="Simple command-line interface to kloon"
        )
        parser.add_argument(
            "command",
            nargs="?",
            help=f"Command to run. Available: {', '.join(sorted(commands.keys()))}",
        )
        parser.print_help()
        return 1

    default_logging_config()

    cmd = argv[0]
    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logging.fatal("No such subcommand: %s", cmd)
        return 1
    try:
        return cmd_kls().run(argv[1:])
    except KLOON_ERRORS as e:
        logger.error("error: %s", e)
        return 1


def _main() -> None:
    signal.signal(signal.SIGINT, signal_int)
    sys.exit(main())


if __name__ == "__main__":
    _main()
