# repo.py -- For dealing with git repositories.
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

"""Repository access.

A repository is a working directory with a ``.git`` control directory
holding loose objects, refs and the config file.
"""

__all__ = [
    "CONTROLDIR",
    "DEFAULT_BRANCH",
    "OBJECTDIR",
    "Repo",
    "get_user_identity",
]

import getpass
import logging
import os
import socket

from .config import Config, ConfigFile
from .errors import NotGitRepository
from .file import GitFile
from .object_store import DiskObjectStore
from .refs import HEADREF, LOCAL_BRANCH_PREFIX, DiskRefsContainer

logger = logging.getLogger(__name__)

CONTROLDIR = ".git"
OBJECTDIR = "objects"
REFSDIR = "refs"
REFSDIR_TAGS = "tags"
REFSDIR_HEADS = "heads"

BASE_DIRECTORIES = [
    [OBJECTDIR],
    [REFSDIR],
    [REFSDIR, REFSDIR_TAGS],
    [REFSDIR, REFSDIR_HEADS],
]

DEFAULT_BRANCH = b"main"


def _get_default_identity() -> tuple[str, str]:
    username = getpass.getuser()
    return username, f"{username}@{socket.gethostname()}"


def get_user_identity(config: Config, kind: str | None = None) -> bytes:
    """Determine the identity to use for new commits.

    If kind is set, this first checks
    GIT_${KIND}_NAME and GIT_${KIND}_EMAIL.

    If those variables are not set, then it will fall back
    to reading the user.name and user.email settings from
    the specified configuration.

    If that also fails, then it will fall back to using
    the current users' identity as obtained from the host
    system.

    Args:
      config: Configuration to read from
      kind: Optional kind to return identity for,
        usually either "AUTHOR" or "COMMITTER".

    Returns:
      A user identity
    """
    user: bytes | None = None
    email: bytes | None = None
    if kind:
        user_uc = os.environ.get("GIT_" + kind + "_NAME")
        if user_uc is not None:
            user = user_uc.encode("utf-8")
        email_uc = os.environ.get("GIT_" + kind + "_EMAIL")
        if email_uc is not None:
            email = email_uc.encode("utf-8")
    if user is None:
        try:
            user = config.get(("user",), "name")
        except KeyError:
            user = None
    if email is None:
        try:
            email = config.get(("user",), "email")
        except KeyError:
            email = None
    if user is None or email is None:
        default_user, default_email = _get_default_identity()
        if user is None:
            user = default_user.encode("utf-8")
        if email is None:
            email = default_email.encode("utf-8")
    if email.startswith(b"<") and email.endswith(b">"):
        email = email[1:-1]
    return user + b" <" + email + b">"


class Repo:
    """A git repository backed by local disk.

    To open an existing repository, call the constructor with
    the path of the working directory. To create a new repository,
    use the Repo.init class method.
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        """Open the repository at root.

        Raises:
          NotGitRepository: root has no ``.git`` directory
        """
        root = os.fspath(root)
        controldir = os.path.join(root, CONTROLDIR)
        if not os.path.isdir(os.path.join(controldir, OBJECTDIR)):
            raise NotGitRepository(f"No git repository was found at {root}")
        self.path = root
        self._controldir = controldir
        config = self.get_config()
        self.object_store = DiskObjectStore(
            os.path.join(controldir, OBJECTDIR),
            loose_compression_level=self._loose_compression_level(config),
        )
        self.refs = DiskRefsContainer(controldir)

    def __repr__(self) -> str:
        return f"<Repo at {self.path!r}>"

    def __enter__(self) -> "Repo":
        return self

    def __exit__(self, *args: object) -> None:
        pass

    @staticmethod
    def _loose_compression_level(config: Config) -> int:
        for name in (b"looseCompression", b"compression"):
            level = config.get_int(b"core", name)
            if level is not None:
                return level
        return -1

    def controldir(self) -> str:
        """Return the path of the control directory."""
        return self._controldir

    def get_config(self) -> ConfigFile:
        """Retrieve the config object.

        Returns: `ConfigFile` object for the ``.git/config`` file.
        """
        path = os.path.join(self._controldir, "config")
        try:
            return ConfigFile.from_path(path)
        except FileNotFoundError:
            ret = ConfigFile()
            ret.path = path
            return ret

    def head(self) -> bytes:
        """Return the SHA1 pointed at by HEAD.

        Raises:
          KeyError: HEAD does not resolve to an object yet
        """
        return self.refs[HEADREF]

    @classmethod
    def init(
        cls,
        path: str | os.PathLike[str],
        *,
        mkdir: bool = False,
        default_branch: bytes = DEFAULT_BRANCH,
    ) -> "Repo":
        """Create a new repository.

        Existing directories are reused, so initializing twice is harmless.

        Args:
          path: Path in which to create the repository
          mkdir: Whether to create the directory
          default_branch: Branch HEAD points at
        Returns: `Repo` instance
        """
        path = os.fspath(path)
        if mkdir:
            os.makedirs(path, exist_ok=True)
        controldir = os.path.join(path, CONTROLDIR)
        for d in BASE_DIRECTORIES:
            os.makedirs(os.path.join(controldir, *d), exist_ok=True)

        with GitFile(os.path.join(controldir, "HEAD"), "wb") as f:
            f.write(b"ref: " + LOCAL_BRANCH_PREFIX + default_branch + b"\n")

        config_path = os.path.join(controldir, "config")
        if not os.path.exists(config_path):
            config = ConfigFile()
            config.set(b"core", b"repositoryformatversion", b"0")
            config.set(b"core", b"filemode", True)
            config.set(b"core", b"bare", False)
            config.write_to_path(config_path)
        logger.debug("initialized empty repository in %s", controldir)
        return cls(path)
