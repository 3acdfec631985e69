# test_repo.py -- tests for repo.py
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

"""Tests for the repository."""

import os

from kloon.config import ConfigDict
from kloon.errors import NotGitRepository
from kloon.objects import BLOB
from kloon.repo import Repo, get_user_identity

from . import TestCase


class RepoInitTests(TestCase):
    def setUp(self):
        super().setUp()
        self.path = os.path.join(self.make_tempdir(), "repo")

    def test_layout(self):
        Repo.init(self.path, mkdir=True)
        controldir = os.path.join(self.path, ".git")
        for parts in (["objects"], ["refs"], ["refs", "heads"], ["refs", "tags"]):
            self.assertTrue(os.path.isdir(os.path.join(controldir, *parts)), parts)
        with open(os.path.join(controldir, "HEAD"), "rb") as f:
            self.assertEqual(b"ref: refs/heads/main\n", f.read())

    def test_config(self):
        repo = Repo.init(self.path, mkdir=True)
        config = repo.get_config()
        self.assertEqual(b"0", config.get(b"core", b"repositoryformatversion"))
        self.assertTrue(config.get_boolean(b"core", b"filemode"))
        self.assertFalse(config.get_boolean(b"core", b"bare"))

    def test_default_branch(self):
        repo = Repo.init(self.path, mkdir=True, default_branch=b"master")
        self.assertEqual(b"ref: refs/heads/master", repo.refs.read_ref(b"HEAD"))

    def test_reinit_keeps_config(self):
        repo = Repo.init(self.path, mkdir=True)
        config = repo.get_config()
        config.set(b"user", b"name", b"Jane")
        config.write_to_path()
        repo = Repo.init(self.path)
        self.assertEqual(b"Jane", repo.get_config().get(b"user", b"name"))

    def test_head_unborn(self):
        repo = Repo.init(self.path, mkdir=True)
        self.assertRaises(KeyError, repo.head)

    def test_head(self):
        repo = Repo.init(self.path, mkdir=True)
        sha = repo.object_store.put(BLOB, b"x")
        repo.refs.set_ref(b"refs/heads/main", sha)
        self.assertEqual(sha, repo.head())


class RepoOpenTests(TestCase):
    def test_not_a_repository(self):
        self.assertRaises(NotGitRepository, Repo, self.make_tempdir())

    def test_open(self):
        path = self.make_tempdir()
        Repo.init(path)
        with Repo(path) as repo:
            self.assertEqual(path, repo.path)
            self.assertEqual(os.path.join(path, ".git"), repo.controldir())
            self.assertEqual(-1, repo.object_store.loose_compression_level)

    def test_compression_level_from_config(self):
        path = self.make_tempdir()
        repo = Repo.init(path)
        config = repo.get_config()
        config.set(b"core", b"compression", b"1")
        config.set(b"core", b"looseCompression", b"9")
        config.write_to_path()
        self.assertEqual(9, Repo(path).object_store.loose_compression_level)

    def test_missing_config(self):
        path = self.make_tempdir()
        Repo.init(path)
        os.remove(os.path.join(path, ".git", "config"))
        repo = Repo(path)
        self.assertEqual(os.path.join(path, ".git", "config"), repo.get_config().path)


class GetUserIdentityTests(TestCase):
    def test_from_env(self):
        self.overrideEnv("GIT_AUTHOR_NAME", "Jane Doe")
        self.overrideEnv("GIT_AUTHOR_EMAIL", "jane@example.com")
        self.assertEqual(
            b"Jane Doe <jane@example.com>", get_user_identity(ConfigDict(), "AUTHOR")
        )

    def test_from_config(self):
        self.overrideEnv("GIT_COMMITTER_NAME", None)
        self.overrideEnv("GIT_COMMITTER_EMAIL", None)
        config = ConfigDict()
        config.set(b"user", b"name", b"Jane Doe")
        config.set(b"user", b"email", b"<jane@example.com>")
        self.assertEqual(
            b"Jane Doe <jane@example.com>", get_user_identity(config, "COMMITTER")
        )

    def test_env_overrides_config(self):
        self.overrideEnv("GIT_AUTHOR_NAME", "Env Name")
        self.overrideEnv("GIT_AUTHOR_EMAIL", None)
        config = ConfigDict()
        config.set(b"user", b"name", b"Config Name")
        config.set(b"user", b"email", b"config@example.com")
        self.assertEqual(
            b"Env Name <config@example.com>", get_user_identity(config, "AUTHOR")
        )
