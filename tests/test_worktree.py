# test_worktree.py -- Tests for checking out trees
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

"""Tests for materializing commits and trees."""

import os
import stat
import sys

from kloon.errors import (
    CheckoutError,
    InvalidTreeEntryName,
    MissingBlobObject,
    MissingCommitObject,
    MissingTreeObject,
)
from kloon.object_store import MemoryObjectStore
from kloon.objects import BLOB, COMMIT, TREE, TreeEntry, obj_sha, serialize_tree
from kloon.worktree import (
    build_file_from_blob,
    materialize_commit,
    materialize_tree,
    validate_path_element,
)

from . import TestCase, skipIf


def make_tree(cache, entries):
    return cache.put(TREE, serialize_tree(TreeEntry(*e) for e in entries))


def make_commit(cache, tree_id):
    return cache.put(
        COMMIT,
        b"tree " + tree_id + b"\n"
        b"author A <a@example.com> 1 +0000\n"
        b"committer A <a@example.com> 1 +0000\n"
        b"\n"
        b"msg\n",
    )


class ValidatePathElementTests(TestCase):
    def test_valid(self):
        self.assertTrue(validate_path_element(b"foo"))
        self.assertTrue(validate_path_element(b".gitignore"))
        self.assertTrue(validate_path_element(b"..foo"))

    def test_invalid(self):
        for name in (b".git", b".GIT", b".", b"..", b"", b"a/b", b"a\0b"):
            self.assertFalse(validate_path_element(name), name)


class BuildFileFromBlobTests(TestCase):
    def setUp(self):
        super().setUp()
        self.dir = os.fsencode(self.make_tempdir())

    def test_regular_file(self):
        path = os.path.join(self.dir, b"foo")
        st = build_file_from_blob(b"data", 0o100644, path)
        with open(path, "rb") as f:
            self.assertEqual(b"data", f.read())
        self.assertTrue(stat.S_ISREG(st.st_mode))
        self.assertFalse(st.st_mode & stat.S_IXUSR)

    def test_executable(self):
        path = os.path.join(self.dir, b"run.sh")
        st = build_file_from_blob(b"#!/bin/sh\n", 0o100755, path)
        self.assertEqual(0o755, stat.S_IMODE(st.st_mode))

    def test_executable_filemode_ignored(self):
        path = os.path.join(self.dir, b"run.sh")
        st = build_file_from_blob(b"#!/bin/sh\n", 0o100755, path, honor_filemode=False)
        self.assertFalse(st.st_mode & stat.S_IXUSR)

    @skipIf(sys.platform == "win32", "requires symlink support")
    def test_symlink(self):
        path = os.path.join(self.dir, b"link")
        build_file_from_blob(b"target/file", 0o120000, path)
        self.assertTrue(os.path.islink(path))
        self.assertEqual(b"target/file", os.readlink(path))

    @skipIf(sys.platform == "win32", "requires symlink support")
    def test_symlink_replaces_existing(self):
        path = os.path.join(self.dir, b"link")
        with open(path, "wb") as f:
            f.write(b"old")
        build_file_from_blob(b"new-target", 0o120000, path)
        self.assertEqual(b"new-target", os.readlink(path))


class MaterializeTests(TestCase):
    def setUp(self):
        super().setUp()
        self.cache = MemoryObjectStore()
        self.target = os.path.join(self.make_tempdir(), "checkout")

    def read(self, *parts):
        with open(os.path.join(self.target, *parts), "rb") as f:
            return f.read()

    def test_nested_tree(self):
        readme = self.cache.put(BLOB, b"# readme\n")
        code = self.cache.put(BLOB, b"print('hi')\n")
        sub = make_tree(self.cache, [(0o100644, b"main.py", code)])
        root = make_tree(
            self.cache,
            [(0o100644, b"README", readme), (stat.S_IFDIR, b"src", sub)],
        )
        count = materialize_tree(self.cache, root, self.target)
        self.assertEqual(2, count)
        self.assertEqual(b"# readme\n", self.read("README"))
        self.assertEqual(b"print('hi')\n", self.read("src", "main.py"))

    def test_empty_tree(self):
        root = make_tree(self.cache, [])
        self.assertEqual(0, materialize_tree(self.cache, root, self.target))
        self.assertEqual([], os.listdir(self.target))

    def test_gitlink_becomes_directory(self):
        root = make_tree(self.cache, [(0o160000, b"vendor", obj_sha(COMMIT, b"x"))])
        self.assertEqual(0, materialize_tree(self.cache, root, self.target))
        self.assertEqual([], os.listdir(os.path.join(self.target, "vendor")))

    def test_executable_entry(self):
        script = self.cache.put(BLOB, b"#!/bin/sh\n")
        root = make_tree(self.cache, [(0o100755, b"run", script)])
        materialize_tree(self.cache, root, self.target)
        mode = os.stat(os.path.join(self.target, "run")).st_mode
        self.assertTrue(mode & stat.S_IXUSR)

    def test_missing_tree(self):
        with self.assertRaises(MissingTreeObject) as cm:
            materialize_tree(self.cache, obj_sha(TREE, b"nope"), self.target)
        self.assertEqual(obj_sha(TREE, b"nope"), cm.exception.sha)

    def test_missing_subtree(self):
        root = make_tree(self.cache, [(stat.S_IFDIR, b"sub", obj_sha(TREE, b"nope"))])
        self.assertRaises(MissingTreeObject, materialize_tree, self.cache, root, self.target)

    def test_missing_blob(self):
        missing = obj_sha(BLOB, b"not here")
        root = make_tree(self.cache, [(0o100644, b"file", missing)])
        with self.assertRaises(MissingBlobObject) as cm:
            materialize_tree(self.cache, root, self.target)
        self.assertEqual(missing, cm.exception.sha)

    def test_blob_of_wrong_type(self):
        not_a_blob = make_tree(self.cache, [])
        root = make_tree(self.cache, [(0o100644, b"file", not_a_blob)])
        self.assertRaises(MissingBlobObject, materialize_tree, self.cache, root, self.target)

    def test_dot_dot_entry(self):
        blob = self.cache.put(BLOB, b"evil")
        root = make_tree(self.cache, [(0o100644, b"..", blob)])
        self.assertRaises(
            InvalidTreeEntryName, materialize_tree, self.cache, root, self.target
        )
        self.assertFalse(os.path.exists(os.path.join(os.path.dirname(self.target), "evil")))

    def test_dot_git_entry(self):
        sub = make_tree(self.cache, [])
        root = make_tree(self.cache, [(stat.S_IFDIR, b".git", sub)])
        with self.assertRaises(InvalidTreeEntryName) as cm:
            materialize_tree(self.cache, root, self.target)
        self.assertEqual(b".git", cm.exception.name)

    def test_commit(self):
        blob = self.cache.put(BLOB, b"hello\n")
        root = make_tree(self.cache, [(0o100644, b"hello.txt", blob)])
        commit = make_commit(self.cache, root)
        self.assertEqual(1, materialize_commit(self.cache, commit, self.target))
        self.assertEqual(b"hello\n", self.read("hello.txt"))

    def test_missing_commit(self):
        missing = obj_sha(COMMIT, b"nope")
        with self.assertRaises(MissingCommitObject) as cm:
            materialize_commit(self.cache, missing, self.target)
        self.assertEqual(missing, cm.exception.sha)

    def test_commit_without_tree(self):
        commit = self.cache.put(COMMIT, b"author A <a@example.com> 1 +0000\n\nmsg\n")
        self.assertRaises(
            CheckoutError, materialize_commit, self.cache, commit, self.target
        )

    def test_commit_tree_missing(self):
        commit = make_commit(self.cache, obj_sha(TREE, b"nope"))
        self.assertRaises(
            MissingTreeObject, materialize_commit, self.cache, commit, self.target
        )
