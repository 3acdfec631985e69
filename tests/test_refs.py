# test_refs.py -- tests for refs.py
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

"""Tests for kloon.refs."""

import os

from kloon.refs import DiskRefsContainer, SymrefLoop, check_ref_format

from . import TestCase

ONE = b"42d06bd4b77fed026b154d16493e5deab78f02ec"
TWO = b"3ec9c43c84ff242e3ef4a9fc5bc111fd780a76a8"


class CheckRefFormatTests(TestCase):
    """Tests for the check_ref_format function.

    These are the same tests as in the git test suite.
    """

    def test_valid(self):
        self.assertTrue(check_ref_format(b"heads/foo"))
        self.assertTrue(check_ref_format(b"foo/bar/baz"))
        self.assertTrue(check_ref_format(b"foo./bar"))
        self.assertTrue(check_ref_format(b"heads/foo@bar"))
        self.assertTrue(check_ref_format(b"heads/fix.lock.error"))

    def test_invalid(self):
        self.assertFalse(check_ref_format(b"foo"))
        self.assertFalse(check_ref_format(b"heads/foo/"))
        self.assertFalse(check_ref_format(b"./foo"))
        self.assertFalse(check_ref_format(b".refs/foo"))
        self.assertFalse(check_ref_format(b"heads/foo..bar"))
        self.assertFalse(check_ref_format(b"heads/foo?bar"))
        self.assertFalse(check_ref_format(b"heads/foo.lock"))
        self.assertFalse(check_ref_format(b"heads/v@{ation"))
        self.assertFalse(check_ref_format(b"heads/foo\\bar"))
        self.assertFalse(check_ref_format(b"heads/foo bar"))


class DiskRefsContainerTests(TestCase):
    def setUp(self):
        super().setUp()
        self.controldir = self.make_tempdir()
        self.refs = DiskRefsContainer(self.controldir)

    def read_file(self, *parts):
        with open(os.path.join(self.controldir, *parts), "rb") as f:
            return f.read()

    def test_set_ref(self):
        self.refs.set_ref(b"refs/heads/main", ONE)
        self.assertEqual(ONE + b"\n", self.read_file("refs", "heads", "main"))
        self.assertEqual(ONE, self.refs.read_ref(b"refs/heads/main"))
        self.assertEqual(ONE, self.refs[b"refs/heads/main"])

    def test_set_ref_nested(self):
        self.refs.set_ref(b"refs/heads/feature/x", TWO)
        self.assertEqual(TWO, self.refs[b"refs/heads/feature/x"])

    def test_set_ref_replaces(self):
        self.refs.set_ref(b"refs/heads/main", ONE)
        self.refs.set_ref(b"refs/heads/main", TWO)
        self.assertEqual(TWO, self.refs[b"refs/heads/main"])

    def test_set_symbolic_ref(self):
        self.refs.set_symbolic_ref(b"HEAD", b"refs/heads/master")
        self.assertEqual(b"ref: refs/heads/master\n", self.read_file("HEAD"))
        self.assertEqual(b"ref: refs/heads/master", self.refs.read_ref(b"HEAD"))

    def test_follow(self):
        self.refs.set_symbolic_ref(b"HEAD", b"refs/heads/main")
        self.refs.set_ref(b"refs/heads/main", ONE)
        self.assertEqual(
            ([b"HEAD", b"refs/heads/main"], ONE), self.refs.follow(b"HEAD")
        )
        self.assertEqual(ONE, self.refs[b"HEAD"])
        self.assertIn(b"HEAD", self.refs)

    def test_follow_dangling(self):
        self.refs.set_symbolic_ref(b"HEAD", b"refs/heads/main")
        self.assertEqual(([b"HEAD", b"refs/heads/main"], None), self.refs.follow(b"HEAD"))
        self.assertRaises(KeyError, self.refs.__getitem__, b"HEAD")

    def test_missing(self):
        self.assertIsNone(self.refs.read_ref(b"refs/heads/nope"))
        self.assertNotIn(b"refs/heads/nope", self.refs)

    def test_symref_loop(self):
        self.refs.set_symbolic_ref(b"refs/heads/a", b"refs/heads/b")
        self.refs.set_symbolic_ref(b"refs/heads/b", b"refs/heads/a")
        self.assertRaises(SymrefLoop, self.refs.follow, b"refs/heads/a")

    def test_invalid_names(self):
        self.assertRaises(ValueError, self.refs.set_ref, b"heads/main", ONE)
        self.assertRaises(ValueError, self.refs.set_ref, b"refs/heads/a..b", ONE)
        self.assertRaises(ValueError, self.refs.set_symbolic_ref, b"HEAD", b"main")

    def test_invalid_sha(self):
        self.assertRaises(ValueError, self.refs.set_ref, b"refs/heads/main", b"abc")

    def test_read_ref_crlf(self):
        with open(os.path.join(self.controldir, "HEAD"), "wb") as f:
            f.write(b"ref: refs/heads/main\r\n")
        self.assertEqual(b"ref: refs/heads/main", self.refs.read_ref(b"HEAD"))
