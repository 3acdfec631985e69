# __init__.py -- The tests for kloon
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

"""Tests for kloon."""

__all__ = ["SkipTest", "TestCase", "skipIf"]

import os
import shutil
import tempfile
import unittest
from unittest import SkipTest, skipIf


class TestCase(unittest.TestCase):
    """Base test case that keeps the user's environment out of the tests."""

    def setUp(self) -> None:
        super().setUp()
        self.overrideEnv("HOME", "/nonexistent")
        for name in ("GIT_TRACE", "KLOON_TRACE", "http_proxy", "https_proxy", "all_proxy"):
            self.overrideEnv(name, None)

    def overrideEnv(self, name: str, value: str | None) -> None:
        """Set (or unset, for None) an environment variable for one test."""

        def restore() -> None:
            if oldval is not None:
                os.environ[name] = oldval
            else:
                os.environ.pop(name, None)

        oldval = os.environ.get(name)
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)
        self.addCleanup(restore)

    def make_tempdir(self) -> str:
        """Create a temporary directory removed after the test."""
        path = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, path)
        return path
