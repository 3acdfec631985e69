# test_log_utils.py -- Tests for log_utils.py
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

"""Tests for kloon.log_utils."""

import logging
from unittest.mock import patch

from kloon.log_utils import (
    _KLOON_LOGGER,
    _NULL_HANDLER,
    configure_logging_from_trace,
    get_trace_target,
    getLogger,
    remove_null_handler,
)

from . import TestCase


class LogUtilsTests(TestCase):
    """Tests for log_utils."""

    def setUp(self):
        super().setUp()
        original_handlers = list(_KLOON_LOGGER.handlers)

        def restore():
            _KLOON_LOGGER.handlers = original_handlers

        self.addCleanup(restore)

    def test_null_handler_installed(self):
        self.assertIn(_NULL_HANDLER, _KLOON_LOGGER.handlers)

    def test_remove_null_handler(self):
        remove_null_handler()
        self.assertNotIn(_NULL_HANDLER, _KLOON_LOGGER.handlers)

    def test_get_logger(self):
        logger = getLogger("kloon.test")
        self.assertIsInstance(logger, logging.Logger)
        self.assertEqual("kloon.test", logger.name)

    def test_trace_off(self):
        self.assertIsNone(get_trace_target({}))
        self.assertIsNone(get_trace_target({"GIT_TRACE": "0"}))
        self.assertIsNone(get_trace_target({"GIT_TRACE": "false"}))

    def test_trace_stderr(self):
        for value in ("1", "2", "true", "TRUE"):
            self.assertEqual(2, get_trace_target({"GIT_TRACE": value}))

    def test_trace_fd(self):
        self.assertEqual(5, get_trace_target({"GIT_TRACE": "5"}))
        self.assertIsNone(get_trace_target({"GIT_TRACE": "10"}))

    def test_trace_path(self):
        self.assertEqual("/tmp/trace.log", get_trace_target({"GIT_TRACE": "/tmp/trace.log"}))
        self.assertIsNone(get_trace_target({"GIT_TRACE": "relative/path"}))

    def test_kloon_trace_wins(self):
        self.assertEqual(
            2, get_trace_target({"GIT_TRACE": "/tmp/trace.log", "KLOON_TRACE": "1"})
        )

    def test_configure_without_trace(self):
        self.assertFalse(configure_logging_from_trace({}))
        self.assertIn(_NULL_HANDLER, _KLOON_LOGGER.handlers)

    def test_configure_stderr(self):
        with patch("logging.basicConfig") as basic_config:
            self.assertTrue(configure_logging_from_trace({"GIT_TRACE": "1"}))
        self.assertEqual(logging.DEBUG, basic_config.call_args.kwargs["level"])
        self.assertNotIn(_NULL_HANDLER, _KLOON_LOGGER.handlers)

    def test_configure_directory(self):
        tempdir = self.make_tempdir()
        with patch("logging.basicConfig") as basic_config:
            self.assertTrue(configure_logging_from_trace({"KLOON_TRACE": tempdir}))
        filename = basic_config.call_args.kwargs["filename"]
        self.assertTrue(filename.startswith(tempdir))
        self.assertIn("trace.", filename)
