# log_utils.py -- Logging setup for kloon
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

"""Logging utilities for kloon.

kloon is mostly used as a library, so the "kloon" logger carries a no-op
handler and stays silent until the application configures logging. Modules
simply call ``logging.getLogger(__name__)``.

Trace output can be switched on from the environment, the same way git does
it: ``KLOON_TRACE`` (or, when unset, ``GIT_TRACE``) may be ``1``, ``2`` or
``true`` for stderr, a file descriptor number between 3 and 9, or an
absolute path. A directory path gets one ``trace.<pid>`` file per process.
"""

__all__ = [
    "configure_logging_from_trace",
    "default_logging_config",
    "get_trace_target",
    "getLogger",
    "remove_null_handler",
]

import logging
import os
import sys
from collections.abc import Mapping

getLogger = logging.getLogger

TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


class _NullHandler(logging.Handler):
    """No-op logging handler to avoid unexpected logging warnings."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_KLOON_LOGGER = getLogger("kloon")
_KLOON_LOGGER.addHandler(_NULL_HANDLER)


def get_trace_target(environ: Mapping[str, str] | None = None) -> str | int | None:
    """Work out where trace output should go.

    Args:
      environ: Environment to consult (defaults to os.environ)
    Returns:
      None when tracing is off, 2 for stderr, an int file descriptor, or
      an absolute path.
    """
    if environ is None:
        environ = os.environ
    value = environ.get("KLOON_TRACE") or environ.get("GIT_TRACE", "")
    if not value or value.lower() in ("0", "false"):
        return None
    if value.lower() in ("1", "2", "true"):
        return 2
    try:
        fd = int(value)
    except ValueError:
        pass
    else:
        if 3 <= fd <= 9:
            return fd
        return None
    if os.path.isabs(value):
        return value
    return None


def configure_logging_from_trace(environ: Mapping[str, str] | None = None) -> bool:
    """Enable DEBUG logging if tracing was requested in the environment.

    Returns: True if logging was configured, False otherwise.
    """
    target = get_trace_target(environ)
    if target is None:
        return False

    remove_null_handler()
    if target == 2:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format=TRACE_FORMAT)
        return True

    if isinstance(target, int):
        try:
            stream = os.fdopen(target, "w", buffering=1)
        except OSError as e:
            sys.stderr.write(f"Warning: cannot open trace fd {target}: {e}\n")
            return False
        logging.basicConfig(level=logging.DEBUG, stream=stream, format=TRACE_FORMAT)
        return True

    if os.path.isdir(target):
        filename = os.path.join(target, f"trace.{os.getpid()}")
    else:
        filename = target
    try:
        logging.basicConfig(
            level=logging.DEBUG, filename=filename, filemode="a", format=TRACE_FORMAT
        )
    except OSError as e:
        sys.stderr.write(f"Warning: cannot open trace file {target}: {e}\n")
        return False
    return True


def default_logging_config() -> None:
    """Set up logging for command-line use.

    Trace settings win; otherwise INFO messages go to stderr unadorned.
    """
    if not configure_logging_from_trace():
        remove_null_handler()
        logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(message)s")


def remove_null_handler() -> None:
    """Remove the null handler from the kloon logger."""
    _KLOON_LOGGER.removeHandler(_NULL_HANDLER)
