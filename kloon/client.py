# client.py -- Implementation of the client side of the git smart HTTP protocol
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

"""Client side support for the git smart HTTP protocol.

Only what a full clone of one branch needs is implemented: the ref
advertisement is fetched from ``info/refs`` and a single ``want`` line is
sent to ``git-upload-pack``, without any ``have`` lines, capabilities or
side-band. The pack is returned as one buffer.
"""

__all__ = [
    "HttpGitClient",
    "default_urllib3_manager",
    "default_user_agent_string",
    "find_pack_start",
]

import logging
import os
from urllib.parse import urljoin, urlparse

import urllib3
import urllib3.exceptions

import kloon

from .config import Config
from .errors import (
    GitProtocolError,
    NotGitRepository,
    PackSignatureNotFound,
    TransportFailure,
)
from .objects import ObjectID, valid_hexsha
from .pack import PACK_SIGNATURE
from .protocol import FLUSH_PKT, RefAdvertisement, parse_ref_advertisement, pkt_line

logger = logging.getLogger(__name__)

UPLOAD_PACK_SERVICE = "git-upload-pack"
UPLOAD_PACK_REQUEST_TYPE = "application/x-git-upload-pack-request"
UPLOAD_PACK_RESULT_TYPE = "application/x-git-upload-pack-result"


def default_user_agent_string() -> str:
    # Start user agent with "git/", because GitHub requires this.
    return "git/kloon/{}".format(".".join([str(x) for x in kloon.__version__]))


def default_urllib3_manager(
    config: Config | None,
    pool_manager_cls: type | None = None,
    proxy_manager_cls: type | None = None,
    timeout: float | None = None,
) -> urllib3.ProxyManager | urllib3.PoolManager:
    """Return urllib3 connection pool manager.

    Honour detected proxy configurations.

    Args:
      config: `kloon.config.ConfigDict` instance with Git configuration.
      pool_manager_cls: Pool manager class to use
      proxy_manager_cls: Proxy manager class to use
      timeout: Timeout for HTTP requests in seconds; overrides http.timeout

    Returns:
      Either pool_manager_cls (defaults to `urllib3.ProxyManager`) instance for
      proxy configurations, proxy_manager_cls
      (defaults to `urllib3.PoolManager`) instance otherwise
    """
    proxy_server: str | None = None
    user_agent: str | None = None
    ssl_verify = True
    headers: dict[str, str] = {}

    for proxyname in ("https_proxy", "http_proxy", "all_proxy"):
        proxy_server = os.environ.get(proxyname)
        if proxy_server:
            break

    if config is not None:
        if not proxy_server:
            try:
                proxy_server = config.get(b"http", b"proxy").decode("utf-8")
            except KeyError:
                pass

        try:
            user_agent = config.get(b"http", b"useragent").decode("utf-8")
        except KeyError:
            pass

        ssl_verify = bool(config.get_boolean(b"http", b"sslVerify", True))

        if timeout is None:
            try:
                timeout = float(config.get(b"http", b"timeout").decode("utf-8"))
            except KeyError:
                pass

        try:
            extra_headers = list(config.get_multivar(b"http", b"extraHeader"))
        except KeyError:
            extra_headers = []
        for extra_header in extra_headers:
            if b": " not in extra_header:
                logger.warning(
                    "Ignoring invalid http.extraHeader value %r (missing ': ' separator)",
                    extra_header,
                )
                continue
            header_name, header_value = extra_header.split(b": ", 1)
            headers[header_name.decode("utf-8")] = header_value.decode("utf-8")

    if user_agent is None:
        user_agent = default_user_agent_string()
    headers["User-agent"] = user_agent

    kwargs: dict[str, object] = {
        "cert_reqs": "CERT_REQUIRED" if ssl_verify else "CERT_NONE",
    }
    if timeout is not None:
        kwargs["timeout"] = timeout

    manager: urllib3.ProxyManager | urllib3.PoolManager
    if proxy_server:
        if proxy_manager_cls is None:
            proxy_manager_cls = urllib3.ProxyManager
        proxy_server_url = urlparse(proxy_server)
        if proxy_server_url.username is not None:
            proxy_headers = urllib3.make_headers(
                proxy_basic_auth=f"{proxy_server_url.username}:{proxy_server_url.password or ''}"
            )
        else:
            proxy_headers = {}
        manager = proxy_manager_cls(
            proxy_server, proxy_headers=proxy_headers, headers=headers, **kwargs
        )
    else:
        if pool_manager_cls is None:
            pool_manager_cls = urllib3.PoolManager
        manager = pool_manager_cls(headers=headers, **kwargs)

    return manager


def find_pack_start(body: bytes) -> int:
    """Find where the pack starts in an upload-pack response.

    Everything before the signature (``NAK`` and friends) is ignored.

    Raises:
      PackSignatureNotFound: the response contains no pack
    """
    start = body.find(PACK_SIGNATURE)
    if start == -1:
        raise PackSignatureNotFound(len(body))
    return start


class HttpGitClient:
    """Git client that fetches packs over smart HTTP using urllib3."""

    def __init__(
        self,
        base_url: str,
        pool_manager: urllib3.PoolManager | None = None,
        config: Config | None = None,
        timeout: float | None = None,
    ) -> None:
        """Create a client for the repository at base_url.

        Args:
          base_url: URL of the remote repository
          pool_manager: urllib3 pool manager to use; built from config if None
          config: Configuration to take http.* settings from
          timeout: Timeout for HTTP requests in seconds
        """
        self._base_url = base_url.rstrip("/") + "/"
        self._timeout = timeout
        if pool_manager is None:
            self.pool_manager = default_urllib3_manager(config, timeout=timeout)
        else:
            self.pool_manager = pool_manager
        self.config = config

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._base_url!r})"

    def get_url(self, path: str) -> str:
        return urljoin(self._base_url, path)

    def _http_request(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
    ) -> bytes:
        """Perform a GET (or a POST if data is given) and return the body.

        Raises:
          NotGitRepository: the server answered 404
          TransportFailure: any other non-200 status, or a urllib3 error
        """
        req_headers = dict(self.pool_manager.headers)
        if headers is not None:
            req_headers.update(headers)
        req_headers["Pragma"] = "no-cache"

        request_kwargs: dict[str, object] = {
            "headers": req_headers,
            "preload_content": False,
        }
        if self._timeout is not None:
            request_kwargs["timeout"] = self._timeout

        method = "GET" if data is None else "POST"
        if data is not None:
            request_kwargs["body"] = data
        logger.debug("%s %s", method, url)
        try:
            resp = self.pool_manager.request(method, url, **request_kwargs)
        except urllib3.exceptions.HTTPError as e:
            raise TransportFailure(str(e)) from e

        try:
            if resp.status == 404:
                raise NotGitRepository(f"{url} is not a git repository")
            if resp.status != 200:
                raise TransportFailure(f"unexpected http resp {resp.status} for {url}")
            try:
                body = resp.read()
            except urllib3.exceptions.HTTPError as e:
                raise TransportFailure(str(e)) from e
        finally:
            resp.release_conn()
        logger.debug("received %d bytes from %s", len(body), url)
        return body

    def discover_refs(self) -> RefAdvertisement:
        """Fetch and parse the ref advertisement of the remote."""
        url = self.get_url(f"info/refs?service={UPLOAD_PACK_SERVICE}")
        body = self._http_request(url)
        refs = parse_ref_advertisement(body)
        for name, sha in refs.refs.items():
            logger.debug("remote ref %s %s", sha.decode("ascii"), name.decode("utf-8", "replace"))
        return refs

    def build_fetch_request(self, want: ObjectID) -> bytes:
        """Body of an upload-pack request asking for want and its history."""
        if not valid_hexsha(want):
            raise GitProtocolError(f"invalid object id {want!r}")
        return (
            pkt_line(b"want " + want + b" no-progress\n")
            + FLUSH_PKT
            + pkt_line(b"done\n")
        )

    def fetch_pack(self, want: ObjectID) -> bytes:
        """Ask the remote for a pack containing want and everything it needs.

        Returns: The pack data, starting with its signature
        Raises:
          PackSignatureNotFound: the response contains no pack
        """
        url = self.get_url(UPLOAD_PACK_SERVICE)
        headers = {
            "Content-Type": UPLOAD_PACK_REQUEST_TYPE,
            "Accept": UPLOAD_PACK_RESULT_TYPE,
        }
        body = self._http_request(url, headers, self.build_fetch_request(want))
        return body[find_pack_start(body) :]
