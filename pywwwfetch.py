#!/usr/bin/env python3
# -*- coding: utf-8 -*-

'''
    This program is free software; you can redistribute it and/or modify
    it under the terms of the Revised BSD License.

    This program is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
    Revised BSD License for more details.

    Copyright 2015-2024 Game Maker 2k - https://github.com/GameMaker2k
    Copyright 2015-2024 Kazuki Przyborowski - https://github.com/KazukiPrzyborowski

    $FileInfo: pywwwfetch.py - Last Update: 10/19/2026 Ver. 1.0.0 RC 1 - Author: cooldude2k $
'''

# PyWWW-Fetch - single request HTTP fetcher.
#
# Performs one HTTP request and streams the response body either to a file
# or to memory as decoded text, reporting progress while it copies:
#
# - fetch(uri, output_path=None, **options)
# - download_file_from_http_to_file(url, output_path, **options)
# - download_file_from_http_string(url, **options)
#
# Output path handling:
#   None                  -> body is returned as text (charset from the response)
#   "name.ext"            -> written to ./name.ext
#   "/existing/directory" -> filename taken from Content-Disposition, else from
#                            the last segment of the final URL
#   anything else         -> written to that path
#
# Backends: requests (default) and httpx, selected with usehttp= or the
# module wide __use_http_lib__ setting.

import os
import re
import ssl
import time
import codecs
import base64
import logging
import pathlib
import platform
import posixpath
import contextlib
from email.message import Message
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple, Union
from urllib.parse import quote, unquote, urlparse, urlunparse

import httpx
import requests
from requests.structures import CaseInsensitiveDict
from requests.utils import get_environ_proxies, get_netrc_auth, select_proxy

# Module configuration
__program_name__ = "PyWWW-Fetch"
__project__ = __program_name__
__project_url__ = "https://github.com/GameMaker2k/PyWWW-Get"
__version_info__ = (1, 0, 0, "RC 1", 1)
__version__ = f"{__version_info__[0]}.{__version_info__[1]}.{__version_info__[2]}"
if __version_info__[3]:
    __version__ += f" {__version_info__[3]}"

__use_http_lib__ = "requests"
__filebuff_size__ = 4096

# Setup logging
_LOG = logging.getLogger(__name__)
for _noisy in ("urllib3", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

_PLATFORM_INFO = {
    'system': platform.system(),
    'release': platform.release(),
    'machine': platform.machine(),
    'python_impl': platform.python_implementation() or "Python",
    'python_version': platform.python_version(),
}

_USER_AGENTS = {
    'pywwwfetch_alt': f"Mozilla/5.0 ({_PLATFORM_INFO['system']} {_PLATFORM_INFO['release']}; "
                      f"{_PLATFORM_INFO['machine']}; +{__project_url__}) "
                      f"{_PLATFORM_INFO['python_impl']}/{_PLATFORM_INFO['python_version']} "
                      f"(KHTML, like Gecko) {__project__}/{__version__}",
}
DEFAULT_USER_AGENT = _USER_AGENTS['pywwwfetch_alt']

_BACKENDS = ("requests", "httpx")

_METHODS = {
    'default': "GET",
    'get': "GET",
    'head': "HEAD",
    'post': "POST",
    'put': "PUT",
    'delete': "DELETE",
    'trace': "TRACE",
    'options': "OPTIONS",
    'merge': "MERGE",
    'patch': "PATCH",
}

_CONTENT_DISPOSITION_FILENAME = re.compile(r"filename=(.*)$", re.IGNORECASE)
_INVALID_FILENAME_CHARS = frozenset('"<>|:*?/\\' + "".join(chr(c) for c in range(32)))
_FILENAME_STRIP = "/\\\"'"


# ============================================================================
# Errors
# ============================================================================

class FetchError(Exception):
    """Base class for every failure reported by the fetcher."""

    def __init__(self, message: str, uri: Optional[str] = None):
        super().__init__(message)
        self.uri = uri


class ConfigurationError(FetchError):
    """Invalid option combination, raised before any network call."""


class ResourceUnavailableError(FetchError):
    """The server could not be reached or answered with an HTTP error."""


class UnexpectedError(FetchError):
    """Any other failure while executing the request or copying the body."""


class WriteError(FetchError):
    """The destination file could not be created."""


class DownloadFailedError(FetchError):
    """The body could not be downloaded; raised after cleanup."""


# ============================================================================
# Request model
# ============================================================================

class Credential:
    """Opaque username/password pair."""

    __slots__ = ("username", "password")

    def __init__(self, username: str = "", password: str = ""):
        self.username = username or ""
        self.password = password or ""

    def __eq__(self, other):
        if not isinstance(other, Credential):
            return NotImplemented
        return (self.username, self.password) == (other.username, other.password)

    def __hash__(self):
        return hash((self.username, self.password))

    def __repr__(self):
        return f"Credential(username={self.username!r}, password=***)"

    def as_tuple(self) -> Tuple[str, str]:
        return (self.username, self.password)


Credential.EMPTY = Credential()


class RequestSpec:
    """Everything needed to build one outbound request."""

    def __init__(self, uri: str, method: str = "Get",
                 user_agent: str = DEFAULT_USER_AGENT,
                 client_certificates: Sequence[Union[str, Tuple[str, str]]] = (),
                 use_default_credentials: bool = False,
                 credentials: Optional[Credential] = None,
                 proxy: Optional[str] = None,
                 proxy_use_default_credentials: bool = False,
                 proxy_credentials: Optional[Credential] = None,
                 force_basic_auth: bool = False,
                 headers: Optional[Dict[str, str]] = None,
                 body: Optional[Union[bytes, str]] = None,
                 content_type: Optional[str] = None,
                 timeout: Optional[float] = None):
        if not uri:
            raise ConfigurationError("uri required")
        self.uri = uri
        self.method = method
        self.user_agent = user_agent
        self.client_certificates = tuple(client_certificates or ())
        self.use_default_credentials = use_default_credentials
        self.credentials = credentials
        self.proxy = proxy
        self.proxy_use_default_credentials = proxy_use_default_credentials
        self.proxy_credentials = proxy_credentials
        self.force_basic_auth = force_basic_auth
        self.headers = dict(headers or {})
        self.body = body
        self.content_type = content_type
        self.timeout = timeout


class OutboundRequest:
    """A configured request, ready to hand to a transport backend."""

    def __init__(self, method: str, url: str, headers: CaseInsensitiveDict,
                 auth: Optional[Tuple[str, str]] = None,
                 client_certificates: Tuple = (),
                 proxy: Optional[str] = None,
                 body: Optional[bytes] = None,
                 timeout: Optional[float] = None):
        self.method = method
        self.url = url
        self.headers = headers
        self.auth = auth
        self.client_certificates = client_certificates
        self.proxy = proxy
        self.body = body
        self.timeout = timeout


def _basic_auth_header(user, pw):
    token = ("%s:%s" % (user or "", pw or "")).encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("ascii")


def _rebuild_url_without_creds(p):
    netloc = p.hostname or ""
    if p.port:
        netloc += ":" + str(p.port)
    return urlunparse((p.scheme, netloc, p.path, p.params, p.query, p.fragment))


def _with_userinfo(url: str, user: str, pw: str) -> str:
    p = urlparse(url)
    netloc = quote(user, safe="") + ":" + quote(pw, safe="") + "@" + (p.hostname or "")
    if p.port:
        netloc += ":" + str(p.port)
    return urlunparse((p.scheme, netloc, p.path, p.params, p.query, p.fragment))


def _resolve_method(name: Optional[str]) -> str:
    key = (name or "default").strip().lower()
    if key not in _METHODS:
        raise ConfigurationError(f"Unsupported HTTP method: {name}")
    return _METHODS[key]


def _resolve_credentials(spec: RequestSpec, url: str,
                         url_auth: Optional[Tuple[str, str]]) -> Optional[Tuple[str, str]]:
    """Default credentials win over explicit ones, which win over URL userinfo."""
    if spec.use_default_credentials:
        return get_netrc_auth(url)
    if spec.credentials is not None and spec.credentials != Credential.EMPTY:
        return spec.credentials.as_tuple()
    return url_auth


def _resolve_proxy(spec: RequestSpec, url: str) -> Optional[str]:
    proxy = spec.proxy
    if not proxy:
        proxy = select_proxy(url, get_environ_proxies(url))
    if not proxy:
        return None
    if "://" not in proxy:
        proxy = "http://" + proxy

    if spec.proxy_use_default_credentials:
        if urlparse(proxy).username:
            return proxy
        netrc_auth = get_netrc_auth(proxy)
        if netrc_auth:
            return _with_userinfo(proxy, *netrc_auth)
    elif spec.proxy_credentials is not None and spec.proxy_credentials != Credential.EMPTY:
        return _with_userinfo(proxy, *spec.proxy_credentials.as_tuple())
    return proxy


def build_request(spec: RequestSpec) -> OutboundRequest:
    """
    Turn a RequestSpec into an OutboundRequest.

    Resolves the HTTP verb, credentials (default .netrc credentials, explicit
    credentials, then userinfo embedded in the URI) and the effective proxy,
    explicit or inherited from the environment. With force_basic_auth the
    Authorization header is written up front; otherwise credentials are left
    to the transport.

    Raises:
        ConfigurationError: unknown method, or force_basic_auth without any
            resolvable credentials.
    """
    method = _resolve_method(spec.method)

    parsed = urlparse(spec.uri)
    url_auth = None
    url = spec.uri
    if parsed.username is not None:
        url_auth = (unquote(parsed.username), unquote(parsed.password or ""))
        url = _rebuild_url_without_creds(parsed)

    headers = CaseInsensitiveDict(spec.headers)
    headers["User-Agent"] = spec.user_agent
    if spec.content_type:
        headers["Content-Type"] = spec.content_type
    headers.setdefault("Accept-Encoding", "identity")

    auth = _resolve_credentials(spec, url, url_auth)
    if spec.force_basic_auth:
        if auth is None:
            raise ConfigurationError(
                "force_basic_auth requires credentials", uri=spec.uri)
        headers["Authorization"] = _basic_auth_header(*auth)
        auth = None

    body = spec.body
    if isinstance(body, str):
        body = body.encode("utf-8")

    return OutboundRequest(
        method=method,
        url=url,
        headers=headers,
        auth=auth,
        client_certificates=spec.client_certificates,
        proxy=_resolve_proxy(spec, url),
        body=body,
        timeout=spec.timeout,
    )


# ============================================================================
# Response model
# ============================================================================

def _parse_content_type(value: Optional[str]) -> Tuple[str, Optional[str]]:
    """Return (mime type, charset) of a Content-Type header value."""
    if not value:
        return "", None
    msg = Message()
    msg["content-type"] = value
    return msg.get_content_type(), msg.get_content_charset()


class ResponseView:
    """Read-only metadata of a response; never exposes the body stream."""

    def __init__(self, status_code: int, headers, url: str):
        self._status_code = int(status_code)
        self._headers = CaseInsensitiveDict(headers or {})
        self._url = str(url)

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def url(self) -> str:
        return self._url

    @property
    def headers(self) -> CaseInsensitiveDict:
        return self._headers.copy()

    @property
    def content_length(self) -> int:
        try:
            return int(self._headers.get("Content-Length", ""))
        except ValueError:
            return -1

    @property
    def content_type(self) -> str:
        return self._headers.get("Content-Type", "")

    @property
    def charset(self) -> Optional[str]:
        return _parse_content_type(self.content_type)[1]

    @property
    def content_disposition(self) -> str:
        return self._headers.get("Content-Disposition", "")

    def __repr__(self):
        return f"ResponseView(status_code={self._status_code}, url={self._url!r})"


class RawIteratorWrapper:
    """File-like read(size) view over an iterator of byte chunks."""

    def __init__(self, iterator: Iterator[bytes], closer: Optional[Callable[[], None]] = None):
        self.iterator = iterator
        self.buffer = b""
        self._iterator_exhausted = False
        self._closer = closer

    def read(self, size=-1):
        while not self._iterator_exhausted and (size < 0 or len(self.buffer) < size):
            try:
                chunk = next(self.iterator)
                if chunk:
                    self.buffer += chunk
            except StopIteration:
                self._iterator_exhausted = True
        if size < 0:
            size = len(self.buffer)
        result, self.buffer = self.buffer[:size], self.buffer[size:]
        return result

    def close(self):
        self._iterator_exhausted = True
        self.buffer = b""
        if self._closer is not None:
            self._closer()


class _RawStreamReader:
    """read(size) over a urllib3 response, undoing transfer encodings."""

    def __init__(self, raw):
        self._raw = raw

    def read(self, size=-1):
        return self._raw.read(None if size < 0 else size, decode_content=True) or b""

    def close(self):
        self._raw.close()


class TransportResponse:
    """An open response: metadata, a body reader and a way to release both."""

    def __init__(self, view: ResponseView, reader, closer: Callable[[], None]):
        self.view = view
        self.reader = reader
        self._closer = closer

    def close(self):
        self._closer()


# ============================================================================
# HTTP transport
# ============================================================================

def _client_certificate(outbound: OutboundRequest):
    certs = outbound.client_certificates
    if not certs:
        return None
    if len(certs) > 1:
        _LOG.warning(
            "%d client certificates given; TLS presents one chain, using the first",
            len(certs))
    return certs[0]


class HTTPHandler:
    """Unified HTTP handler with requests and httpx backends."""

    def __init__(self, backend: Optional[str] = None):
        self.backend = backend or __use_http_lib__
        if self.backend not in _BACKENDS:
            raise ConfigurationError(f"Unsupported HTTP backend: {self.backend}")

    def open(self, outbound: OutboundRequest) -> TransportResponse:
        """
        Submit the request and wait for the response headers.

        Raises:
            ResourceUnavailableError: connection, DNS, TLS or HTTP status error.
            UnexpectedError: anything else.
        """
        if self.backend == "httpx":
            return self._open_httpx(outbound)
        return self._open_requests(outbound)

    def _open_requests(self, outbound: OutboundRequest) -> TransportResponse:
        session = requests.Session()
        session.trust_env = False
        response = None
        try:
            prepared = session.prepare_request(requests.Request(
                outbound.method,
                outbound.url,
                headers=dict(outbound.headers),
                data=outbound.body,
                auth=outbound.auth,
            ))
            proxies = {"http": outbound.proxy, "https": outbound.proxy} if outbound.proxy else {}
            response = session.send(
                prepared,
                stream=True,
                allow_redirects=True,
                timeout=outbound.timeout,
                proxies=proxies,
                cert=_client_certificate(outbound),
            )
            response.raise_for_status()
        except requests.RequestException as e:
            _close_quietly(response, session)
            raise ResourceUnavailableError(f"Requests error: {e}", uri=outbound.url) from e
        except Exception as e:
            _close_quietly(response, session)
            raise UnexpectedError(f"Unexpected error: {e}", uri=outbound.url) from e

        def closer():
            response.close()
            session.close()

        view = ResponseView(response.status_code, response.headers, response.url)
        return TransportResponse(view, _RawStreamReader(response.raw), closer)

    def _open_httpx(self, outbound: OutboundRequest) -> TransportResponse:
        client = None
        response = None
        try:
            client_kwargs = {'follow_redirects': True, 'trust_env': False}
            if outbound.proxy:
                client_kwargs['proxy'] = outbound.proxy
            if outbound.timeout is not None:
                client_kwargs['timeout'] = outbound.timeout
            cert = _client_certificate(outbound)
            if cert:
                context = ssl.create_default_context()
                if isinstance(cert, (tuple, list)):
                    context.load_cert_chain(cert[0], cert[1])
                else:
                    context.load_cert_chain(cert)
                client_kwargs['verify'] = context
            client = httpx.Client(**client_kwargs)
            request = client.build_request(
                outbound.method,
                outbound.url,
                headers=dict(outbound.headers),
                content=outbound.body,
            )
            response = client.send(
                request,
                stream=True,
                auth=outbound.auth if outbound.auth else httpx.USE_CLIENT_DEFAULT,
            )
            if response.is_error:
                response.raise_for_status()
        except httpx.HTTPError as e:
            _close_quietly(response, client)
            raise ResourceUnavailableError(f"HTTPX error: {e}", uri=outbound.url) from e
        except Exception as e:
            _close_quietly(response, client)
            raise UnexpectedError(f"Unexpected error: {e}", uri=outbound.url) from e

        def closer():
            response.close()
            client.close()

        view = ResponseView(response.status_code, response.headers, response.url)
        reader = RawIteratorWrapper(response.iter_bytes(__filebuff_size__), response.close)
        return TransportResponse(view, reader, closer)


def _close_quietly(*resources):
    for resource in resources:
        if resource is None:
            continue
        try:
            resource.close()
        except Exception as e:
            _LOG.debug(f"Ignoring close failure on {resource!r}: {e}")


# ============================================================================
# Destination resolution
# ============================================================================

class Destination:
    """Where the response body goes: a file path, or memory as text."""

    FILE = "file"
    MEMORY = "memory"

    def __init__(self, kind: str, path: Optional[str] = None, encoding: Optional[str] = None):
        self.kind = kind
        self.path = path
        self.encoding = encoding

    @property
    def is_file(self) -> bool:
        return self.kind == Destination.FILE

    def __repr__(self):
        if self.is_file:
            return f"Destination(file, {self.path!r})"
        return f"Destination(memory, {self.encoding!r})"


def _resolve_encoding(charset: Optional[str]) -> str:
    if charset:
        try:
            return codecs.lookup(charset).name
        except LookupError:
            _LOG.debug(f"Unknown charset {charset!r}, decoding as utf-8")
    return "utf-8"


def _sanitize_filename(name: str) -> str:
    return "".join("_" if ch in _INVALID_FILENAME_CHARS else ch for ch in name)


def filename_from_content_disposition(value: Optional[str]) -> str:
    """Filename named by a Content-Disposition header, or "" when there is none."""
    match = _CONTENT_DISPOSITION_FILENAME.search(value or "")
    if not match:
        return ""
    return _sanitize_filename(match.group(1).strip(_FILENAME_STRIP))


def filename_from_url(url: str) -> str:
    """Last path segment of url, trimmed of slashes and dots."""
    path = unquote(urlparse(url).path or "")
    segment = posixpath.basename(path.rstrip("/")).strip("/.")
    return _sanitize_filename(segment)


def extension_from_content_type(content_type: Optional[str]) -> str:
    """Extension for a content type: the subtype's suffix after the last '+'."""
    mime = (content_type or "").split(";", 1)[0].strip()
    if "/" not in mime:
        return ""
    subtype = mime.split("/", 1)[1]
    return _sanitize_filename(subtype.rsplit("+", 1)[-1].strip())


def _fallback_filename() -> str:
    name = "download-" + time.strftime("%Y%m%d-%H%M%S")
    _LOG.warning(f"No filename could be inferred from the response, using {name}")
    return name


def infer_filename(response: ResponseView,
                   filename_prompt: Optional[Callable[[], str]] = None) -> str:
    name = filename_from_content_disposition(response.content_disposition)
    if not name:
        name = filename_from_url(response.url)
    if not name and filename_prompt is not None:
        name = _sanitize_filename((filename_prompt() or "").strip())
    if not name:
        name = _fallback_filename()

    if not os.path.splitext(name)[1]:
        extension = extension_from_content_type(response.content_type)
        if extension:
            name = name + "." + extension
    return name


def resolve_destination(output_path: Optional[str], response: ResponseView,
                        cwd: Optional[str] = None,
                        filename_prompt: Optional[Callable[[], str]] = None) -> Destination:
    """
    Decide where the body of response goes.

    - no output_path: memory, decoded with the response charset
    - bare relative filename: that name in the current working directory
    - existing directory: a filename inferred from the response inside it
    - anything else: the path as given
    """
    if not output_path:
        return Destination(Destination.MEMORY, encoding=_resolve_encoding(response.charset))

    output_path = os.fspath(output_path)
    if not os.path.dirname(output_path) and not os.path.isabs(output_path):
        return Destination(Destination.FILE, path=os.path.join(cwd or os.getcwd(), output_path))

    if os.path.isdir(output_path):
        filename = infer_filename(response, filename_prompt)
        return Destination(Destination.FILE, path=os.path.join(output_path, filename))

    return Destination(Destination.FILE, path=output_path)


# ============================================================================
# Progress
# ============================================================================

class ProgressRecord:
    """One progress update for a transfer."""

    def __init__(self, uri: str, status: str, bytes_transferred: int,
                 percent_complete: Optional[int] = None, completed: bool = False):
        self.uri = uri
        self.status = status
        self.bytes_transferred = bytes_transferred
        self.percent_complete = percent_complete
        self.completed = completed

    def __repr__(self):
        return (f"ProgressRecord(uri={self.uri!r}, bytes_transferred={self.bytes_transferred}, "
                f"percent_complete={self.percent_complete}, completed={self.completed})")


def _progress_line(prefix, sent, total):
    if total is not None and total > 0:
        pct = (sent * 100.0) / float(total)
        return "%s %d/%d bytes (%.1f%%)" % (prefix, sent, total, pct)
    return "%s %d bytes" % (prefix, sent)


def _emit(msg: str, *, level: int = logging.INFO) -> None:
    _LOG.log(level, msg)


def log_progress(record: ProgressRecord) -> None:
    """Default progress sink: per-chunk lines at DEBUG, completion at INFO."""
    level = logging.INFO if record.completed else logging.DEBUG
    _emit(f"{record.uri}: {record.status}", level=level)


# ============================================================================
# Fetcher
# ============================================================================

class _TextSink:
    """Accumulates decoded text, carrying partial multi-byte sequences across chunks."""

    def __init__(self, encoding: str):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._parts = []

    def write(self, chunk: bytes) -> None:
        self._parts.append(self._decoder.decode(chunk))

    def finish(self) -> str:
        self._parts.append(self._decoder.decode(b"", final=True))
        return "".join(self._parts)


def _close_writer(writer):
    try:
        writer.flush()
    finally:
        writer.close()


class Fetcher:
    """
    Runs one request and streams its body to a file or to memory.

    Usage:
        fetcher = Fetcher(quiet=True)
        text = fetcher.fetch(RequestSpec("https://example.com/"))
        path = fetcher.fetch(RequestSpec("https://example.com/a.zip"), "downloads/")

    A Fetcher keeps no per-transfer state, so one instance may serve several
    threads at once.
    """

    def __init__(self, handler=None, usehttp: Optional[str] = None,
                 quiet: bool = False,
                 progress: Optional[Callable[[ProgressRecord], None]] = None,
                 response_handler: Optional[Callable[[ResponseView], Any]] = None,
                 filename_prompt: Optional[Callable[[], str]] = None,
                 buffer_size: Optional[int] = None):
        self.handler = handler if handler is not None else HTTPHandler(usehttp)
        self.quiet = quiet
        self.progress = progress or log_progress
        self.response_handler = response_handler
        self.filename_prompt = filename_prompt
        self.buffer_size = buffer_size or __filebuff_size__

    def fetch(self, spec: RequestSpec, output_path: Optional[str] = None):
        """
        Execute spec and copy the response body.

        Returns:
            pathlib.Path of the written file, the decoded text when no
            output_path is given, or None when the status is not 200.

        Raises:
            ConfigurationError, ResourceUnavailableError, UnexpectedError,
            WriteError, DownloadFailedError
        """
        try:
            outbound = build_request(spec)
        except ConfigurationError as e:
            _LOG.error(f"Invalid request for {spec.uri}: {e}")
            raise

        with contextlib.ExitStack() as resources:
            response = self._execute(outbound)
            resources.callback(response.close)

            view = response.view
            if view.status_code != 200:
                _LOG.info(f"{outbound.url} answered {view.status_code}, nothing to download")
                return None

            self._call_response_handler(view)

            destination = resolve_destination(
                output_path, view, filename_prompt=self.filename_prompt)
            _LOG.debug(f"Downloading {view.url} to {destination!r}")

            if destination.is_file:
                try:
                    writer = open(destination.path, "wb")
                except (OSError, ValueError) as e:
                    _LOG.error(f"Cannot write {destination.path}: {e}")
                    raise WriteError(f"Cannot write {destination.path}: {e}",
                                     uri=outbound.url) from e
                resources.callback(_close_writer, writer)
                sink = writer
            else:
                sink = _TextSink(destination.encoding)

            reader = response.reader
            resources.callback(reader.close)

            try:
                self._copy_stream(outbound.url, reader, sink, view.content_length)
            except Exception as e:
                unexpected = UnexpectedError(f"Transfer interrupted: {e}", uri=outbound.url)
                unexpected.__cause__ = e
                _LOG.error(f"{unexpected} ({outbound.url})")
                _LOG.error(f"Could not download {outbound.url}")
                raise DownloadFailedError(
                    f"Could not download {outbound.url}", uri=outbound.url) from unexpected

        if destination.is_file:
            return pathlib.Path(destination.path)
        return sink.finish()

    def _execute(self, outbound: OutboundRequest) -> TransportResponse:
        try:
            return self.handler.open(outbound)
        except FetchError as e:
            _LOG.error(f"Request failed: {e}")
            raise
        except Exception as e:
            _LOG.error(f"Unexpected error requesting {outbound.url}: {e}")
            raise UnexpectedError(f"Unexpected error: {e}", uri=outbound.url) from e

    def _call_response_handler(self, view: ResponseView) -> None:
        if self.response_handler is None:
            return
        try:
            self.response_handler(view)
        except Exception as e:
            _LOG.error(f"Response handler failed for {view.url}: {e}")

    def _copy_stream(self, uri: str, reader, sink, goal: int) -> int:
        total = 0
        while True:
            chunk = reader.read(self.buffer_size)
            if not chunk:
                break
            sink.write(chunk)
            total += len(chunk)
            self._report(uri, total, goal)
        self._report(uri, total, goal, completed=True)
        return total

    def _report(self, uri: str, total: int, goal: int, completed: bool = False) -> None:
        if self.quiet:
            return
        percent = int((total / goal) * 100) if goal > 0 else None
        prefix = "Download complete:" if completed else "Reading web response stream:"
        self.progress(ProgressRecord(
            uri=uri,
            status=_progress_line(prefix, total, goal),
            bytes_transferred=total,
            percent_complete=percent,
            completed=completed,
        ))


# ============================================================================
# Public API
# ============================================================================

def fetch(uri: str, output_path: Optional[str] = None, method: str = "Get",
          user_agent: str = DEFAULT_USER_AGENT,
          client_certificates: Sequence[Union[str, Tuple[str, str]]] = (),
          use_default_credentials: bool = False,
          credentials: Optional[Credential] = None,
          force_basic_auth: bool = False,
          proxy: Optional[str] = None,
          proxy_use_default_credentials: bool = False,
          proxy_credentials: Optional[Credential] = None,
          quiet: bool = False,
          response_handler: Optional[Callable[[ResponseView], Any]] = None,
          headers: Optional[Dict[str, str]] = None,
          body: Optional[Union[bytes, str]] = None,
          content_type: Optional[str] = None,
          timeout: Optional[float] = None,
          progress: Optional[Callable[[ProgressRecord], None]] = None,
          filename_prompt: Optional[Callable[[], str]] = None,
          usehttp: Optional[str] = None,
          handler=None):
    """
    Request uri and stream the body to output_path, or return it as text.

    Args:
        uri: Request target
        output_path: File path, existing directory, or None for text
        method: Default/Get/Head/Post/Put/Delete/Trace/Options/Merge/Patch
        credentials: Explicit Credential, ignored when equal to Credential.EMPTY
        use_default_credentials: Take credentials from ~/.netrc instead
        force_basic_auth: Send an Authorization: Basic header up front
        proxy: Proxy URI; the environment proxy applies when omitted
        quiet: Suppress progress reporting
        response_handler: Called with a ResponseView before the body is read
        usehttp: Backend, "requests" or "httpx"

    Returns:
        pathlib.Path, text, or None when the status is not 200
    """
    spec = RequestSpec(
        uri,
        method=method,
        user_agent=user_agent,
        client_certificates=client_certificates,
        use_default_credentials=use_default_credentials,
        credentials=credentials,
        proxy=proxy,
        proxy_use_default_credentials=proxy_use_default_credentials,
        proxy_credentials=proxy_credentials,
        force_basic_auth=force_basic_auth,
        headers=headers,
        body=body,
        content_type=content_type,
        timeout=timeout,
    )
    fetcher = Fetcher(
        handler=handler,
        usehttp=usehttp,
        quiet=quiet,
        progress=progress,
        response_handler=response_handler,
        filename_prompt=filename_prompt,
    )
    return fetcher.fetch(spec, output_path)


def download_file_from_http_to_file(url: str, output_path: str, **kwargs) -> Optional[pathlib.Path]:
    if not output_path:
        raise ConfigurationError("output_path required", uri=url)
    return fetch(url, output_path=output_path, **kwargs)


def download_file_from_http_string(url: str, **kwargs) -> Optional[str]:
    kwargs.pop("output_path", None)
    return fetch(url, **kwargs)
