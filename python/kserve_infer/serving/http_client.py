"""
HTTP/REST client for the v2 inference protocol.

Provides synchronous and asynchronous clients. Tensors flagged binary travel
as raw bytes appended after the JSON request header; the JSON length is sent
in the ``Inference-Header-Content-Length`` HTTP header and each tensor's byte
count in its ``binary_data_size`` parameter.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import socket
import ssl
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from ..config import ClientOptions, split_url
from ..errors import (
    ConfigurationError,
    DeadlineExceededError,
    MalformedResponseError,
    ServerError,
    TransportError,
    TypeMismatchError,
)
from ..response import InferResult, OutputTensor, parse_output
from ..tensors import InferInput, InferRequestedOutput
from .base import (
    InferenceServerClient,
    ModelMetadata,
    ServerMetadata,
    model_metadata_from_dict,
)

# Try to import async libraries (optional)
try:
    import aiohttp
    ASYNC_AVAILABLE = True
except ImportError:
    ASYNC_AVAILABLE = False

logger = logging.getLogger(__name__)

HEADER_LENGTH = "Inference-Header-Content-Length"
DEFAULT_HTTP_PORT = 8000
_READ_CHUNK = 64 * 1024


# --- Framing ---

def encode_infer_request(
    inputs: Sequence[InferInput],
    outputs: Optional[Sequence[InferRequestedOutput]] = None,
    request_id: str = "",
    parameters: Optional[Mapping[str, Any]] = None
) -> Tuple[bytes, Optional[int]]:
    """
    Frame an inference request body.

    Args:
        inputs: Input tensors with data set
        outputs: Requested outputs (None = all outputs, binary encoded)
        request_id: Optional request ID
        parameters: Request-level parameters

    Returns:
        (body, json_length); json_length is None when nothing binary was
        appended and the body is plain JSON

    Raises:
        InputError: If an input has no data
        TypeMismatchError: If a non-binary input cannot be sent as JSON
    """
    request: Dict[str, Any] = {}
    if request_id:
        request["id"] = request_id

    params = dict(parameters or {})
    if outputs is None:
        params["binary_data_output"] = True
    if params:
        request["parameters"] = params

    entries = []
    segments = []
    for tensor in inputs:
        entry: Dict[str, Any] = {
            "name": tensor.name,
            "shape": list(tensor.shape),
            "datatype": tensor.datatype.value,
        }
        tensor_params = tensor.parameters
        if tensor.binary_data:
            raw = tensor.to_raw_bytes()
            tensor_params["binary_data_size"] = len(raw)
            segments.append(raw)
        else:
            entry["data"] = tensor.to_json_data()
        if tensor_params:
            entry["parameters"] = tensor_params
        entries.append(entry)
    request["inputs"] = entries

    if outputs:
        request["outputs"] = [
            {"name": o.name, "parameters": dict(o.parameters)} for o in outputs
        ]

    try:
        header = json.dumps(request, allow_nan=False).encode("utf-8")
    except ValueError as e:
        raise TypeMismatchError(
            f"Request is not valid JSON ({e}); send non-finite floats with binary_data=True"
        ) from e

    if not segments:
        return header, None
    return header + b"".join(segments), len(header)


def decode_infer_response(body: bytes, header_length: Optional[int] = None) -> InferResult:
    """
    Split a response body into its JSON header and binary outputs.

    Args:
        body: Full response body
        header_length: Value of ``Inference-Header-Content-Length``, if sent

    Returns:
        InferResult over the response outputs

    Raises:
        MalformedResponseError: If the header is not valid JSON or the binary
            trailer does not match the declared ``binary_data_size`` values
    """
    if header_length is None:
        header_bytes, trailer = body, b""
    else:
        if header_length < 0 or header_length > len(body):
            raise MalformedResponseError(
                f"{HEADER_LENGTH} is {header_length} but body is {len(body)} bytes"
            )
        header_bytes, trailer = body[:header_length], body[header_length:]

    header = _parse_json(header_bytes)
    if not isinstance(header, dict):
        raise MalformedResponseError("Response header is not a JSON object")

    entries = header.get("outputs", [])
    if not isinstance(entries, list):
        raise MalformedResponseError("Response 'outputs' is not a JSON array")

    outputs: List[OutputTensor] = []
    offset = 0
    for entry in entries:
        if not isinstance(entry, dict):
            raise MalformedResponseError(f"Output entry is not a JSON object: {entry!r}")
        try:
            name, datatype, shape = entry["name"], entry["datatype"], entry["shape"]
        except KeyError as e:
            raise MalformedResponseError(f"Output entry is missing {e}") from e
        params = entry.get("parameters") or {}
        if not isinstance(params, dict):
            raise MalformedResponseError(f"Output {name!r} parameters are not a JSON object")
        if not isinstance(shape, list):
            raise MalformedResponseError(f"Output {name!r} shape is not a JSON array")
        size = params.get("binary_data_size")
        if size is None:
            outputs.append(
                parse_output(name, datatype, shape, data=entry.get("data"), parameters=params)
            )
            continue
        if not isinstance(size, int) or size < 0:
            raise MalformedResponseError(f"Output {name!r} has invalid binary_data_size {size!r}")
        if offset + size > len(trailer):
            raise MalformedResponseError(
                f"Output {name!r} declares {size} bytes but only "
                f"{len(trailer) - offset} remain"
            )
        raw = trailer[offset:offset + size]
        offset += size
        outputs.append(parse_output(name, datatype, shape, raw=raw, parameters=params))

    if offset != len(trailer):
        raise MalformedResponseError(
            f"{len(trailer) - offset} unclaimed bytes after the binary outputs"
        )

    response_params = header.get("parameters") or {}
    if not isinstance(response_params, dict):
        raise MalformedResponseError("Response parameters are not a JSON object")

    return InferResult(
        outputs,
        model_name=header.get("model_name", ""),
        model_version=header.get("model_version", ""),
        request_id=header.get("id", ""),
        parameters=response_params,
        response=header,
    )


def _parse_json(data: bytes) -> Any:
    if not data:
        return {}
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e


def _error_message(body: bytes) -> str:
    error_body = body.decode("utf-8", errors="replace")
    try:
        error_json = json.loads(error_body)
        return error_json.get("error", error_body) if isinstance(error_json, dict) else error_body
    except json.JSONDecodeError:
        return error_body


def _header_length(headers: Mapping[str, str]) -> Optional[int]:
    value = headers.get(HEADER_LENGTH.lower())
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise MalformedResponseError(f"Invalid {HEADER_LENGTH}: {value!r}") from None


def model_path(model_name: str, model_version: str = "") -> str:
    """URL path of a model resource."""
    path = f"/v2/models/{quote(model_name, safe='')}"
    if model_version:
        path += f"/versions/{quote(model_version, safe='')}"
    return path


def repository_path(model_name: str, action: str) -> str:
    return f"/v2/repository/models/{quote(model_name, safe='')}/{action}"


def _make_ssl_context(verify: bool, ca_file: Optional[str]) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=ca_file)
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


# --- Transport ---

@dataclass
class HttpResponse:
    """Status, lower-cased headers and body of an HTTP reply."""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class HttpTransport:
    """
    Blocking HTTP transport with separate connect and network timeouts.

    Opens one connection per request; the client never retries.
    """

    def __init__(
        self,
        host: str,
        port: int,
        use_ssl: bool = False,
        ssl_verify: bool = True,
        ssl_ca_file: Optional[str] = None,
        connection_timeout_ms: int = 60000,
        network_timeout_ms: int = 60000
    ):
        self.host = host
        self.port = port
        self.connection_timeout_ms = connection_timeout_ms
        self.network_timeout_ms = network_timeout_ms
        self._ssl_context = _make_ssl_context(ssl_verify, ssl_ca_file) if use_ssl else None

    def _connection(self, timeout_ms: float) -> http.client.HTTPConnection:
        timeout = timeout_ms / 1000.0
        if self._ssl_context is not None:
            return http.client.HTTPSConnection(
                self.host, self.port, timeout=timeout, context=self._ssl_context
            )
        return http.client.HTTPConnection(self.host, self.port, timeout=timeout)

    def request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None
    ) -> HttpResponse:
        """
        Send one request and read the whole reply.

        ``timeout_ms`` bounds the whole call, connecting included; the
        connect phase is further capped by ``connection_timeout_ms``.

        Raises:
            DeadlineExceededError: If connecting or the call runs out of time
            TransportError: On any other connection failure
        """
        timeout_ms = self.network_timeout_ms if timeout_ms is None else timeout_ms
        deadline = time.monotonic() + timeout_ms / 1000.0
        connect_ms = min(self.connection_timeout_ms, timeout_ms)
        conn = self._connection(connect_ms)
        try:
            try:
                conn.connect()
            except socket.timeout as e:
                raise DeadlineExceededError(
                    f"Timed out connecting to {self.host}:{self.port} after {connect_ms} ms"
                ) from e
            except OSError as e:
                raise TransportError(f"Failed to connect to server: {e}") from e

            # getresponse() may hand the socket to the response; keep our own handle.
            sock = conn.sock
            try:
                _set_remaining(sock, deadline)
                conn.request(method, path, body=body, headers=dict(headers or {}))
                _set_remaining(sock, deadline)
                response = conn.getresponse()
                chunks = []
                while True:
                    _set_remaining(sock, deadline)
                    chunk = response.read(_READ_CHUNK)
                    if not chunk:
                        break
                    chunks.append(chunk)
            except socket.timeout as e:
                raise DeadlineExceededError(
                    f"{method} {path} exceeded its {timeout_ms} ms deadline"
                ) from e
            except (OSError, http.client.HTTPException) as e:
                raise TransportError(f"{method} {path} failed: {e}") from e

            return HttpResponse(
                status=response.status,
                headers={k.lower(): v for k, v in response.getheaders()},
                body=b"".join(chunks),
            )
        finally:
            conn.close()

    def close(self) -> None:
        pass


def _set_remaining(sock: socket.socket, deadline: float) -> None:
    """Shrink the socket timeout to what is left of the call deadline."""
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise socket.timeout("deadline elapsed")
    sock.settimeout(remaining)


def _resolve_endpoint(url: str, options: ClientOptions) -> Tuple[str, int, bool]:
    scheme, host, port = split_url(url, DEFAULT_HTTP_PORT)
    if scheme not in (None, "http", "https"):
        raise ConfigurationError(f"Unsupported URL scheme {scheme!r} for HTTP client")
    if scheme == "http" and options.ssl:
        raise ConfigurationError("ssl=True conflicts with an http:// URL")
    return host, port, options.ssl or scheme == "https"


class HttpInferenceClient(InferenceServerClient):
    """
    Synchronous HTTP client for v2 inference servers.

    Example:
        client = HttpInferenceClient("localhost:8000")

        inp = InferInput("INPUT0", "FP32", [1, 4]).set_data([1, 2, 3, 4])
        result = client.infer("my_model", [inp])
        print(result.as_numpy("OUTPUT0"))
    """

    def __init__(
        self,
        url: str,
        options: Optional[ClientOptions] = None,
        transport: Optional[Any] = None
    ):
        """
        Initialize the client.

        Args:
            url: Server address, ``host:port`` or ``http(s)://host:port``
            options: Connection options (defaults documented on ClientOptions)
            transport: Pre-built object with a ``request(method, path, body,
                headers, timeout_ms)`` method returning HttpResponse

        Raises:
            ConfigurationError: If the URL or options are invalid
        """
        self.options = options or ClientOptions()
        self.options.check()
        host, port, use_ssl = _resolve_endpoint(url, self.options)
        self.base_url = f"{'https' if use_ssl else 'http'}://{host}:{port}"
        self._logger = self.options.get_logger(logger)
        self._transport = transport or HttpTransport(
            host,
            port,
            use_ssl=use_ssl,
            ssl_verify=self.options.ssl_verify,
            ssl_ca_file=self.options.ssl_ca_file,
            connection_timeout_ms=self.options.connection_timeout_ms,
            network_timeout_ms=self.options.network_timeout_ms,
        )

    def _log(self, message: str) -> None:
        self._logger.log(logging.INFO if self.options.verbose else logging.DEBUG, message)

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None
    ) -> HttpResponse:
        """Make HTTP request to server."""
        all_headers = dict(self.options.headers)
        all_headers.update(headers or {})
        self._log(f"{method} {self.base_url}{path} ({len(body or b'')} bytes)")
        response = self._transport.request(
            method, path, body=body, headers=all_headers, timeout_ms=self._timeout_ms(timeout_ms)
        )
        self._log(f"{method} {path} -> {response.status} ({len(response.body)} bytes)")
        return response

    def _json_request(
        self,
        method: str,
        path: str,
        data: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> Any:
        body = None
        headers = {}
        if data is not None:
            body = json.dumps(data).encode("utf-8")
            headers["Content-Type"] = "application/json"
        response = self._request(method, path, body=body, headers=headers, timeout_ms=timeout_ms)
        if response.status >= 400:
            raise ServerError(response.status, _error_message(response.body))
        return _parse_json(response.body)

    def _probe(self, path: str, timeout_ms: Optional[int]) -> bool:
        return self._request("GET", path, timeout_ms=timeout_ms).status == 200

    def is_server_live(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is alive (liveness probe)."""
        return self._probe("/v2/health/live", timeout_ms)

    def is_server_ready(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is ready to accept requests (readiness probe)."""
        return self._probe("/v2/health/ready", timeout_ms)

    def is_model_ready(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> bool:
        """Check if a model is ready for inference."""
        return self._probe(f"{model_path(model_name, model_version)}/ready", timeout_ms)

    def get_server_metadata(self, timeout_ms: Optional[int] = None) -> ServerMetadata:
        """Get server name, version and extensions."""
        result = self._json_request("GET", "/v2", timeout_ms=timeout_ms)
        try:
            return ServerMetadata(
                name=result["name"],
                version=result.get("version", ""),
                extensions=list(result.get("extensions", [])),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponseError(f"Invalid server metadata: {e}") from e

    def get_model_metadata(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> ModelMetadata:
        """Get metadata for a specific model."""
        result = self._json_request(
            "GET", model_path(model_name, model_version), timeout_ms=timeout_ms
        )
        try:
            return model_metadata_from_dict(result)
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponseError(f"Invalid model metadata: {e}") from e

    def load_model(
        self,
        model_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to load (or reload) a model."""
        data = {"parameters": dict(parameters)} if parameters else {}
        self._json_request("POST", repository_path(model_name, "load"), data, timeout_ms)
        self._logger.info(f"Loaded model: {model_name}")

    def unload_model(
        self,
        model_name: str,
        unload_dependents: bool = False,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to unload a model."""
        data = {"parameters": {"unload_dependents": unload_dependents}}
        self._json_request("POST", repository_path(model_name, "unload"), data, timeout_ms)
        self._logger.info(f"Unloaded model: {model_name}")

    def infer(
        self,
        model_name: str,
        inputs: Sequence[InferInput],
        model_version: str = "",
        outputs: Optional[Sequence[InferRequestedOutput]] = None,
        request_id: str = "",
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> InferResult:
        """
        Run inference on a model.

        Args:
            model_name: Model name
            inputs: Input tensors with data set
            model_version: Model version ("" lets the server choose)
            outputs: Outputs to return (None = all, binary encoded)
            request_id: Optional request ID for tracking
            parameters: Request-level parameters
            timeout_ms: Deadline for this call

        Returns:
            InferResult with output tensors

        Raises:
            ServerError: If server returns an error
            TransportError: If unable to reach the server in time
            MalformedResponseError: If the reply is inconsistent
        """
        body, json_length = encode_infer_request(inputs, outputs, request_id, parameters)
        headers = {"Content-Type": "application/json"}
        if json_length is not None:
            headers = {
                "Content-Type": "application/octet-stream",
                HEADER_LENGTH: str(json_length),
            }
        path = f"{model_path(model_name, model_version)}/infer"
        response = self._request("POST", path, body=body, headers=headers, timeout_ms=timeout_ms)
        if response.status >= 400:
            raise ServerError(response.status, _error_message(response.body))
        return decode_infer_response(response.body, _header_length(response.headers))

    def close(self) -> None:
        """Close the underlying transport."""
        close = getattr(self._transport, "close", None)
        if close is not None:
            close()


class AsyncHttpInferenceClient:
    """
    Asynchronous HTTP client for v2 inference servers.

    Requires aiohttp: pip install aiohttp

    Cancelling the awaiting task cancels the request; ``timeout_ms`` bounds
    each call.

    Example:
        async with AsyncHttpInferenceClient("localhost:8000") as client:
            if await client.is_server_ready():
                result = await client.infer("my_model", [inp])
    """

    def __init__(
        self,
        url: str,
        options: Optional[ClientOptions] = None,
        max_connections: int = 100
    ):
        """
        Initialize the async client.

        Args:
            url: Server address, ``host:port`` or ``http(s)://host:port``
            options: Connection options (defaults documented on ClientOptions)
            max_connections: Maximum concurrent connections

        Raises:
            ConfigurationError: If the URL or options are invalid
        """
        if not ASYNC_AVAILABLE:
            raise ImportError(
                "aiohttp is required for AsyncHttpInferenceClient. "
                "Install with: pip install aiohttp"
            )

        self.options = options or ClientOptions()
        self.options.check()
        host, port, use_ssl = _resolve_endpoint(url, self.options)
        self.base_url = f"{'https' if use_ssl else 'http'}://{host}:{port}"
        self._logger = self.options.get_logger(logger)
        # aiohttp: True means default certificate verification.
        self._ssl: Any = True
        if use_ssl:
            self._ssl = _make_ssl_context(self.options.ssl_verify, self.options.ssl_ca_file)
        self._max_connections = max_connections
        self._session: Optional["aiohttp.ClientSession"] = None

    async def __aenter__(self) -> "AsyncHttpInferenceClient":
        """Enter async context manager."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        await self.close()

    async def _ensure_session(self) -> "aiohttp.ClientSession":
        """Ensure session is created."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(
                sock_connect=self.options.connection_timeout_ms / 1000.0,
                sock_read=self.options.network_timeout_ms / 1000.0,
            )
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                connector=aiohttp.TCPConnector(limit=self._max_connections),
                headers=dict(self.options.headers),
            )
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _log(self, message: str) -> None:
        self._logger.log(logging.INFO if self.options.verbose else logging.DEBUG, message)

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None
    ) -> HttpResponse:
        """Make async HTTP request."""
        session = await self._ensure_session()
        timeout_ms = self.options.network_timeout_ms if timeout_ms is None else timeout_ms
        self._log(f"{method} {self.base_url}{path} ({len(body or b'')} bytes)")
        try:
            async with session.request(
                method,
                f"{self.base_url}{path}",
                data=body,
                headers=dict(headers or {}),
                ssl=self._ssl,
                timeout=aiohttp.ClientTimeout(
                    total=timeout_ms / 1000.0,
                    sock_connect=self.options.connection_timeout_ms / 1000.0,
                ),
            ) as response:
                data = await response.read()
                result = HttpResponse(
                    status=response.status,
                    headers={k.lower(): v for k, v in response.headers.items()},
                    body=data,
                )
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(
                f"{method} {path} exceeded its {timeout_ms} ms deadline"
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        self._log(f"{method} {path} -> {result.status} ({len(result.body)} bytes)")
        return result

    async def _json_request(
        self,
        method: str,
        path: str,
        data: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> Any:
        body = None
        headers = {}
        if data is not None:
            body = json.dumps(data).encode("utf-8")
            headers["Content-Type"] = "application/json"
        response = await self._request(method, path, body, headers, timeout_ms)
        if response.status >= 400:
            raise ServerError(response.status, _error_message(response.body))
        return _parse_json(response.body)

    async def is_server_live(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is alive."""
        response = await self._request("GET", "/v2/health/live", timeout_ms=timeout_ms)
        return response.status == 200

    async def is_server_ready(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is ready."""
        response = await self._request("GET", "/v2/health/ready", timeout_ms=timeout_ms)
        return response.status == 200

    async def is_model_ready(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> bool:
        """Check if a model is ready."""
        path = f"{model_path(model_name, model_version)}/ready"
        response = await self._request("GET", path, timeout_ms=timeout_ms)
        return response.status == 200

    async def get_server_metadata(self, timeout_ms: Optional[int] = None) -> ServerMetadata:
        """Get server name, version and extensions."""
        result = await self._json_request("GET", "/v2", timeout_ms=timeout_ms)
        try:
            return ServerMetadata(
                name=result["name"],
                version=result.get("version", ""),
                extensions=list(result.get("extensions", [])),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponseError(f"Invalid server metadata: {e}") from e

    async def get_model_metadata(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> ModelMetadata:
        """Get metadata for a model."""
        result = await self._json_request(
            "GET", model_path(model_name, model_version), timeout_ms=timeout_ms
        )
        try:
            return model_metadata_from_dict(result)
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponseError(f"Invalid model metadata: {e}") from e

    async def load_model(
        self,
        model_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to load (or reload) a model."""
        data = {"parameters": dict(parameters)} if parameters else {}
        await self._json_request("POST", repository_path(model_name, "load"), data, timeout_ms)
        self._logger.info(f"Loaded model: {model_name}")

    async def unload_model(
        self,
        model_name: str,
        unload_dependents: bool = False,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to unload a model."""
        data = {"parameters": {"unload_dependents": unload_dependents}}
        await self._json_request("POST", repository_path(model_name, "unload"), data, timeout_ms)
        self._logger.info(f"Unloaded model: {model_name}")

    async def infer(
        self,
        model_name: str,
        inputs: Sequence[InferInput],
        model_version: str = "",
        outputs: Optional[Sequence[InferRequestedOutput]] = None,
        request_id: str = "",
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> InferResult:
        """Run inference asynchronously."""
        body, json_length = encode_infer_request(inputs, outputs, request_id, parameters)
        headers = {"Content-Type": "application/json"}
        if json_length is not None:
            headers = {
                "Content-Type": "application/octet-stream",
                HEADER_LENGTH: str(json_length),
            }
        path = f"{model_path(model_name, model_version)}/infer"
        response = await self._request("POST", path, body, headers, timeout_ms)
        if response.status >= 400:
            raise ServerError(response.status, _error_message(response.body))
        return decode_infer_response(response.body, _header_length(response.headers))
