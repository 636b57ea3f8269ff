"""
Protocol-independent client contract.
"""

from __future__ import annotations

import abc
import time
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from ..config import ClientOptions
from ..errors import ConfigurationError, TransportError
from ..response import InferResult
from ..tensors import InferInput, InferRequestedOutput


@dataclass
class TensorMetadata:
    """Specification for model input or output."""
    name: str
    datatype: str
    shape: List[int]


@dataclass
class ModelMetadata:
    """Metadata about a model."""
    name: str
    versions: List[str] = field(default_factory=list)
    platform: str = ""
    inputs: List[TensorMetadata] = field(default_factory=list)
    outputs: List[TensorMetadata] = field(default_factory=list)


@dataclass
class ServerMetadata:
    """Name, version and protocol extensions reported by the server."""
    name: str
    version: str
    extensions: List[str] = field(default_factory=list)


def model_metadata_from_dict(result: Mapping[str, Any]) -> ModelMetadata:
    """Build ModelMetadata from the JSON body of a metadata reply."""
    inputs = [
        TensorMetadata(name=i["name"], datatype=i["datatype"], shape=list(i["shape"]))
        for i in result.get("inputs", [])
    ]
    outputs = [
        TensorMetadata(name=o["name"], datatype=o["datatype"], shape=list(o["shape"]))
        for o in result.get("outputs", [])
    ]
    return ModelMetadata(
        name=result["name"],
        versions=list(result.get("versions", [])),
        platform=result.get("platform", ""),
        inputs=inputs,
        outputs=outputs
    )


class InferenceServerClient(abc.ABC):
    """
    Contract shared by the HTTP and gRPC clients.

    Every call makes exactly one attempt. ``timeout_ms`` bounds the call;
    when omitted, ``ClientOptions.network_timeout_ms`` applies.
    """

    options: ClientOptions

    @abc.abstractmethod
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
            request_id: Optional request ID echoed by the server
            parameters: Request-level parameters
            timeout_ms: Deadline for this call

        Returns:
            InferResult with the decoded outputs

        Raises:
            ServerError: If the server rejects the request
            TransportError: If the request could not be completed
            MalformedResponseError: If the reply is inconsistent
        """

    @abc.abstractmethod
    def is_server_live(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is alive (liveness probe)."""

    @abc.abstractmethod
    def is_server_ready(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is ready to accept requests (readiness probe)."""

    @abc.abstractmethod
    def is_model_ready(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> bool:
        """Check if a model is ready for inference."""

    @abc.abstractmethod
    def get_server_metadata(self, timeout_ms: Optional[int] = None) -> ServerMetadata:
        """Get server name, version and extensions."""

    @abc.abstractmethod
    def get_model_metadata(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> ModelMetadata:
        """Get metadata for a specific model."""

    @abc.abstractmethod
    def load_model(
        self,
        model_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to load (or reload) a model. Raises ServerError on failure."""

    @abc.abstractmethod
    def unload_model(
        self,
        model_name: str,
        unload_dependents: bool = False,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to unload a model. Raises ServerError on failure."""

    def close(self) -> None:
        """Release connections held by the client."""

    def wait_for_server_ready(self, timeout_ms: int = 60000, poll_interval_ms: int = 1000) -> bool:
        """
        Wait for server to become ready.

        Connection failures while polling count as "not ready yet".

        Args:
            timeout_ms: Maximum time to wait
            poll_interval_ms: Time between health checks

        Returns:
            True if server became ready, False if timeout
        """
        deadline = time.monotonic() + timeout_ms / 1000.0
        while True:
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            if remaining_ms <= 0:
                return False
            try:
                if self.is_server_ready(timeout_ms=remaining_ms):
                    return True
            except TransportError:
                pass
            time.sleep(min(poll_interval_ms, max(remaining_ms, 0)) / 1000.0)

    def _timeout_ms(self, timeout_ms: Optional[int]) -> int:
        return self.options.network_timeout_ms if timeout_ms is None else timeout_ms

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def make_client(
    url: str,
    protocol: str = "http",
    options: Optional[ClientOptions] = None,
    **kwargs: Any
) -> InferenceServerClient:
    """
    Create a client for the given protocol.

    Args:
        url: Server address, ``host:port`` or ``scheme://host:port``
        protocol: "http" or "grpc"
        options: Connection options (defaults documented on ClientOptions)
        **kwargs: Passed to the client (``transport=`` or ``channel=``)

    Raises:
        ConfigurationError: If the protocol or options are invalid
    """
    if protocol == "http":
        from .http_client import HttpInferenceClient
        return HttpInferenceClient(url, options=options, **kwargs)
    if protocol == "grpc":
        from .grpc_client import GrpcInferenceClient
        return GrpcInferenceClient(url, options=options, **kwargs)
    raise ConfigurationError(f"Unknown protocol {protocol!r}; expected 'http' or 'grpc'")

