"""
gRPC client for the v2 inference protocol.

Inputs always travel as raw bytes in ``raw_input_contents``; the message
structure carries the per-tensor framing, so no offsets are tracked here.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

import grpc

from ..config import ClientOptions, split_url
from ..errors import (
    ConfigurationError,
    DeadlineExceededError,
    InferenceClientError,
    MalformedResponseError,
    ServerError,
    TransportError,
    TypeMismatchError,
)
from ..response import InferResult, OutputTensor, parse_output
from ..tensors import InferInput, InferRequestedOutput
from . import predict_v2
from .base import InferenceServerClient, ModelMetadata, ServerMetadata, TensorMetadata

logger = logging.getLogger(__name__)

DEFAULT_GRPC_PORT = 8001

# Typed contents field holding each datatype when raw bytes are not used.
_CONTENTS_FIELDS = {
    "BOOL": "bool_contents",
    "INT8": "int_contents",
    "INT16": "int_contents",
    "INT32": "int_contents",
    "INT64": "int64_contents",
    "UINT8": "uint_contents",
    "UINT16": "uint_contents",
    "UINT32": "uint_contents",
    "UINT64": "uint64_contents",
    "FP32": "fp32_contents",
    "FP64": "fp64_contents",
    "BYTES": "bytes_contents",
}


def set_parameters(target: Any, parameters: Mapping[str, Any]) -> None:
    """Copy a plain mapping into a protobuf ``map<string, InferParameter>``."""
    for key, value in parameters.items():
        param = target[key]
        if isinstance(value, bool):
            param.bool_param = value
        elif isinstance(value, int):
            param.int64_param = value
        elif isinstance(value, float):
            param.double_param = value
        elif isinstance(value, str):
            param.string_param = value
        else:
            raise TypeMismatchError(
                f"Parameter {key!r} has unsupported type {type(value).__name__}"
            )


def get_parameters(source: Any) -> Dict[str, Any]:
    """Convert a protobuf parameter map back into a plain dict."""
    result = {}
    for key, param in source.items():
        choice = param.WhichOneof("parameter_choice")
        if choice is not None:
            result[key] = getattr(param, choice)
    return result


def encode_infer_request(
    model_name: str,
    inputs: Sequence[InferInput],
    model_version: str = "",
    outputs: Optional[Sequence[InferRequestedOutput]] = None,
    request_id: str = "",
    parameters: Optional[Mapping[str, Any]] = None
):
    """
    Build a ModelInferRequest message.

    Raises:
        InputError: If an input has no data
        TypeMismatchError: If a parameter value cannot be encoded
    """
    request = predict_v2.ModelInferRequest(
        model_name=model_name, model_version=model_version, id=request_id
    )
    set_parameters(request.parameters, parameters or {})
    for tensor in inputs:
        entry = request.inputs.add()
        entry.name = tensor.name
        entry.datatype = tensor.datatype.value
        entry.shape.extend(tensor.shape)
        set_parameters(entry.parameters, tensor.parameters)
        request.raw_input_contents.append(tensor.to_raw_bytes())
    for output in outputs or ():
        entry = request.outputs.add()
        entry.name = output.name
        # binary_data only has meaning for HTTP.
        set_parameters(
            entry.parameters,
            {k: v for k, v in output.parameters.items() if k != "binary_data"},
        )
    return request


def decode_infer_response(response: Any) -> InferResult:
    """
    Build an InferResult from a ModelInferResponse message.

    Raises:
        MalformedResponseError: If raw contents do not pair with the outputs
    """
    raw_contents = list(response.raw_output_contents)
    if raw_contents and len(raw_contents) != len(response.outputs):
        raise MalformedResponseError(
            f"{len(raw_contents)} raw output contents for {len(response.outputs)} outputs"
        )
    outputs: List[OutputTensor] = []
    for i, entry in enumerate(response.outputs):
        params = get_parameters(entry.parameters)
        if raw_contents:
            outputs.append(parse_output(
                entry.name, entry.datatype, entry.shape, raw=raw_contents[i], parameters=params
            ))
            continue
        field = _CONTENTS_FIELDS.get(entry.datatype)
        data = list(getattr(entry.contents, field)) if field else None
        outputs.append(parse_output(
            entry.name, entry.datatype, entry.shape, data=data, parameters=params
        ))
    return InferResult(
        outputs,
        model_name=response.model_name,
        model_version=response.model_version,
        request_id=response.id,
        parameters=get_parameters(response.parameters),
        response=response,
    )


def _translate_rpc_error(method: str, error: grpc.RpcError, timeout_ms: int) -> InferenceClientError:
    code = error.code()
    details = error.details() or ""
    if code == grpc.StatusCode.DEADLINE_EXCEEDED:
        return DeadlineExceededError(f"{method} exceeded its {timeout_ms} ms deadline")
    if code == grpc.StatusCode.CANCELLED:
        return TransportError(f"{method} was cancelled: {details}", cancelled=True)
    if code == grpc.StatusCode.UNAVAILABLE:
        return TransportError(f"{method} failed, server unavailable: {details}")
    # grpc reports response_deserializer failures as a local INTERNAL status.
    if code == grpc.StatusCode.INTERNAL and details.startswith("Exception deserializing response"):
        return MalformedResponseError(f"{method} returned an undecodable reply: {details}")
    return ServerError(code.name, details)


class GrpcInferenceClient(InferenceServerClient):
    """
    gRPC client for v2 inference servers.

    Example:
        with GrpcInferenceClient("localhost:8001") as client:
            inp = InferInput("INPUT0", "FP32", [1, 4]).set_data([1, 2, 3, 4])
            result = client.infer("my_model", [inp])
    """

    def __init__(
        self,
        url: str,
        options: Optional[ClientOptions] = None,
        channel: Optional[grpc.Channel] = None
    ):
        """
        Initialize the client.

        Args:
            url: Server address, ``host:port`` or ``grpc(s)://host:port``
            options: Connection options (defaults documented on ClientOptions)
            channel: Pre-built channel; the client will not close it

        Raises:
            ConfigurationError: If the URL or options are invalid
        """
        self.options = options or ClientOptions()
        self.options.check()
        scheme, host, port = split_url(url, DEFAULT_GRPC_PORT)
        if scheme not in (None, "grpc", "grpcs"):
            raise ConfigurationError(f"Unsupported URL scheme {scheme!r} for gRPC client")
        use_ssl = self.options.ssl or scheme == "grpcs"
        if use_ssl and not self.options.ssl_verify:
            raise ConfigurationError("gRPC channels cannot disable certificate verification")
        self.target = f"{host}:{port}"
        self._logger = self.options.get_logger(logger)
        self._metadata = tuple((k.lower(), v) for k, v in self.options.headers.items())

        self._owns_channel = channel is None
        if channel is None:
            channel = self._open_channel(use_ssl)
        self._channel = channel
        self._connected = False
        self._stubs = {
            name: channel.unary_unary(
                predict_v2.method_path(name),
                request_serializer=request_cls.SerializeToString,
                response_deserializer=response_cls.FromString,
            )
            for name, (request_cls, response_cls) in predict_v2.METHODS.items()
        }

    def _open_channel(self, use_ssl: bool) -> grpc.Channel:
        channel_options = [
            ("grpc.max_send_message_length", self.options.max_message_bytes),
            ("grpc.max_receive_message_length", self.options.max_message_bytes),
        ]
        if not use_ssl:
            return grpc.insecure_channel(self.target, options=channel_options)
        root_certificates = None
        if self.options.ssl_ca_file:
            with open(self.options.ssl_ca_file, "rb") as f:
                root_certificates = f.read()
        credentials = grpc.ssl_channel_credentials(root_certificates=root_certificates)
        return grpc.secure_channel(self.target, credentials, options=channel_options)

    def _log(self, message: str) -> None:
        self._logger.log(logging.INFO if self.options.verbose else logging.DEBUG, message)

    def _wait_for_connection(self, timeout_ms: int) -> None:
        if self._connected:
            return
        try:
            grpc.channel_ready_future(self._channel).result(timeout=timeout_ms / 1000.0)
        except grpc.FutureTimeoutError as e:
            raise DeadlineExceededError(
                f"Timed out connecting to {self.target} after {timeout_ms} ms"
            ) from e
        self._connected = True

    def _call(self, method: str, request: Any, timeout_ms: Optional[int]) -> Any:
        timeout_ms = self._timeout_ms(timeout_ms)
        start = time.monotonic()
        # Connecting spends the same deadline as the call itself.
        self._wait_for_connection(min(self.options.connection_timeout_ms, timeout_ms))
        remaining_ms = timeout_ms - (time.monotonic() - start) * 1000.0
        if remaining_ms <= 0:
            raise DeadlineExceededError(
                f"{method} to {self.target} exceeded its {timeout_ms} ms deadline"
            )
        self._log(f"{method} -> {self.target} ({request.ByteSize()} bytes)")
        try:
            response = self._stubs[method](
                request,
                timeout=remaining_ms / 1000.0,
                metadata=self._metadata or None,
            )
        except grpc.RpcError as e:
            raise _translate_rpc_error(method, e, timeout_ms) from e
        self._log(f"{method} <- {self.target} ({response.ByteSize()} bytes)")
        return response

    def is_server_live(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is alive (liveness probe)."""
        return self._call("ServerLive", predict_v2.ServerLiveRequest(), timeout_ms).live

    def is_server_ready(self, timeout_ms: Optional[int] = None) -> bool:
        """Check if server is ready to accept requests (readiness probe)."""
        return self._call("ServerReady", predict_v2.ServerReadyRequest(), timeout_ms).ready

    def is_model_ready(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> bool:
        """Check if a model is ready for inference."""
        request = predict_v2.ModelReadyRequest(name=model_name, version=model_version)
        return self._call("ModelReady", request, timeout_ms).ready

    def get_server_metadata(self, timeout_ms: Optional[int] = None) -> ServerMetadata:
        """Get server name, version and extensions."""
        response = self._call("ServerMetadata", predict_v2.ServerMetadataRequest(), timeout_ms)
        return ServerMetadata(
            name=response.name,
            version=response.version,
            extensions=list(response.extensions),
        )

    def get_model_metadata(
        self, model_name: str, model_version: str = "", timeout_ms: Optional[int] = None
    ) -> ModelMetadata:
        """Get metadata for a specific model."""
        request = predict_v2.ModelMetadataRequest(name=model_name, version=model_version)
        response = self._call("ModelMetadata", request, timeout_ms)
        return ModelMetadata(
            name=response.name,
            versions=list(response.versions),
            platform=response.platform,
            inputs=[
                TensorMetadata(name=t.name, datatype=t.datatype, shape=list(t.shape))
                for t in response.inputs
            ],
            outputs=[
                TensorMetadata(name=t.name, datatype=t.datatype, shape=list(t.shape))
                for t in response.outputs
            ],
        )

    def load_model(
        self,
        model_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to load (or reload) a model."""
        request = predict_v2.RepositoryModelLoadRequest(model_name=model_name)
        for key, value in (parameters or {}).items():
            param = request.parameters[key]
            if isinstance(value, bool):
                param.bool_param = value
            elif isinstance(value, int):
                param.int64_param = value
            elif isinstance(value, bytes):
                param.bytes_param = value
            elif isinstance(value, str):
                param.string_param = value
            else:
                raise TypeMismatchError(
                    f"Parameter {key!r} has unsupported type {type(value).__name__}"
                )
        self._call("RepositoryModelLoad", request, timeout_ms)
        self._logger.info(f"Loaded model: {model_name}")

    def unload_model(
        self,
        model_name: str,
        unload_dependents: bool = False,
        timeout_ms: Optional[int] = None
    ) -> None:
        """Ask the server to unload a model."""
        request = predict_v2.RepositoryModelUnloadRequest(model_name=model_name)
        request.parameters["unload_dependents"].bool_param = unload_dependents
        self._call("RepositoryModelUnload", request, timeout_ms)
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
            outputs: Outputs to return (None = all)
            request_id: Optional request ID for tracking
            parameters: Request-level parameters
            timeout_ms: Deadline for this call

        Returns:
            InferResult with output tensors

        Raises:
            ServerError: If server returns an error status
            TransportError: If unable to reach the server in time
            MalformedResponseError: If the reply is inconsistent
        """
        request = encode_infer_request(
            model_name, inputs, model_version, outputs, request_id, parameters
        )
        return decode_infer_response(self._call("ModelInfer", request, timeout_ms))

    def close(self) -> None:
        """Close the channel if this client opened it."""
        if self._owns_channel:
            self._channel.close()
