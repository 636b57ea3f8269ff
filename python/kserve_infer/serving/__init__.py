"""
kserve_infer.serving - Clients for v2 inference servers.

This module provides clients over both wire protocols:

- HttpInferenceClient: Synchronous HTTP client
- AsyncHttpInferenceClient: Asynchronous HTTP client (aiohttp)
- GrpcInferenceClient: Synchronous gRPC client
- make_client: Pick a client by protocol name

Example usage:

    from kserve_infer import InferInput
    from kserve_infer.serving import make_client

    client = make_client("localhost:8000", protocol="http")

    # Check server health
    if client.is_server_ready():
        # Run inference
        inp = InferInput("input", "FP32", [3]).set_data([1, 2, 3])
        result = client.infer("my_model", [inp])
        print(result.as_numpy("output"))
"""

from .base import (
    InferenceServerClient,
    ModelMetadata,
    ServerMetadata,
    TensorMetadata,
    make_client,
)
from .grpc_client import GrpcInferenceClient
from .http_client import (
    AsyncHttpInferenceClient,
    HttpInferenceClient,
    HttpResponse,
    HttpTransport,
)

__all__ = [
    "InferenceServerClient",
    "HttpInferenceClient",
    "AsyncHttpInferenceClient",
    "GrpcInferenceClient",
    "HttpTransport",
    "HttpResponse",
    "make_client",
    "ModelMetadata",
    "ServerMetadata",
    "TensorMetadata",
]
