"""
kserve-infer - Client SDK for v2 (KServe / Triton) inference servers.

This module provides the main public API for kserve-infer.
"""

from .config import ClientOptions
from .dtypes import DataType, width_of
from .errors import (
    ConfigurationError,
    DeadlineExceededError,
    InferenceClientError,
    InputError,
    MalformedResponseError,
    NotFoundError,
    ServerError,
    ShapeMismatchError,
    TransportError,
    TypeMismatchError,
)
from .pooling import mean_pool, reshape
from .response import InferResult, OutputTensor
from .serving import (
    AsyncHttpInferenceClient,
    GrpcInferenceClient,
    HttpInferenceClient,
    InferenceServerClient,
    ModelMetadata,
    ServerMetadata,
    TensorMetadata,
    make_client,
)
from .tensors import InferInput, InferRequestedOutput

__version__ = "0.1.0"

__all__ = [
    # Clients
    "InferenceServerClient",
    "HttpInferenceClient",
    "AsyncHttpInferenceClient",
    "GrpcInferenceClient",
    "make_client",
    "ClientOptions",

    # Tensors
    "DataType",
    "width_of",
    "InferInput",
    "InferRequestedOutput",
    "InferResult",
    "OutputTensor",

    # Metadata
    "ModelMetadata",
    "ServerMetadata",
    "TensorMetadata",

    # Post-processing
    "mean_pool",
    "reshape",

    # Exceptions
    "InferenceClientError",
    "ConfigurationError",
    "InputError",
    "ShapeMismatchError",
    "TypeMismatchError",
    "NotFoundError",
    "TransportError",
    "DeadlineExceededError",
    "MalformedResponseError",
    "ServerError",

    # Version
    "__version__",
]
