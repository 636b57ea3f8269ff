"""
Message classes of the ``inference.GRPCInferenceService`` v2 protocol.

The classes are built at import time from a FileDescriptorProto equivalent to
``grpc_predict_v2.proto`` (plus the model repository calls), in a private
descriptor pool so they never clash with other copies of the same package.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

SERVICE_NAME = "inference.GRPCInferenceService"

_F = descriptor_pb2.FieldDescriptorProto
_OPTIONAL = _F.LABEL_OPTIONAL
_REPEATED = _F.LABEL_REPEATED


def _field(
    name: str,
    number: int,
    field_type: int,
    label: int = _OPTIONAL,
    type_name: Optional[str] = None,
    oneof_index: Optional[int] = None
) -> descriptor_pb2.FieldDescriptorProto:
    field = _F(name=name, number=number, type=field_type, label=label)
    if type_name is not None:
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index
    return field


def _message(
    name: str,
    fields: Iterable[descriptor_pb2.FieldDescriptorProto] = (),
    nested: Iterable[descriptor_pb2.DescriptorProto] = (),
    oneof: Optional[str] = None
) -> descriptor_pb2.DescriptorProto:
    message = descriptor_pb2.DescriptorProto(name=name)
    message.field.extend(fields)
    message.nested_type.extend(nested)
    if oneof is not None:
        message.oneof_decl.add(name=oneof)
    return message


def _map_entry(value_type: str) -> descriptor_pb2.DescriptorProto:
    # map<string, value_type> fields named "parameters"
    entry = _message(
        "ParametersEntry",
        [
            _field("key", 1, _F.TYPE_STRING),
            _field("value", 2, _F.TYPE_MESSAGE, type_name=value_type),
        ],
    )
    entry.options.map_entry = True
    return entry


def _parameters_field(number: int, scope: str) -> descriptor_pb2.FieldDescriptorProto:
    return _field(
        "parameters", number, _F.TYPE_MESSAGE, _REPEATED,
        type_name=f".inference.{scope}.ParametersEntry",
    )


def _oneof_message(name: str, choices: Iterable[Tuple[str, int, int]], oneof: str):
    return _message(
        name,
        [_field(n, num, t, oneof_index=0) for n, num, t in choices],
        oneof=oneof,
    )


def _tensor_fields(scope: str):
    return [
        _field("name", 1, _F.TYPE_STRING),
        _field("datatype", 2, _F.TYPE_STRING),
        _field("shape", 3, _F.TYPE_INT64, _REPEATED),
        _parameters_field(4, scope),
        _field("contents", 5, _F.TYPE_MESSAGE, type_name=".inference.InferTensorContents"),
    ]


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    param = ".inference.InferParameter"
    file = descriptor_pb2.FileDescriptorProto(
        name="kserve_infer/grpc_predict_v2.proto",
        package="inference",
        syntax="proto3",
    )
    file.message_type.extend([
        _message("ServerLiveRequest"),
        _message("ServerLiveResponse", [_field("live", 1, _F.TYPE_BOOL)]),
        _message("ServerReadyRequest"),
        _message("ServerReadyResponse", [_field("ready", 1, _F.TYPE_BOOL)]),
        _message("ModelReadyRequest", [
            _field("name", 1, _F.TYPE_STRING),
            _field("version", 2, _F.TYPE_STRING),
        ]),
        _message("ModelReadyResponse", [_field("ready", 1, _F.TYPE_BOOL)]),
        _message("ServerMetadataRequest"),
        _message("ServerMetadataResponse", [
            _field("name", 1, _F.TYPE_STRING),
            _field("version", 2, _F.TYPE_STRING),
            _field("extensions", 3, _F.TYPE_STRING, _REPEATED),
        ]),
        _message("ModelMetadataRequest", [
            _field("name", 1, _F.TYPE_STRING),
            _field("version", 2, _F.TYPE_STRING),
        ]),
        _message(
            "ModelMetadataResponse",
            [
                _field("name", 1, _F.TYPE_STRING),
                _field("versions", 2, _F.TYPE_STRING, _REPEATED),
                _field("platform", 3, _F.TYPE_STRING),
                _field("inputs", 4, _F.TYPE_MESSAGE, _REPEATED,
                       type_name=".inference.ModelMetadataResponse.TensorMetadata"),
                _field("outputs", 5, _F.TYPE_MESSAGE, _REPEATED,
                       type_name=".inference.ModelMetadataResponse.TensorMetadata"),
            ],
            nested=[_message("TensorMetadata", [
                _field("name", 1, _F.TYPE_STRING),
                _field("datatype", 2, _F.TYPE_STRING),
                _field("shape", 3, _F.TYPE_INT64, _REPEATED),
            ])],
        ),
        _oneof_message("InferParameter", [
            ("bool_param", 1, _F.TYPE_BOOL),
            ("int64_param", 2, _F.TYPE_INT64),
            ("string_param", 3, _F.TYPE_STRING),
            ("double_param", 4, _F.TYPE_DOUBLE),
            ("uint64_param", 5, _F.TYPE_UINT64),
        ], oneof="parameter_choice"),
        _message("InferTensorContents", [
            _field("bool_contents", 1, _F.TYPE_BOOL, _REPEATED),
            _field("int_contents", 2, _F.TYPE_INT32, _REPEATED),
            _field("int64_contents", 3, _F.TYPE_INT64, _REPEATED),
            _field("uint_contents", 4, _F.TYPE_UINT32, _REPEATED),
            _field("uint64_contents", 5, _F.TYPE_UINT64, _REPEATED),
            _field("fp32_contents", 6, _F.TYPE_FLOAT, _REPEATED),
            _field("fp64_contents", 7, _F.TYPE_DOUBLE, _REPEATED),
            _field("bytes_contents", 8, _F.TYPE_BYTES, _REPEATED),
        ]),
        _message(
            "ModelInferRequest",
            [
                _field("model_name", 1, _F.TYPE_STRING),
                _field("model_version", 2, _F.TYPE_STRING),
                _field("id", 3, _F.TYPE_STRING),
                _parameters_field(4, "ModelInferRequest"),
                _field("inputs", 5, _F.TYPE_MESSAGE, _REPEATED,
                       type_name=".inference.ModelInferRequest.InferInputTensor"),
                _field("outputs", 6, _F.TYPE_MESSAGE, _REPEATED,
                       type_name=".inference.ModelInferRequest.InferRequestedOutputTensor"),
                _field("raw_input_contents", 7, _F.TYPE_BYTES, _REPEATED),
            ],
            nested=[
                _message(
                    "InferInputTensor",
                    _tensor_fields("ModelInferRequest.InferInputTensor"),
                    nested=[_map_entry(param)],
                ),
                _message(
                    "InferRequestedOutputTensor",
                    [
                        _field("name", 1, _F.TYPE_STRING),
                        _parameters_field(2, "ModelInferRequest.InferRequestedOutputTensor"),
                    ],
                    nested=[_map_entry(param)],
                ),
                _map_entry(param),
            ],
        ),
        _message(
            "ModelInferResponse",
            [
                _field("model_name", 1, _F.TYPE_STRING),
                _field("model_version", 2, _F.TYPE_STRING),
                _field("id", 3, _F.TYPE_STRING),
                _parameters_field(4, "ModelInferResponse"),
                _field("outputs", 5, _F.TYPE_MESSAGE, _REPEATED,
                       type_name=".inference.ModelInferResponse.InferOutputTensor"),
                _field("raw_output_contents", 6, _F.TYPE_BYTES, _REPEATED),
            ],
            nested=[
                _message(
                    "InferOutputTensor",
                    _tensor_fields("ModelInferResponse.InferOutputTensor"),
                    nested=[_map_entry(param)],
                ),
                _map_entry(param),
            ],
        ),
        _oneof_message("ModelRepositoryParameter", [
            ("bool_param", 1, _F.TYPE_BOOL),
            ("int64_param", 2, _F.TYPE_INT64),
            ("string_param", 3, _F.TYPE_STRING),
            ("bytes_param", 4, _F.TYPE_BYTES),
        ], oneof="parameter_choice"),
    ])
    for action in ("Load", "Unload"):
        scope = f"RepositoryModel{action}Request"
        file.message_type.extend([
            _message(
                scope,
                [
                    _field("repository_name", 1, _F.TYPE_STRING),
                    _field("model_name", 2, _F.TYPE_STRING),
                    _parameters_field(3, scope),
                ],
                nested=[_map_entry(".inference.ModelRepositoryParameter")],
            ),
            _message(f"RepositoryModel{action}Response"),
        ])
    return file


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file().SerializeToString())


def _message_class(name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"inference.{name}"))


ServerLiveRequest = _message_class("ServerLiveRequest")
ServerLiveResponse = _message_class("ServerLiveResponse")
ServerReadyRequest = _message_class("ServerReadyRequest")
ServerReadyResponse = _message_class("ServerReadyResponse")
ModelReadyRequest = _message_class("ModelReadyRequest")
ModelReadyResponse = _message_class("ModelReadyResponse")
ServerMetadataRequest = _message_class("ServerMetadataRequest")
ServerMetadataResponse = _message_class("ServerMetadataResponse")
ModelMetadataRequest = _message_class("ModelMetadataRequest")
ModelMetadataResponse = _message_class("ModelMetadataResponse")
ModelInferRequest = _message_class("ModelInferRequest")
ModelInferResponse = _message_class("ModelInferResponse")
RepositoryModelLoadRequest = _message_class("RepositoryModelLoadRequest")
RepositoryModelLoadResponse = _message_class("RepositoryModelLoadResponse")
RepositoryModelUnloadRequest = _message_class("RepositoryModelUnloadRequest")
RepositoryModelUnloadResponse = _message_class("RepositoryModelUnloadResponse")

# RPC name -> (request class, response class)
METHODS: Dict[str, Tuple[type, type]] = {
    "ServerLive": (ServerLiveRequest, ServerLiveResponse),
    "ServerReady": (ServerReadyRequest, ServerReadyResponse),
    "ModelReady": (ModelReadyRequest, ModelReadyResponse),
    "ServerMetadata": (ServerMetadataRequest, ServerMetadataResponse),
    "ModelMetadata": (ModelMetadataRequest, ModelMetadataResponse),
    "ModelInfer": (ModelInferRequest, ModelInferResponse),
    "RepositoryModelLoad": (RepositoryModelLoadRequest, RepositoryModelLoadResponse),
    "RepositoryModelUnload": (RepositoryModelUnloadRequest, RepositoryModelUnloadResponse),
}


def method_path(name: str) -> str:
    """Full gRPC method path, e.g. ``/inference.GRPCInferenceService/ModelInfer``."""
    return f"/{SERVICE_NAME}/{name}"
