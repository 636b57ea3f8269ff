"""Tests for the gRPC client."""

import struct
import time

import grpc
import numpy as np
import pytest

from kserve_infer import ClientOptions, GrpcInferenceClient, InferInput, InferRequestedOutput
from kserve_infer.errors import (
    DeadlineExceededError,
    MalformedResponseError,
    ServerError,
    TransportError,
    TypeMismatchError,
)
from kserve_infer.serving import predict_v2
from kserve_infer.serving.grpc_client import (
    _translate_rpc_error,
    decode_infer_response,
    encode_infer_request,
    get_parameters,
)


@pytest.fixture
def client(grpc_server):
    with GrpcInferenceClient(grpc_server, ClientOptions(connection_timeout_ms=5000)) as c:
        yield c


class TestMessages:
    """Test the runtime-built protocol messages."""

    def test_method_paths(self):
        """RPC paths use the inference.GRPCInferenceService prefix."""
        assert predict_v2.method_path("ModelInfer") == "/inference.GRPCInferenceService/ModelInfer"
        assert set(predict_v2.METHODS) >= {"ServerLive", "ModelInfer", "RepositoryModelLoad"}

    def test_request_serializes(self):
        """Messages built at runtime serialize and parse."""
        request = predict_v2.ModelInferRequest(model_name="m", id="1")
        request.parameters["priority"].int64_param = 3
        parsed = predict_v2.ModelInferRequest.FromString(request.SerializeToString())
        assert parsed.model_name == "m"
        assert get_parameters(parsed.parameters) == {"priority": 3}


class TestEncodeRequest:
    """Test ModelInferRequest construction."""

    def test_inputs_as_raw_contents(self):
        """Every input travels in raw_input_contents, in order."""
        a = InferInput("A", "FP32", [2]).set_data([1.0, 2.0], binary_data=False)
        b = InferInput("B", "BYTES", [1], parameters={"tag": "x"}).set_data(["hi"])
        outputs = [InferRequestedOutput("Y", class_count=2)]

        request = encode_infer_request(
            "m", [a, b], model_version="3", outputs=outputs, request_id="r",
            parameters={"flag": True, "ratio": 0.5},
        )

        assert request.model_version == "3"
        assert [i.name for i in request.inputs] == ["A", "B"]
        assert list(request.inputs[0].shape) == [2]
        assert list(request.raw_input_contents) == [
            struct.pack("<2f", 1.0, 2.0), b"\x02\x00\x00\x00hi",
        ]
        assert get_parameters(request.inputs[1].parameters) == {"tag": "x"}
        assert get_parameters(request.outputs[0].parameters) == {"classification": 2}
        assert get_parameters(request.parameters) == {"flag": True, "ratio": 0.5}

    def test_unsupported_parameter(self):
        """List parameters have no InferParameter form."""
        inp = InferInput("A", "INT8", [1]).set_data([1])
        with pytest.raises(TypeMismatchError):
            encode_infer_request("m", [inp], parameters={"bad": [1, 2]})


class TestDecodeResponse:
    """Test ModelInferResponse decoding."""

    def test_raw_contents_count_mismatch(self):
        """One raw segment per output is required."""
        response = predict_v2.ModelInferResponse()
        response.outputs.add(name="a", datatype="INT8", shape=[1])
        response.outputs.add(name="b", datatype="INT8", shape=[1])
        response.raw_output_contents.append(b"\x01")
        with pytest.raises(MalformedResponseError):
            decode_infer_response(response)

    def test_short_raw_contents(self):
        """A segment shorter than its shape is malformed."""
        response = predict_v2.ModelInferResponse()
        response.outputs.add(name="y", datatype="FP32", shape=[2, 3])
        response.raw_output_contents.append(b"\x00" * 20)
        result = decode_infer_response(response)
        with pytest.raises(MalformedResponseError):
            result.as_numpy("y")

    def test_typed_contents(self):
        """Typed contents decode when no raw segment is sent."""
        response = predict_v2.ModelInferResponse(model_name="m")
        out = response.outputs.add(name="y", datatype="BYTES", shape=[2])
        out.contents.bytes_contents.extend([b"a", b"bc"])
        result = decode_infer_response(response)
        assert result.as_strings("y") == ["a", "bc"]
        assert result.get_response() is response


class TestGrpcClient:
    """Test GrpcInferenceClient against an in-process server."""

    def test_health(self, client):
        """Liveness and readiness RPCs report the fake server state."""
        assert client.is_server_live()
        assert client.is_server_ready()
        assert client.is_model_ready("simple")
        assert not client.is_model_ready("other")
        assert client.wait_for_server_ready(timeout_ms=2000)

    def test_metadata(self, client):
        """Server and model metadata are converted from protobuf."""
        server = client.get_server_metadata()
        assert server.name == "fake"
        assert server.extensions == ["model_repository"]
        model = client.get_model_metadata("simple")
        assert model.outputs[0].datatype == "INT32"
        assert model.outputs[0].shape == [-1, 4]

    def test_infer_round_trip(self, client):
        """Mixed datatypes echo back unchanged."""
        values = np.array([[1, -2, 3, -4]], dtype=np.int32)
        inputs = [
            InferInput("INPUT0", "INT32", [1, 4]).set_data(values),
            InferInput("INPUT1", "FP16", [2]).set_data([1.0, -0.0]),
            InferInput("INPUT2", "BYTES", [3]).set_data(["a", "bb", "ccc"]),
        ]
        result = client.infer("simple", inputs, request_id="42")

        assert result.model_name == "simple"
        assert result.request_id == "42"
        np.testing.assert_array_equal(result.as_numpy("OUTPUT0"), values)
        assert result.as_numpy("OUTPUT1").tolist() == [1.0, -0.0]
        assert result.as_strings("OUTPUT2") == ["a", "bb", "ccc"]

    def test_typed_output_fallback(self, client):
        """Typed contents from the server decode through infer()."""
        inp = InferInput("INPUT0", "INT32", [1]).set_data([1])
        result = client.infer("typed", [inp])
        assert result.as_list("OUTPUT0") == [7, 8, 9]

    def test_server_error(self, client):
        """Server statuses surface as ServerError with the status name."""
        inp = InferInput("INPUT0", "INT32", [1]).set_data([1])
        with pytest.raises(ServerError) as exc_info:
            client.infer("missing", [inp])
        assert exc_info.value.status_code == "NOT_FOUND"
        assert exc_info.value.message == "model 'missing' not found"

    def test_load_unload(self, client):
        """Repository calls succeed and failures keep their status."""
        client.load_model("simple", parameters={"config": "{}", "force": True})
        client.unload_model("simple", unload_dependents=True)
        with pytest.raises(ServerError) as exc_info:
            client.load_model("broken")
        assert exc_info.value.status_code == "INVALID_ARGUMENT"

    def test_deadline(self, client):
        """A slow model exceeds the call deadline."""
        inp = InferInput("INPUT0", "INT32", [1]).set_data([1])
        with pytest.raises(DeadlineExceededError) as exc_info:
            client.infer("slow", [inp], timeout_ms=100)
        assert exc_info.value.cancelled is True

    def test_external_channel_not_closed(self, grpc_server):
        """A caller-owned channel outlives the client."""
        channel = grpc.insecure_channel(grpc_server)
        try:
            with GrpcInferenceClient(grpc_server, channel=channel) as client:
                assert client.is_server_live()
            assert GrpcInferenceClient(grpc_server, channel=channel).is_server_ready()
        finally:
            channel.close()

    def test_connect_timeout(self, unused_port):
        """An unreachable server fails with TransportError."""
        options = ClientOptions(connection_timeout_ms=200)
        with GrpcInferenceClient(f"127.0.0.1:{unused_port}", options) as client:
            with pytest.raises(TransportError):
                client.is_server_live()

    def test_connect_spends_call_deadline(self, unused_port):
        """An unreachable server fails at the call deadline, not the connect timeout."""
        options = ClientOptions(connection_timeout_ms=3000)
        with GrpcInferenceClient(f"127.0.0.1:{unused_port}", options) as client:
            start = time.monotonic()
            with pytest.raises(DeadlineExceededError):
                client.is_server_live(timeout_ms=100)
            assert time.monotonic() - start < 1.0


class RpcFailure(grpc.RpcError):
    """A client-side RpcError with a fixed status."""

    def __init__(self, code, details):
        super().__init__()
        self._code = code
        self._details = details

    def code(self):
        return self._code

    def details(self):
        return self._details


class TestErrorTranslation:
    """Test mapping of gRPC statuses onto client errors."""

    def test_undecodable_reply_is_malformed(self):
        """A reply the deserializer rejects is a malformed response."""
        error = RpcFailure(grpc.StatusCode.INTERNAL, "Exception deserializing response!")
        assert isinstance(_translate_rpc_error("ModelInfer", error, 100), MalformedResponseError)

    def test_internal_server_status_kept(self):
        """Other INTERNAL statuses come from the server."""
        error = RpcFailure(grpc.StatusCode.INTERNAL, "model crashed")
        translated = _translate_rpc_error("ModelInfer", error, 100)
        assert isinstance(translated, ServerError)
        assert translated.status_code == "INTERNAL"
        assert translated.message == "model crashed"

    @pytest.mark.parametrize("code,cancelled", [
        (grpc.StatusCode.DEADLINE_EXCEEDED, True),
        (grpc.StatusCode.CANCELLED, True),
        (grpc.StatusCode.UNAVAILABLE, False),
    ])
    def test_transport_statuses(self, code, cancelled):
        """Local failures surface as transport errors."""
        translated = _translate_rpc_error("ServerLive", RpcFailure(code, ""), 100)
        assert isinstance(translated, TransportError)
        assert translated.cancelled is cancelled

    def test_deserializer_failure_end_to_end(self, grpc_server):
        """A reply that fails to parse raises MalformedResponseError from the call."""
        def reject(data):
            raise ValueError("truncated message")

        with GrpcInferenceClient(grpc_server) as client:
            client._stubs["ServerLive"] = client._channel.unary_unary(
                predict_v2.method_path("ServerLive"),
                request_serializer=predict_v2.ServerLiveRequest.SerializeToString,
                response_deserializer=reject,
            )
            with pytest.raises(MalformedResponseError):
                client.is_server_live()
