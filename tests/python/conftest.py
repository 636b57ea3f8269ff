"""pytest configuration for kserve-infer tests."""

import json
import socket
import threading
import time
from concurrent import futures
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import grpc
import numpy as np
import pytest

from kserve_infer.serving import predict_v2

SLOW_SECONDS = 1.0
TRICKLE_SECONDS = 0.05


@pytest.fixture
def sample_embeddings():
    """Token embeddings [batch=2, seq=3, hidden=2] and their attention mask."""
    tensor = np.array(
        [
            [[1.0, 2.0], [3.0, 4.0], [100.0, 100.0]],
            [[2.0, 2.0], [4.0, 6.0], [6.0, 10.0]],
        ],
        dtype=np.float32,
    )
    mask = np.array([[1, 1, 0], [1, 1, 1]], dtype=np.int64)
    return tensor, mask


@pytest.fixture
def unused_port():
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# --- Fake HTTP server ---

def _echo_outputs(request, trailer):
    """Echo every INPUTn back as OUTPUTn, keeping its encoding."""
    outputs = []
    segments = []
    offset = 0
    for entry in request["inputs"]:
        out = {
            "name": entry["name"].replace("INPUT", "OUTPUT"),
            "datatype": entry["datatype"],
            "shape": entry["shape"],
        }
        size = entry.get("parameters", {}).get("binary_data_size")
        if size is None:
            out["data"] = entry["data"]
        else:
            segments.append(trailer[offset:offset + size])
            offset += size
            out["parameters"] = {"binary_data_size": size}
        outputs.append(out)
    return outputs, b"".join(segments)


class FakeInferenceHandler(BaseHTTPRequestHandler):
    """Minimal v2 REST server: "simple" echoes, "slow" stalls, "trickle" dribbles."""

    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):
        pass

    def _send(self, status, body=b"", headers=None):
        self.send_response(status)
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, status, payload):
        self._send(status, json.dumps(payload).encode("utf-8"),
                   {"Content-Type": "application/json"})

    def _trickle(self, body):
        """Send ``body`` one byte at a time, never idle long enough to time out."""
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        try:
            for i in range(len(body)):
                self.wfile.write(body[i:i + 1])
                self.wfile.flush()
                time.sleep(TRICKLE_SECONDS)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def do_GET(self):
        if self.path in ("/v2/health/live", "/v2/health/ready"):
            self._send(200)
        elif self.path == "/v2":
            self._send_json(200, {
                "name": "fake", "version": "1.2.3", "extensions": ["binary_tensor_data"],
            })
        elif self.path == "/v2/models/simple":
            self._send_json(200, {
                "name": "simple",
                "versions": ["1"],
                "platform": "onnxruntime_onnx",
                "inputs": [{"name": "INPUT0", "datatype": "INT32", "shape": [-1, 4]}],
                "outputs": [{"name": "OUTPUT0", "datatype": "INT32", "shape": [-1, 4]}],
            })
        elif self.path == "/v2/models/simple/ready":
            self._send(200)
        elif self.path.startswith("/v2/models/"):
            self._send_json(404, {"error": "model not found"})
        else:
            self._send(404)

    def do_POST(self):
        body = self.rfile.read(int(self.headers.get("Content-Length", 0)))
        if self.path.startswith("/v2/repository/models/"):
            model = self.path.split("/")[4]
            if model == "broken":
                self._send_json(400, {"error": "failed to load 'broken'"})
            else:
                self._send_json(200, {})
            return
        if self.path == "/v2/models/trickle/infer":
            self._trickle(b'{"outputs": []}')
            return
        if self.path == "/v2/models/slow/infer":
            time.sleep(SLOW_SECONDS)
            self._send_json(200, {"outputs": []})
            return
        if self.path != "/v2/models/simple/infer":
            self._send_json(404, {"error": "unknown model"})
            return

        header_length = self.headers.get("Inference-Header-Content-Length")
        split = len(body) if header_length is None else int(header_length)
        request = json.loads(body[:split])
        outputs, trailer = _echo_outputs(request, body[split:])
        header = json.dumps({
            "model_name": "simple",
            "model_version": "1",
            "id": request.get("id", ""),
            "outputs": outputs,
        }).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if trailer:
            headers = {
                "Content-Type": "application/octet-stream",
                "Inference-Header-Content-Length": str(len(header)),
            }
        self._send(200, header + trailer, headers)


@pytest.fixture
def http_server():
    """Run the fake REST server on a free port; yields ``host:port``."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), FakeInferenceHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


# --- Fake gRPC server ---

class FakeInferenceServicer:
    """In-process GRPCInferenceService mirroring FakeInferenceHandler."""

    def ServerLive(self, request, context):
        return predict_v2.ServerLiveResponse(live=True)

    def ServerReady(self, request, context):
        return predict_v2.ServerReadyResponse(ready=True)

    def ModelReady(self, request, context):
        return predict_v2.ModelReadyResponse(ready=request.name == "simple")

    def ServerMetadata(self, request, context):
        return predict_v2.ServerMetadataResponse(
            name="fake", version="1.2.3", extensions=["model_repository"]
        )

    def ModelMetadata(self, request, context):
        if request.name != "simple":
            context.abort(grpc.StatusCode.NOT_FOUND, f"model {request.name!r} not found")
        response = predict_v2.ModelMetadataResponse(
            name="simple", versions=["1"], platform="onnxruntime_onnx"
        )
        response.inputs.add(name="INPUT0", datatype="INT32", shape=[-1, 4])
        response.outputs.add(name="OUTPUT0", datatype="INT32", shape=[-1, 4])
        return response

    def ModelInfer(self, request, context):
        if request.model_name == "slow":
            time.sleep(SLOW_SECONDS)
            return predict_v2.ModelInferResponse()
        if request.model_name == "typed":
            # Typed contents instead of raw bytes.
            response = predict_v2.ModelInferResponse(model_name="typed", id=request.id)
            out = response.outputs.add(name="OUTPUT0", datatype="INT32", shape=[3])
            out.contents.int_contents.extend([7, 8, 9])
            return response
        if request.model_name != "simple":
            context.abort(grpc.StatusCode.NOT_FOUND, f"model {request.model_name!r} not found")

        response = predict_v2.ModelInferResponse(
            model_name="simple", model_version="1", id=request.id
        )
        for entry, raw in zip(request.inputs, request.raw_input_contents):
            response.outputs.add(
                name=entry.name.replace("INPUT", "OUTPUT"),
                datatype=entry.datatype,
                shape=list(entry.shape),
            )
            response.raw_output_contents.append(raw)
        return response

    def RepositoryModelLoad(self, request, context):
        if request.model_name == "broken":
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, "failed to load 'broken'")
        return predict_v2.RepositoryModelLoadResponse()

    def RepositoryModelUnload(self, request, context):
        return predict_v2.RepositoryModelUnloadResponse()


@pytest.fixture
def grpc_server():
    """Run FakeInferenceServicer on a free port; yields ``host:port``."""
    servicer = FakeInferenceServicer()
    handlers = {
        name: grpc.unary_unary_rpc_method_handler(
            getattr(servicer, name),
            request_deserializer=request_cls.FromString,
            response_serializer=response_cls.SerializeToString,
        )
        for name, (request_cls, response_cls) in predict_v2.METHODS.items()
    }
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=4))
    server.add_generic_rpc_handlers(
        (grpc.method_handlers_generic_handler(predict_v2.SERVICE_NAME, handlers),)
    )
    port = server.add_insecure_port("127.0.0.1:0")
    server.start()
    yield f"127.0.0.1:{port}"
    server.stop(0)
