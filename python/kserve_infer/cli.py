"""
Command line front end for kserve-infer.

Examples:

    kserve-infer --url localhost:8000 ready
    kserve-infer --protocol grpc --url localhost:8001 metadata --model simple
    kserve-infer infer simple --input INPUT0:INT32:1,4:[1,2,3,4] --output OUTPUT0

Connection options are read from ``KSERVE_*`` environment variables (see
ClientOptions.from_env); ``LOG_LEVEL`` sets the log level.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from typing import Any, Optional, Sequence

import numpy as np

from .config import ClientOptions
from .errors import InferenceClientError, InputError
from .serving import make_client
from .tensors import InferInput, InferRequestedOutput

logger = logging.getLogger("kserve-infer")


def parse_input(text: str) -> InferInput:
    """
    Parse ``NAME:DATATYPE:SHAPE:JSON`` into an InferInput.

    SHAPE is comma separated (empty for a scalar); JSON is the flat or
    nested list of values.
    """
    parts = text.split(":", 3)
    if len(parts) != 4:
        raise InputError(f"Expected NAME:DATATYPE:SHAPE:JSON, got {text!r}")
    name, datatype, shape_text, values_text = parts
    try:
        shape = [int(d) for d in shape_text.split(",") if d.strip()]
    except ValueError as e:
        raise InputError(f"Invalid shape {shape_text!r}") from e
    try:
        values = json.loads(values_text)
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON values for {name!r}: {e}") from e
    return InferInput(name, datatype, shape).set_data(values)


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return _jsonable(value.tolist())
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if dataclasses.is_dataclass(value):
        return dataclasses.asdict(value)
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kserve-infer",
        description="Talk to a v2 inference server over HTTP or gRPC.",
    )
    parser.add_argument(
        "--url",
        default=os.environ.get("KSERVE_URL", "localhost:8000"),
        help="Server address (default: %(default)s)",
    )
    parser.add_argument(
        "--protocol",
        choices=("http", "grpc"),
        default=os.environ.get("KSERVE_PROTOCOL", "http"),
        help="Wire protocol (default: %(default)s)",
    )
    parser.add_argument("--timeout-ms", type=int, default=None, help="Per-call deadline")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every request")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("live", help="Check server liveness")
    ready = sub.add_parser("ready", help="Check server or model readiness")
    ready.add_argument("--model", help="Model to check instead of the server")
    ready.add_argument("--model-version", default="")
    metadata = sub.add_parser("metadata", help="Show server or model metadata")
    metadata.add_argument("--model", help="Model to describe instead of the server")
    metadata.add_argument("--model-version", default="")
    load = sub.add_parser("load", help="Load a model")
    load.add_argument("model")
    unload = sub.add_parser("unload", help="Unload a model")
    unload.add_argument("model")
    unload.add_argument("--unload-dependents", action="store_true")
    infer = sub.add_parser("infer", help="Run inference")
    infer.add_argument("model")
    infer.add_argument("--model-version", default="")
    infer.add_argument(
        "--input", dest="inputs", action="append", default=[], required=True,
        help="NAME:DATATYPE:SHAPE:JSON, repeatable",
    )
    infer.add_argument("--output", dest="outputs", action="append", default=[],
                       help="Output to return, repeatable (default: all)")
    return parser


def run(args: argparse.Namespace, client: Any) -> Any:
    """Execute one parsed command and return a JSON-able result."""
    timeout_ms = args.timeout_ms
    if args.command == "live":
        return {"live": client.is_server_live(timeout_ms=timeout_ms)}
    if args.command == "ready":
        if args.model:
            return {"ready": client.is_model_ready(args.model, args.model_version, timeout_ms)}
        return {"ready": client.is_server_ready(timeout_ms=timeout_ms)}
    if args.command == "metadata":
        if args.model:
            return _jsonable(client.get_model_metadata(args.model, args.model_version, timeout_ms))
        return _jsonable(client.get_server_metadata(timeout_ms=timeout_ms))
    if args.command == "load":
        client.load_model(args.model, timeout_ms=timeout_ms)
        return {"loaded": args.model}
    if args.command == "unload":
        client.unload_model(args.model, args.unload_dependents, timeout_ms=timeout_ms)
        return {"unloaded": args.model}

    inputs = [parse_input(arg) for arg in args.inputs]
    outputs = [InferRequestedOutput(name) for name in args.outputs] or None
    result = client.infer(
        args.model, inputs, model_version=args.model_version, outputs=outputs,
        timeout_ms=timeout_ms,
    )
    return {
        name: {
            "datatype": result.get_datatype(name).value,
            "shape": list(result.get_shape(name)),
            "data": _jsonable(result.as_list(name)),
        }
        for name in result.output_names()
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    log_level = os.environ.get("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    args = build_parser().parse_args(argv)
    try:
        options = ClientOptions.from_env()
        options.verbose = options.verbose or args.verbose
        with make_client(args.url, protocol=args.protocol, options=options) as client:
            result = run(args, client)
    except InferenceClientError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    print(json.dumps(result, indent=2))
    return 0
