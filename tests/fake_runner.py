"""
Minimal stand-in for the wpt-runner backend.

Speaks the execute_graph line protocol on stdin/stdout and evaluates a few
elementwise operators with numpy.

FAKE_RUNNER_MODE:
    crash    exit with status 3 on the first request, without answering
    garbage  emit noise and a stray response before each real answer
    reverse  buffer two requests and answer them in reverse order
    bad-error send a failure line whose error is a bare string, then answer
"""

import json
import os
import sys

import numpy as np

DTYPES = {
    "float32": np.float32,
    "float16": np.float16,
    "int8": np.int8,
    "uint8": np.uint8,
    "int32": np.int32,
    "uint32": np.uint32,
    "int64": np.int64,
    "uint64": np.uint64,
}

OPS = {
    "add": lambda a, b: a + b,
    "sub": lambda a, b: a - b,
    "mul": lambda a, b: a * b,
    "relu": lambda a: np.maximum(a, 0),
}


def decode(value, data_type):
    if data_type in ("int64", "uint64"):
        return int(value)
    if isinstance(value, str):
        return float(value.replace("Infinity", "inf"))
    return value


def encode(value, data_type):
    if data_type in ("int64", "uint64"):
        return str(int(value))
    value = float(value)
    if np.isnan(value):
        return "NaN"
    if np.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def tensor(entry):
    descriptor = entry["descriptor"]
    data_type = descriptor["dataType"]
    shape = tuple(descriptor["shape"])
    values = [decode(v, data_type) for v in entry["data"]]
    dtype = DTYPES[data_type]
    if len(values) == 1:
        return np.full(shape, values[0], dtype=dtype)
    return np.array(values, dtype=dtype).reshape(shape)


def execute(request):
    graph = request["graph"]
    env = {name: tensor(entry) for name, entry in request["inputs"].items()}

    for node in graph["nodes"]:
        op = OPS.get(node["op"])
        if op is None:
            raise NotImplementedError(f"unsupported operator: {node['op']}")
        env[node["outputs"][0]] = op(*[env[name] for name in node["inputs"]])

    outputs = {}
    for name in graph["outputs"]:
        array = env[name]
        expected = request["expected_outputs"].get(name, {}).get("descriptor", {})
        data_type = expected.get("dataType", str(array.dtype))
        outputs[name] = {
            "descriptor": {"dataType": data_type, "shape": list(array.shape)},
            "data": [encode(v, data_type) for v in array.ravel().tolist()],
        }
    return outputs


def respond(request):
    try:
        outputs = execute(request)
        message = {"id": request["id"], "ok": True, "outputs": outputs}
    except NotImplementedError as exc:
        message = {"id": request["id"], "ok": False,
                   "error": {"kind": "UnsupportedOperatorError", "message": str(exc)}}
    except (KeyError, ValueError) as exc:
        message = {"id": request["id"], "ok": False,
                   "error": {"kind": "RuntimeExecutionError", "message": str(exc)}}
    return json.dumps(message)


def main():
    mode = os.environ.get("FAKE_RUNNER_MODE", "")
    held = []

    for line in sys.stdin:
        if not line.strip():
            continue
        request = json.loads(line)

        if mode == "crash":
            sys.exit(3)

        if mode == "garbage":
            print("this is not json")
            print(json.dumps({"id": "unknown", "ok": False,
                              "error": {"kind": "BadRequestError", "message": "noise"}}))

        if mode == "bad-error":
            print(json.dumps({"id": request["id"], "ok": False, "error": "boom"}), flush=True)

        if mode == "reverse":
            held.append(request)
            if len(held) < 2:
                continue
            for pending in reversed(held):
                print(respond(pending), flush=True)
            held.clear()
            continue

        print(respond(request), flush=True)


if __name__ == "__main__":
    main()
