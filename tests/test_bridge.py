"""
Tests for the execution bridge, over real pipes to a fake backend.
"""

import asyncio
import json
import os
from typing import List

import pytest

from webnn_conformance.bridge.client import ExecutionBridge
from webnn_conformance.bridge.protocol import (
    ExecuteGraphRequest,
    FailureResponse,
    PendingTable,
    SuccessResponse,
    decode_response,
    encode_request,
)
from webnn_conformance.bridge.transport import SubprocessTransport
from webnn_conformance.core.errors import (
    BackendTerminatedError,
    ExecutionError,
    ProtocolError,
)
from webnn_conformance.graph.ir import normalize_graph


def _bridge(command: List[str], mode: str = "") -> ExecutionBridge:
    env = dict(os.environ, FAKE_RUNNER_MODE=mode)
    return ExecutionBridge(SubprocessTransport(command, env=env))


def _binary_graph(op: str, a, b, data_type: str = "float32"):
    shape = [len(a)]
    return normalize_graph({
        "inputs": {
            "a": {"data": a, "descriptor": {"dataType": data_type, "shape": shape}},
            "b": {"data": b, "descriptor": {"dataType": data_type, "shape": shape}},
        },
        "operators": [{"name": op, "arguments": [{"a": "a"}, {"b": "b"}], "outputs": "y"}],
        "expectedOutputs": {"y": {"data": [], "descriptor": {"dataType": data_type, "shape": shape}}},
    })


class TestProtocol:
    def test_request_is_one_line(self) -> None:
        request = ExecuteGraphRequest(id="r1", graph={"nodes": []}, inputs={}, expected_outputs={})
        encoded = encode_request(request)
        assert encoded.endswith(b"\n")
        assert encoded.count(b"\n") == 1
        assert json.loads(encoded)["cmd"] == "execute_graph"

    def test_request_rejects_nan(self) -> None:
        request = ExecuteGraphRequest(id="r1", graph={"v": float("nan")}, inputs={}, expected_outputs={})
        with pytest.raises(ProtocolError):
            encode_request(request)

    def test_decode_success(self) -> None:
        line = json.dumps({
            "id": "r1",
            "ok": True,
            "outputs": {"y": {"descriptor": {"dataType": "int64", "shape": [1]}, "data": ["5"]}},
        })
        response = decode_response(line)
        assert isinstance(response, SuccessResponse)
        assert response.outputs["y"].decoded() == [5]

    def test_decode_failure_defaults_kind(self) -> None:
        response = decode_response('{"id": "r1", "ok": false, "error": {"message": "boom"}}')
        assert isinstance(response, FailureResponse)
        assert response.kind == "RuntimeExecutionError"
        assert response.message == "boom"

    @pytest.mark.parametrize("line", ["not json", "[1, 2]", '{"ok": true}'])
    def test_decode_malformed(self, line: str) -> None:
        with pytest.raises(ProtocolError):
            decode_response(line)

    @pytest.mark.parametrize("error", ['"boom"', "[1]", "7"])
    def test_decode_failure_with_non_object_error(self, error: str) -> None:
        with pytest.raises(ProtocolError, match="error is not an object"):
            decode_response('{"id": "r1", "ok": false, "error": %s}' % error)


class TestPendingTable:
    @pytest.mark.asyncio
    async def test_resolve_once(self) -> None:
        table = PendingTable()
        future = table.register("a")
        assert table.resolve("a", 1)
        assert not table.resolve("a", 2)
        assert await future == 1
        assert len(table) == 0

    @pytest.mark.asyncio
    async def test_reject_all(self) -> None:
        table = PendingTable()
        futures = [table.register(str(i)) for i in range(3)]
        assert table.reject_all(BackendTerminatedError("gone")) == 3
        assert len(table) == 0
        for future in futures:
            with pytest.raises(BackendTerminatedError):
                await future

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self) -> None:
        table = PendingTable()
        table.register("a")
        with pytest.raises(ProtocolError):
            table.register("a")


class TestExecutionBridge:
    @pytest.mark.asyncio
    async def test_execute_add(self, fake_runner_command, add_case) -> None:
        async with _bridge(fake_runner_command) as bridge:
            outputs = await bridge.execute(normalize_graph(add_case["graph"]), {"deviceType": "cpu"})
            assert outputs["output"].decoded() == [2.0, 2.0, 2.0]
            assert outputs["output"].descriptor.shape == (3,)
            assert bridge.pending_count == 0

    @pytest.mark.asyncio
    async def test_int64_round_trip(self, fake_runner_command) -> None:
        graph = _binary_graph("add", ["9007199254740993", "1"], ["1", "1"], data_type="int64")
        async with _bridge(fake_runner_command) as bridge:
            outputs = await bridge.execute(graph)
        assert outputs["y"].decoded() == [9007199254740994, 2]

    @pytest.mark.asyncio
    async def test_backend_failure_is_execution_error(self, fake_runner_command) -> None:
        graph = normalize_graph({
            "inputs": {"x": {"data": [1.0], "descriptor": {"dataType": "float32", "shape": [1]}}},
            "operators": [{"name": "tanh", "arguments": [{"input": "x"}], "outputs": "y"}],
            "expectedOutputs": {"y": {"data": [0.76], "descriptor": {"dataType": "float32", "shape": [1]}}},
        })
        async with _bridge(fake_runner_command) as bridge:
            with pytest.raises(ExecutionError) as exc_info:
                await bridge.execute(graph)
            assert exc_info.value.kind == "UnsupportedOperatorError"
            # The bridge stays usable after an ok=false response.
            outputs = await bridge.execute(_binary_graph("sub", [3.0], [1.0]))
            assert outputs["y"].decoded() == [2.0]

    @pytest.mark.asyncio
    async def test_noise_and_unknown_ids_dropped(self, fake_runner_command) -> None:
        async with _bridge(fake_runner_command, mode="garbage") as bridge:
            outputs = await bridge.execute(_binary_graph("mul", [2.0, 3.0], [4.0, 5.0]))
        assert outputs["y"].decoded() == [8.0, 15.0]

    @pytest.mark.asyncio
    async def test_malformed_failure_line_keeps_backend_alive(self, fake_runner_command) -> None:
        async with _bridge(fake_runner_command, mode="bad-error") as bridge:
            first = await bridge.execute(_binary_graph("add", [1.0], [2.0]))
            second = await bridge.execute(_binary_graph("sub", [5.0], [2.0]))
            assert bridge.is_alive
        assert first["y"].decoded() == [3.0]
        assert second["y"].decoded() == [3.0]

    @pytest.mark.asyncio
    async def test_out_of_order_responses_correlated(self, fake_runner_command) -> None:
        async with _bridge(fake_runner_command, mode="reverse") as bridge:
            first, second = await asyncio.gather(
                bridge.execute(_binary_graph("add", [1.0], [1.0])),
                bridge.execute(_binary_graph("mul", [3.0], [5.0])),
            )
        assert first["y"].decoded() == [2.0]
        assert second["y"].decoded() == [15.0]

    @pytest.mark.asyncio
    async def test_process_exit_rejects_pending(self, fake_runner_command, add_case) -> None:
        graph = normalize_graph(add_case["graph"])
        async with _bridge(fake_runner_command, mode="crash") as bridge:
            with pytest.raises(BackendTerminatedError) as exc_info:
                await bridge.execute(graph)
            assert exc_info.value.returncode == 3
            assert bridge.pending_count == 0
            assert not bridge.is_alive

            with pytest.raises(BackendTerminatedError):
                await bridge.execute(graph)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_runner_command, add_case) -> None:
        bridge = _bridge(fake_runner_command)
        await bridge.start()
        await bridge.close()
        await bridge.close()
        with pytest.raises(BackendTerminatedError):
            await bridge.execute(normalize_graph(add_case["graph"]))

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        bridge = ExecutionBridge(SubprocessTransport(["definitely-not-a-webnn-runner"]))
        with pytest.raises(ExecutionError, match="failed to start backend"):
            await bridge.start()
