"""
Tests for graph resource normalization into webnn-graph-json.
"""

import numpy as np
import pytest

from webnn_conformance.core.errors import GraphError
from webnn_conformance.graph.ir import (
    GRAPH_FORMAT,
    build_expected_outputs,
    build_expected_tensors,
    build_graph_document,
    normalize_graph,
    normalize_value,
)


def _chain(length: int) -> dict:
    operators = []
    previous = "x"
    for index in range(length):
        out = f"t{index}"
        operators.append({"name": "relu", "arguments": [{"input": previous}], "outputs": out})
        previous = out
    return {
        "inputs": {"x": {"data": [1.0], "descriptor": {"dataType": "float32", "shape": [1]}}},
        "operators": operators,
        "expectedOutputs": {previous: {"data": [1.0], "descriptor": {"dataType": "float32", "shape": [1]}}},
    }


class TestGraphDocument:
    def test_node_ids_follow_source_order(self) -> None:
        doc = build_graph_document(_chain(5))
        assert [node.id for node in doc.nodes] == [f"op_{i}" for i in range(5)]

    def test_names_link_nodes(self) -> None:
        doc = build_graph_document(_chain(3))
        assert doc.nodes[1].inputs == ["t0"]
        assert doc.nodes[2].inputs == ["t1"]
        assert doc.outputs == {"t2": "t2"}

    def test_document_layout(self, add_case) -> None:
        data = build_graph_document(add_case["graph"]).to_dict()
        assert data["format"] == GRAPH_FORMAT
        assert data["version"] == 2
        assert data["quantized"] is False
        assert data["consts"] == {}
        assert data["nodes"][0] == {
            "id": "op_0",
            "op": "add",
            "inputs": ["inputA", "inputB"],
            "options": {},
            "outputs": ["output"],
        }

    def test_constants_declared_as_inputs(self, add_case) -> None:
        add_case["graph"]["inputs"]["inputB"]["constant"] = True
        doc = build_graph_document(add_case["graph"])
        assert set(doc.inputs) == {"inputA", "inputB"}

    def test_list_argument_flattened_in_place(self) -> None:
        resources = {
            "inputs": {
                name: {"data": [1.0], "descriptor": {"dataType": "float32", "shape": [1]}}
                for name in ("a", "b", "c")
            },
            "operators": [
                {"name": "concat", "arguments": [{"inputs": ["a", "b", "c"]}, {"axis": 0}], "outputs": "y"},
            ],
            "expectedOutputs": {},
        }
        node = build_graph_document(resources).nodes[0]
        assert node.inputs == ["a", "b", "c"]
        assert node.options == {"axis": 0}

    def test_string_option_is_not_an_input(self) -> None:
        resources = {
            "inputs": {"x": {"data": [1.0], "descriptor": {"dataType": "float32", "shape": [1]}}},
            "operators": [{"name": "cast", "arguments": [{"input": "x"}, {"type": "int32"}], "outputs": "y"}],
            "expectedOutputs": {},
        }
        node = build_graph_document(resources).nodes[0]
        assert node.inputs == ["x"]
        assert node.options == {"type": "int32"}

    def test_options_mapping_merged(self) -> None:
        resources = _chain(1)
        resources["operators"][0]["arguments"].append({"options": {"axes": [0, 1], "keepDimensions": True}})
        node = build_graph_document(resources).nodes[0]
        assert node.options == {"axes": [0, 1], "keepDimensions": True}

    def test_operator_without_outputs_rejected(self) -> None:
        resources = _chain(1)
        resources["operators"][0]["outputs"] = None
        with pytest.raises(GraphError, match="has no outputs"):
            build_graph_document(resources)


class TestNormalizeValue:
    def test_large_ints_become_strings(self) -> None:
        assert normalize_value(2 ** 60) == str(2 ** 60)
        assert normalize_value(42) == 42

    def test_numpy_int64_becomes_string(self) -> None:
        assert normalize_value(np.int64(3)) == "3"

    def test_structure_preserved(self) -> None:
        value = {"pads": (1, 2), "nested": {"v": np.float32(0.5)}}
        assert normalize_value(value) == {"pads": [1, 2], "nested": {"v": 0.5}}


class TestRuntimeMaps:
    def test_runtime_inputs_wire_ready(self, add_case) -> None:
        graph = normalize_graph(add_case["graph"])
        wire = graph.wire_inputs()
        assert wire["inputA"]["data"] == [1.5, -2.0, 3.25]
        assert wire["inputA"]["descriptor"] == {"dataType": "float32", "shape": [3]}

    def test_expected_outputs_are_descriptor_only(self, add_case) -> None:
        expected = build_expected_outputs(add_case["graph"])
        assert list(expected) == ["output"]
        assert normalize_graph(add_case["graph"]).wire_expected_outputs() == {
            "output": {"descriptor": {"dataType": "float32", "shape": [3]}}
        }

    def test_expected_tensors_keep_data(self, add_case) -> None:
        tensors = build_expected_tensors(add_case["graph"])
        assert tensors["output"].data == [2.0, 2.0, 2.0]

    def test_input_length_mismatch_rejected(self, add_case) -> None:
        add_case["graph"]["inputs"]["inputA"]["data"] = [1.0, 2.0]
        with pytest.raises(GraphError, match="inputA"):
            normalize_graph(add_case["graph"])

    def test_bind_unknown_input_rejected(self, add_case) -> None:
        graph = normalize_graph(add_case["graph"])
        with pytest.raises(GraphError):
            graph.bind("nope", [1.0])
