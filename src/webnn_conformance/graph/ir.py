"""
Canonical graph intermediate representation (webnn-graph-json, version 2).

Graph resources arrive either from the builder or straight out of a WPT
fixture, in the same shape:

    {
      "inputs": {name: {"descriptor": ..., "data": ..., "constant": bool}},
      "operators": [{"name": op, "arguments": [{key: value}, ...], "outputs": name}],
      "expectedOutputs": {name: {"descriptor": ..., "data": ...}},
    }

This module turns them into one GraphDocument plus wire-ready tensors.

Invariants:
- node ids are exactly op_<index> in source order
- operand names are the only linkage between nodes
- constants are declared as ordinary inputs; the backend never sees the
  difference at the protocol level
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

import numpy as np

from ..core.errors import GraphError
from ..core.types import RuntimeTensor, TensorDescriptor, flatten_data

logger = logging.getLogger(__name__)

GRAPH_FORMAT = "webnn-graph-json"
GRAPH_VERSION = 2

# Largest integer a JSON consumer using IEEE-754 doubles can hold exactly.
MAX_SAFE_INTEGER = 2 ** 53 - 1


# ---------------------------------------------------------------------
# IR Types
# ---------------------------------------------------------------------

@dataclass
class GraphNode:
    id: str
    op: str
    inputs: List[str] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    outputs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "op": self.op,
            "inputs": list(self.inputs),
            "options": self.options,
            "outputs": list(self.outputs),
        }


@dataclass
class GraphDocument:
    inputs: Dict[str, TensorDescriptor] = field(default_factory=dict)
    nodes: List[GraphNode] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    name: str = "wpt_graph"

    @property
    def last_operator(self) -> Optional[str]:
        return self.nodes[-1].op if self.nodes else None

    def operator_names(self) -> List[str]:
        return [node.op for node in self.nodes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": GRAPH_FORMAT,
            "version": GRAPH_VERSION,
            "name": self.name,
            "quantized": False,
            "inputs": {name: d.to_dict() for name, d in self.inputs.items()},
            "consts": {},
            "nodes": [node.to_dict() for node in self.nodes],
            "outputs": dict(self.outputs),
        }


@dataclass
class NormalizedGraph:
    """Everything one execute_graph request needs."""
    document: GraphDocument
    inputs: Dict[str, RuntimeTensor]
    expected_outputs: Dict[str, TensorDescriptor]

    def bind(self, name: str, data: Any) -> None:
        """Attach runtime data to a declared input."""
        if name not in self.inputs:
            raise GraphError(f"unknown graph input: {name}")
        tensor = RuntimeTensor(descriptor=self.inputs[name].descriptor, data=flatten_data(data))
        tensor.validate_length(name)
        self.inputs[name] = tensor

    def wire_inputs(self) -> Dict[str, Any]:
        return {name: tensor.to_wire() for name, tensor in self.inputs.items()}

    def wire_expected_outputs(self) -> Dict[str, Any]:
        return {name: {"descriptor": d.to_dict()} for name, d in self.expected_outputs.items()}


# ---------------------------------------------------------------------
# Value normalization
# ---------------------------------------------------------------------

def _is_64bit_integer(value: Any) -> bool:
    if isinstance(value, (np.int64, np.uint64)):
        return True
    if isinstance(value, int) and not isinstance(value, bool):
        return abs(value) > MAX_SAFE_INTEGER
    return False


def normalize_value(value: Any) -> Any:
    """
    Recursively normalize an option value.

    Lists and maps keep their structure; 64-bit integers become decimal
    strings; other numpy scalars are unwrapped.
    """
    if _is_64bit_integer(value):
        return str(int(value))
    if isinstance(value, np.ndarray):
        return [normalize_value(v) for v in value.tolist()]
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): normalize_value(v) for k, v in value.items()}
    return value


def _as_name_list(outputs: Any) -> List[str]:
    if outputs is None:
        return []
    if isinstance(outputs, (list, tuple)):
        return [str(o) for o in outputs]
    return [str(outputs)]


def _known_operands(resources: Mapping[str, Any]) -> Set[str]:
    names = set((resources.get("inputs") or {}).keys())
    for op in resources.get("operators") or []:
        names.update(_as_name_list(op.get("outputs")))
    return names


def _input_references(value: Any, known: Set[str]) -> Optional[List[str]]:
    """Operand names referenced by an argument value, or None for an option."""
    if isinstance(value, str):
        return [value] if value in known else None
    if isinstance(value, (list, tuple)) and value:
        if all(isinstance(v, str) and v in known for v in value):
            return list(value)
    return None


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------

def build_graph_document(resources: Mapping[str, Any], name: str = "wpt_graph") -> GraphDocument:
    """Flatten graph resources into the canonical GraphDocument."""
    document = GraphDocument(name=name)

    for input_name, entry in (resources.get("inputs") or {}).items():
        document.inputs[input_name] = TensorDescriptor.from_dict(entry.get("descriptor"))

    known = _known_operands(resources)

    for index, op in enumerate(resources.get("operators") or []):
        op_name = op.get("name")
        if not op_name:
            raise GraphError(f"operator #{index} has no name")

        inputs: List[str] = []
        options: Dict[str, Any] = {}

        for argument in op.get("arguments") or []:
            for key, value in argument.items():
                if key == "options" and isinstance(value, Mapping):
                    options.update(normalize_value(value))
                    continue

                refs = _input_references(value, known)
                if refs is not None:
                    inputs.extend(refs)
                    continue

                options[key] = normalize_value(value)

        outputs = _as_name_list(op.get("outputs"))
        if not outputs:
            raise GraphError(f"operator #{index} has no outputs", operator=op_name)

        document.nodes.append(
            GraphNode(id=f"op_{index}", op=op_name, inputs=inputs, options=options, outputs=outputs)
        )

    for output_name in (resources.get("expectedOutputs") or {}):
        document.outputs[output_name] = output_name

    logger.debug("Built graph with %d inputs, %d nodes", len(document.inputs), len(document.nodes))
    return document


def _runtime_tensor(name: str, entry: Mapping[str, Any]) -> RuntimeTensor:
    tensor = RuntimeTensor(
        descriptor=TensorDescriptor.from_dict(entry.get("descriptor")),
        data=flatten_data(entry.get("data", [])),
    )
    # Free inputs from the builder stay unbound until NormalizedGraph.bind().
    if tensor.data or entry.get("constant"):
        tensor.validate_length(name)
    return tensor


def build_runtime_inputs(resources: Mapping[str, Any]) -> Dict[str, RuntimeTensor]:
    return {
        name: _runtime_tensor(name, entry)
        for name, entry in (resources.get("inputs") or {}).items()
    }


def build_expected_outputs(resources: Mapping[str, Any]) -> Dict[str, TensorDescriptor]:
    """Descriptor-only output map sent to the backend."""
    expected = {}
    for name, entry in (resources.get("expectedOutputs") or {}).items():
        descriptor = (entry or {}).get("descriptor")
        if descriptor is not None:
            expected[name] = TensorDescriptor.from_dict(descriptor)
    return expected


def build_expected_tensors(resources: Mapping[str, Any]) -> Dict[str, RuntimeTensor]:
    """Expected outputs with their data, for verification."""
    return {
        name: RuntimeTensor(
            descriptor=TensorDescriptor.from_dict(entry.get("descriptor")),
            data=flatten_data(entry.get("data", [])),
        )
        for name, entry in (resources.get("expectedOutputs") or {}).items()
    }


def normalize_graph(resources: Mapping[str, Any], name: str = "wpt_graph") -> NormalizedGraph:
    return NormalizedGraph(
        document=build_graph_document(resources, name=name),
        inputs=build_runtime_inputs(resources),
        expected_outputs=build_expected_outputs(resources),
    )


__all__ = [
    "GRAPH_FORMAT",
    "GRAPH_VERSION",
    "GraphNode",
    "GraphDocument",
    "NormalizedGraph",
    "normalize_value",
    "build_graph_document",
    "build_runtime_inputs",
    "build_expected_outputs",
    "build_expected_tensors",
    "normalize_graph",
]
