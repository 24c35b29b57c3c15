"""
Operand graph builder.

Records operator invocations as graph-resource entries, the same structure
WPT fixtures carry, and hands them to the normalizer on build().

    builder = GraphBuilder()
    a = builder.input("a", {"dataType": "float32", "shape": [2]})
    b = builder.constant({"dataType": "float32", "shape": [2]}, [1.0, 2.0])
    y = builder.invoke("add", a, b)
    graph = builder.build({"y": y})

Operators go through invoke() and are checked against OperatorRegistry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..core.errors import GraphError
from ..core.types import TensorDescriptor, flatten_data
from .ir import NormalizedGraph, normalize_graph
from .operators import OperatorRegistry

logger = logging.getLogger(__name__)

DescriptorLike = Union[TensorDescriptor, Mapping[str, Any]]


@dataclass(frozen=True)
class Operand:
    """Symbolic tensor handle; operator results start unresolved."""
    name: str
    data_type: Optional[str] = None
    shape: Optional[Tuple[int, ...]] = None

    @property
    def is_resolved(self) -> bool:
        return self.data_type is not None and self.shape is not None

    def descriptor(self) -> Optional[Dict[str, Any]]:
        if not self.is_resolved:
            return None
        return {"dataType": self.data_type, "shape": list(self.shape)}


def _descriptor_dict(descriptor: DescriptorLike) -> Dict[str, Any]:
    if isinstance(descriptor, TensorDescriptor):
        return descriptor.to_dict()
    # Validates dataType and shape.
    return TensorDescriptor.from_dict(descriptor).to_dict()


def _operand_key(index: int) -> str:
    return ("a", "b")[index] if index < 2 else f"arg{index}"


def _operand_names(value: Any) -> Any:
    """Replace Operands, at any depth, with their names."""
    if isinstance(value, Operand):
        return value.name
    if isinstance(value, Mapping):
        return {key: _operand_names(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_operand_names(item) for item in value]
    return value


def _replace_name(value: Any, old: str, new: str) -> Any:
    if isinstance(value, str):
        return new if value == old else value
    if isinstance(value, list):
        return [_replace_name(item, old, new) for item in value]
    if isinstance(value, dict):
        return {key: _replace_name(item, old, new) for key, item in value.items()}
    return value


class GraphBuilder:
    """Builder session; operand names are unique within one instance."""

    def __init__(self, name: str = "ml_builder_graph"):
        self.name = name
        self._inputs: Dict[str, Dict[str, Any]] = {}
        self._operators: List[Dict[str, Any]] = []
        self._temp_id = 0

    # -------------------------
    # Operands
    # -------------------------

    def _next_name(self, prefix: str) -> str:
        name = f"{prefix}_{self._temp_id}"
        self._temp_id += 1
        return name

    def input(self, name: str, descriptor: DescriptorLike) -> Operand:
        if name in self._inputs:
            raise GraphError(f"duplicate operand name: {name}")
        desc = _descriptor_dict(descriptor)
        self._inputs[name] = {"descriptor": desc, "data": [], "constant": False}
        return Operand(name, desc["dataType"], tuple(desc["shape"]))

    def constant(self, descriptor: DescriptorLike, data: Any) -> Operand:
        desc = _descriptor_dict(descriptor)
        name = self._next_name("const")
        self._inputs[name] = {"descriptor": desc, "data": flatten_data(data), "constant": True}
        return Operand(name, desc["dataType"], tuple(desc["shape"]))

    # -------------------------
    # Operators
    # -------------------------

    def invoke(self, op_name: str, *args: Any, **named: Any) -> Operand:
        """
        Record one operator invocation.

        Operand arguments become input references, lists of Operands become
        list-valued references, mappings are merged into the options bag and
        keyword arguments become named option arguments.
        """
        if not OperatorRegistry.is_known(op_name):
            raise GraphError(f"unknown operator: {op_name}", operator=op_name)

        arguments: List[Dict[str, Any]] = []
        options: Dict[str, Any] = {}
        ref_index = 0

        for arg in args:
            if isinstance(arg, Operand):
                arguments.append({_operand_key(ref_index): arg.name})
                ref_index += 1
            elif isinstance(arg, (list, tuple)) and arg and all(isinstance(x, Operand) for x in arg):
                arguments.append({"inputs": [x.name for x in arg]})
                ref_index += 1
            elif isinstance(arg, Mapping):
                options.update(_operand_names(arg))
            else:
                raise GraphError(
                    f"unsupported positional argument for {op_name}: {arg!r}",
                    operator=op_name,
                )

        for key, value in named.items():
            arguments.append({key: _operand_names(value)})
        if options:
            arguments.append({"options": options})

        out_name = self._next_name("tmp")
        self._operators.append({"name": op_name, "arguments": arguments, "outputs": out_name})
        return Operand(out_name)

    # -------------------------
    # Build
    # -------------------------

    def _producer_index(self, operand_name: str) -> Optional[int]:
        for index, op in enumerate(self._operators):
            if op["outputs"] == operand_name:
                return index
        return None

    def _rename_output(self, index: int, old: str, new: str) -> None:
        self._operators[index]["outputs"] = new
        for op in self._operators[index + 1:]:
            for argument in op["arguments"]:
                for key, value in argument.items():
                    argument[key] = _replace_name(value, old, new)

    def graph_resources(self) -> Dict[str, Any]:
        return {
            "inputs": self._inputs,
            "operators": self._operators,
            "expectedOutputs": {},
        }

    def build(
        self,
        named_outputs: Mapping[str, Operand],
        output_descriptors: Optional[Mapping[str, DescriptorLike]] = None,
    ) -> NormalizedGraph:
        """
        Name the designated outputs and emit the canonical graph.

        Descriptors for the expected outputs come from output_descriptors or
        from resolved operands; unresolved outputs are left for the backend.
        """
        output_descriptors = output_descriptors or {}
        expected: Dict[str, Dict[str, Any]] = {}

        for name, operand in named_outputs.items():
            if operand.name != name:
                index = self._producer_index(operand.name)
                if index is None:
                    # TODO: reject outputs with no producing node once callers stop relying on this.
                    logger.warning("Output %r has no producing node; left unnamed", name)
                else:
                    self._rename_output(index, operand.name, name)

            descriptor = output_descriptors.get(name)
            entry: Dict[str, Any] = {"data": []}
            if descriptor is not None:
                entry["descriptor"] = _descriptor_dict(descriptor)
            elif operand.is_resolved:
                entry["descriptor"] = operand.descriptor()
            expected[name] = entry

        resources = self.graph_resources()
        resources["expectedOutputs"] = expected
        return normalize_graph(resources, name=self.name)

    def __repr__(self) -> str:
        return f"GraphBuilder(inputs={len(self._inputs)}, operators={len(self._operators)})"


__all__ = ["Operand", "GraphBuilder"]
