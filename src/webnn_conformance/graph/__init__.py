"""Graph construction and canonical IR."""

from .builder import GraphBuilder, Operand
from .ir import GraphDocument, GraphNode, NormalizedGraph, normalize_graph
from .operators import OperatorRegistry, normalize_op_name

__all__ = [
    "GraphBuilder",
    "Operand",
    "GraphDocument",
    "GraphNode",
    "NormalizedGraph",
    "normalize_graph",
    "OperatorRegistry",
    "normalize_op_name",
]
