"""
webnn-conformance - WPT WebNN conformance harness for out-of-process graph backends.
"""

__version__ = "0.1.0"

# Lazy imports - don't load the V8 isolate or numpy at module level
def __getattr__(name):
    if name == "GraphBuilder":
        from .graph.builder import GraphBuilder
        return GraphBuilder
    elif name == "ExecutionBridge":
        from .bridge.client import ExecutionBridge
        return ExecutionBridge
    elif name == "ConformanceRunner":
        from .conformance.orchestrator import ConformanceRunner
        return ConformanceRunner
    elif name == "extract_tests_from_source":
        from .fixtures.extractor import extract_tests_from_source
        return extract_tests_from_source
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = ["__version__"]
