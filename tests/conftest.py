"""
Shared pytest fixtures for webnn-conformance tests.
"""

import copy
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

FAKE_RUNNER = Path(__file__).parent / "fake_runner.py"


ADD_CASE: Dict[str, Any] = {
    "name": "add float32 1D tensors",
    "graph": {
        "inputs": {
            "inputA": {"data": [1.5, -2.0, 3.25], "descriptor": {"shape": [3], "dataType": "float32"}},
            "inputB": {"data": [0.5, 4.0, -1.25], "descriptor": {"shape": [3], "dataType": "float32"}},
        },
        "operators": [
            {"name": "add", "arguments": [{"a": "inputA"}, {"b": "inputB"}], "outputs": "output"},
        ],
        "expectedOutputs": {
            "output": {"data": [2.0, 2.0, 2.0], "descriptor": {"shape": [3], "dataType": "float32"}},
        },
    },
}


FIXTURE_SOURCE = """\
// META: title=test that WebNN API add operation works
// META: global=window,dedicatedworker
// META: script=../resources/utils.js

'use strict';

const addTests = [
  {
    'name': 'add float32 1D tensors',
    'graph': {
      'inputs': {
        'inputA': {'data': [1.5, -2.0, 3.25], 'descriptor': {shape: [3], dataType: 'float32'}},
        'inputB': {'data': [0.5, 4.0, -1.25], 'descriptor': {shape: [3], dataType: 'float32'}}
      },
      'operators': [{
        'name': 'add',
        'arguments': [{'a': 'inputA'}, {'b': 'inputB'}],
        'outputs': 'output'
      }],
      'expectedOutputs': {
        'output': {'data': [2.0, 2.0, 2.0], 'descriptor': {shape: [3], dataType: 'float32'}}
      }
    }
  },
  {
    'name': 'add float32 broadcast scalar',
    'graph': {
      'inputs': {
        'inputA': {'data': [1, 2, 3, 4], 'descriptor': {shape: [2, 2], dataType: 'float32'}},
        'inputB': {'data': [10], 'descriptor': {shape: [], dataType: 'float32'}, 'constant': true}
      },
      'operators': [{
        'name': 'add',
        'arguments': [{'a': 'inputA'}, {'b': 'inputB'}],
        'outputs': 'output'
      }],
      'expectedOutputs': {
        'output': {'data': [11, 12, 13, 14], 'descriptor': {shape: [2, 2], dataType: 'float32'}}
      }
    }
  }
];

if (navigator.ml) {
  addTests.forEach((test) => {
    webnn_conformance_test(buildAndExecuteGraph, getPrecisionTolerance, test);
  });
} else {
  test(() => assert_implements(navigator.ml, 'missing navigator.ml'));
}
"""


@pytest.fixture
def add_case() -> Dict[str, Any]:
    """A fresh copy of a passing float32 add case."""
    return copy.deepcopy(ADD_CASE)


@pytest.fixture
def fixture_source() -> str:
    return FIXTURE_SOURCE


@pytest.fixture
def fake_runner_command() -> List[str]:
    return [sys.executable, str(FAKE_RUNNER)]


@pytest.fixture
def wpt_dir(tmp_path: Path) -> Path:
    """
    A WPT checkout with three add/sub fixtures and one unrelated file.
    """
    root = tmp_path / "wpt"
    tests_dir = root / "webnn" / "conformance_tests"
    tests_dir.mkdir(parents=True)
    for name in ("add.https.any.js", "sub.https.any.js", "add_broadcast.https.any.js"):
        (tests_dir / name).write_text(FIXTURE_SOURCE, encoding="utf-8")
    (tests_dir / "README.md").write_text("not a fixture", encoding="utf-8")
    return root
