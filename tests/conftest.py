from __future__ import annotations

import threading
from typing import Dict, List, Mapping, Tuple

import pytest

from matrixci.model import Outcome


class RecordingInvoker:
    """
    In-memory ActionInvoker.

    `fail` holds (action, rendered command or None) pairs that should fail;
    a None command fails every invocation of that action. `crash` actions
    raise instead of returning an outcome.
    """

    def __init__(self, fail=(), crash=()):
        self.fail = set(fail)
        self.crash = set(crash)
        self.calls: List[Tuple[str, Dict[str, str], Dict[str, str]]] = []
        self._lock = threading.Lock()

    def invoke(self, name: str, params: Mapping[str, str], env: Mapping[str, str]) -> Outcome:
        with self._lock:
            self.calls.append((name, dict(params), dict(env)))
        if name in self.crash:
            raise RuntimeError(f"{name} is unreachable")
        if (name, None) in self.fail or (name, params.get("run")) in self.fail:
            return Outcome.FAILURE
        return Outcome.SUCCESS

    def commands(self) -> List[str]:
        return [p.get("run", name) for name, p, _ in self.calls]


@pytest.fixture
def invoker() -> RecordingInvoker:
    return RecordingInvoker()


CI_YAML = """\
on:
  push:
    branches: [ master ]
  pull_request:
    branches: [ master ]

name: Continuous integration

env:
  CARGO_TERM_COLOR: always
  CARGO_INCREMENTAL: 0

jobs:
  tests:
    runs-on: ubuntu-latest
    strategy:
      matrix:
        include:
          - rust: 1.37.0  # MSRV
          - rust: stable
            features: unstable quickcheck
            test_all: --all
          - rust: beta
            test_all: --all
          - rust: nightly
            features: unstable quickcheck
            test_all: --all

    steps:
      - uses: actions/checkout@v2
      - uses: actions-rs/toolchain@v1
        with:
          profile: minimal
          toolchain: ${{ matrix.rust }}
          override: true
      - name: Tests
        run: |
          cargo build --verbose --no-default-features
          cargo test ${{ matrix.test_all }} --verbose --features "${{ matrix.features }}"

  rustfmt:
    runs-on: ubuntu-latest
    continue-on-error: true
    strategy:
      matrix:
        include:
          - rust: stable
            rustfmt: rustfmt

    steps:
      - uses: actions/checkout@v2
      - uses: actions-rs/toolchain@v1
        with:
          profile: minimal
          toolchain: ${{ matrix.rust }}
          components: ${{ matrix.rustfmt }}
          override: true
      - name: Rustfmt
        if: matrix.rustfmt
        run: cargo fmt -- --check
"""


@pytest.fixture
def ci_yaml(tmp_path):
    path = tmp_path / "ci.yml"
    path.write_text(CI_YAML, encoding="utf-8")
    return path
