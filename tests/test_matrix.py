from __future__ import annotations

import pytest

from matrixci.dsl import matrix
from matrixci.errors import ConfigurationError
from matrixci.matrix import expand
from matrixci.model import JobInstance, MatrixSpec


def test_empty_matrix_runs_once_unparameterized() -> None:
    instances = expand(MatrixSpec())
    assert instances == [JobInstance()]
    assert instances[0].as_dict() == {}


def test_axes_without_values_are_ignored() -> None:
    instances = expand(matrix(os=[], rust=["stable"]))
    assert [i.as_dict() for i in instances] == [{"rust": "stable"}]

    assert expand(matrix(os=[])) == [JobInstance()]


def test_product_is_row_major_in_declaration_order() -> None:
    instances = expand(matrix(os=["linux", "mac"], rust=["stable", "beta", "nightly"]))

    assert len(instances) == 6
    assert [i.key for i in instances] == [
        (("os", "linux"), ("rust", "stable")),
        (("os", "linux"), ("rust", "beta")),
        (("os", "linux"), ("rust", "nightly")),
        (("os", "mac"), ("rust", "stable")),
        (("os", "mac"), ("rust", "beta")),
        (("os", "mac"), ("rust", "nightly")),
    ]
    assert len({i.key for i in instances}) == 6


def test_repeated_axis_values_expand_once() -> None:
    instances = expand(matrix(rust=["stable", "beta", "stable"], os=["linux", "linux"]))

    assert [i.as_dict() for i in instances] == [
        {"rust": "stable", "os": "linux"},
        {"rust": "beta", "os": "linux"},
    ]
    assert len({i.key for i in instances}) == len(instances)


def test_expansion_is_idempotent() -> None:
    spec = matrix(
        py=["3.11", "3.12"],
        db=["pg", "sqlite"],
        include=[{"py": "3.12", "coverage": True}, {"py": "3.13"}],
    )
    assert expand(spec) == expand(spec)


def test_rust_channels_example() -> None:
    spec = matrix(
        rust=["1.37.0", "stable", "beta", "nightly"],
        include=[
            {"rust": "stable", "features": "unstable quickcheck", "test_all": "--all"},
            {"rust": "beta", "test_all": "--all"},
            {"rust": "nightly", "features": "unstable quickcheck", "test_all": "--all"},
        ],
    )

    got = [i.as_dict() for i in expand(spec)]

    assert got == [
        {"rust": "1.37.0"},
        {"rust": "stable", "features": "unstable quickcheck", "test_all": "--all"},
        {"rust": "beta", "test_all": "--all"},
        {"rust": "nightly", "features": "unstable quickcheck", "test_all": "--all"},
    ]


def test_include_only_matrix_gives_one_instance_per_entry() -> None:
    spec = matrix(include=[{"rust": "1.37.0"}, {"rust": "stable", "features": "x"}])
    got = [i.as_dict() for i in expand(spec)]
    assert got == [{"rust": "1.37.0"}, {"rust": "stable", "features": "x"}]


def test_non_matching_include_is_appended_standalone() -> None:
    spec = matrix(rust=["stable", "beta"], include=[{"rust": "1.50.0", "experimental": True}])
    got = [i.as_dict() for i in expand(spec)]

    assert len(got) == 3
    assert got[-1] == {"rust": "1.50.0", "experimental": True}


def test_identical_standalone_includes_are_not_duplicated() -> None:
    spec = matrix(rust=["stable"], include=[{"rust": "1.50.0"}, {"rust": "1.50.0"}])
    assert [i.as_dict() for i in expand(spec)] == [{"rust": "stable"}, {"rust": "1.50.0"}]


def test_include_merges_into_every_matching_combination() -> None:
    spec = matrix(
        os=["linux", "mac"],
        rust=["stable", "beta"],
        include=[{"rust": "stable", "lint": True}],
    )
    got = [i.as_dict() for i in expand(spec)]

    assert got == [
        {"os": "linux", "rust": "stable", "lint": True},
        {"os": "linux", "rust": "beta"},
        {"os": "mac", "rust": "stable", "lint": True},
        {"os": "mac", "rust": "beta"},
    ]


def test_include_without_base_keys_broadcasts() -> None:
    spec = matrix(rust=["stable", "beta"], include=[{"profile": "minimal"}])
    got = [i.as_dict() for i in expand(spec)]
    assert got == [
        {"rust": "stable", "profile": "minimal"},
        {"rust": "beta", "profile": "minimal"},
    ]


def test_later_include_may_add_more_axes() -> None:
    spec = matrix(
        rust=["stable"],
        include=[{"rust": "stable", "features": "a"}, {"rust": "stable", "features": "a", "test_all": "--all"}],
    )
    assert [i.as_dict() for i in expand(spec)] == [
        {"rust": "stable", "features": "a", "test_all": "--all"},
    ]


def test_include_redefining_an_axis_is_rejected() -> None:
    spec = matrix(
        rust=["stable"],
        include=[{"rust": "stable", "features": "a"}, {"rust": "stable", "features": "b"}],
    )
    with pytest.raises(ConfigurationError) as excinfo:
        expand(spec, job="tests")

    assert "features" in excinfo.value.message
    assert excinfo.value.job == "tests"


def test_exclude_drops_matching_combinations() -> None:
    spec = matrix(
        os=["linux", "windows"],
        rust=["stable", "nightly"],
        exclude=[{"os": "windows", "rust": "nightly"}],
    )
    got = [i.as_dict() for i in expand(spec)]
    assert {"os": "windows", "rust": "nightly"} not in got
    assert len(got) == 3


def test_exclude_with_unknown_axis_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        expand(matrix(rust=["stable"], exclude=[{"os": "windows"}]))


def test_non_scalar_values_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        expand(matrix(rust=[["stable"]]))
    with pytest.raises(ConfigurationError):
        expand(matrix(include=[{"rust": {"channel": "stable"}}]))


def test_declared_axes_include_include_only_keys() -> None:
    spec = matrix(rust=["stable"], include=[{"rust": "stable", "rustfmt": "rustfmt"}])
    assert spec.declared_axes() == ["rust", "rustfmt"]


def test_instance_label() -> None:
    assert JobInstance().label == "default"
    assert JobInstance.of({"rust": "stable", "features": "x"}).label == "rust=stable, features=x"
