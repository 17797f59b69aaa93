from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from runwatch.composition import (
    CompositionGraph,
    MemberKind,
    SuiteDefinition,
    SuiteMember,
    TagVocabulary,
    TestCatalog,
    resolve,
    resolve_all,
)
from runwatch.config.models import TaxonomyConfig
from runwatch.errors import CompositionError, NotFound, UnknownTag


@pytest.fixture
def catalog() -> TestCatalog:
    vocabulary = TagVocabulary.from_config(TaxonomyConfig())
    return TestCatalog.build(
        [
            ("LoginTest", ["UI", "P0"]),
            ("LogoutTest", ["UI", "P1"]),
            ("TokenApiTest", ["API", "P0"]),
            ("ReportApiTest", ["API", "P2", "SLOW"]),
        ],
        vocabulary,
    )


def test_member_parsing() -> None:
    assert SuiteMember.parse("suite:smoke") == SuiteMember(MemberKind.SUITE, "smoke")
    assert SuiteMember.parse("tags: UI & P0") == SuiteMember(MemberKind.TAGS, "UI & P0")
    assert SuiteMember.parse("test:LoginTest") == SuiteMember(MemberKind.TEST, "LoginTest")
    assert SuiteMember.parse("pkg.module::LoginTest").kind is MemberKind.TEST
    with pytest.raises(CompositionError):
        SuiteMember.parse("suite:")


def test_nested_suites_flatten_in_order_without_duplicates(catalog: TestCatalog) -> None:
    graph = CompositionGraph.build(
        {
            "smoke": ["tags:P0"],
            "ui": ["tags:UI"],
            "regression": ["suite:smoke", "suite:ui", "ReportApiTest", "LoginTest"],
        },
        catalog,
    )
    assert resolve(graph, "smoke") == ("LoginTest", "TokenApiTest")
    assert resolve(graph, "regression") == ("LoginTest", "TokenApiTest", "LogoutTest", "ReportApiTest")


def test_diamond_is_not_a_cycle(catalog: TestCatalog) -> None:
    graph = CompositionGraph.build(
        {
            "base": ["LoginTest"],
            "left": ["suite:base", "LogoutTest"],
            "right": ["suite:base", "TokenApiTest"],
            "top": ["suite:left", "suite:right"],
        },
        catalog,
    )
    assert resolve(graph, "top") == ("LoginTest", "LogoutTest", "TokenApiTest")


def test_cycle_is_reported_with_path(catalog: TestCatalog) -> None:
    graph = CompositionGraph.build(
        {
            "nightly": ["suite:regression"],
            "regression": ["suite:smoke", "LogoutTest"],
            "smoke": ["LoginTest", "suite:regression"],
        },
        catalog,
    )
    with pytest.raises(CompositionError) as exc_info:
        resolve(graph, "nightly")
    assert exc_info.value.cycle == ("regression", "smoke", "regression")
    assert "regression -> smoke -> regression" in str(exc_info.value)


def test_self_reference_is_a_cycle(catalog: TestCatalog) -> None:
    graph = CompositionGraph.build({"loop": ["suite:loop"]}, catalog)
    with pytest.raises(CompositionError) as exc_info:
        resolve(graph, "loop")
    assert exc_info.value.cycle == ("loop", "loop")


def test_build_rejects_inconsistent_definitions(catalog: TestCatalog) -> None:
    with pytest.raises(CompositionError, match="undefined suite"):
        CompositionGraph.build({"smoke": ["suite:missing"]}, catalog)
    with pytest.raises(CompositionError, match="unknown test"):
        CompositionGraph.build({"smoke": ["NoSuchTest"]}, catalog)
    with pytest.raises(UnknownTag):
        CompositionGraph.build({"smoke": ["tags:MOBILE"]}, catalog)
    with pytest.raises(CompositionError, match="Duplicate suite"):
        CompositionGraph.build(
            [SuiteDefinition.from_strings("a", []), SuiteDefinition.from_strings("a", ["LoginTest"])],
            catalog,
        )


def test_empty_catalog_accepts_any_test_id() -> None:
    empty = TestCatalog.build([], TagVocabulary.from_config(TaxonomyConfig()))
    graph = CompositionGraph.build({"adhoc": ["tests/test_login.py::test_login"]}, empty)
    assert resolve(graph, "adhoc") == ("tests/test_login.py::test_login",)


def test_unknown_suite_is_not_found(catalog: TestCatalog) -> None:
    graph = CompositionGraph.build({}, catalog)
    with pytest.raises(NotFound):
        resolve(graph, "smoke")


def test_resolve_all(catalog: TestCatalog) -> None:
    graph = CompositionGraph.build({"a": ["LoginTest"], "b": ["suite:a", "tags:API"]}, catalog)
    assert resolve_all(graph) == {
        "a": ("LoginTest",),
        "b": ("LoginTest", "TokenApiTest", "ReportApiTest"),
    }


@settings(max_examples=60, deadline=None)
@given(size=st.integers(min_value=1, max_value=8), data=st.data())
def test_any_ring_of_suites_is_rejected(size: int, data: st.DataObject) -> None:
    empty = TestCatalog.build([], TagVocabulary.from_config(TaxonomyConfig()))
    names = [f"s{i}" for i in range(size)]
    suites = {name: [f"t{i}", f"suite:{names[(i + 1) % size]}"] for i, name in enumerate(names)}
    graph = CompositionGraph.build(suites, empty)
    start = data.draw(st.sampled_from(names))
    with pytest.raises(CompositionError) as exc_info:
        resolve(graph, start)
    cycle = exc_info.value.cycle
    assert cycle[0] == cycle[-1] == start
    assert len(cycle) == size + 1


@settings(max_examples=60, deadline=None)
@given(depth=st.integers(min_value=1, max_value=10))
def test_acyclic_chain_resolves_every_test_once(depth: int) -> None:
    empty = TestCatalog.build([], TagVocabulary.from_config(TaxonomyConfig()))
    suites = {f"s{i}": [f"t{i}", "shared"] + ([f"suite:s{i + 1}"] if i + 1 < depth else []) for i in range(depth)}
    tests = resolve(CompositionGraph.build(suites, empty), "s0")
    assert tests == ("t0", "shared", *(f"t{i}" for i in range(1, depth)))
