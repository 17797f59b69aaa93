"""Suite definitions, the immutable composition graph and suite resolution."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from runwatch.composition.tags import (
    TagExpression,
    TagVocabulary,
    TestCatalog,
    parse_tag_expression,
    select_ordered,
)
from runwatch.errors import CompositionError, NotFound


class MemberKind(str, Enum):
    TEST = "test"
    SUITE = "suite"
    TAGS = "tags"


@dataclass(frozen=True)
class SuiteMember:
    kind: MemberKind
    value: str

    @classmethod
    def parse(cls, raw: str) -> SuiteMember:
        """Parse ``suite:<name>``, ``tags:<expr>``, ``test:<id>`` or a bare test id."""
        text = raw.strip()
        if not text:
            raise CompositionError("Suite member must be non-empty")
        prefix, sep, rest = text.partition(":")
        if sep and prefix.strip().lower() in {k.value for k in MemberKind}:
            value = rest.strip()
            if not value:
                raise CompositionError(f"Suite member {raw!r} has an empty {prefix.strip()} reference")
            return cls(MemberKind(prefix.strip().lower()), value)
        return cls(MemberKind.TEST, text)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"


@dataclass(frozen=True)
class SuiteDefinition:
    name: str
    members: tuple[SuiteMember, ...] = ()

    @classmethod
    def from_strings(cls, name: str, members: Iterable[str]) -> SuiteDefinition:
        clean = name.strip()
        if not clean:
            raise CompositionError("Suite name must be non-empty")
        return cls(name=clean, members=tuple(SuiteMember.parse(m) for m in members))


@dataclass(frozen=True)
class CompositionGraph:
    """Validated, immutable suite graph. Built once, passed to :func:`resolve`."""

    suites: Mapping[str, SuiteDefinition]
    catalog: TestCatalog
    expressions: Mapping[str, TagExpression] = field(default_factory=dict, repr=False)

    @property
    def vocabulary(self) -> TagVocabulary:
        return self.catalog.vocabulary

    @classmethod
    def build(
        cls,
        suites: Iterable[SuiteDefinition] | Mapping[str, Iterable[str]],
        catalog: TestCatalog,
    ) -> CompositionGraph:
        """Validate suite definitions against each other and the catalog.

        Test ids are checked against the catalog only when the catalog is
        non-empty. Cycles are reported by :func:`resolve`.

        Raises:
            CompositionError: duplicate suite, undefined suite reference, unknown
                test id or malformed tag expression.
            UnknownTag: a tag expression uses a tag outside the vocabulary.
        """
        if isinstance(suites, Mapping):
            definitions = [SuiteDefinition.from_strings(name, members) for name, members in suites.items()]
        else:
            definitions = list(suites)

        by_name: dict[str, SuiteDefinition] = {}
        for suite in definitions:
            if suite.name in by_name:
                raise CompositionError(f"Duplicate suite definition: {suite.name}")
            by_name[suite.name] = suite

        expressions: dict[str, TagExpression] = {}
        for suite in definitions:
            for member in suite.members:
                if member.kind is MemberKind.SUITE and member.value not in by_name:
                    raise CompositionError(f"Suite {suite.name!r} references undefined suite {member.value!r}")
                if member.kind is MemberKind.TEST and len(catalog) and member.value not in catalog:
                    raise CompositionError(f"Suite {suite.name!r} references unknown test {member.value!r}")
                if member.kind is MemberKind.TAGS and member.value not in expressions:
                    expressions[member.value] = parse_tag_expression(member.value, catalog.vocabulary)
        return cls(suites=dict(by_name), catalog=catalog, expressions=expressions)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.suites)


def resolve(graph: CompositionGraph, suite_name: str) -> tuple[str, ...]:
    """Flatten ``suite_name`` into an ordered, deduplicated tuple of test ids.

    Members are expanded depth-first in declaration order; a test keeps the
    position of its first occurrence.

    Raises:
        NotFound: the suite is not defined.
        CompositionError: the suite reaches itself; ``cycle`` holds the path.
    """
    if suite_name not in graph.suites:
        raise NotFound("suite", suite_name)

    resolved: dict[str, tuple[str, ...]] = {}

    def expand(name: str, path: tuple[str, ...]) -> tuple[str, ...]:
        if name in path:
            cycle = (*path[path.index(name) :], name)
            raise CompositionError(f"Suite cycle detected: {' -> '.join(cycle)}", cycle=cycle)
        if name in resolved:
            return resolved[name]
        ordered: dict[str, None] = {}
        for member in graph.suites[name].members:
            if member.kind is MemberKind.TEST:
                ordered.setdefault(member.value, None)
            elif member.kind is MemberKind.SUITE:
                for test_id in expand(member.value, (*path, name)):
                    ordered.setdefault(test_id, None)
            else:
                expression = graph.expressions.get(member.value) or parse_tag_expression(
                    member.value, graph.vocabulary
                )
                for test_id in select_ordered(graph.catalog, expression):
                    ordered.setdefault(test_id, None)
        result = tuple(ordered)
        resolved[name] = result
        return result

    return expand(suite_name, ())


def resolve_all(graph: CompositionGraph) -> dict[str, tuple[str, ...]]:
    """Resolve every suite; the first failure propagates."""
    return {name: resolve(graph, name) for name in graph.names}
