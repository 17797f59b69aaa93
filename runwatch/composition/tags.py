"""Tag vocabulary, tag expressions and catalog selection.

Tags are explicit data validated against a closed vocabulary. Lookups are
case-insensitive; the declared spelling is canonical.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Union

from runwatch.config.models import CatalogEntryConfig, TaxonomyConfig
from runwatch.errors import CompositionError, UnknownTag

AXES: tuple[str, ...] = ("layer", "priority", "speed", "feature", "suite", "kind", "env")


@dataclass(frozen=True)
class TagVocabulary:
    """Closed set of tags grouped by axis."""

    axes: Mapping[str, tuple[str, ...]]
    _canonical: Mapping[str, str] = field(repr=False, compare=False)
    _axis_of: Mapping[str, str] = field(repr=False, compare=False)

    @classmethod
    def from_axes(cls, axes: Mapping[str, Iterable[str]]) -> TagVocabulary:
        """Build a vocabulary; a tag may belong to exactly one axis.

        Raises:
            CompositionError: a tag is declared twice or is blank.
        """
        canonical: dict[str, str] = {}
        axis_of: dict[str, str] = {}
        clean_axes: dict[str, tuple[str, ...]] = {}
        for axis, values in axes.items():
            clean: list[str] = []
            for value in values:
                tag = value.strip() if isinstance(value, str) else ""
                if not tag:
                    raise CompositionError(f"Blank tag declared on axis {axis!r}")
                key = tag.lower()
                if key in canonical:
                    raise CompositionError(
                        f"Tag {tag!r} declared on axis {axis!r} already belongs to axis {axis_of[canonical[key]]!r}"
                    )
                canonical[key] = tag
                axis_of[tag] = axis
                clean.append(tag)
            clean_axes[axis] = tuple(clean)
        return cls(axes=clean_axes, _canonical=canonical, _axis_of=axis_of)

    @classmethod
    def from_config(cls, config: TaxonomyConfig) -> TagVocabulary:
        return cls.from_axes({axis: getattr(config, axis) for axis in AXES})

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(tag for values in self.axes.values() for tag in values)

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, str) and tag.strip().lower() in self._canonical

    def canonical(self, tag: str) -> str:
        """Return the declared spelling of ``tag``.

        Raises:
            UnknownTag: ``tag`` is not in the vocabulary.
        """
        if not isinstance(tag, str):
            raise UnknownTag(repr(tag))
        found = self._canonical.get(tag.strip().lower())
        if found is None:
            raise UnknownTag(tag)
        return found

    def axis_of(self, tag: str) -> str:
        return self._axis_of[self.canonical(tag)]

    def validate(self, tags: Iterable[str]) -> frozenset[str]:
        """Canonicalise every tag, failing on the first unknown one."""
        return frozenset(self.canonical(tag) for tag in tags)


@dataclass(frozen=True)
class TagTerm:
    tag: str

    def matches(self, tags: frozenset[str]) -> bool:
        return self.tag in tags

    def referenced(self) -> frozenset[str]:
        return frozenset({self.tag})

    def __str__(self) -> str:
        return self.tag


@dataclass(frozen=True)
class AllOf:
    """Intersection: every operand must match."""

    operands: tuple[TagExpression, ...]

    def matches(self, tags: frozenset[str]) -> bool:
        return all(op.matches(tags) for op in self.operands)

    def referenced(self) -> frozenset[str]:
        return frozenset().union(*(op.referenced() for op in self.operands))

    def __str__(self) -> str:
        return "(" + " & ".join(str(op) for op in self.operands) + ")"


@dataclass(frozen=True)
class AnyOf:
    """Union: at least one operand must match."""

    operands: tuple[TagExpression, ...]

    def matches(self, tags: frozenset[str]) -> bool:
        return any(op.matches(tags) for op in self.operands)

    def referenced(self) -> frozenset[str]:
        return frozenset().union(*(op.referenced() for op in self.operands))

    def __str__(self) -> str:
        return "(" + " | ".join(str(op) for op in self.operands) + ")"


@dataclass(frozen=True)
class Not:
    operand: TagExpression

    def matches(self, tags: frozenset[str]) -> bool:
        return not self.operand.matches(tags)

    def referenced(self) -> frozenset[str]:
        return self.operand.referenced()

    def __str__(self) -> str:
        return f"!{self.operand}"


TagExpression = Union[TagTerm, AllOf, AnyOf, Not]

_TOKEN_RE = re.compile(r"\s*(?:(\()|(\))|(&)|(\||,)|(!)|([^\s()&|,!]+))")
_KEYWORDS = {"and": "&", "or": "|", "not": "!"}


def _tokenize(text: str) -> list[str]:
    tokens: list[str] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise CompositionError(f"Unexpected character at position {pos} in tag expression {text!r}")
        pos = match.end()
        token = next(group for group in match.groups() if group is not None)
        if token == ",":
            token = "|"
        tokens.append(_KEYWORDS.get(token.lower(), token))
    return tokens


class _Parser:
    def __init__(self, text: str, vocabulary: TagVocabulary) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0
        self.vocabulary = vocabulary

    def parse(self) -> TagExpression:
        if not self.tokens:
            raise CompositionError("Tag expression is empty")
        expr = self._union()
        if self.pos != len(self.tokens):
            raise CompositionError(f"Unexpected {self.tokens[self.pos]!r} in tag expression {self.text!r}")
        return expr

    def _peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> str:
        token = self._peek()
        if token is None:
            raise CompositionError(f"Tag expression ends unexpectedly: {self.text!r}")
        self.pos += 1
        return token

    def _union(self) -> TagExpression:
        operands = [self._intersection()]
        while self._peek() == "|":
            self._take()
            operands.append(self._intersection())
        return operands[0] if len(operands) == 1 else AnyOf(tuple(operands))

    def _intersection(self) -> TagExpression:
        operands = [self._unary()]
        while self._peek() == "&":
            self._take()
            operands.append(self._unary())
        return operands[0] if len(operands) == 1 else AllOf(tuple(operands))

    def _unary(self) -> TagExpression:
        token = self._take()
        if token == "!":
            return Not(self._unary())
        if token == "(":
            expr = self._union()
            if self._take() != ")":
                raise CompositionError(f"Missing ')' in tag expression {self.text!r}")
            return expr
        if token in {")", "&", "|"}:
            raise CompositionError(f"Unexpected {token!r} in tag expression {self.text!r}")
        return TagTerm(self.vocabulary.canonical(token))


def parse_tag_expression(text: str, vocabulary: TagVocabulary) -> TagExpression:
    """Parse ``UI & (P0 | P1) & !SLOW`` style expressions.

    ``&``/``and`` intersect, ``|``/``or``/``,`` unite, ``!``/``not`` exclude.
    Unknown tags raise :class:`UnknownTag`; bad syntax raises
    :class:`CompositionError`.
    """
    if not isinstance(text, str):
        raise CompositionError("Tag expression must be a string")
    return _Parser(text, vocabulary).parse()


@dataclass(frozen=True)
class TestDefinition:
    """A known test and its canonical tags."""

    __test__ = False

    id: str
    tags: frozenset[str] = frozenset()


@dataclass(frozen=True)
class TestCatalog:
    """Ordered, immutable set of known tests."""

    __test__ = False

    vocabulary: TagVocabulary
    tests: tuple[TestDefinition, ...] = ()

    @classmethod
    def build(
        cls,
        entries: Iterable[CatalogEntryConfig | TestDefinition | tuple[str, Iterable[str]]],
        vocabulary: TagVocabulary,
    ) -> TestCatalog:
        """Validate tags and ids of ``entries`` and build the catalog.

        Raises:
            UnknownTag: an entry uses a tag outside the vocabulary.
            CompositionError: a test id is blank or duplicated.
        """
        tests: list[TestDefinition] = []
        seen: set[str] = set()
        for entry in entries:
            if isinstance(entry, tuple):
                test_id, tags = entry
            else:
                test_id, tags = entry.id, entry.tags
            test_id = test_id.strip()
            if not test_id:
                raise CompositionError("Catalog test id must be non-empty")
            if test_id in seen:
                raise CompositionError(f"Duplicate test id in catalog: {test_id}")
            seen.add(test_id)
            tests.append(TestDefinition(id=test_id, tags=vocabulary.validate(tags)))
        return cls(vocabulary=vocabulary, tests=tuple(tests))

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(t.id for t in self.tests)

    def __contains__(self, test_id: object) -> bool:
        return any(t.id == test_id for t in self.tests)

    def __len__(self) -> int:
        return len(self.tests)


def _as_expression(expression: str | TagExpression, vocabulary: TagVocabulary) -> TagExpression:
    if isinstance(expression, str):
        return parse_tag_expression(expression, vocabulary)
    return expression


def select_ordered(catalog: TestCatalog, expression: str | TagExpression) -> tuple[str, ...]:
    """Matching test ids in catalog order."""
    expr = _as_expression(expression, catalog.vocabulary)
    return tuple(t.id for t in catalog.tests if expr.matches(t.tags))


def select_by_tags(catalog: TestCatalog, expression: str | TagExpression) -> frozenset[str]:
    """Set of test ids whose tags satisfy ``expression``."""
    return frozenset(select_ordered(catalog, expression))
