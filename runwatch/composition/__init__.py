"""Tag vocabulary and suite composition model."""

from runwatch.composition.suites import (
    CompositionGraph,
    MemberKind,
    SuiteDefinition,
    SuiteMember,
    resolve,
    resolve_all,
)
from runwatch.composition.tags import (
    AllOf,
    AnyOf,
    Not,
    TagExpression,
    TagTerm,
    TagVocabulary,
    TestCatalog,
    TestDefinition,
    parse_tag_expression,
    select_by_tags,
    select_ordered,
)

__all__ = [
    "AllOf",
    "AnyOf",
    "CompositionGraph",
    "MemberKind",
    "Not",
    "SuiteDefinition",
    "SuiteMember",
    "TagExpression",
    "TagTerm",
    "TagVocabulary",
    "TestCatalog",
    "TestDefinition",
    "parse_tag_expression",
    "resolve",
    "resolve_all",
    "select_by_tags",
    "select_ordered",
]
