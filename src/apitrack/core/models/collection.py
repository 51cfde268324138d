"""Collection and test definition models (``collections`` / ``tests`` tables)."""

from __future__ import annotations

from dataclasses import dataclass, field

# Methods whose request body is sent; for the others the body is ignored.
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


@dataclass
class TestDefinition:
    """One HTTP request to check."""

    __test__ = False  # not a pytest class

    id: str
    collection_id: str
    name: str
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    expected_status: int | None = None
    position: int = 0

    @property
    def sends_body(self) -> bool:
        return self.method.upper() in BODY_METHODS and self.body is not None


@dataclass
class Collection:
    """A named, ordered group of tests owned by one user."""

    id: str
    name: str
    owner_id: str
    description: str | None = None
    tests: list[TestDefinition] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.tests
