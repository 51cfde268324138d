"""Collection repository - collections and their ordered test definitions."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from apitrack.core.models.collection import Collection, TestDefinition
from apitrack.core.protocols import Connection

_COLLECTION_COLUMNS = ["id", "name", "owner_id", "description", "created_at", "updated_at"]
_TEST_COLUMNS = [
    "id",
    "collection_id",
    "name",
    "method",
    "url",
    "headers",
    "body",
    "expected_status",
    "position",
]


@dataclass
class TestCreate:
    """DTO for adding a test to a collection."""

    __test__ = False

    name: str
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    expected_status: int | None = None


@dataclass
class TestUpdate:
    """DTO for editing a test. None means unchanged.

    ``clear_body`` and ``clear_expected_status`` reset those columns to NULL,
    which ``None`` cannot express.
    """

    __test__ = False

    name: str | None = None
    method: str | None = None
    url: str | None = None
    headers: dict[str, str] | None = None
    body: str | None = None
    expected_status: int | None = None
    clear_body: bool = False
    clear_expected_status: bool = False


class CollectionRepository:
    """Repository for collections and the tests they contain.

    ``get`` returns the collection with its tests loaded in display order.
    """

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    # === Collections ===

    def create(self, name: str, owner_id: str, description: str | None = None) -> Collection:
        collection_id = str(uuid4())
        now = datetime.now(UTC).isoformat()
        self.conn.execute(
            """
            INSERT INTO collections (id, name, owner_id, description, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (collection_id, name, owner_id, description, now, now),
        )
        self.conn.commit()
        return self.get(collection_id)  # type: ignore

    def get(self, collection_id: str, *, with_tests: bool = True) -> Collection | None:
        cursor = self.conn.execute(
            f"SELECT {', '.join(_COLLECTION_COLUMNS)} FROM collections WHERE id = ?",
            (collection_id,),
        )
        row = cursor.fetchone()
        if not row:
            return None
        collection = Collection(**dict(zip(_COLLECTION_COLUMNS, row, strict=False)))
        if with_tests:
            collection.tests = self.list_tests(collection_id)
        return collection

    def get_by_name(self, owner_id: str, name: str) -> Collection | None:
        cursor = self.conn.execute(
            "SELECT id FROM collections WHERE owner_id = ? AND name = ?",
            (owner_id, name),
        )
        row = cursor.fetchone()
        return self.get(row[0]) if row else None

    def list_for_owner(self, owner_id: str) -> list[Collection]:
        """List an owner's collections without their tests."""
        cursor = self.conn.execute(
            f"SELECT {', '.join(_COLLECTION_COLUMNS)} FROM collections "
            "WHERE owner_id = ? ORDER BY name",
            (owner_id,),
        )
        return [
            Collection(**dict(zip(_COLLECTION_COLUMNS, row, strict=False)))
            for row in cursor.fetchall()
        ]

    def update(
        self, collection_id: str, *, name: str | None = None, description: str | None = None
    ) -> Collection | None:
        """Rename or redescribe a collection. None means unchanged."""
        set_parts = []
        params: list[Any] = []
        if name is not None:
            set_parts.append("name = ?")
            params.append(name)
        if description is not None:
            set_parts.append("description = ?")
            params.append(description)
        if set_parts:
            set_parts.append("updated_at = ?")
            params.append(datetime.now(UTC).isoformat())
            params.append(collection_id)
            self.conn.execute(
                f"UPDATE collections SET {', '.join(set_parts)} WHERE id = ?", tuple(params)
            )
            self.conn.commit()
        return self.get(collection_id)

    def delete(self, collection_id: str) -> bool:
        self.conn.execute("DELETE FROM tests WHERE collection_id = ?", (collection_id,))
        cursor = self.conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    # === Tests ===

    def add_test(self, collection_id: str, draft: TestCreate) -> TestDefinition:
        """Append a test at the end of the collection."""
        test_id = str(uuid4())
        cursor = self.conn.execute(
            "SELECT COALESCE(MAX(position), -1) + 1 FROM tests WHERE collection_id = ?",
            (collection_id,),
        )
        position = cursor.fetchone()[0]
        self.conn.execute(
            """
            INSERT INTO tests (
                id, collection_id, name, method, url, headers, body,
                expected_status, position, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                test_id,
                collection_id,
                draft.name,
                draft.method.upper(),
                draft.url,
                json.dumps(draft.headers) if draft.headers else None,
                draft.body,
                draft.expected_status,
                position,
                datetime.now(UTC).isoformat(),
            ),
        )
        self.conn.execute(
            "UPDATE collections SET updated_at = ? WHERE id = ?",
            (datetime.now(UTC).isoformat(), collection_id),
        )
        self.conn.commit()
        return self.get_test(test_id)  # type: ignore

    def get_test(self, test_id: str) -> TestDefinition | None:
        cursor = self.conn.execute(
            f"SELECT {', '.join(_TEST_COLUMNS)} FROM tests WHERE id = ?", (test_id,)
        )
        row = cursor.fetchone()
        return self._row_to_test(row) if row else None

    def list_tests(self, collection_id: str) -> list[TestDefinition]:
        cursor = self.conn.execute(
            f"SELECT {', '.join(_TEST_COLUMNS)} FROM tests "
            "WHERE collection_id = ? ORDER BY position, created_at",
            (collection_id,),
        )
        return [self._row_to_test(row) for row in cursor.fetchall()]

    def count_tests(self, collection_id: str) -> int:
        cursor = self.conn.execute(
            "SELECT COUNT(*) FROM tests WHERE collection_id = ?", (collection_id,)
        )
        return cursor.fetchone()[0]

    def update_test(self, test_id: str, updates: TestUpdate) -> TestDefinition | None:
        """Edit a test in place. Its position is kept."""
        set_parts = []
        params: list[Any] = []
        if updates.name is not None:
            set_parts.append("name = ?")
            params.append(updates.name)
        if updates.method is not None:
            set_parts.append("method = ?")
            params.append(updates.method.upper())
        if updates.url is not None:
            set_parts.append("url = ?")
            params.append(updates.url)
        if updates.headers is not None:
            set_parts.append("headers = ?")
            params.append(json.dumps(updates.headers) if updates.headers else None)
        if updates.clear_body or updates.body is not None:
            set_parts.append("body = ?")
            params.append(None if updates.clear_body else updates.body)
        if updates.clear_expected_status or updates.expected_status is not None:
            set_parts.append("expected_status = ?")
            params.append(None if updates.clear_expected_status else updates.expected_status)

        test = self.get_test(test_id)
        if test is None or not set_parts:
            return test

        params.append(test_id)
        self.conn.execute(f"UPDATE tests SET {', '.join(set_parts)} WHERE id = ?", tuple(params))
        self.conn.execute(
            "UPDATE collections SET updated_at = ? WHERE id = ?",
            (datetime.now(UTC).isoformat(), test.collection_id),
        )
        self.conn.commit()
        return self.get_test(test_id)

    def delete_test(self, test_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM tests WHERE id = ?", (test_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    # === Private Helpers ===

    def _row_to_test(self, row: tuple) -> TestDefinition:
        data = dict(zip(_TEST_COLUMNS, row, strict=False))
        data["headers"] = json.loads(data["headers"]) if data["headers"] else {}
        return TestDefinition(**data)
