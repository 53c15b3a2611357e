"""Tests for the scope registry."""

from __future__ import annotations

import pytest

from stowage.errors import ErrorCode, Operation, StorageError
from stowage.scopes import ScopeDefinition, ScopeRegistry


@pytest.fixture
def registry() -> ScopeRegistry:
    """Return a registry with a parameterized and a static scope."""
    return ScopeRegistry().define("user", "user/[identifier]").define("public")


class TestDefine:
    """Tests for scope registration."""

    def test_define_returns_new_registry(self) -> None:
        empty = ScopeRegistry()
        registry = empty.define("user", "user/[identifier]")

        assert "user" in registry
        assert "user" not in empty
        assert len(empty) == 0

    def test_template_defaults_to_name(self, registry: ScopeRegistry) -> None:
        assert registry.get("public") == ScopeDefinition(name="public", template="public")

    def test_duplicate_rejected(self, registry: ScopeRegistry) -> None:
        with pytest.raises(StorageError) as exc_info:
            registry.define("user", "members/[identifier]")

        assert exc_info.value.code == ErrorCode.INVALID_SCOPE_DEFINITION
        assert exc_info.value.operation == Operation.BUILD

    def test_two_placeholders_rejected(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            ScopeRegistry().define("pair", "[identifier]/[identifier]")
        assert exc_info.value.code == ErrorCode.INVALID_SCOPE_DEFINITION

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(StorageError) as exc_info:
            ScopeRegistry().define("  ")
        assert exc_info.value.code == ErrorCode.INVALID_SCOPE_DEFINITION


class TestEnter:
    """Tests for scope resolution."""

    def test_identifier_substituted(self, registry: ScopeRegistry) -> None:
        assert registry.enter("user", "123") == "user/123"

    def test_static_scope(self, registry: ScopeRegistry) -> None:
        assert registry.enter("public") == "public"

    def test_unknown_scope(self, registry: ScopeRegistry) -> None:
        with pytest.raises(StorageError) as exc_info:
            registry.enter("unknown")

        assert exc_info.value.code == ErrorCode.INVALID_SCOPE
        assert exc_info.value.operation == Operation.SCOPE

    def test_missing_identifier(self, registry: ScopeRegistry) -> None:
        with pytest.raises(StorageError) as exc_info:
            registry.enter("user")
        assert exc_info.value.code == ErrorCode.MISSING_SCOPE_IDENTIFIER

    def test_empty_identifier_is_missing(self, registry: ScopeRegistry) -> None:
        with pytest.raises(StorageError) as exc_info:
            registry.enter("user", "")
        assert exc_info.value.code == ErrorCode.MISSING_SCOPE_IDENTIFIER

    def test_unexpected_identifier(self, registry: ScopeRegistry) -> None:
        with pytest.raises(StorageError) as exc_info:
            registry.enter("public", "123")
        assert exc_info.value.code == ErrorCode.UNEXPECTED_SCOPE_IDENTIFIER

    @pytest.mark.parametrize("identifier", ["a/b", "..", "a\\b"])
    def test_invalid_identifier(self, registry: ScopeRegistry, identifier: str) -> None:
        """Identifiers cannot add path segments."""
        with pytest.raises(StorageError) as exc_info:
            registry.enter("user", identifier)
        assert exc_info.value.code == ErrorCode.INVALID_SCOPE_IDENTIFIER

    def test_distinct_identifiers_distinct_roots(self, registry: ScopeRegistry) -> None:
        assert registry.enter("user", "a") != registry.enter("user", "b")
