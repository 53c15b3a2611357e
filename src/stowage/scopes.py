"""Scope registry.

A scope is a named path template acting as an independent namespace root,
for example ``user/[identifier]`` for per-tenant storage. Templates hold at
most one ``[identifier]`` placeholder; the identifier is required on use when
the placeholder is present and forbidden otherwise. Unknown scopes and
identifier mismatches fail when the scoped handle is created, before any I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from stowage.errors import ErrorCode, Operation, StorageError
from stowage.keys import SEPARATOR, normalize_key

logger = logging.getLogger(__name__)

IDENTIFIER_PLACEHOLDER = "[identifier]"


@dataclass(frozen=True, slots=True)
class ScopeDefinition:
    """A registered scope.

    Attributes:
        name: Unique scope name.
        template: Path template with zero or one ``[identifier]`` placeholder.
    """

    name: str
    template: str

    @property
    def requires_identifier(self) -> bool:
        return IDENTIFIER_PLACEHOLDER in self.template

    def render(self, identifier: str | None = None) -> str:
        """Substitute the identifier and return the normalized root."""
        if self.requires_identifier:
            return normalize_key(self.template.replace(IDENTIFIER_PLACEHOLDER, str(identifier)))
        return normalize_key(self.template)


@dataclass(frozen=True)
class ScopeRegistry:
    """Immutable registry of scope definitions.

    ``define`` returns a new registry so partially configured builders can be
    branched without sharing state.
    """

    _scopes: Mapping[str, ScopeDefinition] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def define(self, name: str, template: str | None = None) -> ScopeRegistry:
        """Register a scope and return the extended registry.

        Args:
            name: Unique scope name.
            template: Path template; defaults to the scope name.

        Raises:
            StorageError: INVALID_SCOPE_DEFINITION on a duplicate name, an empty
                name or template, or more than one placeholder.
        """
        if not name or not name.strip():
            raise StorageError(
                ErrorCode.INVALID_SCOPE_DEFINITION,
                Operation.BUILD,
                "Scope name cannot be empty",
            )
        if name in self._scopes:
            raise StorageError(
                ErrorCode.INVALID_SCOPE_DEFINITION,
                Operation.BUILD,
                f"Scope already defined: {name}",
                data={"scope": name},
            )

        resolved = template if template is not None else name
        placeholders = resolved.count(IDENTIFIER_PLACEHOLDER)
        if placeholders > 1:
            raise StorageError(
                ErrorCode.INVALID_SCOPE_DEFINITION,
                Operation.BUILD,
                f"Scope template may contain at most one {IDENTIFIER_PLACEHOLDER}: {resolved}",
                data={"scope": name, "template": resolved},
            )
        if placeholders == 0 and not normalize_key(resolved):
            raise StorageError(
                ErrorCode.INVALID_SCOPE_DEFINITION,
                Operation.BUILD,
                f"Scope template resolves to an empty path: {name}",
                data={"scope": name, "template": resolved},
            )

        scopes = dict(self._scopes)
        scopes[name] = ScopeDefinition(name=name, template=resolved)
        return ScopeRegistry(_scopes=MappingProxyType(scopes))

    def get(self, name: str) -> ScopeDefinition:
        """Look up a scope. Fail-closed on unknown names.

        Raises:
            StorageError: INVALID_SCOPE if name is not registered.
        """
        definition = self._scopes.get(name)
        if definition is None:
            raise StorageError(
                ErrorCode.INVALID_SCOPE,
                Operation.SCOPE,
                f"Unknown scope: {name}",
                data={"scope": name, "known": sorted(self._scopes)},
            )
        return definition

    def enter(self, name: str, identifier: str | None = None) -> str:
        """Validate a scope reference and return its resolved root path.

        Raises:
            StorageError: INVALID_SCOPE, MISSING_SCOPE_IDENTIFIER,
                UNEXPECTED_SCOPE_IDENTIFIER or INVALID_SCOPE_IDENTIFIER.
        """
        definition = self.get(name)
        has_identifier = identifier is not None and str(identifier) != ""

        if definition.requires_identifier and not has_identifier:
            raise StorageError(
                ErrorCode.MISSING_SCOPE_IDENTIFIER,
                Operation.SCOPE,
                f'Scope "{name}" requires an identifier but none was provided',
                data={"scope": name},
            )
        if not definition.requires_identifier and has_identifier:
            raise StorageError(
                ErrorCode.UNEXPECTED_SCOPE_IDENTIFIER,
                Operation.SCOPE,
                f'Scope "{name}" does not take an identifier',
                data={"scope": name, "identifier": identifier},
            )
        if has_identifier:
            text = str(identifier)
            if SEPARATOR in text or "\\" in text or text in (".", ".."):
                raise StorageError(
                    ErrorCode.INVALID_SCOPE_IDENTIFIER,
                    Operation.SCOPE,
                    f'Invalid identifier for scope "{name}": {text!r}',
                    data={"scope": name, "identifier": text},
                )

        root = definition.render(identifier)
        logger.debug("Entered scope %s -> %s", name, root)
        return root

    def __contains__(self, name: object) -> bool:
        return name in self._scopes

    def __len__(self) -> int:
        return len(self._scopes)

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._scopes)
