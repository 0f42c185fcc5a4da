"""
Script Store

Thread-safe store for script definitions with duplicate-on-write versions.

Every ``update`` snapshots the definition's prior state into an immutable
:class:`ScriptVersion` and applies the change under one lock; when a file path
is configured both are persisted together with an atomic file replace, so a
reader never observes new code without the matching version.

Usage:
    store = ScriptStore()
    script = store.create(title="Greeting", language="lua", code="return {response=1}")
    store.update(script.id, {"code": "return {response=2}"})
    store.versions(script.id)[0].code   # 'return {response=1}'
"""

from __future__ import annotations

import json
import os
import threading
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any

import pydantic

from polyscript.services.script_executor.exceptions import (
    ScriptInUseError,
    ScriptNotFoundError,
    ValidationError,
)
from polyscript.utils.logger import get_logger

from .models import ScriptDefinition, ScriptPage, ScriptVersion, utcnow

logger = get_logger("script_store")

UPDATABLE_FIELDS = frozenset(
    {"title", "language", "code", "configuration", "description", "category", "run_as_user_id"}
)
SORTABLE_FIELDS = frozenset(
    {"id", "title", "language", "description", "category", "created_at", "updated_at"}
)


class ScriptStore:
    """In-memory script definitions, optionally persisted to a JSON file.

    :param path: JSON file for persistence; in-memory only when None
    :type path: str | Path, optional
    """

    def __init__(self, path: str | Path | None = None):
        self._lock = threading.RLock()
        self._scripts: dict[str, ScriptDefinition] = {}
        self._versions: dict[str, list[ScriptVersion]] = {}
        self._references: Counter[str] = Counter()
        self.path = Path(path).resolve() if path else None

        if self.path is not None and self.path.exists():
            self._load()

    @classmethod
    def from_config(cls, configurable: dict[str, Any] | None = None) -> ScriptStore:
        """Store configured by ``script_store.path``."""
        store_config = (configurable or {}).get("script_store") or {}
        return cls(store_config.get("path"))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)

        for item in data.get("scripts", []):
            script = ScriptDefinition.model_validate(item)
            self._scripts[script.id] = script
        for script_id, versions in data.get("versions", {}).items():
            self._versions[script_id] = [ScriptVersion.model_validate(v) for v in versions]

        logger.debug(f"Loaded {len(self._scripts)} script(s) from {self.path}")

    def _persist(
        self, scripts: dict[str, ScriptDefinition], versions: dict[str, list[ScriptVersion]]
    ) -> None:
        """Write the given state with an atomic replace. Caller holds the lock."""
        if self.path is None:
            return

        data = {
            "scripts": [s.model_dump(mode="json") for s in scripts.values()],
            "versions": {
                script_id: [v.model_dump(mode="json") for v in script_versions]
                for script_id, script_versions in versions.items()
            },
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def _commit(
        self, scripts: dict[str, ScriptDefinition], versions: dict[str, list[ScriptVersion]]
    ) -> None:
        """Persist the new state, then make it current. Caller holds the lock.

        A failed write leaves the in-memory state untouched.
        """
        self._persist(scripts, versions)
        self._scripts = scripts
        self._versions = versions

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_title(self, title: Any, exclude_id: str | None = None) -> str:
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("The title field is required.", field="title")
        for script in self._scripts.values():
            if script.title == title and script.id != exclude_id:
                raise ValidationError("The name has already been taken.", field="title")
        return title

    def _validate_key(self, key: str | None) -> None:
        if key is None:
            return
        if any(script.key == key for script in self._scripts.values()):
            raise ValidationError("The key has already been taken.", field="key")

    @staticmethod
    def _build(data: dict[str, Any]) -> ScriptDefinition:
        try:
            return ScriptDefinition.model_validate(data)
        except pydantic.ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or None
            raise ValidationError(f"The {field} field is invalid: {error['msg']}.", field=field) from e

    @staticmethod
    def _validate_language(language: Any) -> str:
        if not isinstance(language, str) or not language.strip():
            raise ValidationError("The language field is required.", field="language")
        return language.strip().lower()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        language: str,
        code: str = "",
        *,
        key: str | None = None,
        configuration: dict[str, Any] | None = None,
        description: str = "",
        category: str | None = None,
        run_as_user_id: str | None = None,
        created_at: datetime | None = None,
    ) -> ScriptDefinition:
        """Create a definition.

        Raises:
            ValidationError: Missing title/language, duplicate title/key or invalid field value
        """
        with self._lock:
            self._validate_title(title)
            self._validate_key(key)
            now = utcnow()
            script = self._build(
                {
                    "key": key,
                    "title": title,
                    "language": self._validate_language(language),
                    "code": code,
                    "configuration": {} if configuration is None else configuration,
                    "description": description,
                    "category": category,
                    "run_as_user_id": run_as_user_id,
                    "created_at": created_at or now,
                    "updated_at": created_at or now,
                }
            )
            self._commit({**self._scripts, script.id: script}, self._versions)

        logger.info(f"Created script '{script.title}' ({script.id})")
        return script

    def get(self, script_id: str) -> ScriptDefinition:
        with self._lock:
            script = self._scripts.get(script_id)
        if script is None:
            raise ScriptNotFoundError(script_id)
        return script

    def get_by_key(self, key: str) -> ScriptDefinition | None:
        with self._lock:
            return next((s for s in self._scripts.values() if s.key == key), None)

    def list(
        self,
        filter: str | None = None,
        order_by: str = "title",
        order_direction: str = "ASC",
        page: int = 1,
        per_page: int = 10,
    ) -> ScriptPage:
        """List user scripts (keyed system scripts are excluded).

        Args:
            filter: Case-insensitive substring matched against title, description and category
            order_by: Field to sort on
            order_direction: ``ASC`` or ``DESC``
            page: 1-based page number
            per_page: Page size

        Raises:
            ValidationError: Unknown sort field or invalid pagination
        """
        if order_by not in SORTABLE_FIELDS:
            raise ValidationError(f"Cannot order by '{order_by}'.", field="order_by")
        direction = order_direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValidationError("Order direction must be ASC or DESC.", field="order_direction")
        if page < 1 or per_page < 1:
            raise ValidationError("Page and page size must be positive.", field="page")

        with self._lock:
            scripts = [s for s in self._scripts.values() if s.key is None]

        if filter:
            needle = filter.lower()
            scripts = [
                s for s in scripts
                if needle in s.title.lower()
                or needle in (s.description or "").lower()
                or needle in (s.category or "").lower()
            ]

        scripts.sort(
            key=lambda s: (getattr(s, order_by) is None, getattr(s, order_by) or ""),
            reverse=direction == "DESC",
        )
        start = (page - 1) * per_page
        return ScriptPage(
            data=scripts[start:start + per_page],
            total=len(scripts),
            per_page=per_page,
            current_page=page,
            filter=filter,
            order_by=order_by,
            sort_order=direction,
        )

    def update(self, script_id: str, changes: dict[str, Any]) -> ScriptDefinition:
        """Apply ``changes``, snapshotting the prior state as a new version.

        ``key`` is never changed by an update.

        Raises:
            ScriptNotFoundError: Unknown script
            ValidationError: Empty/duplicate title, empty language, unknown field or invalid value
        """
        changes = {k: v for k, v in changes.items() if k != "key"}
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown script field(s): {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )

        with self._lock:
            current = self.get(script_id)
            if "title" in changes:
                self._validate_title(changes["title"], exclude_id=script_id)
            if "language" in changes:
                changes["language"] = self._validate_language(changes["language"])

            now = utcnow()
            version = ScriptVersion.snapshot(current, taken_at=now)
            updated = self._build({**current.model_dump(), **changes, "updated_at": now})

            self._commit(
                {**self._scripts, script_id: updated},
                {**self._versions, script_id: [*self._versions.get(script_id, []), version]},
            )

        logger.info(f"Updated script '{updated.title}' ({script_id}), version {version.id} saved")
        return updated

    def duplicate(self, script_id: str, changes: dict[str, Any] | None = None) -> ScriptDefinition:
        """Copy a definition under a fresh id and no key.

        Code and configuration are copied; title, description, category and
        language may be overridden. ``run_as_user_id`` is required.

        Raises:
            ScriptNotFoundError: Unknown script
            ValidationError: Missing run-as-user, or empty/duplicate title
        """
        changes = dict(changes or {})
        with self._lock:
            source = self.get(script_id)

            run_as_user_id = changes.get("run_as_user_id")
            if run_as_user_id in (None, ""):
                raise ValidationError("The run as user field is required.", field="run_as_user_id")

            duplicate = self.create(
                title=changes.get("title", f"{source.title} (copy)"),
                language=changes.get("language", source.language),
                code=source.code,
                configuration=dict(source.configuration),
                description=changes.get("description", source.description),
                category=changes.get("category", source.category),
                run_as_user_id=run_as_user_id,
            )

        logger.info(f"Duplicated script {script_id} as {duplicate.id}")
        return duplicate

    def delete(self, script_id: str) -> None:
        """Delete a definition and its versions.

        Raises:
            ScriptNotFoundError: Unknown script
            ScriptInUseError: Script is referenced by a running invocation
        """
        with self._lock:
            self.get(script_id)
            if self._references[script_id] > 0:
                raise ScriptInUseError(script_id, self._references[script_id])

            self._commit(
                {k: v for k, v in self._scripts.items() if k != script_id},
                {k: v for k, v in self._versions.items() if k != script_id},
            )

        logger.info(f"Deleted script {script_id}")

    def versions(self, script_id: str) -> list[ScriptVersion]:
        """Versions of a definition, newest first."""
        with self._lock:
            self.get(script_id)
            return list(reversed(self._versions.get(script_id, [])))

    # ------------------------------------------------------------------
    # Reference tracking
    # ------------------------------------------------------------------

    def acquire(self, script_id: str) -> ScriptDefinition:
        """Mark a definition as referenced and return its current snapshot."""
        with self._lock:
            script = self.get(script_id)
            self._references[script_id] += 1
            return script

    def release(self, script_id: str) -> None:
        with self._lock:
            if self._references[script_id] > 1:
                self._references[script_id] -= 1
            else:
                self._references.pop(script_id, None)

    def references(self, script_id: str) -> int:
        with self._lock:
            return self._references.get(script_id, 0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._scripts)
