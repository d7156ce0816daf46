"""
Service Registry

CRUD over service bookmarks. Icon files are created, replaced and
removed through IconManager in step with the record so that a
non-null icon always names an existing file:

- create: icon is materialized and staged before the record is inserted
- update: new icon > remove_icon > unchanged; old file removed after commit
- a staged icon goes live as the last step of the record's transaction
- delete: record removed first, icon file cleaned up best-effort

A failed operation leaves the stored record and its icon as they were.
"""

from __future__ import annotations

import asyncio
import sqlite3
import uuid
from typing import Callable

from ...common.exceptions import NotFoundError, StorageError, ValidationError
from ...common.logging_setup import get_service_logger
from ...common.timestamp import now_ms
from ...storage.database import Database
from .icons import IconManager, IconSource, RemoteIcon, StagedIcon
from .models import ServiceCreate, ServiceRecord, ServiceUpdate

logger = get_service_logger("registry")

# NULL categories sort after named ones
LIST_QUERY = (
    "SELECT * FROM services "
    "ORDER BY category IS NULL, category ASC, name ASC"
)


def _required(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError("name and url are required", field=field)
    return value.strip()


def _optional(value: str | None) -> str | None:
    return value or None


class ServiceRegistry:
    """Service records plus their icons"""

    def __init__(
        self,
        db: Database,
        icons: IconManager,
        clock: Callable[[], int] = now_ms,
    ):
        self.db = db
        self.icons = icons
        self._clock = clock

    # ============================================
    # READ
    # ============================================

    def list(self) -> list[ServiceRecord]:
        """All services by category, then name"""
        with self.db.connection() as conn:
            rows = conn.execute(LIST_QUERY).fetchall()
        return [ServiceRecord.from_row(row) for row in rows]

    def get(self, service_id: str) -> ServiceRecord:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM services WHERE id = ?", (service_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("Service", service_id)
        return ServiceRecord.from_row(row)

    # ============================================
    # CREATE
    # ============================================

    async def create(
        self,
        data: ServiceCreate,
        icon: IconSource | None = None,
    ) -> ServiceRecord:
        """
        Create a service.

        Args:
            data: Fields for the new record
            icon: Uploaded icon; when absent, data.icon_url is used

        Raises:
            ValidationError: name or url missing/empty
            IconError: icon could not be materialized (nothing is stored)
            StorageError: the insert failed (nothing is stored)
        """
        name = _required(data.name, "name")
        url = _required(data.url, "url")
        icon = icon or self._remote_icon(data.icon_url)

        service_id = str(uuid.uuid4())
        now = self._clock()

        staged = None
        if icon is not None:
            content, ext = await self.icons.materialize(icon)
            staged = await asyncio.to_thread(self.icons.stage, service_id, ext, content)

        record = ServiceRecord(
            id=service_id,
            name=name,
            url=url,
            description=_optional(data.description),
            icon=staged.filename if staged else None,
            category=_optional(data.category),
            open_in_new_tab=data.open_in_new_tab,
            created_at=now,
            updated_at=now,
        )

        def insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO services (
                    id, name, url, description, icon, category,
                    open_in_new_tab, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id, record.name, record.url, record.description,
                    record.icon, record.category, int(record.open_in_new_tab),
                    record.created_at, record.updated_at,
                ),
            )

        try:
            await asyncio.to_thread(self._write, insert, staged)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to create service: {e}") from e

        logger.info(
            f"Created service '{record.name}'",
            extra={"service_id": record.id, "icon": record.icon},
        )
        return record

    # ============================================
    # UPDATE
    # ============================================

    async def update(
        self,
        service_id: str,
        data: ServiceUpdate,
        icon: IconSource | None = None,
    ) -> ServiceRecord:
        """
        Apply a partial update.

        Only fields present in data are changed. Icon precedence:
        a new icon (upload, then data.icon_url), else data.remove_icon,
        else the icon is left alone.

        Raises:
            NotFoundError: unknown id
            ValidationError: name or url supplied but empty
            IconError: new icon could not be materialized (record unchanged)
            StorageError: the update failed (record and icon unchanged)
        """
        existing = await asyncio.to_thread(self.get, service_id)
        changes = self._changes(data)
        icon = icon or self._remote_icon(data.icon_url)

        old_icon = existing.icon
        new_icon = old_icon
        staged = None
        if icon is not None:
            content, ext = await self.icons.materialize(icon)
            staged = await asyncio.to_thread(self.icons.stage, service_id, ext, content)
            new_icon = staged.filename
        elif data.remove_icon:
            new_icon = None

        updated = existing.model_copy(
            update={**changes, "icon": new_icon, "updated_at": self._clock()}
        )

        def apply(conn: sqlite3.Connection) -> None:
            cursor = conn.execute(
                """
                UPDATE services SET
                    name = ?, url = ?, description = ?, icon = ?, category = ?,
                    open_in_new_tab = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    updated.name, updated.url, updated.description, updated.icon,
                    updated.category, int(updated.open_in_new_tab),
                    updated.updated_at, service_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Service", service_id)

        try:
            await asyncio.to_thread(self._write, apply, staged, old_icon)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to update service: {e}") from e

        if old_icon and old_icon != new_icon:
            await asyncio.to_thread(self.icons.delete, old_icon)

        logger.info(
            f"Updated service '{updated.name}'",
            extra={"service_id": service_id, "fields": sorted(changes), "icon": updated.icon},
        )
        return updated

    def _changes(self, data: ServiceUpdate) -> dict:
        """Fields explicitly supplied in the update"""
        present = data.model_fields_set
        changes = {}
        for field in ("name", "url"):
            if field in present and getattr(data, field) is not None:
                changes[field] = _required(getattr(data, field), field)
        for field in ("description", "category"):
            if field in present:
                changes[field] = _optional(getattr(data, field))
        if "open_in_new_tab" in present and data.open_in_new_tab is not None:
            changes["open_in_new_tab"] = data.open_in_new_tab
        return changes

    def _write(
        self,
        statement: Callable[[sqlite3.Connection], None],
        staged: StagedIcon | None,
        previous_icon: str | None = None,
    ) -> None:
        """
        Run one write and make a staged icon live with it.

        The icon is promoted as the last step inside the transaction, so
        a failing statement leaves both the row and the live icon file
        untouched. Whatever did not go live is cleaned up on failure.
        """
        promoted = False
        try:
            with self.db.transaction() as conn:
                statement(conn)
                if staged is not None:
                    self.icons.promote(staged)
                    promoted = True
        except BaseException:
            if staged is not None:
                if not promoted:
                    self.icons.discard(staged)
                elif staged.filename != previous_icon:
                    self.icons.delete(staged.filename)
            raise

    # ============================================
    # DELETE
    # ============================================

    def delete(self, service_id: str) -> None:
        """
        Delete a service and its icon file.

        Icon cleanup failures are logged; the record is removed regardless.
        """
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT icon FROM services WHERE id = ?", (service_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError("Service", service_id)
            conn.execute("DELETE FROM services WHERE id = ?", (service_id,))

        if row["icon"]:
            self.icons.delete(row["icon"])

        logger.info("Deleted service", extra={"service_id": service_id})

    # ============================================
    # MAINTENANCE
    # ============================================

    def cleanup_orphaned_icons(self) -> list[str]:
        """Remove icon files no record references"""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT icon FROM services WHERE icon IS NOT NULL"
            ).fetchall()
        return self.icons.remove_orphans({row["icon"] for row in rows})

    @staticmethod
    def _remote_icon(icon_url: str | None) -> RemoteIcon | None:
        if icon_url and icon_url.strip():
            return RemoteIcon(icon_url.strip())
        return None
