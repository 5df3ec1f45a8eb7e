"""Draft/dirty editing model shared by every section editor.

The model keeps three things per section:

- a cached copy of the records returned by the backend,
- at most one draft (field overrides) per record,
- the current selection and list filter.

Nothing reaches the backend until ``save`` is called, and nothing that holds
unsaved edits is thrown away without going through the confirmation channel.

Records are keyed by their backend id. A record the backend returned
without an id (the landing "about" row before its first save) gets a stable
``local-<hex>`` key instead, which is also used as its storage record key
until the first save assigns a real id.
"""

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Hashable,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
)

from .errors import AdminError, RecordNotFoundError, ValidationError
from .schema import EntitySchema, record_sort_key, sort_text

logger = logging.getLogger(__name__)

OK = "ok"
NOOP = "noop"
CANCELLED = "cancelled"
FAILED = "failed"

ALLOWED_IMAGE_SUFFIXES = (".webp", ".png", ".jpg", ".jpeg")


@dataclass
class Result:
    """Outcome of one editing operation."""

    status: str
    message: str = ""
    record: Optional[Dict[str, Any]] = None
    error: Optional[AdminError] = None
    warnings: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == OK

    @classmethod
    def failed(cls, error: AdminError) -> "Result":
        return cls(FAILED, error.message, error=error)


@dataclass(frozen=True)
class ConfirmPrompt:
    title: str
    description: str
    confirm_label: str = "Confirm"
    cancel_label: str = "Cancel"


ConfirmChannel = Callable[[ConfirmPrompt], Awaitable[bool]]


class ResourceCollection(Protocol):
    async def list(self) -> List[Dict[str, Any]]: ...

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, record_id: Any, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete(self, record_id: Any) -> None: ...


class ImageStorage(Protocol):
    def can_delete(self, url: Optional[str]) -> bool: ...

    async def upload(self, path: Path, scope: str, record_key: str, slot: str) -> str: ...

    async def delete(self, url: Optional[str]) -> bool: ...


@dataclass(frozen=True)
class ImageTarget:
    """Where a section's images live in object storage."""

    scope: str
    slot: str = "image"
    key_prefix: str = "id"
    # singleton records keep one object path regardless of id
    fixed_key: Optional[str] = None


@dataclass
class RecordFilter:
    """Active list filter: free-text search plus field equality constraints."""

    search: str = ""
    equals: Dict[str, Any] = field(default_factory=dict)
    sort_fields: Optional[Tuple[str, ...]] = None
    descending: Optional[bool] = None

    def matches(self, schema: EntitySchema, record: Dict[str, Any]) -> bool:
        for name, value in self.equals.items():
            if str(record.get(name)) != str(value):
                return False
        needle = sort_text(self.search.strip())
        return not needle or needle in schema.search_text(record)


DISCARD_AND_SWITCH = ConfirmPrompt(
    "You have unsaved changes",
    "Switching records will discard the changes made to the current one.",
    "Discard and switch",
    "Cancel",
)

DISCARD_AND_FILTER = ConfirmPrompt(
    "You have unsaved changes",
    "Changing the filter may hide the current record. Discard its changes?",
    "Discard and change",
    "Cancel",
)

DISCARD_CHANGES = ConfirmPrompt(
    "Discard changes",
    "The unsaved changes to this record will be lost.",
    "Discard",
    "Keep editing",
)


class EditingModel:
    """Editing state for one section, independent of any widget toolkit."""

    def __init__(
        self,
        schema: EntitySchema,
        collection: ResourceCollection,
        confirm: ConfirmChannel,
        storage: Optional[ImageStorage] = None,
        image_target: Optional[ImageTarget] = None,
    ):
        self.schema = schema
        self.collection = collection
        self.confirm = confirm
        self.storage = storage
        self.image_target = image_target or ImageTarget(scope=schema.name)
        self.records: Dict[Hashable, Dict[str, Any]] = {}
        self.selection: Optional[Hashable] = None
        self.filter = RecordFilter()
        self._drafts: Dict[Hashable, Dict[str, Any]] = {}
        self._revisions: Dict[Hashable, int] = {}
        # ticket of the newest save response applied to each record
        self._applied_saves: Dict[Hashable, int] = {}
        self._clock = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def drafts(self) -> Mapping[Hashable, Dict[str, Any]]:
        return MappingProxyType(self._drafts)

    @property
    def dirty(self) -> FrozenSet[Hashable]:
        """Keys holding a draft. Derived from the draft map, never stored."""
        return frozenset(self._drafts)

    def is_dirty(self, key: Hashable) -> bool:
        return key in self._drafts

    def effective(self, key: Hashable) -> Optional[Dict[str, Any]]:
        """The record as the editor shows it: draft fields over base fields."""
        base = self.records.get(key)
        if base is None:
            return None
        draft = self._drafts.get(key)
        return {**base, **draft} if draft else dict(base)

    def visible_keys(self) -> List[Hashable]:
        """Keys passing the active filter, in display order.

        Computed from base records only, so an unsaved edit never moves a
        row or hides it.
        """
        rows = [
            (key, record)
            for key, record in self.records.items()
            if self.filter.matches(self.schema, record)
        ]
        sort_fields = self.filter.sort_fields or self.schema.sort_fields
        descending = self.filter.descending
        if descending is None:
            descending = self.schema.sort_descending
        if sort_fields:
            names = tuple(sort_fields)
            rows.sort(key=lambda item: record_sort_key(item[1], names), reverse=descending)
        return [key for key, _ in rows]

    def record_key(self, key: Hashable) -> str:
        """Stable storage path component for a record's images."""
        if self.image_target.fixed_key:
            return self.image_target.fixed_key
        record = self.records.get(key)
        if record is None or record.get("id") is None:
            return str(key)
        return f"{self.image_target.key_prefix}-{record['id']}"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> Result:
        """Replace the cache with a fresh listing from the backend."""
        try:
            rows = await self.collection.list()
        except AdminError as exc:
            logger.error("Loading %s failed: %s", self.schema.name, exc.message)
            return Result.failed(exc)
        self.replace_records(rows)
        return Result(OK, f"Loaded {len(self.records)} records")

    def replace_records(self, rows: List[Dict[str, Any]]) -> None:
        local_keys = {
            key for key, record in self.records.items() if record.get("id") is None
        }
        self.records = {}
        for row in rows:
            record = self.schema.normalize(row)
            if record.get("id") is not None:
                key = record["id"]
            elif local_keys:
                key = local_keys.pop()
            else:
                key = f"local-{uuid.uuid4().hex}"
            self.records[key] = record

        for key in list(self._drafts):
            if key not in self.records:
                self._drop_draft(key)
        if self.selection is not None and self.selection not in self.visible_keys():
            self.selection = None

    async def reload(self) -> Result:
        proceed = await self.guard_navigation(
            "Reloading fetches fresh data and discards unsaved changes."
        )
        if not proceed:
            return Result(CANCELLED, "Reload cancelled")
        return await self.load()

    # ------------------------------------------------------------------
    # Selection and filtering
    # ------------------------------------------------------------------

    async def select(self, key: Hashable) -> Result:
        if key == self.selection:
            return Result(NOOP, record=self.effective(key))
        if key not in self.records:
            return Result.failed(RecordNotFoundError(key))
        if key not in self.visible_keys():
            return Result(FAILED, "That record is hidden by the current filter")

        if not await self._release_selection(DISCARD_AND_SWITCH):
            return Result(CANCELLED, "Kept the current record")

        self.selection = key
        return Result(OK, record=self.effective(key))

    async def apply_filter(self, new_filter: RecordFilter) -> Result:
        if new_filter == self.filter:
            return Result(NOOP)
        if not await self._release_selection(DISCARD_AND_FILTER):
            return Result(CANCELLED, "Filter unchanged")

        self.filter = new_filter
        if self.selection is not None and self.selection not in self.visible_keys():
            self.selection = None
        return Result(OK)

    async def _release_selection(self, prompt: ConfirmPrompt) -> bool:
        """Ask before dropping the selected record's draft. True means go ahead."""
        current = self.selection
        if current is None or current not in self._drafts:
            return True
        if not await self.confirm(prompt):
            return False
        self.discard(current)
        return True

    async def guard_navigation(self, description: str) -> bool:
        """Blocking confirmation before anything that discards all drafts."""
        if not self._drafts:
            return True
        ok = await self.confirm(
            ConfirmPrompt(
                "You have unsaved changes",
                description,
                "Discard and continue",
                "Cancel",
            )
        )
        if ok:
            self.discard_all()
        return ok

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def edit(self, key: Hashable, field_name: str, value: Any) -> Result:
        if key not in self.records:
            return Result.failed(RecordNotFoundError(key))
        draft = self._drafts.setdefault(key, {})
        draft[field_name] = self.schema.coerce(field_name, value)
        self._clock += 1
        self._revisions[key] = self._clock
        return Result(OK, record=self.effective(key))

    def discard(self, key: Hashable) -> Result:
        if key not in self._drafts:
            return Result(NOOP)
        self._drop_draft(key)
        return Result(OK, "Changes discarded")

    async def revert(self, key: Hashable) -> Result:
        """Throw away a record's draft once the operator confirms."""
        if key not in self._drafts:
            return Result(NOOP, "No unsaved changes")
        if not await self.confirm(DISCARD_CHANGES):
            return Result(CANCELLED, "Changes kept")
        return self.discard(key)

    def discard_all(self) -> None:
        for key in list(self._drafts):
            self._drop_draft(key)

    def _drop_draft(self, key: Hashable) -> None:
        self._drafts.pop(key, None)
        self._revisions.pop(key, None)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, key: Hashable) -> Result:
        base = self.records.get(key)
        if base is None:
            return Result.failed(RecordNotFoundError(key))
        if key not in self._drafts:
            return Result(NOOP, "Nothing to save")

        payload = self.schema.prepare(self.effective(key))
        try:
            self.schema.validate(payload)
        except ValidationError as exc:
            return Result.failed(exc)

        revision = self._revisions.get(key)
        self._clock += 1
        ticket = self._clock
        record_id = base.get("id")
        payload.pop("id", None)
        try:
            if record_id is None:
                canonical = await self.collection.create(payload)
            else:
                canonical = await self.collection.update(record_id, payload)
        except AdminError as exc:
            logger.warning("Saving %s %s failed: %s", self.schema.name, key, exc.message)
            return Result.failed(exc)

        record = self.schema.normalize(canonical)
        if key not in self.records:
            logger.info("%s %s was removed while saving", self.schema.name, key)
            return Result(OK, "Saved", record=record)
        # a later save of the same record already came back
        if ticket < self._applied_saves.get(key, 0):
            logger.debug("Ignoring an older save response for %s %s", self.schema.name, key)
            return Result(OK, "Saved", record=self.effective(key))

        key = self._store(key, record)
        self._applied_saves[key] = ticket
        # edits made while the request was in flight stay in the draft
        if self._revisions.get(key) == revision:
            self._drop_draft(key)
        else:
            logger.debug("Keeping newer edits to %s %s", self.schema.name, key)
        return Result(OK, "Saved", record=self.effective(key))

    def _store(self, key: Hashable, record: Dict[str, Any]) -> Hashable:
        """Put a canonical record in the cache, re-keying a first save."""
        new_key = record.get("id")
        if new_key is None or new_key == key:
            self.records[key] = record
            return key

        self.records = {
            (new_key if k == key else k): (record if k == key else v)
            for k, v in self.records.items()
        }
        if key in self._drafts:
            self._drafts[new_key] = self._drafts.pop(key)
            self._revisions[new_key] = self._revisions.pop(key)
        if key in self._applied_saves:
            self._applied_saves[new_key] = self._applied_saves.pop(key)
        if self.selection == key:
            self.selection = new_key
        return new_key

    async def create(self, fields: Dict[str, Any]) -> Result:
        """Validate and insert a new record, then add it to the cache."""
        values = self.schema.blank()
        for name, value in fields.items():
            values[name] = self.schema.coerce(name, value)
        payload = self.schema.prepare(values)
        payload.pop("id", None)
        try:
            self.schema.validate(payload)
        except ValidationError as exc:
            return Result.failed(exc)

        try:
            canonical = await self.collection.create(payload)
        except AdminError as exc:
            logger.warning("Creating %s failed: %s", self.schema.name, exc.message)
            return Result.failed(exc)

        canonical = dict(canonical)
        extra = {
            name: canonical.pop(name)
            for name in self.schema.transient_fields
            if name in canonical
        }
        record = self.schema.normalize(canonical)
        key = record.get("id")
        if key is None:
            key = f"local-{uuid.uuid4().hex}"
        self.records[key] = record
        return Result(OK, "Created", record=dict(record), extra=extra)

    async def delete(self, key: Hashable) -> Result:
        base = self.records.get(key)
        if base is None:
            return Result.failed(RecordNotFoundError(key))

        current = self.effective(key)
        description = f'"{self.schema.title(current)}" will be deleted'
        if self.schema.image_field:
            description += " and its image removed from storage"
        ok = await self.confirm(
            ConfirmPrompt(
                "Delete record",
                f"{description}. This cannot be undone.",
                "Yes, delete",
                "Cancel",
            )
        )
        if not ok:
            return Result(CANCELLED, "Nothing was deleted")

        if base.get("id") is not None:
            try:
                await self.collection.delete(base["id"])
            except AdminError as exc:
                logger.warning("Deleting %s %s failed: %s", self.schema.name, key, exc.message)
                return Result.failed(exc)

        self._forget([key])
        return await self._after_delete([base, current], "Record deleted")

    async def delete_matching(
        self,
        field_name: str,
        value: Any,
        remote_delete: Callable[[], Awaitable[None]],
        prompt: ConfirmPrompt,
    ) -> Result:
        """Bulk delete every record whose ``field_name`` equals ``value``."""
        keys = [
            key for key, record in self.records.items()
            if str(record.get(field_name)) == str(value)
        ]
        if not await self.confirm(prompt):
            return Result(CANCELLED, "Nothing was deleted")

        try:
            await remote_delete()
        except AdminError as exc:
            logger.warning("Bulk delete of %s=%s failed: %s", field_name, value, exc.message)
            return Result.failed(exc)

        removed = []
        for key in keys:
            removed.append(self.records[key])
            removed.append(self.effective(key))
        self._forget(keys)
        if str(self.filter.equals.get(field_name)) == str(value):
            equals = {k: v for k, v in self.filter.equals.items() if k != field_name}
            self.filter = RecordFilter(
                self.filter.search, equals, self.filter.sort_fields, self.filter.descending
            )
        return await self._after_delete(removed, f"Deleted {len(keys)} records")

    def _forget(self, keys: List[Hashable]) -> None:
        for key in keys:
            self.records.pop(key, None)
            self._drop_draft(key)
            self._applied_saves.pop(key, None)
            if self.selection == key:
                self.selection = None

    async def _after_delete(self, records: List[Dict[str, Any]], message: str) -> Result:
        image_field = self.schema.image_field
        urls = []
        if image_field:
            for record in records:
                url = (record.get(image_field) or "").strip()
                if url and url not in urls:
                    urls.append(url)
        warnings, skipped = await self._cleanup_images(urls)
        result = Result(OK, message, warnings=warnings)
        if skipped:
            result.message = f"{message}. Skipped image cleanup for {', '.join(skipped)} (not a stored image)"
            result.extra["skipped_images"] = skipped
        return result

    async def _cleanup_images(self, urls: List[str]) -> Tuple[List[str], List[str]]:
        """Best-effort removal of orphaned images.

        Returns the warnings for failed removals and the URLs that were
        skipped because they do not point into object storage.
        """
        warnings: List[str] = []
        skipped: List[str] = []
        if self.storage is None:
            return warnings, skipped
        for url in urls:
            try:
                removed = await self.storage.delete(url)
            except AdminError as exc:
                logger.warning("Could not delete image %s: %s", url, exc.message)
                warnings.append(f"The image could not be removed from storage: {exc.message}")
                continue
            if not removed:
                logger.info("Skipped image cleanup for %s", url)
                skipped.append(url)
        return warnings, skipped

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def upload_image(self, key: Hashable, path: Path) -> Result:
        """Upload a local image and write its public URL into the draft."""
        image_field = self.schema.image_field
        if self.storage is None or image_field is None:
            return Result(FAILED, "This section has no image field")
        current = self.effective(key)
        if current is None:
            return Result.failed(RecordNotFoundError(key))

        suffix = Path(path).suffix.lower()
        if suffix not in ALLOWED_IMAGE_SUFFIXES:
            return Result.failed(
                ValidationError(image_field, "Use a .webp, .jpg or .png image")
            )
        if suffix != ".webp":
            keep_going = await self.confirm(
                ConfirmPrompt(
                    "Tip: WEBP",
                    "WEBP files are usually lighter than JPG or PNG. Continue with this file?",
                    "Continue anyway",
                    "Cancel",
                )
            )
            if not keep_going:
                return Result(CANCELLED, "Upload cancelled")

        old_url = (current.get(image_field) or "").strip()
        delete_old = False
        if self.storage.can_delete(old_url):
            delete_old = await self.confirm(
                ConfirmPrompt(
                    "Replace image",
                    "Delete the previous image from storage so files do not pile up?",
                    "Yes, delete it",
                    "No",
                )
            )

        target = self.image_target
        try:
            url = await self.storage.upload(
                Path(path), target.scope, self.record_key(key), target.slot
            )
        except AdminError as exc:
            logger.warning("Uploading %s failed: %s", path, exc.message)
            return Result.failed(exc)

        if key not in self.records:
            return Result.failed(RecordNotFoundError(key))
        self.edit(key, image_field, url)

        warnings = []
        # a fixed object path means the new upload may have overwritten the old one
        if delete_old and old_url != url:
            warnings, _ = await self._cleanup_images([old_url])
        return Result(
            OK,
            "Image uploaded. Remember to save.",
            record=self.effective(key),
            warnings=warnings,
        )
