"""
ResourceEnricher - hydrate shared resource pointers into previews.

Each ResourceRef is resolved by a type-specific lookup. Private storage
objects get a time-limited signed URL (documents and notes: 1 hour,
recordings: 2 hours by default). A missing or inaccessible referent yields
an error marker instead of an exception, so one bad resource never fails
the message it is attached to.
"""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Optional

from loguru import logger

from ...errors import ResourceUnavailableError
from ...models.entities import EnrichedResource, ResourceRef, ResourceType
from ...settings import StorageSettings, settings
from ..fs.s3_provider import extract_storage_details
from .protocols import ResourceResolver, UrlSigner

TEXT_MIME_TYPES = frozenset(
    {
        "text/plain",
        "text/markdown",
        "text/x-markdown",
        "text/csv",
        "application/json",
        "application/pdf",
    }
)


def can_display_as_text(document: dict[str, Any]) -> bool:
    """Text-like documents whose content has been extracted; anything else needs a download link."""
    if not document.get("content_extracted"):
        return False
    file_type = (document.get("file_type") or "").split(";")[0].strip().lower()
    return file_type in TEXT_MIME_TYPES or file_type.startswith("text/")


class ResourceEnricher:
    """Resolve resource pointers and sign private storage paths."""

    def __init__(
        self,
        resolver: ResourceResolver,
        signer: UrlSigner,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self.resolver = resolver
        self.signer = signer
        self.settings = storage_settings or settings.storage
        self._handlers: dict[
            ResourceType, Callable[[ResourceRef, dict[str, Any]], Awaitable[EnrichedResource]]
        ] = {
            ResourceType.NOTE: self._enrich_note,
            ResourceType.DOCUMENT: self._enrich_document,
            ResourceType.CLASS_RECORDING: self._enrich_recording,
            ResourceType.POST: self._enrich_post,
        }
        missing = set(ResourceType) - set(self._handlers)
        if missing:
            raise TypeError(f"No enrichment for resource types: {sorted(m.value for m in missing)}")

    async def enrich(self, ref: ResourceRef) -> EnrichedResource:
        """
        Hydrate a single resource pointer.

        Never raises for lookup or signing failures; returns an error marker
        when the referent cannot be resolved.
        """
        try:
            record = await self.resolver.resolve_resource(ref.resource_type, ref.resource_id)
            if record is None:
                raise ResourceUnavailableError(ref.resource_type.value, ref.resource_id)
            return await self._handlers[ref.resource_type](ref, record)
        except ResourceUnavailableError:
            logger.warning(f"{ref.resource_type.label} {ref.resource_id} not found or access denied")
            return EnrichedResource.unavailable(ref)
        except Exception as e:
            logger.warning(f"Could not enrich {ref.resource_type.value} {ref.resource_id}: {e}")
            return EnrichedResource.unavailable(ref)

    async def enrich_many(self, refs: Iterable[ResourceRef]) -> list[EnrichedResource]:
        """Hydrate pointers concurrently, preserving input order."""
        refs = list(refs)
        if not refs:
            return []
        return list(await asyncio.gather(*(self.enrich(ref) for ref in refs)))

    async def _sign(self, file_url: Optional[str], ttl_seconds: int) -> Optional[str]:
        if not file_url:
            return None
        details = extract_storage_details(file_url, self.settings.default_bucket)
        if details is None:
            return None
        bucket, path = details
        try:
            return await self.signer.create_signed_url(bucket, path, ttl_seconds)
        except Exception as e:
            logger.warning(f"Signed URL unavailable for {bucket}/{path}: {e}")
            return None

    async def _document_preview(self, document: dict[str, Any]) -> dict[str, Any]:
        display_as_text = can_display_as_text(document)
        signed_url = None
        if not display_as_text:
            signed_url = await self._sign(document.get("file_url"), self.settings.document_url_ttl)
        return {
            "file_url": document.get("file_url"),
            "file_type": document.get("file_type"),
            "signed_url": signed_url,
            "display_as_text": display_as_text,
            "preview_content": document.get("content_extracted"),
        }

    async def _enrich_note(self, ref: ResourceRef, note: dict[str, Any]) -> EnrichedResource:
        fields: dict[str, Any] = {
            "title": note.get("title"),
            "preview_content": note.get("content"),
        }
        document_id = note.get("document_id")
        if document_id:
            document = await self.resolver.resolve_resource(ResourceType.DOCUMENT, document_id)
            if document is not None:
                fields.update(await self._document_preview(document))
                fields["associated_document"] = document
                if not fields["preview_content"]:
                    fields["preview_content"] = note.get("content")
        return self._build(ref, note, fields, ("title", "content", "document_id"))

    async def _enrich_document(self, ref: ResourceRef, document: dict[str, Any]) -> EnrichedResource:
        fields = await self._document_preview(document)
        fields["title"] = document.get("title") or document.get("file_name")
        return self._build(
            ref, document, fields, ("title", "file_url", "file_type", "content_extracted")
        )

    async def _enrich_recording(self, ref: ResourceRef, recording: dict[str, Any]) -> EnrichedResource:
        fields = {
            "title": recording.get("title"),
            "preview_content": recording.get("summary"),
            "file_url": recording.get("audio_url"),
            "signed_url": await self._sign(
                recording.get("audio_url"), self.settings.recording_url_ttl
            ),
        }
        return self._build(ref, recording, fields, ("title", "summary", "audio_url"))

    async def _enrich_post(self, ref: ResourceRef, post: dict[str, Any]) -> EnrichedResource:
        content = post.get("content") or ""
        fields = {
            "title": post.get("author_display_name") or "Post",
            "preview_content": content,
            "display_as_text": True,
        }
        return self._build(ref, post, fields, ("content",))

    @staticmethod
    def _build(
        ref: ResourceRef,
        record: dict[str, Any],
        fields: dict[str, Any],
        consumed: tuple[str, ...],
    ) -> EnrichedResource:
        details = {k: v for k, v in record.items() if k not in consumed and k != "id"}
        return EnrichedResource(
            resource_id=ref.resource_id,
            resource_type=ref.resource_type,
            message_id=ref.message_id,
            details=details,
            **fields,
        )
