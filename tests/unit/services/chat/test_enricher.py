"""
Unit tests for ResourceEnricher.

Tests cover:
1. Per-type previews (note, document, recording, post)
2. Signed URL TTLs per type
3. Inline-text detection
4. Error markers for missing referents and failed signing
"""

import pytest

from chatsync.models.entities import ResourceRef, ResourceType
from chatsync.services.chat.enricher import ResourceEnricher, can_display_as_text
from tests.fixtures.fakes import FakeResolver, FakeSigner

PDF_URL = "https://proj.supabase.co/storage/v1/object/public/documents/u1/report.pdf"


def ref(resource_type: ResourceType, resource_id: str, message_id: str = "m1") -> ResourceRef:
    return ResourceRef(resource_type=resource_type, resource_id=resource_id, message_id=message_id)


@pytest.fixture
def populated_resolver() -> FakeResolver:
    resolver = FakeResolver()
    resolver.add(ResourceType.NOTE, "n1", title="Lecture notes", content="Week 3", document_id=None)
    resolver.add(
        ResourceType.DOCUMENT,
        "d1",
        title="Report",
        file_url=PDF_URL,
        file_type="application/pdf",
        content_extracted=None,
    )
    resolver.add(
        ResourceType.DOCUMENT,
        "d2",
        title="Readme",
        file_url="documents/u1/readme.md",
        file_type="text/markdown",
        content_extracted="# Readme",
    )
    resolver.add(
        ResourceType.CLASS_RECORDING,
        "r1",
        title="Physics 101",
        audio_url="recordings/u1/physics.m4a",
        summary="Kinematics",
    )
    resolver.add(ResourceType.POST, "p1", content="Exam moved to Friday", author_display_name="Ana")
    return resolver


class TestCanDisplayAsText:
    def test_text_types_with_extracted_content(self):
        assert can_display_as_text({"file_type": "text/plain", "content_extracted": "hi"})
        assert can_display_as_text({"file_type": "text/markdown; charset=utf-8", "content_extracted": "# Title"})
        assert can_display_as_text({"file_type": "application/json", "content_extracted": "{}"})

    def test_text_type_without_extracted_content(self):
        assert not can_display_as_text({"file_type": "text/plain"})
        assert not can_display_as_text({"file_type": "text/plain", "content_extracted": ""})

    def test_binary_without_extracted_text(self):
        assert not can_display_as_text({"file_type": "application/pdf"})

    def test_binary_with_extracted_text(self):
        assert can_display_as_text({"file_type": "application/pdf", "content_extracted": "page 1"})

    def test_image_is_never_inline(self):
        assert not can_display_as_text({"file_type": "image/png", "content_extracted": "ocr text"})


@pytest.mark.asyncio
class TestResourceEnricher:
    """Resolution and signing of shared resources."""

    async def test_document_is_signed_with_document_ttl(self, populated_resolver, storage_settings):
        signer = FakeSigner()
        enricher = ResourceEnricher(populated_resolver, signer, storage_settings)

        result = await enricher.enrich(ref(ResourceType.DOCUMENT, "d1"))

        assert result.ok
        assert result.title == "Report"
        assert result.display_as_text is False
        assert result.signed_url == "https://signed.test/documents/u1/report.pdf?ttl=3600"
        assert signer.calls == [("documents", "u1/report.pdf", 3600)]

    async def test_inline_document_is_not_signed(self, populated_resolver, storage_settings):
        signer = FakeSigner()
        enricher = ResourceEnricher(populated_resolver, signer, storage_settings)

        result = await enricher.enrich(ref(ResourceType.DOCUMENT, "d2"))

        assert result.display_as_text is True
        assert result.preview_content == "# Readme"
        assert result.signed_url is None
        assert signer.calls == []

    async def test_unextracted_text_document_is_signed(self, storage_settings):
        resolver = FakeResolver()
        resolver.add(
            ResourceType.DOCUMENT,
            "d3",
            title="Notes",
            file_url="u1/notes.txt",
            file_type="text/plain",
            content_extracted=None,
        )
        signer = FakeSigner()
        enricher = ResourceEnricher(resolver, signer, storage_settings)

        result = await enricher.enrich(ref(ResourceType.DOCUMENT, "d3"))

        assert result.display_as_text is False
        assert result.preview_content is None
        assert result.signed_url == "https://signed.test/documents/u1/notes.txt?ttl=3600"

    async def test_recording_uses_recording_ttl(self, populated_resolver, storage_settings):
        signer = FakeSigner()
        enricher = ResourceEnricher(populated_resolver, signer, storage_settings)

        result = await enricher.enrich(ref(ResourceType.CLASS_RECORDING, "r1"))

        assert result.title == "Physics 101"
        assert result.preview_content == "Kinematics"
        assert signer.calls == [("documents", "recordings/u1/physics.m4a", 7200)]

    async def test_note_with_associated_document(self, populated_resolver, storage_settings):
        populated_resolver.add(
            ResourceType.NOTE, "n2", title="Annotated report", content="see attached", document_id="d1"
        )
        enricher = ResourceEnricher(populated_resolver, FakeSigner(), storage_settings)

        result = await enricher.enrich(ref(ResourceType.NOTE, "n2"))

        assert result.title == "Annotated report"
        assert result.associated_document["id"] == "d1"
        assert result.signed_url.endswith("?ttl=3600")
        assert result.preview_content == "see attached"

    async def test_post_preview(self, populated_resolver, storage_settings):
        enricher = ResourceEnricher(populated_resolver, FakeSigner(), storage_settings)

        result = await enricher.enrich(ref(ResourceType.POST, "p1"))

        assert result.title == "Ana"
        assert result.preview_content == "Exam moved to Friday"
        assert result.display_as_text is True

    async def test_missing_referent_becomes_error_marker(self, populated_resolver, storage_settings):
        enricher = ResourceEnricher(populated_resolver, FakeSigner(), storage_settings)

        result = await enricher.enrich(ref(ResourceType.DOCUMENT, "gone"))

        assert not result.ok
        assert result.error == "Document not found or access denied"
        assert result.signed_url is None

    async def test_batch_with_one_missing_resource(self, populated_resolver, storage_settings):
        """Five resources, one deleted: four previews and one error, order preserved."""
        enricher = ResourceEnricher(populated_resolver, FakeSigner(), storage_settings)
        refs = [
            ref(ResourceType.NOTE, "n1"),
            ref(ResourceType.DOCUMENT, "d1"),
            ref(ResourceType.NOTE, "deleted-note"),
            ref(ResourceType.CLASS_RECORDING, "r1"),
            ref(ResourceType.POST, "p1"),
        ]

        results = await enricher.enrich_many(refs)

        assert [r.resource_id for r in results] == ["n1", "d1", "deleted-note", "r1", "p1"]
        assert [r.ok for r in results] == [True, True, False, True, True]
        assert results[2].error == "Note not found or access denied"

    async def test_signing_failure_keeps_preview(self, populated_resolver, storage_settings):
        enricher = ResourceEnricher(populated_resolver, FakeSigner(fail=True), storage_settings)

        result = await enricher.enrich(ref(ResourceType.DOCUMENT, "d1"))

        assert result.ok
        assert result.title == "Report"
        assert result.signed_url is None

    async def test_resolver_exception_becomes_error_marker(self, storage_settings):
        class BrokenResolver:
            async def resolve_resource(self, resource_type, resource_id):
                raise RuntimeError("connection reset")

        enricher = ResourceEnricher(BrokenResolver(), FakeSigner(), storage_settings)

        result = await enricher.enrich(ref(ResourceType.POST, "p1"))

        assert result.error == "Post not found or access denied"

    async def test_external_link_is_not_signed(self, storage_settings):
        resolver = FakeResolver()
        resolver.add(
            ResourceType.DOCUMENT,
            "d9",
            title="Syllabus",
            file_url="https://example.com/files/syllabus.pdf",
            file_type="application/pdf",
        )
        signer = FakeSigner()
        enricher = ResourceEnricher(resolver, signer, storage_settings)

        result = await enricher.enrich(ref(ResourceType.DOCUMENT, "d9"))

        assert result.signed_url is None
        assert result.file_url == "https://example.com/files/syllabus.pdf"
        assert signer.calls == []
