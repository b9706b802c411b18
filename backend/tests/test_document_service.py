"""
Tests for DocumentService.

Covers upload validation and compensation, listing/filtering, ownership
rules, versioning, soft delete, downloads, statistics and tag search.
"""

import pytest

from app.core.errors import ForbiddenError, InvalidInputError, NotFoundError, StorageError
from app.services.document_service import DocumentService, normalize_tags

MIB = 1024 * 1024


async def upload(service, session, uploader_id=3, title="Handbook", content=b"hello world", **kwargs):
    kwargs.setdefault("original_name", "handbook.txt")
    kwargs.setdefault("mime_type", "text/plain")
    return await service.create_document(
        session,
        title=title,
        file_bytes=content,
        uploader_id=uploader_id,
        **kwargs,
    )


class TestStorageKeys:
    def test_key_format_keeps_extension(self):
        key = DocumentService.generate_storage_key("report.final.pdf")
        assert key.startswith("documents/")
        assert key.endswith(".pdf")
        stamp, _, rest = key[len("documents/"):].partition("-")
        assert stamp.isdigit()
        assert rest[: -len(".pdf")].isdigit()

    def test_key_without_extension(self):
        key = DocumentService.generate_storage_key("README")
        assert "." not in key

    def test_normalize_tags(self):
        assert normalize_tags([" a ", "b", "", "a", None]) == ["a", "b"]
        assert normalize_tags(None) == []


class TestCreateDocument:
    """Upload validation, persistence and compensation."""

    @pytest.mark.asyncio
    async def test_create_sets_initial_state(self, document_service, session, users, object_store):
        document = await upload(document_service, session, content=b"x" * 100, size=100)

        assert document.id is not None
        assert document.version == 1
        assert document.is_active is True
        assert document.download_count == 0
        assert document.uploaded_by_id == users["user"].id
        assert document.size == 100
        assert document.mime_type == "text/plain"
        assert document.original_name == "handbook.txt"
        assert document.filename == document.storage_key.rsplit("/", 1)[-1]
        assert object_store.objects[document.storage_key] == b"x" * 100

    @pytest.mark.asyncio
    async def test_create_stores_tags_category_and_status(self, document_service, session, users):
        document = await upload(
            document_service,
            session,
            tags=["finance", " q3 ", "finance"],
            category="financial",
            status="published",
        )
        assert document.tags == ["finance", "q3"]
        assert document.category == "financial"
        assert document.status == "published"

    @pytest.mark.asyncio
    async def test_rejects_disallowed_mime_type(self, document_service, session, users, object_store):
        with pytest.raises(InvalidInputError):
            await upload(document_service, session, mime_type="application/x-msdownload", original_name="a.exe")
        assert object_store.puts == []

    @pytest.mark.asyncio
    async def test_rejects_short_title(self, document_service, session, users, object_store):
        with pytest.raises(InvalidInputError):
            await upload(document_service, session, title="ab")
        assert object_store.puts == []

    @pytest.mark.asyncio
    async def test_rejects_unknown_category(self, document_service, session, users):
        with pytest.raises(InvalidInputError):
            await upload(document_service, session, category="poetry")

    @pytest.mark.asyncio
    async def test_exactly_max_size_is_accepted(self, document_service, session, users):
        document = await upload(document_service, session, content=b"a" * (10 * MIB))
        assert document.size == 10 * MIB

    @pytest.mark.asyncio
    async def test_one_byte_over_max_size_is_rejected(self, document_service, session, users, object_store):
        with pytest.raises(InvalidInputError):
            await upload(document_service, session, content=b"a" * (10 * MIB + 1))
        assert object_store.puts == []

    @pytest.mark.asyncio
    async def test_storage_failure_propagates_without_row(self, document_service, session, users, object_store):
        object_store.fail_put = True
        with pytest.raises(StorageError):
            await upload(document_service, session)

        result = await document_service.list_documents(session)
        assert result["total"] == 0

    @pytest.mark.asyncio
    async def test_missing_uploader_removes_stored_object(self, document_service, session, users, object_store):
        with pytest.raises(NotFoundError):
            await upload(document_service, session, uploader_id=999)

        assert len(object_store.puts) == 1
        assert object_store.deletes == object_store.puts
        assert object_store.objects == {}

    @pytest.mark.asyncio
    async def test_cleanup_failure_keeps_original_error(self, document_service, session, users, object_store):
        object_store.fail_delete = True
        with pytest.raises(NotFoundError):
            await upload(document_service, session, uploader_id=999)
        assert object_store.deletes == object_store.puts


class TestListDocuments:
    """Filtering, pagination and sorting over active documents."""

    @pytest.mark.asyncio
    async def test_pagination_and_total_pages(self, document_service, session, users):
        for i in range(5):
            await upload(document_service, session, title=f"Document {i}")

        page = await document_service.list_documents(session, page=2, limit=2)
        assert page["total"] == 5
        assert page["total_pages"] == 3
        assert page["page"] == 2
        assert len(page["items"]) == 2

    @pytest.mark.asyncio
    async def test_default_order_is_newest_first(self, document_service, session, users):
        first = await upload(document_service, session, title="First doc")
        second = await upload(document_service, session, title="Second doc")

        items = (await document_service.list_documents(session))["items"]
        assert [d.id for d in items] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_sort_by_size_ascending(self, document_service, session, users):
        await upload(document_service, session, title="Large", content=b"x" * 30)
        await upload(document_service, session, title="Small", content=b"x" * 10)

        items = (await document_service.list_documents(session, sort_by="size", sort_order="asc"))["items"]
        assert [d.title for d in items] == ["Small", "Large"]

    @pytest.mark.asyncio
    async def test_unknown_sort_field_falls_back_to_created_at(self, document_service, session, users):
        first = await upload(document_service, session, title="First doc")
        second = await upload(document_service, session, title="Second doc")

        items = (await document_service.list_documents(session, sort_by="storage_key"))["items"]
        assert [d.id for d in items] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_search_matches_title_or_description(self, document_service, session, users):
        await upload(document_service, session, title="Quarterly Report")
        await upload(document_service, session, title="Other", description="contains the REPORT word")
        await upload(document_service, session, title="Unrelated")

        result = await document_service.list_documents(session, search="report")
        assert result["total"] == 2

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(self, document_service, session, users):
        await upload(document_service, session, title="Plain report")
        await upload(document_service, session, title="Growth 100% target")
        await upload(document_service, session, title="snake_case notes")

        percent = await document_service.list_documents(session, search="%")
        assert [d.title for d in percent["items"]] == ["Growth 100% target"]

        underscore = await document_service.list_documents(session, search="_")
        assert [d.title for d in underscore["items"]] == ["snake_case notes"]

        assert (await document_service.list_documents(session, search="100%"))["total"] == 1

    @pytest.mark.asyncio
    async def test_filters_by_category_status_and_tags(self, document_service, session, users):
        await upload(document_service, session, title="Legal A", category="legal", tags=["contract"])
        await upload(document_service, session, title="Legal B", category="legal", status="published")
        await upload(document_service, session, title="Tech", category="technical", tags=["api", "contract"])

        assert (await document_service.list_documents(session, category="legal"))["total"] == 2
        assert (await document_service.list_documents(session, status="published"))["total"] == 1
        tagged = await document_service.list_documents(session, tags=["contract", "missing"])
        assert {d.title for d in tagged["items"]} == {"Legal A", "Tech"}

    @pytest.mark.asyncio
    async def test_inactive_documents_are_hidden(self, document_service, session, users):
        keep = await upload(document_service, session, title="Keep me")
        gone = await upload(document_service, session, title="Remove me", tags=["x"])
        await document_service.remove_document(session, gone.id, users["user"].id, "user")

        result = await document_service.list_documents(session)
        assert [d.id for d in result["items"]] == [keep.id]
        assert await document_service.search_by_tags(session, ["x"]) == []

    @pytest.mark.asyncio
    async def test_invalid_page_rejected(self, document_service, session, users):
        with pytest.raises(InvalidInputError):
            await document_service.list_documents(session, page=0)


class TestGetDocument:
    @pytest.mark.asyncio
    async def test_any_caller_can_read_active_document(self, document_service, session, users):
        document = await upload(document_service, session, uploader_id=users["user"].id)
        found = await document_service.get_document(session, document.id, users["viewer"].id, "viewer")
        assert found.id == document.id

    @pytest.mark.asyncio
    async def test_missing_document(self, document_service, session, users):
        with pytest.raises(NotFoundError):
            await document_service.get_document(session, 12345)

    @pytest.mark.asyncio
    async def test_inactive_document_visible_to_admin_only(self, document_service, session, users):
        document = await upload(document_service, session)
        await document_service.remove_document(session, document.id, users["user"].id, "user")

        with pytest.raises(NotFoundError):
            await document_service.get_document(session, document.id, users["user"].id, "user")

        found = await document_service.get_document(session, document.id, users["admin"].id, "admin")
        assert found.is_active is False


class TestUpdateDocument:
    @pytest.mark.asyncio
    async def test_title_change_bumps_version(self, document_service, session, users):
        document = await upload(document_service, session, title="Handbook", content=b"x" * 100)
        updated = await document_service.update_document(
            session, document.id, {"title": "Handbook v2"}, users["user"].id, "user"
        )
        assert updated.title == "Handbook v2"
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_title_and_description_bump_version_once(self, document_service, session, users):
        document = await upload(document_service, session)
        updated = await document_service.update_document(
            session, document.id, {"title": "New title", "description": "New"}, users["user"].id, "user"
        )
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_tags_category_status_keep_version(self, document_service, session, users):
        document = await upload(document_service, session, tags=["old"])
        updated = await document_service.update_document(
            session,
            document.id,
            {"tags": ["new", "tags"], "category": "research", "status": "archived"},
            users["user"].id,
            "user",
        )
        assert updated.version == 1
        assert updated.tags == ["new", "tags"]
        assert updated.category == "research"
        assert updated.status == "archived"

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, document_service, session, users):
        document = await upload(document_service, session, uploader_id=users["user"].id)
        with pytest.raises(ForbiddenError):
            await document_service.update_document(
                session, document.id, {"title": "Hijack"}, users["editor"].id, "editor"
            )

    @pytest.mark.asyncio
    async def test_admin_can_update_any_document(self, document_service, session, users):
        document = await upload(document_service, session, uploader_id=users["user"].id)
        updated = await document_service.update_document(
            session, document.id, {"description": "Reviewed"}, users["admin"].id, "admin"
        )
        assert updated.description == "Reviewed"
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_size_and_mime_type_are_not_updatable(self, document_service, session, users):
        document = await upload(document_service, session, content=b"abc")
        updated = await document_service.update_document(
            session, document.id, {"size": 1, "mime_type": "image/png"}, users["user"].id, "user"
        )
        assert updated.size == 3
        assert updated.mime_type == "text/plain"


class TestRemoveDocument:
    @pytest.mark.asyncio
    async def test_remove_soft_deletes_and_deletes_bytes(self, document_service, session, users, object_store):
        document = await upload(document_service, session)
        await document_service.remove_document(session, document.id, users["user"].id, "user")

        await session.refresh(document)
        assert document.is_active is False
        assert document.storage_key not in object_store.objects

    @pytest.mark.asyncio
    async def test_storage_failure_still_soft_deletes(self, document_service, session, users, object_store):
        document = await upload(document_service, session)
        object_store.fail_delete = True

        await document_service.remove_document(session, document.id, users["user"].id, "user")

        await session.refresh(document)
        assert document.is_active is False

    @pytest.mark.asyncio
    async def test_second_remove_is_not_found(self, document_service, session, users):
        document = await upload(document_service, session)
        await document_service.remove_document(session, document.id, users["user"].id, "user")
        with pytest.raises(NotFoundError):
            await document_service.remove_document(session, document.id, users["user"].id, "user")

    @pytest.mark.asyncio
    async def test_non_owner_cannot_remove(self, document_service, session, users, object_store):
        document = await upload(document_service, session, uploader_id=users["user"].id)
        with pytest.raises(ForbiddenError):
            await document_service.remove_document(session, document.id, users["viewer"].id, "viewer")
        assert document.storage_key in object_store.objects


class TestDownload:
    @pytest.mark.asyncio
    async def test_round_trip_and_counter(self, document_service, session, users):
        payload = b"plain text body\n"
        document = await upload(document_service, session, content=payload)

        first = await document_service.download_document(session, document.id)
        second = await document_service.download_document(session, document.id)

        assert first.content == payload
        assert second.content == payload
        assert first.filename == "handbook.txt"
        assert first.mime_type == "text/plain"
        await session.refresh(document)
        assert document.download_count == 2

    @pytest.mark.asyncio
    async def test_missing_object_is_not_found(self, document_service, session, users, object_store):
        document = await upload(document_service, session)
        object_store.objects.clear()

        with pytest.raises(NotFoundError):
            await document_service.download_document(session, document.id)
        await session.refresh(document)
        assert document.download_count == 0

    @pytest.mark.asyncio
    async def test_inactive_document_cannot_be_downloaded(self, document_service, session, users):
        document = await upload(document_service, session)
        await document_service.remove_document(session, document.id, users["user"].id, "user")
        with pytest.raises(NotFoundError):
            await document_service.download_document(session, document.id)

    @pytest.mark.asyncio
    async def test_download_url(self, document_service, session, users):
        document = await upload(document_service, session)
        result = await document_service.get_download_url(session, document.id, ttl_seconds=60)
        assert document.storage_key in result["url"]
        assert result["expires_in"] == 60


class TestStatisticsAndSearch:
    @pytest.mark.asyncio
    async def test_statistics_over_active_documents(self, document_service, session, users):
        a = await upload(document_service, session, title="Doc A", content=b"x" * 10, category="legal")
        await upload(document_service, session, title="Doc B", content=b"x" * 20, category="legal", status="published")
        gone = await upload(document_service, session, title="Doc C", content=b"x" * 40, category="research")
        await document_service.download_document(session, a.id)
        await document_service.remove_document(session, gone.id, users["user"].id, "user")

        stats = await document_service.get_statistics(session)
        assert stats == {
            "total_documents": 2,
            "by_category": {"legal": 2},
            "by_status": {"draft": 1, "published": 1},
            "total_size": 30,
            "total_downloads": 1,
        }

    @pytest.mark.asyncio
    async def test_statistics_empty(self, document_service, session, users):
        stats = await document_service.get_statistics(session)
        assert stats["total_documents"] == 0
        assert stats["by_category"] == {}
        assert stats["total_size"] == 0

    @pytest.mark.asyncio
    async def test_search_by_tags_overlap_newest_first(self, document_service, session, users):
        older = await upload(document_service, session, title="Older", tags=["alpha"])
        newer = await upload(document_service, session, title="Newer", tags=["beta", "alpha"])
        await upload(document_service, session, title="Other", tags=["gamma"])

        found = await document_service.search_by_tags(session, ["alpha", "beta"])
        assert [d.id for d in found] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_search_by_empty_tags_returns_nothing(self, document_service, session, users):
        await upload(document_service, session, tags=["alpha"])
        assert await document_service.search_by_tags(session, []) == []
        assert await document_service.search_by_tags(session, [" "]) == []

    @pytest.mark.asyncio
    async def test_user_documents(self, document_service, session, users):
        mine = await upload(document_service, session, uploader_id=users["editor"].id)
        await upload(document_service, session, uploader_id=users["user"].id)

        found = await document_service.get_user_documents(session, users["editor"].id)
        assert [d.id for d in found] == [mine.id]
