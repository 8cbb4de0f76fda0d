# =============================================================================
# tests/test_image_workflow.py - Upload -> Transform -> Persist Tests
# =============================================================================

import pytest

from app.exceptions import (
    FileTooLargeError,
    InvalidFileTypeError,
    MissingFileError,
    PermissionDeniedError,
    PromptRequiredError,
    TransformationError,
)
from core.services import ImageRecordService, StorageService
from core.services.transform_service import GeneratedImage
from core.workflows import ImageTransformWorkflow, ImageUpload, WorkflowStage
from tests.fakes import (
    RecordingRecords,
    RecordingStore,
    ScriptedTransformer,
    permission_error,
)

MIB = 1024 * 1024
ALLOWED = ["image/png", "image/jpeg", "image/webp"]

FULL_RUN = [
    WorkflowStage.UPLOADING_ORIGINAL,
    WorkflowStage.TRANSFORMING,
    WorkflowStage.UPLOADING_TRANSFORMED,
    WorkflowStage.PERSISTING_RECORD,
    WorkflowStage.DONE,
]


def make_workflow(bus=None, store=None, transformer=None, records=None):
    store = store or RecordingStore()
    transformer = transformer or ScriptedTransformer()
    records = records or RecordingRecords(store)
    workflow = ImageTransformWorkflow(
        store, transformer, records, bus, max_bytes=5 * MIB, allowed_types=ALLOWED
    )
    return workflow, store, transformer, records


def cat_png(size=2048):
    return ImageUpload("cat.png", b"\x89PNG" + b"\x00" * (size - 4), "image/png")


# =============================================================================
# Happy Path
# =============================================================================

class TestHappyPath:

    @pytest.mark.asyncio
    async def test_cyberpunk_cat(self, user_id):
        workflow, store, transformer, records = make_workflow()

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.succeeded
        assert result.history == FULL_RUN
        assert result.error is None

        assert transformer.calls == [("cat.png", "image/png", "cyberpunk")]
        assert [path for path, _, _ in store.uploads] == [
            f"{user_id}/original/cat.png",
            f"{user_id}/transformed/out.png",
        ]

        record = records.created[0]
        assert str(record.user_id) == user_id
        assert record.prompt == "cyberpunk"
        assert record.original_file_name == "cat.png"
        assert record.original_image_url == result.original_image_url
        assert record.transformed_image_url == result.transformed_image_url
        assert result.record["prompt"] == "cyberpunk"

    @pytest.mark.asyncio
    async def test_prompt_is_trimmed(self, user_id):
        workflow, _, transformer, _ = make_workflow()

        await workflow.run(user_id, cat_png(), "  watercolor  ")

        assert transformer.calls[0][2] == "watercolor"

    @pytest.mark.asyncio
    async def test_generated_jpeg_keeps_its_extension(self, user_id):
        transformer = ScriptedTransformer(GeneratedImage(b"jpeg-bytes", "image/jpeg"))
        workflow, store, _, _ = make_workflow(transformer=transformer)

        await workflow.run(user_id, cat_png(), "sketch")

        assert store.uploads[1][0].endswith(".jpg")
        assert store.uploads[1][2] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_every_run_writes_new_objects(self, user_id):
        workflow, store, _, records = make_workflow()

        await workflow.run(user_id, cat_png(), "cyberpunk")
        await workflow.run(user_id, cat_png(), "cyberpunk")

        assert len(store.uploads) == 4
        assert len(records.created) == 2


# =============================================================================
# Entry Guard
# =============================================================================

class TestValidation:

    @pytest.mark.asyncio
    async def test_oversized_file_makes_no_remote_calls(self, user_id):
        workflow, store, transformer, records = make_workflow()
        upload = ImageUpload("huge.png", b"\x00" * (5 * MIB + 1), "image/png")

        with pytest.raises(FileTooLargeError) as exc_info:
            await workflow.run(user_id, upload, "cyberpunk")

        assert exc_info.value.status_code == 413
        assert store.uploads == []
        assert transformer.calls == []
        assert records.uploads_seen == []

    @pytest.mark.asyncio
    async def test_exactly_five_mib_is_accepted(self, user_id):
        workflow, _, _, _ = make_workflow()
        upload = ImageUpload("edge.png", b"\x00" * (5 * MIB), "image/png")

        result = await workflow.run(user_id, upload, "cyberpunk")

        assert result.succeeded

    @pytest.mark.asyncio
    async def test_missing_file(self, user_id):
        workflow, store, _, _ = make_workflow()

        with pytest.raises(MissingFileError):
            await workflow.run(user_id, None, "cyberpunk")
        with pytest.raises(MissingFileError):
            await workflow.run(user_id, ImageUpload("empty.png", b"", "image/png"), "cyberpunk")

        assert store.uploads == []

    @pytest.mark.asyncio
    async def test_wrong_type(self, user_id):
        workflow, store, _, _ = make_workflow()

        with pytest.raises(InvalidFileTypeError):
            await workflow.run(user_id, ImageUpload("notes.pdf", b"%PDF", "application/pdf"), "x")

        assert store.uploads == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", [None, "", "   "])
    async def test_prompt_required(self, user_id, prompt):
        workflow, store, transformer, _ = make_workflow()

        with pytest.raises(PromptRequiredError):
            await workflow.run(user_id, cat_png(), prompt)

        assert store.uploads == []
        assert transformer.calls == []


# =============================================================================
# Failures
# =============================================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_no_image_in_response(self, user_id):
        workflow, store, _, records = make_workflow(transformer=ScriptedTransformer(result=None))

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.stage == WorkflowStage.ERRORED
        assert result.failed_stage == WorkflowStage.TRANSFORMING
        assert result.error == "transformation failed"
        assert result.record is None
        assert result.transformed_image_url is None
        # The original stays stored; no cleanup is attempted
        assert len(store.uploads) == 1
        assert result.original_image_url is not None
        assert records.uploads_seen == []

    @pytest.mark.asyncio
    async def test_empty_image_counts_as_no_image(self, user_id):
        workflow, _, _, records = make_workflow(
            transformer=ScriptedTransformer(GeneratedImage(b""))
        )

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.failed_stage == WorkflowStage.TRANSFORMING
        assert records.created == []

    @pytest.mark.asyncio
    async def test_transformer_error(self, user_id, bus, permission_events):
        transformer = ScriptedTransformer(error=TransformationError("quota exceeded"))
        workflow, _, _, records = make_workflow(bus=bus, transformer=transformer)

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.error == "transformation failed"
        assert "quota" not in result.error
        assert records.created == []
        assert permission_events == []

    @pytest.mark.asyncio
    async def test_persist_only_after_transformed_upload(self, user_id):
        workflow, store, _, records = make_workflow()

        await workflow.run(user_id, cat_png(), "cyberpunk")

        assert records.uploads_seen == [2]

    @pytest.mark.asyncio
    async def test_failed_transformed_upload_never_persists(self, user_id):
        store = RecordingStore(fail_on=2)
        workflow, _, _, records = make_workflow(store=store)

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.failed_stage == WorkflowStage.UPLOADING_TRANSFORMED
        assert result.error == "upload failed"
        assert WorkflowStage.PERSISTING_RECORD not in result.history
        assert records.uploads_seen == []

    @pytest.mark.asyncio
    async def test_failed_original_upload_stops_everything(self, user_id):
        store = RecordingStore(fail_on=1)
        workflow, _, transformer, records = make_workflow(store=store)

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.history == [WorkflowStage.UPLOADING_ORIGINAL, WorkflowStage.ERRORED]
        assert transformer.calls == []
        assert records.uploads_seen == []

    @pytest.mark.asyncio
    async def test_storage_permission_denied_is_reported(self, user_id, bus, permission_events):
        store = RecordingStore(fail_on=1, error=permission_error())
        workflow, _, _, _ = make_workflow(bus=bus, store=store)

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.permission_denied is True
        assert result.error == "permission denied"
        assert len(permission_events) == 1
        assert permission_events[0].operation == "create"
        assert permission_events[0].path == f"images/{user_id}/original/cat.png"

    @pytest.mark.asyncio
    async def test_record_permission_error_is_not_reported_twice(self, user_id, bus, permission_events):
        store = RecordingStore()
        records = RecordingRecords(
            store,
            error=PermissionDeniedError(path="image_records", operation="create"),
        )
        workflow, _, _, _ = make_workflow(bus=bus, store=store, records=records)

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.failed_stage == WorkflowStage.PERSISTING_RECORD
        assert result.permission_denied is True
        # The record store reports its own failures
        assert permission_events == []

    @pytest.mark.asyncio
    async def test_record_rls_rejection_is_reported_once(
        self, user_id, supabase, bus, permission_events, notices
    ):
        records = ImageRecordService(
            supabase, StorageService(supabase, bucket="images"), bus, notify=notices
        )
        supabase.fail_next("image_records", permission_error())
        workflow, store, _, _ = make_workflow(bus=bus, records=records)

        result = await workflow.run(user_id, cat_png(), "cyberpunk")

        assert result.failed_stage == WorkflowStage.PERSISTING_RECORD
        assert result.error == "permission denied"
        assert result.permission_denied is True
        assert [(e.path, e.operation) for e in permission_events] == [("image_records", "create")]
        assert len(store.uploads) == 2
        assert notices.sent == []
