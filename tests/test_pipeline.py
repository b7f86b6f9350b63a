"""End-to-end tests for both workflows against in-memory services."""

from __future__ import annotations

import json

import pytest

from polyglot_engine.models import TranslationRequest
from polyglot_engine.pipeline import (
    PipelineStage,
    ProcessTranslatedPipeline,
    StageResult,
    StartTranslationPipeline,
    _Workflow,
)

from .conftest import INPUT_BUCKET, OUTPUT_BUCKET, seed_translated_output

TARGET_PATH = "Texts/Quimica"


def make_request(**overrides) -> TranslationRequest:
    data = {
        "lib": "chem",
        "path": "Bookshelves/Intro_Chem",
        "target_lib": "es",
        "target_path": TARGET_PATH,
        "language": "es",
        "notify_addrs": ["a@example.org"],
    }
    data.update(overrides)
    return TranslationRequest(**data)


def translate_title(body: str) -> str:
    return body.replace(">Intro Chem<", ">Química General<")


async def start(settings, services, http, request=None, progress=None) -> StageResult:
    pipeline = StartTranslationPipeline(settings, services, http)
    return await pipeline.run(request or make_request(), progress_callback=progress)


class TestWorkflowBase:
    """Tests for the shared workflow plumbing."""

    def test_base_cannot_be_instantiated(self, settings, services):
        with pytest.raises(TypeError):
            _Workflow(settings, services, None)

    def test_workflow_without_graph_is_rejected(self, settings, services):
        class NoGraph(_Workflow):
            pass

        with pytest.raises(TypeError):
            NoGraph(settings, services, None)


class TestStartTranslationPipeline:
    """Tests for discover -> fetch -> export -> submit."""

    @pytest.mark.asyncio
    async def test_success(self, settings, services, http, chem_text, object_store):
        result = await start(settings, services, http)

        assert result.success
        assert result.stage == PipelineStage.COMPLETE
        assert result.root_key == "chem-100"
        assert result.page_count == 4
        assert result.job_id == "job-1"
        assert result.errors == []
        assert len(object_store.keys(INPUT_BUCKET)) == 4
        assert object_store.keys(OUTPUT_BUCKET) == ["chem-100/chem-100.metadata.json"]

    @pytest.mark.asyncio
    async def test_exported_pages_are_transformed(
        self, settings, services, http, chem_text, object_store
    ):
        await start(settings, services, http)

        root_html = object_store.objects[(INPUT_BUCKET, "chem-100/chem-100.html")]
        assert root_html.startswith('<span data-libre-pagetitle="true"')
        assert '<p data-libre-pagesummary="true">An introduction to chemistry.</p>' in root_html
        assert '<div translate="no">{{template.ShowOrg()}}</div>' in root_html
        child_html = object_store.objects[(INPUT_BUCKET, "chem-100/chem-101.html")]
        assert '<span translate="no">\\(m\\)</span>' in child_html

    @pytest.mark.asyncio
    async def test_job_request(self, settings, services, http, chem_text, translation_service):
        await start(settings, services, http)

        request = translation_service.requests[0]
        assert request.job_name == "chem-100"
        assert request.input_uri == f"s3://{INPUT_BUCKET}/chem-100/"
        assert request.output_uri == f"s3://{OUTPUT_BUCKET}/chem-100/"
        assert request.target_language == "es"

    @pytest.mark.asyncio
    async def test_progress(self, settings, services, http, chem_text):
        stages = []
        await start(settings, services, http, progress=lambda info: stages.append(info.stage))
        assert stages == ["discover", "fetch", "export", "submit"]

    @pytest.mark.asyncio
    async def test_discovery_failure_stops_early(
        self, settings, services, http, chem_text, object_store, translation_service
    ):
        chem_text.tags = []

        result = await start(settings, services, http)

        assert not result.success
        assert result.stage == PipelineStage.DISCOVER
        assert result.errors[0]["type"] == "DiscoveryError"
        assert "not a coverpage" in result.message
        assert object_store.objects == {}
        assert translation_service.requests == []

    @pytest.mark.asyncio
    async def test_missing_credentials(self, settings, services, http, chem_text, secret_store):
        secret_store.missing.add("chem")

        result = await start(settings, services, http)

        assert result.stage == PipelineStage.DISCOVER
        assert result.errors[0]["type"] == "AuthRetrievalError"

    @pytest.mark.asyncio
    async def test_export_failure(self, settings, services, http, chem_text, object_store):
        object_store.fail_keys.add("chem-100/chem-102.html")

        result = await start(settings, services, http)

        assert result.stage == PipelineStage.EXPORT
        assert object_store.keys(OUTPUT_BUCKET) == []

    @pytest.mark.asyncio
    async def test_submit_failure(
        self, settings, services, http, chem_text, object_store, translation_service
    ):
        translation_service.fail_start = True

        result = await start(settings, services, http)

        assert result.stage == PipelineStage.SUBMIT
        assert result.root_key == "chem-100"
        assert result.job_id is None
        assert object_store.keys(OUTPUT_BUCKET) == ["chem-100/chem-100.metadata.json"]

    @pytest.mark.asyncio
    async def test_invalid_language(self, settings, services, http, chem_text):
        result = await start(settings, services, http, make_request(language="Spanish"))

        assert result.stage == PipelineStage.SUBMIT
        assert result.errors[0]["type"] == "ValidationError"


class TestProcessTranslatedPipeline:
    """Tests for correlate -> reconstruct -> write -> notify."""

    async def translated_job(self, settings, services, http, object_store, translation_service):
        result = await start(settings, services, http)
        assert result.success
        seed_translated_output(
            object_store, translation_service, "chem-100", rewrite=translate_title
        )

    @pytest.mark.asyncio
    async def test_success(
        self, settings, services, http, chem_text, library, object_store, translation_service,
        email_sender,
    ):
        await self.translated_job(settings, services, http, object_store, translation_service)

        result = await ProcessTranslatedPipeline(settings, services, http).run("job-1")

        assert result.success
        assert result.root_key == "chem-100"
        assert result.page_count == 4
        assert result.pages_created == 4
        assert result.notified
        assert sorted(path for lib, path in library.created if lib == "es") == [
            "Texts/Quimica/Química_General",
            "Texts/Quimica/Química_General/1:_Atoms",
            "Texts/Quimica/Química_General/1:_Atoms/1.1:_Intro",
            "Texts/Quimica/Química_General/zz:_Back_Matter",
        ]
        to, _, html = email_sender.sent[0]
        assert to == ["a@example.org"]
        assert "https://chem.libretexts.org/@go/page/100" in html

    @pytest.mark.asyncio
    async def test_written_pages(
        self, settings, services, http, chem_text, library, object_store, translation_service
    ):
        await self.translated_job(settings, services, http, object_store, translation_service)

        await ProcessTranslatedPipeline(settings, services, http).run("job-1")

        root = library.created[("es", "Texts/Quimica/Química_General")]
        assert root.title == "Química General"
        assert "data-libre-pagetitle" not in root.contents
        assert "data-libre-pagesummary" not in root.contents
        assert "{{template.ShowOrg()}}" in root.contents
        assert "source[translate]-chem-100" in root.tags_xml
        assert "An introduction to chemistry." in root.properties_xml
        assert root.thumbnail is not None

    @pytest.mark.asyncio
    async def test_metadata_is_read_only(
        self, settings, services, http, chem_text, object_store, translation_service
    ):
        await self.translated_job(settings, services, http, object_store, translation_service)
        key = (OUTPUT_BUCKET, "chem-100/chem-100.metadata.json")
        before = object_store.objects[key]

        await ProcessTranslatedPipeline(settings, services, http).run("job-1")

        assert object_store.objects[key] == before
        assert json.loads(before)["pageCount"] == 4

    @pytest.mark.asyncio
    async def test_unknown_job(self, settings, services, http):
        result = await ProcessTranslatedPipeline(settings, services, http).run("job-404")

        assert not result.success
        assert result.stage == PipelineStage.CORRELATE
        assert result.errors[0]["type"] == "CorrelationError"

    @pytest.mark.asyncio
    async def test_write_failure_skips_notification(
        self, settings, services, http, chem_text, object_store, translation_service,
        secret_store, email_sender,
    ):
        await self.translated_job(settings, services, http, object_store, translation_service)
        secret_store.missing.add("es")

        result = await ProcessTranslatedPipeline(settings, services, http).run("job-1")

        assert result.stage == PipelineStage.WRITE
        assert email_sender.sent == []

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_job(
        self, settings, services, http, chem_text, object_store, translation_service,
        email_sender,
    ):
        await self.translated_job(settings, services, http, object_store, translation_service)
        email_sender.fail = True

        result = await ProcessTranslatedPipeline(settings, services, http).run("job-1")

        assert result.success
        assert not result.notified

    @pytest.mark.asyncio
    async def test_failed_subtree_reported(
        self, settings, services, http, chem_text, library, object_store, translation_service
    ):
        await self.translated_job(settings, services, http, object_store, translation_service)
        library.fail_rules.append(("POST", "1:_Atoms"))

        result = await ProcessTranslatedPipeline(settings, services, http).run("job-1")

        assert result.success
        assert result.pages_created == 2
        assert result.failed_subtrees == ["chem-101"]
