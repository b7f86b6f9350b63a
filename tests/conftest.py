"""
Pytest configuration and shared fixtures for polyglot-engine tests.

Provides in-memory implementations of every external service and an
in-memory library platform served through httpx.MockTransport.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

import httpx
import pytest

from polyglot_engine.auth import CredentialsProvider, LibraryCredentials
from polyglot_engine.config import (
    AWSConfig,
    LoggingConfig,
    NotificationConfig,
    RateLimitConfig,
    Settings,
)
from polyglot_engine.errors import AuthRetrievalError, ObjectNotFoundError
from polyglot_engine.library.client import LibraryClientPool
from polyglot_engine.log import PACKAGE_LOGGER
from polyglot_engine.services.base import (
    BatchJobRequest,
    EmailSender,
    JobOutputLocation,
    ObjectStore,
    SecretStore,
    Services,
    SubmittedJob,
    TranslationService,
    WorkQueue,
    split_s3_uri,
)

INPUT_BUCKET = "polyglot-input"
OUTPUT_BUCKET = "polyglot-output"
API_PREFIX = "/@api/deki/pages/"


# ============================================================================
# Fakes: external services
# ============================================================================


class FakeObjectStore(ObjectStore):
    """Object storage kept in a dict."""

    def __init__(self):
        self.objects: dict[tuple[str, str], str] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.fail_keys: set[str] = set()
        self.reads: list[tuple[str, str]] = []

    async def put_object(self, bucket, key, body, content_type="application/octet-stream"):
        if key in self.fail_keys:
            raise OSError(f"write refused for {key}")
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        self.objects[(bucket, key)] = text
        self.content_types[(bucket, key)] = content_type

    async def get_object(self, bucket, key):
        self.reads.append((bucket, key))
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise ObjectNotFoundError(f"s3://{bucket}/{key} not found") from None

    def put_uri(self, uri: str, body: str) -> None:
        bucket, key = split_s3_uri(uri)
        self.objects[(bucket, key)] = body

    def keys(self, bucket: str) -> list[str]:
        return sorted(key for b, key in self.objects if b == bucket)


class FakeTranslationService(TranslationService):
    """Records submitted jobs and answers describe calls from a table."""

    def __init__(self):
        self.requests: list[BatchJobRequest] = []
        self.jobs: dict[str, JobOutputLocation] = {}
        self.fail_start = False

    async def start_batch_job(self, request):
        if self.fail_start:
            raise RuntimeError("service unavailable")
        self.requests.append(request)
        return SubmittedJob(job_id=f"job-{len(self.requests)}", status="SUBMITTED")

    async def describe_job(self, job_id):
        try:
            return self.jobs[job_id]
        except KeyError:
            raise RuntimeError(f"ResourceNotFoundException: {job_id}") from None


class FakeSecretStore(SecretStore):
    """Credentials for any library not listed in missing."""

    def __init__(self, missing: set[str] | None = None):
        self.missing = missing or set()
        self.calls: list[str] = []

    async def get_library_credentials(self, lib):
        self.calls.append(lib)
        if lib in self.missing:
            raise AuthRetrievalError(f"Error retrieving key or secret for {lib!r}.")
        return LibraryCredentials(lib=lib, key=f"{lib}-key", secret=f"{lib}-secret")


class FakeEmailSender(EmailSender):
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[list[str], str, str]] = []
        self.fail = fail

    async def send_html(self, to, subject, html):
        if self.fail:
            raise RuntimeError("MessageRejected")
        self.sent.append((list(to), subject, html))


class FakeWorkQueue(WorkQueue):
    def __init__(self, fail_send: bool = False):
        self.sent: list[str] = []
        self.deleted: list[str] = []
        self.fail_send = fail_send

    async def send_message(self, body):
        if self.fail_send:
            raise RuntimeError("queue unavailable")
        self.sent.append(body)

    async def delete_message(self, receipt_handle):
        self.deleted.append(receipt_handle)


# ============================================================================
# Fake library platform
# ============================================================================


@dataclass
class FakePage:
    lib: str
    id: str
    path: str
    title: str
    tags: list[str] = field(default_factory=list)
    contents: str = ""
    props: list[tuple[str, str]] = field(default_factory=list)
    children: list[str] = field(default_factory=list)
    thumbnail: bytes | None = None


@dataclass
class CreatedPage:
    lib: str
    id: str
    path: str
    title: str
    contents: str
    tags_xml: str | None = None
    properties_xml: str | None = None
    thumbnail: tuple[bytes, str] | None = None


class FakeLibrary:
    """
    In-memory content platform speaking the pages API.

    Pages are registered with add_page(); pages created through the API are
    kept in created, keyed by (lib, path).
    """

    def __init__(self, base_domain: str = "libretexts.org"):
        self.base_domain = base_domain
        self.pages: dict[tuple[str, str], FakePage] = {}
        self.created: dict[tuple[str, str], CreatedPage] = {}
        self.requests: list[httpx.Request] = []
        # (method, substring of decoded path) pairs answered with HTTP 500
        self.fail_rules: list[tuple[str, str]] = []
        self._next_id = 9000

    def add_page(self, page: FakePage, parent: FakePage | None = None) -> FakePage:
        self.pages[(page.lib, page.id)] = page
        if parent is not None:
            parent.children.append(page.id)
        return page

    def url(self, page: FakePage) -> str:
        return f"https://{page.lib}.{self.base_domain}/{page.path}"

    def created_by_id(self, lib: str, page_id: str) -> CreatedPage:
        return next(p for p in self.created.values() if p.lib == lib and p.id == page_id)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # -- request handling --------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        lib = request.url.host.split(".")[0]
        raw_path = request.url.raw_path.decode("ascii").split("?")[0]
        if not raw_path.startswith(API_PREFIX):
            return httpx.Response(404)
        ref, _, rest = raw_path[len(API_PREFIX) :].partition("/")
        decoded = unquote(unquote(ref))

        for method, fragment in self.fail_rules:
            if request.method == method and fragment in f"{decoded}/{unquote(rest)}":
                return httpx.Response(500, json={"error": "internal"})

        if ref.startswith("="):
            path = decoded[1:]
            if request.method == "POST" and rest == "contents":
                return self._create(lib, path, request)
            page = next(
                (p for p in self.pages.values() if p.lib == lib and p.path == path), None
            )
            if page is None or rest:
                return httpx.Response(404)
            return httpx.Response(200, json=self._info(page))

        if request.method == "PUT":
            return self._update(lib, ref, rest, request)

        page = self.pages.get((lib, ref))
        if page is None:
            return httpx.Response(404)
        if rest == "subpages":
            children = [self._subpage(self.pages[(lib, cid)]) for cid in page.children]
            return httpx.Response(200, json={"page.subpage": self._one_or_many(children)})
        if rest == "properties":
            entries = [{"@name": n, "contents": {"#text": v}} for n, v in page.props]
            return httpx.Response(200, json={"property": self._one_or_many(entries)})
        if rest == "contents":
            return httpx.Response(200, json={"body": page.contents})
        if rest.startswith("files/"):
            if page.thumbnail is None:
                return httpx.Response(404)
            return httpx.Response(
                200, content=page.thumbnail, headers={"Content-Type": "image/png"}
            )
        return httpx.Response(404)

    @staticmethod
    def _one_or_many(items: list[Any]) -> Any:
        if not items:
            return ""
        if len(items) == 1:
            return items[0]
        return items

    def _info(self, page: FakePage) -> dict[str, Any]:
        tags = [{"@value": t} for t in page.tags]
        return {
            "@id": int(page.id) if page.id.isdigit() else page.id,
            "uri.ui": self.url(page),
            "title": page.title,
            "tags": {"tag": self._one_or_many(tags)} if tags else "",
        }

    def _subpage(self, page: FakePage) -> dict[str, Any]:
        return {"@id": page.id, "uri.ui": self.url(page), "title": page.title}

    def _create(self, lib: str, path: str, request: httpx.Request) -> httpx.Response:
        if (lib, path) in self.created:
            return httpx.Response(409, json={"@status": "conflict"})
        self._next_id += 1
        new_id = str(self._next_id)
        self.created[(lib, path)] = CreatedPage(
            lib=lib,
            id=new_id,
            path=path,
            title=request.url.params.get("title", ""),
            contents=request.content.decode("utf-8"),
        )
        return httpx.Response(200, json={"@status": "success", "page": {"@id": new_id}})

    def _update(self, lib: str, page_id: str, rest: str, request: httpx.Request):
        try:
            page = self.created_by_id(lib, page_id)
        except StopIteration:
            return httpx.Response(404)
        if rest == "tags":
            page.tags_xml = request.content.decode("utf-8")
        elif rest == "properties":
            page.properties_xml = request.content.decode("utf-8")
        elif rest.startswith("files/"):
            page.thumbnail = (request.content, request.headers.get("content-type", ""))
        else:
            return httpx.Response(404)
        return httpx.Response(200, json={"@status": "success"})


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with all pauses disabled and test buckets configured."""
    return Settings(
        rate_limit=RateLimitConfig(
            after_subpage_listing=0,
            after_subtree=0,
            before_content_fetch=0,
            between_writes=0,
            before_thumbnail=0,
        ),
        aws=AWSConfig(
            region="us-west-2",
            input_bucket=INPUT_BUCKET,
            output_bucket=OUTPUT_BUCKET,
            translate_role_arn="arn:aws:iam::123456789012:role/translate",
            ssm_library_keys_path="/polyglot/libraries/",
            queue_url="https://sqs.us-west-2.amazonaws.com/123456789012/polyglot.fifo",
        ),
        notification=NotificationConfig(from_address="engine@example.org"),
        logging=LoggingConfig(file=None),
    )


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def translation_service() -> FakeTranslationService:
    return FakeTranslationService()


@pytest.fixture
def secret_store() -> FakeSecretStore:
    return FakeSecretStore()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def work_queue() -> FakeWorkQueue:
    return FakeWorkQueue()


@pytest.fixture
def services(object_store, translation_service, secret_store, email_sender, work_queue):
    return Services(
        object_store=object_store,
        translation=translation_service,
        secrets=secret_store,
        email=email_sender,
        queue=work_queue,
    )


@pytest.fixture
def library() -> FakeLibrary:
    return FakeLibrary()


@pytest.fixture
async def http(library):
    async with httpx.AsyncClient(transport=library.transport()) as client:
        yield client


@pytest.fixture
def client_pool(secret_store, http, settings) -> LibraryClientPool:
    return LibraryClientPool(CredentialsProvider(secret_store), http, settings.platform)


@pytest.fixture
def chem_text(library) -> FakePage:
    """
    A small text on the "chem" library:

    Intro Chem (cover)
    ├── 1: Atoms
    │   └── 1.1: Intro
    └── Back Matter
    """
    cover = library.add_page(
        FakePage(
            lib="chem",
            id="100",
            path="Bookshelves/Intro_Chem",
            title="Intro Chem",
            tags=["coverpage:yes", "article:topic-category"],
            contents="<p>Welcome {{template.ShowOrg()}}</p>",
            props=[
                ("mindtouch.page#overview", "An introduction to chemistry."),
                ("mindtouch.idf.guideTabs", '[ { "title": "Tab" } ]'),
                ("mindtouch.page#editedby", "someone"),
            ],
            thumbnail=b"\x89PNG-cover",
        )
    )
    atoms = library.add_page(
        FakePage(
            lib="chem",
            id="101",
            path="Bookshelves/Intro_Chem/1%3A_Atoms",
            title="1: Atoms",
            tags=["article:topic-guide"],
            contents="<p>Mass is \\(m\\).</p>",
        ),
        parent=cover,
    )
    library.add_page(
        FakePage(
            lib="chem",
            id="103",
            path="Bookshelves/Intro_Chem/1%3A_Atoms/1.1%3A_Intro",
            title="1.1: Intro",
            tags=["article:topic"],
            contents="<p>\\[E=mc^2\\]</p>",
        ),
        parent=atoms,
    )
    library.add_page(
        FakePage(
            lib="chem",
            id="102",
            path="Bookshelves/Intro_Chem/zz%3A_Back_Matter",
            title="Back Matter",
            contents="<p>Index</p>",
        ),
        parent=cover,
    )
    return cover


def seed_translated_output(
    store: FakeObjectStore,
    translation: FakeTranslationService,
    root_key: str,
    language: str = "es",
    job_id: str = "job-1",
    rewrite=None,
) -> str:
    """
    Write translated output, as the translation service would, for every page
    exported under root_key. Returns the job's output URI.
    """
    output_uri = f"s3://{OUTPUT_BUCKET}/{root_key}/123456789012-TranslateText-{job_id}/"
    details = []
    for bucket, key in list(store.objects):
        if bucket != INPUT_BUCKET or not key.startswith(f"{root_key}/"):
            continue
        name = key.split("/", 1)[1]
        body = store.objects[(bucket, key)]
        translated = rewrite(body) if rewrite else body
        store.put_uri(f"{output_uri}{language}.{name}", translated)
        details.append({"sourceFile": name, "targetFile": f"{language}.{name}"})

    manifest = {
        "sourceLanguageCode": "en",
        "targetLanguageCode": language,
        "charactersTranslated": "1234",
        "documentCountWithCustomerError": "0",
        "documentCountWithServerError": "0",
        "inputDataPrefix": f"s3://{INPUT_BUCKET}/{root_key}/",
        "outputDataPrefix": output_uri,
        "details": details,
    }
    store.put_uri(
        f"{output_uri}details/{language}.auxiliary-translation-details.json",
        json.dumps(manifest),
    )
    translation.jobs[job_id] = JobOutputLocation(
        job_id=job_id,
        output_uri=output_uri,
        target_languages=[language],
        job_name=root_key,
    )
    return output_uri


@pytest.fixture
def reset_package_logger():
    """Undo setup_logging so later tests see default logging behaviour."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
