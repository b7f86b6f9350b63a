"""Tests for request signing and credential resolution."""

from __future__ import annotations

import asyncio
import hashlib
import hmac

import pytest

from polyglot_engine.auth import CredentialsProvider, LibraryCredentials, generate_request_headers
from polyglot_engine.errors import AuthRetrievalError

from .conftest import FakeSecretStore


class TestGenerateRequestHeaders:
    """Tests for the signed token headers."""

    def test_token_format(self):
        creds = LibraryCredentials(lib="chem", key="abc", secret="s3cret")
        headers = generate_request_headers(creds, "LibreBot", now=1700000000)

        expected = hmac.new(b"s3cret", b"abc1700000000=LibreBot", hashlib.sha256).hexdigest()
        assert headers["X-Deki-Token"] == f"abc_1700000000_=LibreBot_{expected}"
        assert headers["X-Requested-With"] == "XMLHttpRequest"

    def test_tokens_depend_on_time(self):
        creds = LibraryCredentials(lib="chem", key="abc", secret="s3cret")
        first = generate_request_headers(creds, now=1)["X-Deki-Token"]
        second = generate_request_headers(creds, now=2)["X-Deki-Token"]
        assert first != second

    def test_incomplete_credentials(self):
        with pytest.raises(AuthRetrievalError):
            generate_request_headers(LibraryCredentials(lib="chem", key="", secret="x"))

    def test_secret_hidden_from_repr(self):
        creds = LibraryCredentials(lib="chem", key="abc", secret="s3cret")
        assert "s3cret" not in repr(creds)


class TestCredentialsProvider:
    """Tests for per-invocation credential caching."""

    @pytest.mark.asyncio
    async def test_looks_up_each_library_once(self):
        store = FakeSecretStore()
        provider = CredentialsProvider(store)

        results = await asyncio.gather(*(provider.get("chem") for _ in range(5)))
        await provider.get("bio")

        assert all(r.key == "chem-key" for r in results)
        assert store.calls == ["chem", "bio"]

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self):
        store = FakeSecretStore(missing={"chem"})
        provider = CredentialsProvider(store)

        with pytest.raises(AuthRetrievalError):
            await provider.get("chem")
        store.missing.clear()
        creds = await provider.get("chem")

        assert creds.secret == "chem-secret"
        assert store.calls == ["chem", "chem"]
