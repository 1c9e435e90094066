"""Blob stores: key validation, the local backend, and R2 against a stubbed S3 client."""
import io

import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from lingai.errors import BlobStoreError, InvalidArgument
from lingai.storage import LocalBlobStore, R2BlobStore, validate_key


class TestValidateKey:
    @pytest.mark.parametrize("key", ["", "/etc/passwd", "audio/../secret", "./x", "a/./b"])
    def test_rejects_unsafe_keys(self, key):
        with pytest.raises(InvalidArgument):
            validate_key(key)

    def test_normalizes_backslashes(self):
        assert validate_key("audio\\sentences\\1.mp3") == "audio/sentences/1.mp3"


class TestLocalBlobStore:
    async def test_put_get_overwrite(self, tmp_path):
        store = LocalBlobStore(tmp_path)

        assert await store.put("recap/users/1/lessons/7.md", b"v1", content_type="text/markdown") == "recap/users/1/lessons/7.md"
        await store.put("recap/users/1/lessons/7.md", b"v2", content_type="text/markdown")

        assert await store.get("recap/users/1/lessons/7.md") == b"v2"
        assert await store.exists("recap/users/1/lessons/7.md")
        assert not list(tmp_path.rglob("*.part"))

    async def test_missing_key(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        assert await store.get("audio/none.mp3") is None
        assert not await store.exists("audio/none.mp3")
        assert await store.delete("audio/none.mp3") is False

    async def test_list_and_delete(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        for key in ("audio/sentences/1.mp3", "audio/sentences/2.mp3", "images/lessons/1/1-0.png"):
            await store.put(key, b"x", content_type="application/octet-stream")

        assert await store.list("audio/") == ["audio/sentences/1.mp3", "audio/sentences/2.mp3"]
        assert await store.delete("audio/sentences/1.mp3") is True
        assert await store.list() == ["audio/sentences/2.mp3", "images/lessons/1/1-0.png"]

    async def test_traversal_is_refused(self, tmp_path):
        store = LocalBlobStore(tmp_path / "root")
        with pytest.raises(InvalidArgument):
            await store.put("../escape.txt", b"x", content_type="text/plain")


@pytest.fixture
def r2():
    store = R2BlobStore(
        account_id="acct", access_key_id="key", secret_access_key="secret", bucket_name="lingai"
    )
    with Stubber(store.s3_client) as stubber:
        yield store, stubber
        stubber.assert_no_pending_responses()


class TestR2BlobStore:
    async def test_put_sends_content_type(self, r2):
        store, stubber = r2
        stubber.add_response(
            "put_object",
            {},
            {"Bucket": "lingai", "Key": "audio/sentences/1.mp3", "Body": b"ID3", "ContentType": "audio/mpeg"},
        )

        assert await store.put("audio/sentences/1.mp3", b"ID3", content_type="audio/mpeg") == "audio/sentences/1.mp3"

    async def test_get_and_missing_key(self, r2):
        store, stubber = r2
        stubber.add_response(
            "get_object",
            {"Body": StreamingBody(io.BytesIO(b"# Recap"), len(b"# Recap"))},
            {"Bucket": "lingai", "Key": "recap/users/1/lessons/7.md"},
        )
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

        assert await store.get("recap/users/1/lessons/7.md") == b"# Recap"
        assert await store.get("recap/users/1/lessons/8.md") is None

    async def test_other_errors_are_wrapped(self, r2):
        store, stubber = r2
        stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(BlobStoreError):
            await store.get("images/lessons/1/1-0.png")

    async def test_list_follows_pagination(self, r2):
        store, stubber = r2
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "audio/sentences/2.mp3"}], "IsTruncated": True, "NextContinuationToken": "page-2"},
            {"Bucket": "lingai", "Prefix": "audio/"},
        )
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "audio/sentences/1.mp3"}], "IsTruncated": False},
            {"Bucket": "lingai", "Prefix": "audio/", "ContinuationToken": "page-2"},
        )

        assert await store.list("audio/") == ["audio/sentences/1.mp3", "audio/sentences/2.mp3"]

    async def test_unsafe_key_never_reaches_the_bucket(self, r2):
        store, _ = r2
        with pytest.raises(InvalidArgument):
            await store.put("../x", b"x", content_type="text/plain")
