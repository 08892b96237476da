"""Tests for the R2 storage client and its ObjectStorage wrapper.

All boto3 calls are mocked since R2 is an external service.
"""

import hashlib
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from photomatch.config import settings
from photomatch.utils import r2


@pytest.fixture(autouse=True)
def _reset_r2_client():
    """Reset the singleton R2 client before each test."""
    r2.reset_client()
    yield
    r2.reset_client()


@pytest.fixture()
def mock_s3():
    """Provide a mocked boto3 S3 client."""
    with patch.object(r2, "_build_client") as mock_build:
        mock_client = MagicMock()
        mock_build.return_value = mock_client
        yield mock_client


def _client_error(op: str = "PutObject") -> ClientError:
    return ClientError({"Error": {"Code": "500", "Message": "boom"}}, op)


class TestKeys:
    def test_content_id_is_sha256(self):
        assert r2.content_id(b"abc") == hashlib.sha256(b"abc").hexdigest()

    def test_temp_key_uses_prefix(self):
        assert r2.temp_key("deadbeef") == f"{settings.r2_temp_prefix}/deadbeef"


class TestUploadObject:
    def test_upload_calls_put_object(self, mock_s3):
        """upload_object passes bucket, key, body, type, and metadata through."""
        result = r2.upload_object("image-search/x", b"bytes", "image/png", {"group": "g"})

        mock_s3.put_object.assert_called_once_with(
            Bucket=settings.r2_bucket_name,
            Key="image-search/x",
            Body=b"bytes",
            ContentType="image/png",
            Metadata={"group": "g"},
        )
        assert result == "image-search/x"

    def test_upload_default_content_type(self, mock_s3):
        r2.upload_object("test/key.jpg", b"data")

        call_kwargs = mock_s3.put_object.call_args[1]
        assert call_kwargs["ContentType"] == "image/jpeg"
        assert call_kwargs["Metadata"] == {}


class TestGeneratePresignedUrl:
    def test_generates_url(self, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://r2.example.com/signed"

        url = r2.generate_presigned_url("image-search/abc")

        assert url == "https://r2.example.com/signed"
        mock_s3.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": settings.r2_bucket_name, "Key": "image-search/abc"},
            ExpiresIn=settings.presigned_url_expiry_seconds,
        )

    def test_presign_error_propagates(self, mock_s3):
        mock_s3.generate_presigned_url.side_effect = _client_error("GetObject")
        with pytest.raises(ClientError):
            r2.generate_presigned_url("image-search/abc")


class TestClientSingleton:
    def test_client_built_once(self, mock_s3):
        r2.delete_object("a")
        r2.delete_object("b")
        assert r2._build_client.call_count == 1


class TestR2Storage:
    @pytest.mark.asyncio
    async def test_upload_key_is_hash_plus_nonce(self, mock_s3):
        mock_s3.generate_presigned_url.return_value = "https://r2.example.com/signed"
        data = b"photo-bytes"

        asset = await r2.R2Storage().upload(
            data, "g1", filename="shoe.jpg", content_type="image/jpeg"
        )

        digest = hashlib.sha256(data).hexdigest()
        assert asset.cid.startswith(f"{digest}-")
        assert len(asset.cid) == len(digest) + 1 + 32
        assert asset.url == "https://r2.example.com/signed"
        kwargs = mock_s3.put_object.call_args.kwargs
        assert kwargs["Key"] == r2.temp_key(asset.cid)
        assert kwargs["Metadata"] == {"group": "g1", "sha256": digest, "filename": "shoe.jpg"}

    @pytest.mark.asyncio
    async def test_same_bytes_get_distinct_keys(self, mock_s3):
        """Two uploads of one photo must not share an object."""
        mock_s3.generate_presigned_url.return_value = "https://r2.example.com/signed"
        storage = r2.R2Storage()
        first = await storage.upload(b"same", "g1")
        second = await storage.upload(b"same", "g1")

        assert first.cid != second.cid
        keys = [c.kwargs["Key"] for c in mock_s3.put_object.call_args_list]
        assert keys[0] != keys[1]

    @pytest.mark.asyncio
    async def test_upload_error_propagates(self, mock_s3):
        mock_s3.put_object.side_effect = _client_error()
        with pytest.raises(ClientError):
            await r2.R2Storage().upload(b"data", "g1")
        mock_s3.generate_presigned_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_presign_failure_removes_object(self, mock_s3):
        mock_s3.generate_presigned_url.side_effect = _client_error("GetObject")

        with pytest.raises(ClientError):
            await r2.R2Storage().upload(b"data", "g1")

        put_key = mock_s3.put_object.call_args.kwargs["Key"]
        mock_s3.delete_object.assert_called_once_with(
            Bucket=settings.r2_bucket_name,
            Key=put_key,
        )

    @pytest.mark.asyncio
    async def test_delete_by_cid(self, mock_s3):
        await r2.R2Storage().delete("abc123")
        mock_s3.delete_object.assert_called_once_with(
            Bucket=settings.r2_bucket_name, Key=r2.temp_key("abc123")
        )

    @pytest.mark.asyncio
    async def test_check_heads_bucket(self, mock_s3):
        await r2.R2Storage().check()
        mock_s3.head_bucket.assert_called_once_with(Bucket=settings.r2_bucket_name)
