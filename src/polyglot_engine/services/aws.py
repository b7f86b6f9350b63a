"""
AWS implementations of the service interfaces.

boto3 clients are synchronous, so every call is run in a worker thread with
asyncio.to_thread and only suspends the calling task.
"""

from __future__ import annotations

import asyncio
from typing import Any

from botocore.exceptions import ClientError

from polyglot_engine.auth import LibraryCredentials
from polyglot_engine.errors import AuthRetrievalError, ObjectNotFoundError
from polyglot_engine.services.base import (
    BatchJobRequest,
    EmailSender,
    JobOutputLocation,
    ObjectStore,
    SecretStore,
    SubmittedJob,
    TranslationService,
    WorkQueue,
)


def _status_code(response: dict[str, Any]) -> int | None:
    return response.get("ResponseMetadata", {}).get("HTTPStatusCode")


class S3ObjectStore(ObjectStore):
    """Object storage on Amazon S3."""

    def __init__(self, client: Any):
        """
        Initialize with a boto3 S3 client.

        Args:
            client: boto3 client for "s3".
        """
        self._client = client

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: str | bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        data = body.encode("utf-8") if isinstance(body, str) else body
        response = await asyncio.to_thread(
            self._client.put_object,
            Bucket=bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        status = _status_code(response)
        if status is not None and status != 200:
            raise OSError(f"S3 PutObject returned HTTP {status} for s3://{bucket}/{key}")

    async def get_object(self, bucket: str, key: str) -> str:
        def _read() -> str:
            try:
                response = self._client.get_object(Bucket=bucket, Key=key)
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code")
                if code in ("NoSuchKey", "404", "NotFound"):
                    raise ObjectNotFoundError(f"s3://{bucket}/{key} not found") from e
                raise
            return response["Body"].read().decode("utf-8")

        return await asyncio.to_thread(_read)


class AWSTranslateService(TranslationService):
    """Batch translation with Amazon Translate."""

    def __init__(self, client: Any, data_access_role_arn: str):
        """
        Initialize with a boto3 Translate client.

        Args:
            client: boto3 client for "translate".
            data_access_role_arn: IAM role Translate assumes to read/write S3.
        """
        self._client = client
        self._role_arn = data_access_role_arn

    async def start_batch_job(self, request: BatchJobRequest) -> SubmittedJob:
        response = await asyncio.to_thread(
            self._client.start_text_translation_job,
            JobName=request.job_name,
            InputDataConfig={"S3Uri": request.input_uri, "ContentType": request.content_type},
            OutputDataConfig={"S3Uri": request.output_uri},
            DataAccessRoleArn=self._role_arn,
            SourceLanguageCode=request.source_language,
            TargetLanguageCodes=[request.target_language],
        )
        status = _status_code(response)
        if status is not None and status != 200:
            raise RuntimeError(f"StartTextTranslationJob returned HTTP {status}")
        return SubmittedJob(job_id=response.get("JobId", ""), status=response.get("JobStatus", ""))

    async def describe_job(self, job_id: str) -> JobOutputLocation:
        response = await asyncio.to_thread(
            self._client.describe_text_translation_job,
            JobId=job_id,
        )
        props = response["TextTranslationJobProperties"]
        return JobOutputLocation(
            job_id=job_id,
            output_uri=props["OutputDataConfig"]["S3Uri"],
            target_languages=list(props.get("TargetLanguageCodes") or []),
            job_name=props.get("JobName", ""),
        )


class SSMSecretStore(SecretStore):
    """Library key/secret pairs stored as SSM parameters under `<path><lib>/`."""

    def __init__(self, client: Any, base_path: str):
        """
        Initialize with a boto3 SSM client.

        Args:
            client: boto3 client for "ssm".
            base_path: Parameter path prefix the library name is appended to.
        """
        self._client = client
        self._base_path = base_path

    async def get_library_credentials(self, lib: str) -> LibraryCredentials:
        try:
            response = await asyncio.to_thread(
                self._client.get_parameters_by_path,
                Path=f"{self._base_path}{lib}",
                MaxResults=10,
                Recursive=True,
                WithDecryption=True,
            )
        except ClientError as e:
            raise AuthRetrievalError(f"Error retrieving parameters for {lib!r}: {e}") from e

        params = response.get("Parameters")
        if not isinstance(params, list):
            raise AuthRetrievalError("Invalid parameters received.")
        key = next((p for p in params if f"{lib}/key" in p.get("Name", "")), None)
        secret = next((p for p in params if f"{lib}/secret" in p.get("Name", "")), None)
        if key is None or secret is None:
            raise AuthRetrievalError(f"Error retrieving key or secret for {lib!r}.")
        return LibraryCredentials(lib=lib, key=key["Value"], secret=secret["Value"])


class SESEmailSender(EmailSender):
    """Email through Amazon SES (v2 API)."""

    def __init__(self, client: Any, from_address: str):
        """
        Initialize with a boto3 SESv2 client.

        Args:
            client: boto3 client for "sesv2".
            from_address: Verified sender address.
        """
        self._client = client
        self._from_address = from_address

    async def send_html(self, to: list[str], subject: str, html: str) -> None:
        await asyncio.to_thread(
            self._client.send_email,
            FromEmailAddress=self._from_address,
            Destination={"ToAddresses": list(to)},
            Content={
                "Simple": {
                    "Subject": {"Data": subject},
                    "Body": {"Html": {"Data": html}},
                }
            },
        )


class SQSWorkQueue(WorkQueue):
    """FIFO request queue on Amazon SQS."""

    def __init__(self, client: Any, queue_url: str, group_id: str):
        """
        Initialize with a boto3 SQS client.

        Args:
            client: boto3 client for "sqs".
            queue_url: URL of the FIFO queue.
            group_id: Message group all requests are sent under.
        """
        self._client = client
        self._queue_url = queue_url
        self._group_id = group_id

    async def send_message(self, body: str) -> None:
        await asyncio.to_thread(
            self._client.send_message,
            QueueUrl=self._queue_url,
            MessageBody=body,
            MessageGroupId=self._group_id,
        )

    async def delete_message(self, receipt_handle: str) -> None:
        await asyncio.to_thread(
            self._client.delete_message,
            QueueUrl=self._queue_url,
            ReceiptHandle=receipt_handle,
        )
