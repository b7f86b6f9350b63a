"""
Service factory.

Creates the AWS-backed service implementations from configuration.
"""

from __future__ import annotations

from typing import Any

import boto3

from polyglot_engine.config import Settings
from polyglot_engine.services.aws import (
    AWSTranslateService,
    S3ObjectStore,
    SESEmailSender,
    SQSWorkQueue,
    SSMSecretStore,
)
from polyglot_engine.services.base import Services


def create_services(settings: Settings, session: Any | None = None) -> Services:
    """
    Create the services one invocation needs.

    Args:
        settings: Engine settings.
        session: boto3 Session to create clients from. If None, a session is
            created for the configured region (or the default region chain).

    Returns:
        Services with object storage, translation and secrets, plus email and
        queue clients when they are configured.

    Raises:
        ValueError: If the buckets or translation role are not configured.
    """
    aws = settings.aws
    missing = [
        name
        for name, value in (
            ("input_bucket", aws.input_bucket),
            ("output_bucket", aws.output_bucket),
            ("translate_role_arn", aws.translate_role_arn),
        )
        if not value
    ]
    if missing:
        raise ValueError(f"AWS settings missing: {', '.join(missing)}")

    if session is None:
        session = boto3.session.Session(region_name=aws.region or None)

    email = None
    if settings.notification.from_address:
        email = SESEmailSender(session.client("sesv2"), settings.notification.from_address)

    queue = None
    if aws.queue_url:
        queue = SQSWorkQueue(session.client("sqs"), aws.queue_url, aws.queue_group_id)

    return Services(
        object_store=S3ObjectStore(session.client("s3")),
        translation=AWSTranslateService(session.client("translate"), aws.translate_role_arn),
        secrets=SSMSecretStore(session.client("ssm"), aws.ssm_library_keys_path),
        email=email,
        queue=queue,
    )


def create_secret_store(settings: Settings, session: Any | None = None) -> SSMSecretStore:
    """Create only the library secret store, for read-only commands."""
    if session is None:
        session = boto3.session.Session(region_name=settings.aws.region or None)
    return SSMSecretStore(session.client("ssm"), settings.aws.ssm_library_keys_path)
