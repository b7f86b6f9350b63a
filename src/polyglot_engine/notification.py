"""
Completion notifications.

Emails the requesters of a translation once its pages have been written.
Notification is best-effort: a failure is logged and never fails the job.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass

from polyglot_engine.config import NotificationConfig, PlatformConfig
from polyglot_engine.library.paths import assemble_path
from polyglot_engine.services.base import EmailSender

logger = logging.getLogger(__name__)


@dataclass
class CompletionMessage:
    """A composed completion email."""

    subject: str
    html: str
    original_url: str
    translated_url: str


def build_completion_message(
    source_lib: str,
    source_id: str,
    target_lib: str,
    target_path: str,
    platform: PlatformConfig,
    subject: str = "Polyglot Engine: Text Translation Complete",
) -> CompletionMessage:
    """Compose the completion email linking the original and translated texts."""
    original_url = f"{platform.library_url(source_lib)}/@go/page/{source_id}"
    translated_url = assemble_path([f"{platform.library_url(target_lib)}/", target_path])
    body = (
        "<p>The Polyglot Engine has finished processing your request to translate "
        f'<a href="{html.escape(original_url)}" target="_blank" rel="noopener noreferrer">'
        f"{html.escape(source_lib)}-{html.escape(source_id)}</a>.</p>"
        "<p>The translated text should now be available under: "
        f'<a href="{html.escape(translated_url)}" target="_blank" rel="noopener noreferrer">'
        f"{html.escape(translated_url)}</a>.</p>"
    )
    return CompletionMessage(
        subject=subject,
        html=body,
        original_url=original_url,
        translated_url=translated_url,
    )


async def send_completion_notification(
    sender: EmailSender | None,
    notify_addrs: list[str],
    source_lib: str,
    source_id: str,
    target_lib: str,
    target_path: str,
    platform: PlatformConfig,
    config: NotificationConfig | None = None,
) -> bool:
    """
    Send the completion email, if anyone asked for it.

    Returns:
        True if the message was sent or nobody is to be notified, False if
        sending failed.
    """
    if not notify_addrs:
        return True
    if sender is None:
        logger.warning("No email sender configured, skipping completion notification")
        return False

    config = config or NotificationConfig()
    message = build_completion_message(
        source_lib, source_id, target_lib, target_path, platform, subject=config.subject
    )
    try:
        await sender.send_html(list(notify_addrs), message.subject, message.html)
    except Exception as e:
        logger.warning(
            "Error sending a completion notification for %s-%s: %s", source_lib, source_id, e
        )
        return False
    logger.info(
        "Sent completion notification for %s-%s to %d recipients",
        source_lib,
        source_id,
        len(notify_addrs),
    )
    return True
