"""
Message ingestion pipeline.

Validates an inbound message, splits its attachments into inline (small) and
object-storage (large) representations, and appends it to the room together
with the unread bumps for everyone but the sender.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from app.config import Settings, get_settings
from app.schemas.chat import (
    Attachment,
    ChatEventKind,
    EmbeddedFile,
    Message,
    ReadReceipt,
)
from app.services.chat_store import ChatRoomStore
from app.services.errors import PermissionDenied, ValidationFailed
from app.services.realtime import RealtimePublisher
from app.services.s3 import S3Service

logger = logging.getLogger(__name__)


@dataclass
class IncomingAttachment:
    """An uploaded file, fully read into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def attachment_category(content_type: str | None) -> str:
    """Top-level MIME type ('image', 'video', ...), used for the storage folder."""
    if not content_type or "/" not in content_type:
        return "application"
    return content_type.split("/", 1)[0] or "application"


class MessageIngestion:
    """Composes and appends chat messages."""

    def __init__(
        self,
        chat_store: ChatRoomStore,
        object_store: S3Service,
        publisher: RealtimePublisher,
        settings: Settings | None = None,
    ):
        self.chat_store = chat_store
        self.object_store = object_store
        self.publisher = publisher
        self.settings = settings or get_settings()

    def _validate(self, content: str | None, attachments: list[IncomingAttachment]) -> None:
        if not content and not attachments:
            raise ValidationFailed("Message must have content or attachments")
        if content and len(content) > self.settings.chat_max_content_length:
            raise ValidationFailed(
                f"Message content exceeds {self.settings.chat_max_content_length} characters"
            )
        if len(attachments) > self.settings.chat_max_attachments:
            raise ValidationFailed(
                f"At most {self.settings.chat_max_attachments} attachments are allowed per message"
            )
        for attachment in attachments:
            if attachment.size == 0:
                raise ValidationFailed(f"{attachment.filename} is empty")
            if attachment.size > self.settings.chat_max_attachment_bytes:
                raise ValidationFailed(f"{attachment.filename} exceeds the maximum attachment size")

    async def send(
        self,
        project_id: str,
        sender_id: str,
        content: str | None,
        attachments: list[IncomingAttachment] | None = None,
    ) -> Message:
        """
        Append a message from sender_id to the project's room.

        Raises:
            NotFound: the room does not exist
            PermissionDenied: the sender is not a participant
            ValidationFailed: empty message, content too long, too many or oversized files
        """
        attachments = attachments or []
        content = content.strip() if content else None

        sender = await self.chat_store.get_participant(project_id, sender_id)
        if sender is None:
            raise PermissionDenied("You are not a participant in this chat")
        self._validate(content, attachments)

        embedded: list[EmbeddedFile] = []
        external: list[Attachment] = []
        uploaded: list[str] = []
        try:
            for attachment in attachments:
                if attachment.size < self.settings.chat_embed_threshold_bytes:
                    embedded.append(
                        EmbeddedFile(
                            data=attachment.data,
                            content_type=attachment.content_type,
                            filename=attachment.filename,
                            size=attachment.size,
                        )
                    )
                    continue

                category = attachment_category(attachment.content_type)
                url = await self.object_store.put(
                    attachment.data,
                    f"projects/{project_id}/chat/{category}s",
                    attachment.filename,
                    attachment.content_type,
                )
                uploaded.append(url)
                external.append(
                    Attachment(url=url, type=category, filename=attachment.filename, size=attachment.size)
                )

            now = datetime.now(timezone.utc)
            message = Message(
                id=str(uuid4()),
                sender=sender,
                content=content,
                embedded_files=embedded,
                attachments=external,
                read_by=[ReadReceipt(user_id=sender.id, read_at=now)],
                created_at=now,
                updated_at=now,
            )
            unread_counts = await self.chat_store.append_message(project_id, message)
        except Exception:
            await self._discard_uploads(uploaded)
            raise

        logger.info(
            "Message %s sent to project %s (embedded=%d, external=%d)",
            message.id, project_id, len(embedded), len(external),
        )
        await self.publisher.publish(
            project_id,
            ChatEventKind.NEW_MESSAGE,
            {
                "message": message.model_dump(mode="json"),
                "unread_counts": [entry.model_dump() for entry in unread_counts],
            },
        )
        return message

    async def _discard_uploads(self, urls: list[str]) -> None:
        for url in urls:
            try:
                await self.object_store.delete(url)
            except Exception:
                logger.exception("Failed to delete orphaned attachment %s", url)
