"""Attachment upload sequencing.

Small payloads go up in one request. Payloads over the threshold are
uploaded in chunks: an initiate request reserves the attachment ID, then
each byte range is sent in order with a ``Content-Range`` header since
every chunk extends the partial object the service holds. Either way
the attachment is finally linked to the work item as an ``AttachedFile``
relation.

The sequence runs as a small state machine:

    IDLE -> INITIATED -> UPLOADING ... -> LINKING -> DONE   (chunked)
    IDLE -> LINKING -> DONE                                 (single request)

Any failure moves the upload to FAILED. Chunks already sent are not
cleaned up.
"""
import base64
import binascii
import enum
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from .errors import InvalidArgumentError
from .patches import ATTACHED_FILE, JSON_PATCH_HEADERS, add_relation_op
from .session import SessionContext, quote_segment

logger = logging.getLogger("azdo-mcp.uploads")

OCTET_STREAM = {"Content-Type": "application/octet-stream"}


class UploadState(str, enum.Enum):
    IDLE = "idle"
    INITIATED = "initiated"
    UPLOADING = "uploading"
    LINKING = "linking"
    DONE = "done"
    FAILED = "failed"


class UploadStateError(Exception):
    """Raised when the upload sequence attempts an illegal step."""

    def __init__(
        self,
        message: str,
        current_state: UploadState,
        requested_state: UploadState,
        allowed_transitions: list[UploadState]
    ):
        super().__init__(message)
        self.current_state = current_state
        self.requested_state = requested_state
        self.allowed_transitions = allowed_transitions


# Maps current state -> states reachable from it
TRANSITION_MATRIX: dict[UploadState, list[UploadState]] = {
    UploadState.IDLE: [
        UploadState.INITIATED,  # chunked: attachment ID reserved
        UploadState.LINKING,    # single request: content already stored
        UploadState.FAILED,
    ],
    UploadState.INITIATED: [
        UploadState.UPLOADING,
        UploadState.FAILED,
    ],
    UploadState.UPLOADING: [
        UploadState.UPLOADING,  # next chunk
        UploadState.LINKING,
        UploadState.FAILED,
    ],
    UploadState.LINKING: [
        UploadState.DONE,
        UploadState.FAILED,
    ],
    UploadState.DONE: [],
    UploadState.FAILED: [],
}


def validate_transition(current: UploadState, new: UploadState) -> None:
    """Raise UploadStateError unless ``current -> new`` is in the matrix."""
    allowed = TRANSITION_MATRIX.get(current, [])
    if new not in allowed:
        allowed_names = ", ".join(s.value for s in allowed) or "nothing (terminal)"
        raise UploadStateError(
            f"Invalid upload transition: {current.value} → {new.value}. "
            f"From {current.value} you can only move to: {allowed_names}.",
            current_state=current,
            requested_state=new,
            allowed_transitions=allowed,
        )


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range ``[start, end]`` of a ``total``-byte payload."""

    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def chunk_ranges(total: int, chunk_size: int) -> list[ByteRange]:
    """Partition ``[0, total)`` into consecutive ranges of at most ``chunk_size`` bytes."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [
        ByteRange(start=start, end=min(start + chunk_size, total) - 1, total=total)
        for start in range(0, total, chunk_size)
    ]


def decode_content(content: str) -> bytes:
    """Decode Base64 file content.

    Raises:
        InvalidArgumentError: If ``content`` is not valid Base64
    """
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidArgumentError(f"Invalid argument 'content': not valid Base64 ({e})", field="content") from e


class AttachmentUpload:
    """Uploads one payload and attaches it to a work item.

    Args:
        session: Session providing the HTTP client and URLs
        project: Project that owns the attachment
        work_item_id: Work item receiving the AttachedFile relation
        file_name: Name recorded on the attachment
        data: Decoded payload
        chunk_size: Maximum bytes per chunk in chunked mode
        threshold: Payloads larger than this are uploaded in chunks
        comment: Stored on the relation
    """

    def __init__(
        self,
        session: SessionContext,
        project: str,
        work_item_id: int,
        file_name: str,
        data: bytes,
        chunk_size: int,
        threshold: int,
        comment: Optional[str] = None,
    ):
        self.session = session
        self.project = project
        self.work_item_id = work_item_id
        self.file_name = file_name
        self.data = data
        self.chunk_size = chunk_size
        self.threshold = threshold
        self.comment = comment

        self.state = UploadState.IDLE
        self.attachment_id: Optional[str] = None
        self.url: Optional[str] = None
        self.last_chunk_index = -1
        self.chunk_count = 0

    @property
    def chunked(self) -> bool:
        return len(self.data) > self.threshold

    @property
    def attachments_path(self) -> str:
        return f"/{quote_segment(self.project)}/_apis/wit/attachments"

    def _transition(self, new_state: UploadState) -> None:
        validate_transition(self.state, new_state)
        logger.debug(f"Upload {self.file_name}: {self.state.value} → {new_state.value}")
        self.state = new_state

    async def run(self) -> dict:
        """Drive the upload to DONE and return the attachment summary."""
        client = self.session.get_client()
        try:
            if self.chunked:
                await self._initiate(client)
                await self._upload_chunks(client)
            else:
                await self._upload_single(client)
            await self._link(client)
        except Exception:
            if self.state not in (UploadState.DONE, UploadState.FAILED):
                self.state = UploadState.FAILED
            logger.error(
                f"Upload of {self.file_name} to work item {self.work_item_id} failed "
                f"(attachment {self.attachment_id}, last chunk {self.last_chunk_index})"
            )
            raise

        return {
            "attachmentId": self.attachment_id,
            "url": self.url,
            "fileName": self.file_name,
            "size": len(self.data),
            "uploadMode": "chunked" if self.chunked else "single",
            "chunks": self.chunk_count,
            "workItemId": self.work_item_id,
        }

    async def _upload_single(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            self.attachments_path,
            params=self.session.params(fileName=self.file_name),
            content=self.data,
            headers=OCTET_STREAM,
        )
        response.raise_for_status()
        result = response.json()
        self.attachment_id = result["id"]
        self.url = result["url"]
        self.chunk_count = 1
        logger.info(f"Uploaded {self.file_name} ({len(self.data)} bytes) as attachment {self.attachment_id}")
        self._transition(UploadState.LINKING)

    async def _initiate(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            self.attachments_path,
            params=self.session.params(fileName=self.file_name, uploadType="Chunked"),
            content=b"",
            headers=OCTET_STREAM,
        )
        response.raise_for_status()
        self.attachment_id = response.json()["id"]
        logger.info(f"Started chunked upload of {self.file_name} as attachment {self.attachment_id}")
        self._transition(UploadState.INITIATED)

    async def _upload_chunks(self, client: httpx.AsyncClient) -> None:
        ranges = chunk_ranges(len(self.data), self.chunk_size)
        self.chunk_count = len(ranges)
        for index, byte_range in enumerate(ranges):
            self._transition(UploadState.UPLOADING)
            response = await client.put(
                f"{self.attachments_path}/{self.attachment_id}",
                params=self.session.params(fileName=self.file_name, uploadType="Chunked"),
                content=self.data[byte_range.start:byte_range.end + 1],
                headers={**OCTET_STREAM, "Content-Range": byte_range.content_range()},
            )
            response.raise_for_status()
            self.last_chunk_index = index
            logger.info(f"Uploaded chunk {index + 1}/{len(ranges)} ({byte_range.content_range()})")

        self.url = (
            f"{self.session.org_url}/{quote_segment(self.project)}/_apis/wit/attachments/"
            f"{self.attachment_id}?fileName={quote(self.file_name)}"
        )
        self._transition(UploadState.LINKING)

    async def _link(self, client: httpx.AsyncClient) -> None:
        patch = [add_relation_op(ATTACHED_FILE, self.url, {"comment": self.comment or ""})]
        response = await client.patch(
            f"/{quote_segment(self.project)}/_apis/wit/workitems/{self.work_item_id}",
            params=self.session.params(),
            json=patch,
            headers=JSON_PATCH_HEADERS,
        )
        response.raise_for_status()
        logger.info(f"Linked attachment {self.attachment_id} to work item {self.work_item_id}")
        self._transition(UploadState.DONE)
