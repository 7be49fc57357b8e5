"""Streaming multipart upload ingestion.

The request body is parsed incrementally with werkzeug's sans-IO multipart
decoder and the single file part is written straight to disk, so memory use
stays at one read block no matter how large the upload is.
"""

import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from werkzeug.exceptions import ClientDisconnected
from werkzeug.http import parse_options_header
from werkzeug.sansio.multipart import Data, Epilogue, Field, File, MultipartDecoder, NeedData

from clipstudio.errors import (
    InvalidTypeError,
    MissingFileError,
    MultipleFilesError,
    StreamError,
    TooLargeError,
)
from clipstudio.models import MediaHandle

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 500 * 1024 * 1024
DEFAULT_MAX_FIELD_BYTES = 1024 * 1024
DEFAULT_BLOCK_SIZE = 64 * 1024

_SAFE_SUFFIX = re.compile(r"\.[A-Za-z0-9]{1,8}")


@dataclass
class IngestResult:
    """An accepted upload. The caller takes ownership of ``media``."""

    media: MediaHandle
    filename: str
    mimetype: str
    size: int
    fields: dict[str, str] = field(default_factory=dict)


def _part_mimetype(part: File) -> str:
    declared, _ = parse_options_header(part.headers.get("Content-Type", ""))
    if declared and declared != "application/octet-stream":
        return declared.lower()
    guessed, _ = mimetypes.guess_type(part.filename or "")
    return (guessed or declared or "").lower()


def _suffix_for(filename: str, mimetype: str) -> str:
    suffix = Path(filename).suffix
    if _SAFE_SUFFIX.fullmatch(suffix):
        return suffix.lower()
    return mimetypes.guess_extension(mimetype) or ".bin"


def _read_blocks(stream: BinaryIO, block_size: int):
    """Yield blocks from *stream*, then None once it is exhausted."""
    while True:
        try:
            block = stream.read(block_size)
        except (OSError, ClientDisconnected) as e:
            raise StreamError(f"Upload stream failed: {e}") from e
        if not block:
            break
        yield block
    yield None


def ingest_upload(
    stream: BinaryIO,
    content_type: str,
    work_dir: Path,
    content_length: int | None = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    accept: tuple[str, ...] = ("video/",),
    max_field_bytes: int = DEFAULT_MAX_FIELD_BYTES,
    block_size: int = DEFAULT_BLOCK_SIZE,
    operation_id: str | None = None,
) -> IngestResult:
    """Stream a multipart body with exactly one file part to ``work_dir``.

    Raises TooLargeError, InvalidTypeError, StreamError, MultipleFilesError or
    MissingFileError. ``work_dir`` is created only once a file part is
    accepted, and whatever was written is deleted before an error propagates.
    """
    if content_length is not None and content_length > max_bytes:
        raise TooLargeError(
            f"Upload of {content_length} bytes exceeds the {max_bytes} byte limit"
        )

    form_type, options = parse_options_header(content_type or "")
    boundary = options.get("boundary")
    if form_type != "multipart/form-data" or not boundary:
        raise StreamError(f"Expected multipart/form-data with a boundary, got {content_type!r}")

    operation_id = operation_id or uuid.uuid4().hex[:12]

    decoder = MultipartDecoder(boundary.encode("latin-1"))
    fields: dict[str, str] = {}
    field_name: str | None = None
    field_buffer: list[bytes] = []
    field_size = 0
    media: MediaHandle | None = None
    file_part: File | None = None
    file_mimetype = ""
    out = None
    received = 0
    file_size = 0
    finished = False

    try:
        for block in _read_blocks(stream, block_size):
            if block is not None:
                received += len(block)
                if received > max_bytes:
                    raise TooLargeError(f"Upload exceeds the {max_bytes} byte limit")
            decoder.receive_data(block)

            event = decoder.next_event()
            while not isinstance(event, (Epilogue, NeedData)):
                if isinstance(event, File):
                    if file_part is not None:
                        raise MultipleFilesError("Only one file may be uploaded per request")
                    file_mimetype = _part_mimetype(event)
                    if not any(file_mimetype.startswith(prefix) for prefix in accept):
                        raise InvalidTypeError(
                            f"Unsupported file type {file_mimetype or 'unknown'!r}; "
                            f"expected {', '.join(p + '*' for p in accept)}"
                        )
                    file_part = event
                    field_name = None
                    path = work_dir / f"upload_{operation_id}{_suffix_for(event.filename or '', file_mimetype)}"
                    media = MediaHandle.from_mimetype(path, file_mimetype)
                    work_dir.mkdir(parents=True, exist_ok=True)
                    out = open(path, "wb")
                elif isinstance(event, Field):
                    field_name = event.name
                    field_buffer = []
                    field_size = 0
                elif isinstance(event, Data):
                    if field_name is not None:
                        field_size += len(event.data)
                        if field_size > max_field_bytes:
                            raise TooLargeError(
                                f"Field {field_name!r} exceeds {max_field_bytes} bytes"
                            )
                        field_buffer.append(event.data)
                        if not event.more_data:
                            fields[field_name] = b"".join(field_buffer).decode("utf-8", "replace")
                            field_name = None
                    elif out is not None:
                        out.write(event.data)
                        file_size += len(event.data)
                        if not event.more_data:
                            out.close()
                event = decoder.next_event()
            if isinstance(event, Epilogue):
                finished = True
                break

        if not finished:
            raise StreamError("Upload ended before the multipart body was complete")
        if media is None:
            raise MissingFileError("No file provided")
    except ValueError as e:
        # Malformed multipart framing from the decoder.
        _discard(out, media)
        raise StreamError(f"Malformed upload: {e}") from e
    except OSError as e:
        _discard(out, media)
        raise StreamError(f"Could not store upload: {e}") from e
    except BaseException:
        _discard(out, media)
        raise

    if out is not None and not out.closed:
        out.close()
    logger.info("Stored upload %s (%s, %d bytes) at %s", file_part.filename, file_mimetype, file_size, media.path)
    return IngestResult(
        media=media,
        filename=file_part.filename or media.path.name,
        mimetype=file_mimetype,
        size=file_size,
        fields=fields,
    )


def _discard(out, media: MediaHandle | None) -> None:
    if out is not None and not out.closed:
        out.close()
    if media is not None:
        media.release()
