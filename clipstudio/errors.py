"""Error types raised by the transcription and clipping pipeline."""


class ClipStudioError(RuntimeError):
    """Base error. ``hint`` is a short corrective action for the user."""

    hint = "Check the server logs for details."

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        if hint is not None:
            self.hint = hint


class FFmpegNotFoundError(ClipStudioError):
    hint = "Install ffmpeg and make sure ffmpeg and ffprobe are on PATH."


class ProcessTimeoutError(ClipStudioError):
    hint = "The media tool stopped responding; try a shorter or smaller file."


class ProbeError(ClipStudioError):
    hint = "The file could not be read as media; re-export it as MP4 or WAV."


class ExtractionError(ClipStudioError):
    """ffmpeg exited non-zero or produced no output file."""

    hint = "The audio track could not be extracted; check that the file has sound."

    def __init__(self, message: str, stderr: str = "", hint: str | None = None):
        super().__init__(message, hint)
        self.stderr = stderr


class TranscriptionServiceError(ClipStudioError):
    hint = "The transcription service failed; try again in a few minutes."


class InvalidClipRequestError(ClipStudioError, ValueError):
    hint = "Clips must be longer than 0 seconds and at most 5 minutes."


class PipelineTimeoutError(ClipStudioError):
    hint = "Processing took too long; try a smaller file or split the recording."


class IngestError(ClipStudioError):
    """Base for upload rejections. ``status_code`` is the HTTP status to send."""

    status_code = 400
    hint = "Upload the file again."


class TooLargeError(IngestError):
    status_code = 413
    hint = "Try a smaller file."


class InvalidTypeError(IngestError):
    status_code = 415
    hint = "Upload an audio or video file."


class StreamError(IngestError):
    status_code = 400
    hint = "The upload was interrupted; upload the file again."


class MultipleFilesError(IngestError):
    status_code = 400
    hint = "Upload exactly one file per request."


class MissingFileError(IngestError):
    status_code = 400
    hint = "Attach a file in the 'file' field."
