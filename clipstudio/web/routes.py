"""HTTP routes: upload, background jobs, progress, transcript and clip download."""

import json
import logging
import queue
import shutil
import threading
import uuid
import zipfile
from pathlib import Path

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    request,
    send_file,
)

from clipstudio.editors.captions import FORMATS, render_transcript
from clipstudio.editors.clips import cleanup_clips
from clipstudio.errors import ClipStudioError, IngestError
from clipstudio.ingest import ingest_upload
from clipstudio.models import ClipRequest, Transcript, TranscriptionOutcome

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

# In-memory job store: job_id -> job dict
_jobs: dict[str, dict] = {}

_MIMETYPES = {
    "txt": "text/plain",
    "json": "application/json",
    "srt": "application/x-subrip",
    "vtt": "text/vtt",
}


def _config():
    return current_app.config["CLIPSTUDIO"]


def _pipeline():
    return current_app.extensions["clipstudio.pipeline"]


def _get_job(job_id: str):
    job = _jobs.get(job_id)
    if job is None:
        return None, (jsonify({"error": "Job not found"}), 404)
    return job, None


def _start(job: dict, work) -> None:
    """Run *work(on_progress)* on a daemon thread and record its result on *job*."""
    progress_queue: queue.Queue = queue.Queue()
    job["progress_queue"] = progress_queue
    job["status"] = "processing"
    job["error"] = None
    job["hint"] = None

    def run():
        try:
            def on_progress(stage: str, frac: float):
                progress_queue.put({"stage": stage, "progress": round(frac, 3)})

            work(on_progress)
            job["status"] = "done"
        except ClipStudioError as e:
            logger.error("Job %s failed: %s", job["id"], e)
            job["status"] = "error"
            job["error"] = str(e)
            job["hint"] = e.hint
        except Exception as e:
            logger.exception("Job %s failed unexpectedly", job["id"])
            job["status"] = "error"
            job["error"] = str(e)
        finally:
            progress_queue.put(None)  # sentinel

    threading.Thread(target=run, daemon=True).start()


@bp.route("/api/upload", methods=["POST"])
def upload():
    config = _config()
    job_id = uuid.uuid4().hex[:12]
    job_dir = Path(config.work_dir) / job_id

    try:
        result = ingest_upload(
            request.stream,
            request.headers.get("Content-Type", ""),
            job_dir,
            content_length=request.content_length,
            max_bytes=config.upload.max_bytes,
            accept=("audio/", "video/"),
            max_field_bytes=config.upload.max_field_bytes,
            block_size=config.upload.block_size,
            operation_id=job_id,
        )
    except IngestError:
        shutil.rmtree(job_dir, ignore_errors=True)
        raise

    _jobs[job_id] = {
        "id": job_id,
        "dir": job_dir,
        "media": result.media,
        "filename": result.filename,
        "fields": result.fields,
        "status": "uploaded",
        "transcription": None,
        "clips": None,
    }

    return jsonify({
        "job_id": job_id,
        "filename": result.filename,
        "kind": result.media.kind,
        "size": result.size,
        "fields": sorted(result.fields),
    })


def _busy(job: dict):
    if job["status"] == "processing":
        return jsonify({"error": "Job is already processing"}), 409
    return None


@bp.route("/api/jobs/<job_id>/transcribe", methods=["POST"])
def start_transcription(job_id: str):
    job, err = _get_job(job_id)
    if err:
        return err
    busy = _busy(job)
    if busy:
        return busy

    supplied = job["fields"].get("transcript", "").strip()
    if supplied:
        job["transcription"] = TranscriptionOutcome(transcript=Transcript.from_text(supplied))
        job["status"] = "done"
        return jsonify({"status": "done", "source": "upload"})

    pipeline = _pipeline()
    media_path = job["media"].path

    def work(on_progress):
        job["transcription"] = pipeline.transcribe(
            media_path, on_progress=on_progress, operation_id=job_id
        )

    _start(job, work)
    return jsonify({"status": "started"})


@bp.route("/api/jobs/<job_id>/clips", methods=["POST"])
def start_clips(job_id: str):
    job, err = _get_job(job_id)
    if err:
        return err
    busy = _busy(job)
    if busy:
        return busy
    if job["media"].kind != "video":
        return jsonify({"error": "Clips can only be cut from a video upload"}), 400

    body = request.get_json(silent=True) or {}
    raw = body.get("clips")
    if raw is None and "clips" in job["fields"]:
        try:
            raw = json.loads(job["fields"]["clips"])
        except json.JSONDecodeError:
            return jsonify({"error": "Uploaded clips field is not valid JSON"}), 400
    if not isinstance(raw, list) or not raw:
        return jsonify({"error": "Clips data is required"}), 400

    try:
        clip_requests = [ClipRequest.from_dict(c) for c in raw]
    except ValueError as e:
        return jsonify({"error": f"Invalid clip request: {e}"}), 400

    pipeline = _pipeline()
    media_path = job["media"].path
    output_dir = job["dir"] / "clips"

    def work(on_progress):
        job["clips"] = pipeline.cut_clips(
            media_path,
            clip_requests,
            output_dir=output_dir,
            on_progress=on_progress,
            operation_id=job_id,
        )

    _start(job, work)
    return jsonify({"status": "started", "requested": len(clip_requests)})


@bp.route("/api/jobs/<job_id>/progress")
def progress_stream(job_id: str):
    job, err = _get_job(job_id)
    if err:
        return err
    q = job.get("progress_queue")

    if q is None:
        return jsonify({"error": "No processing in progress"}), 409

    def generate():
        while True:
            try:
                msg = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                if job["status"] == "error":
                    data = json.dumps({"error": job["error"], "hint": job.get("hint")})
                else:
                    data = json.dumps({
                        "stage": "complete",
                        "progress": 1.0,
                        "result": _summary(job),
                    })
                yield f"data: {data}\n\n"
                break
            yield f"data: {json.dumps(msg)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


def _summary(job: dict) -> dict:
    summary: dict = {}
    outcome = job.get("transcription")
    if outcome is not None:
        summary["transcription"] = {
            "chunks_total": outcome.chunks_total,
            "chunks_failed": outcome.chunks_failed,
            "partial": outcome.partial,
            "duration_estimate": outcome.transcript.duration_estimate,
            "word_count": len(outcome.transcript.words),
        }
    clips = job.get("clips")
    if clips is not None:
        summary["clips"] = clips.to_dict()
    return summary


@bp.route("/api/jobs/<job_id>/status")
def job_status(job_id: str):
    job, err = _get_job(job_id)
    if err:
        return err

    resp = {"status": job["status"], "filename": job.get("filename")}
    if job["status"] == "done":
        resp["result"] = _summary(job)
    if job["status"] == "error":
        resp["error"] = job.get("error")
        resp["hint"] = job.get("hint")
    return jsonify(resp)


@bp.route("/api/jobs/<job_id>/transcript")
def download_transcript(job_id: str):
    job, err = _get_job(job_id)
    if err:
        return err
    outcome = job.get("transcription")
    if outcome is None:
        return jsonify({"error": "Transcript not available"}), 409

    fmt = request.args.get("format", "json")
    if fmt not in FORMATS:
        return jsonify({"error": f"Unknown format {fmt!r}"}), 400
    if fmt == "json":
        return jsonify(outcome.to_dict())
    return Response(render_transcript(outcome.transcript, fmt), mimetype=_MIMETYPES[fmt])


def _safe_title(title: str) -> str:
    return "".join(c if c.isalnum() else "_" for c in title).lower() or "clip"


@bp.route("/api/jobs/<job_id>/clips/<int:index>")
def download_clip(job_id: str, index: int):
    job, err = _get_job(job_id)
    if err:
        return err
    clips = job.get("clips")
    if clips is None:
        return jsonify({"error": "Clips not available"}), 409
    if not 0 <= index < len(clips.clips):
        return jsonify({"error": "Clip not found"}), 404

    clip = clips.clips[index]
    if not clip.video_path.exists():
        return jsonify({"error": "Video file not found on disk"}), 404
    return send_file(
        clip.video_path,
        mimetype="video/mp4",
        as_attachment=True,
        download_name=f"{_safe_title(clip.request.title)}.mp4",
    )


@bp.route("/api/jobs/<job_id>/clips/archive")
def download_clip_archive(job_id: str):
    job, err = _get_job(job_id)
    if err:
        return err
    clips = job.get("clips")
    if clips is None or not clips.clips:
        return jsonify({"error": "Clips not available"}), 409

    available = [(i, c) for i, c in enumerate(clips.clips) if c.video_path.exists()]
    if not available:
        return jsonify({"error": "Video files not found on disk"}), 404

    archive = Path(job["dir"]) / f"clips_{job_id}.zip"
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_STORED) as zf:
        for i, clip in available:
            zf.write(clip.video_path, arcname=f"{i + 1:02d}_{_safe_title(clip.request.title)}.mp4")
    logger.info("Bundled %d clips for job %s", len(available), job_id)
    return send_file(
        archive,
        mimetype="application/zip",
        as_attachment=True,
        download_name="clips.zip",
    )


@bp.route("/api/jobs/<job_id>", methods=["DELETE"])
def delete_job(job_id: str):
    job, err = _get_job(job_id)
    if err:
        return err
    busy = _busy(job)
    if busy:
        return busy

    removed = 0
    if job.get("clips") is not None:
        removed = cleanup_clips([c.video_path for c in job["clips"].clips])
    job["media"].release()
    shutil.rmtree(job["dir"], ignore_errors=True)
    del _jobs[job_id]
    return jsonify({"status": "deleted", "clips_removed": removed})
