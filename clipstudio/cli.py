"""Thin CLI entry point: builds a Config and calls the pipeline."""

import argparse
import json
import logging
import sys
from pathlib import Path

from clipstudio import ffutil
from clipstudio.config import load_config
from clipstudio.editors.captions import FORMATS, export_transcript
from clipstudio.engine import Pipeline
from clipstudio.errors import ClipStudioError
from clipstudio.models import ClipRequest


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipstudio",
        description="clipstudio: transcribe long recordings and cut social clips.",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to a JSON config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    tr = sub.add_parser("transcribe", help="Transcribe an audio or video file")
    tr.add_argument("media", type=Path, help="Input audio/video file")
    tr.add_argument("--output", "-o", type=Path, help="Output transcript path")
    tr.add_argument("--format", "-f", choices=FORMATS, help="Transcript format (default: from suffix)")
    tr.add_argument("--backend", choices=["openai", "whisper"], help="Transcription backend")
    tr.add_argument("--workers", type=int, help="Chunks transcribed in parallel")

    cl = sub.add_parser("clips", help="Cut clips from a video using a JSON clip plan")
    cl.add_argument("video", type=Path, help="Source video file")
    cl.add_argument("plan", type=Path, help="JSON file with a list of clip requests")
    cl.add_argument("--output-dir", "-o", type=Path, help="Directory for clip files")

    serve = sub.add_parser("serve", help="Launch the HTTP API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    return parser


def _load_plan(path: Path) -> list[ClipRequest]:
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("clips", [])
    if not isinstance(data, list):
        raise ValueError("Clip plan must be a list of clip requests")
    return [ClipRequest.from_dict(item) for item in data]


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(args.config)

    if args.command == "serve":
        from clipstudio.web import create_app
        app = create_app(config)
        print(f"clipstudio API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    if args.command == "transcribe":
        if args.backend:
            config.transcription.backend = args.backend
        if args.workers:
            config.transcription.chunk_workers = args.workers

    def on_progress(stage: str, frac: float) -> None:
        print(f"  [{frac:3.0%}] {stage}")

    try:
        ffutil.check_ffmpeg(config.ffmpeg_binary, config.ffprobe_binary)
        pipeline = Pipeline(config)

        if args.command == "transcribe":
            outcome = pipeline.transcribe(args.media, on_progress=on_progress)
            output = args.output or args.media.with_suffix(f".{args.format or 'txt'}")
            export_transcript(outcome.transcript, output, args.format)
            print()
            print(f"Done! Transcript: {output}")
            print(f"  Duration: ~{outcome.transcript.duration_estimate:.1f}s, "
                  f"{len(outcome.transcript.words)} words")
            if outcome.partial:
                print(f"  Warning: {outcome.chunks_failed} of {outcome.chunks_total} "
                      f"chunks could not be transcribed; transcript is incomplete")
        else:
            requests = _load_plan(args.plan)
            outcome = pipeline.cut_clips(
                args.video, requests, output_dir=args.output_dir, on_progress=on_progress
            )
            print()
            print(f"Done! Created {len(outcome.clips)} of {outcome.requested} clips")
            for clip in outcome.clips:
                print(f"  {clip.video_path}  ({clip.duration:.1f}s) {clip.request.title}")
            if outcome.partial:
                print(f"  Skipped: {outcome.skipped}")
    except ClipStudioError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"Hint: {e.hint}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
