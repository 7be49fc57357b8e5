"""Tests for configuration loading and validation."""

import json
from pathlib import Path

import pytest

from clipstudio.config import (
    ClipConfig,
    Config,
    TranscriptionConfig,
    UploadConfig,
    apply_env,
    load_config,
)


class TestDefaults:
    def test_transcription(self):
        cfg = TranscriptionConfig()
        assert cfg.backend == "openai"
        assert cfg.chunk_duration == 300
        assert cfg.overlap == 30
        assert cfg.direct_max_bytes == 25 * 1024 * 1024
        assert cfg.direct_max_duration == 300

    def test_clips(self):
        cfg = ClipConfig()
        assert cfg.max_duration == 300
        assert cfg.preset == "fast"
        assert cfg.crf == 23

    def test_upload(self):
        assert UploadConfig().max_bytes == 500 * 1024 * 1024

    def test_clip_output_dir_follows_work_dir(self, tmp_path):
        config = Config(work_dir=tmp_path)
        assert config.clips.output_dir == tmp_path / "clips"


class TestValidation:
    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="backend"):
            Config(transcription=TranscriptionConfig(backend="carrier-pigeon"))

    @pytest.mark.parametrize("overlap", [-1, 300, 400])
    def test_overlap_out_of_range(self, overlap):
        with pytest.raises(ValueError, match="overlap"):
            Config(transcription=TranscriptionConfig(overlap=overlap))

    def test_zero_chunk_duration(self):
        with pytest.raises(ValueError, match="chunk_duration"):
            Config(transcription=TranscriptionConfig(chunk_duration=0, overlap=0))

    def test_workers(self):
        with pytest.raises(ValueError, match="chunk_workers"):
            Config(transcription=TranscriptionConfig(chunk_workers=0))


class TestLoadConfig:
    def test_load_sample(self, sample_config_path):
        config = load_config(sample_config_path, environ={})
        assert config.ffmpeg_binary == "/usr/local/bin/ffmpeg"
        assert config.operation_timeout == 1200
        assert config.transcription.chunk_duration == 240
        assert config.transcription.overlap == 20
        assert config.transcription.chunk_workers == 2
        assert config.clips.preset == "veryfast"
        assert config.clips.crf == 26
        assert config.upload.max_bytes == 100 * 1024 * 1024
        assert config.upload.block_size == 64 * 1024

    def test_no_file(self):
        config = load_config(environ={})
        assert config.transcription.model == "whisper-1"

    def test_unknown_top_level_key(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"silence_cut": {"enabled": True}}))
        with pytest.raises(ValueError, match="silence_cut"):
            load_config(path, environ={})

    def test_unknown_section_key(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"clips": {"burn_captions": True}}))
        with pytest.raises(ValueError, match="burn_captions"):
            load_config(path, environ={})

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_config(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.json", environ={})


class TestApplyEnv:
    def test_overrides(self, tmp_path):
        env = {
            "FFMPEG_BINARY_PATH": "/opt/ffmpeg",
            "FFPROBE_BINARY_PATH": "/opt/ffprobe",
            "CLIPSTUDIO_WORK_DIR": str(tmp_path / "scratch"),
            "OPENAI_API_KEY": "sk-test",
        }
        config = apply_env(Config(work_dir=tmp_path), env)
        assert config.ffmpeg_binary == "/opt/ffmpeg"
        assert config.ffprobe_binary == "/opt/ffprobe"
        assert config.work_dir == tmp_path / "scratch"
        assert config.clips.output_dir == tmp_path / "scratch" / "clips"
        assert config.transcription.api_key == "sk-test"

    def test_explicit_key_wins(self):
        config = Config(transcription=TranscriptionConfig(api_key="from-file"))
        apply_env(config, {"OPENAI_API_KEY": "from-env"})
        assert config.transcription.api_key == "from-file"

    def test_custom_output_dir_kept(self, tmp_path):
        config = Config(work_dir=tmp_path, clips=ClipConfig(output_dir=tmp_path / "mine"))
        apply_env(config, {"CLIPSTUDIO_WORK_DIR": str(tmp_path / "other")})
        assert config.clips.output_dir == tmp_path / "mine"
        assert isinstance(config.clips.output_dir, Path)
