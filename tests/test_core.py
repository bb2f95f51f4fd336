#!/usr/bin/env python3
"""
Unit tests for RecScribe core modules.
Tests cover: security utils, error codes, config, chunk planning, merging,
database, credits, storage and attempt workspaces.
"""

import sys
import json
import tempfile
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest
from unittest import mock

import requests

from recscribe.core.constants import (
    JobStatus, JobStage, ErrorCode, RecordingStatus, RETRYABLE_ERRORS,
    CreditTransactionType, ConvertProfile,
)
from recscribe.core.security_utils import (
    sanitize_file_name, replace_extension, resolve_inside, resolve_api_key,
)
from recscribe.core.error_codes import (
    JobError, ProviderError, InsufficientCreditsError,
    is_retryable, classify_error, is_final_attempt,
)
from recscribe.core.config import AppConfig, ChunkSettings
from recscribe.core.chunking_timebased import (
    needs_chunking, plan_chunks, split_audio_into_chunks,
)
from recscribe.core.merge import (
    merge_chunk, fold_chunk_results, finalize_segments,
    strip_chunk_suffix, apply_speaker_names,
)
from recscribe.core.models import (
    ChunkDescriptor, MergeState, Segment, TranscriptionResult, TranscriptRecord, Job,
)
from recscribe.core.credits import (
    credits_needed, usage_description, CreditGate, SqliteCreditLedger,
)
from recscribe.core.cleanup import attempt_workspace, CHUNKS_DIR, SOURCE_DIR


class TestSecurityUtils(unittest.TestCase):
    """Test file name and path safety."""

    def test_sanitize_file_name_basic(self):
        self.assertEqual(sanitize_file_name("meeting.wav"), "meeting.wav")

    def test_sanitize_file_name_special_chars(self):
        result = sanitize_file_name('call: "q3" <final>.mp3')
        self.assertNotIn(':', result)
        self.assertNotIn('"', result)
        self.assertNotIn('<', result)
        self.assertTrue(result.endswith(".mp3"))

    def test_sanitize_file_name_path_traversal(self):
        result = sanitize_file_name("../../etc/passwd")
        self.assertNotIn('..', result)
        self.assertNotIn('/', result)

    def test_sanitize_file_name_empty(self):
        self.assertEqual(sanitize_file_name(""), "")

    def test_sanitize_file_name_long_keeps_extension(self):
        result = sanitize_file_name("a" * 300 + ".wav")
        self.assertLessEqual(len(result), 200)
        self.assertTrue(result.endswith(".wav"))

    def test_replace_extension(self):
        self.assertEqual(replace_extension("meeting.wav", ".m4a"), "meeting.m4a")
        self.assertEqual(replace_extension("meeting", ".m4a"), "meeting.m4a")

    def test_resolve_inside_normal(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            path = resolve_inside(root, "org/file.m4a")
            self.assertTrue(str(path).startswith(str(root.resolve())))

    def test_resolve_inside_traversal(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                resolve_inside(Path(tmpdir), "../outside.m4a")
            with self.assertRaises(ValueError):
                resolve_inside(Path(tmpdir), "/etc/passwd")

    def test_resolve_api_key_env_first(self):
        with mock.patch.dict('os.environ', {"MISTRAL_API_KEY": " env-key "}):
            self.assertEqual(resolve_api_key({'mistral_api_key': 'cfg-key'}), "env-key")

    def test_resolve_api_key_config_fallback(self):
        with mock.patch.dict('os.environ', {"MISTRAL_API_KEY": ""}):
            self.assertEqual(resolve_api_key({'mistral_api_key': 'cfg-key'}), "cfg-key")
            self.assertIsNone(resolve_api_key({}))


class TestErrorCodes(unittest.TestCase):
    """Test error classification."""

    def test_retryable_errors(self):
        self.assertTrue(is_retryable(ErrorCode.PROVIDER_TIMEOUT))
        self.assertTrue(is_retryable(ErrorCode.PROVIDER_RATE_LIMITED))
        self.assertTrue(is_retryable(ErrorCode.PROVIDER_SERVER))

    def test_non_retryable_errors(self):
        self.assertFalse(is_retryable(ErrorCode.INSUFFICIENT_CREDITS))
        self.assertFalse(is_retryable(ErrorCode.EMPTY_TRANSCRIPTION))
        self.assertFalse(is_retryable(ErrorCode.PROVIDER_CLIENT))

    def test_job_error_auto_retryable(self):
        err = JobError(ErrorCode.STORAGE_IO, "disk hiccup")
        self.assertTrue(err.retryable)
        err2 = JobError(ErrorCode.SOURCE_MISSING, "gone")
        self.assertFalse(err2.retryable)
        err3 = JobError(ErrorCode.SOURCE_MISSING, "gone", retryable=True)
        self.assertTrue(err3.retryable)

    def test_provider_error_from_status(self):
        rate_limited = ProviderError.from_status(429, "slow down")
        self.assertEqual(rate_limited.code, ErrorCode.PROVIDER_RATE_LIMITED)
        self.assertTrue(rate_limited.retryable)
        self.assertEqual(rate_limited.status_code, 429)

        server = ProviderError.from_status(503)
        self.assertEqual(server.code, ErrorCode.PROVIDER_SERVER)
        self.assertTrue(server.retryable)

        client = ProviderError.from_status(400, "bad file")
        self.assertEqual(client.code, ErrorCode.PROVIDER_CLIENT)
        self.assertFalse(client.retryable)

    def test_provider_error_body_truncated(self):
        err = ProviderError.from_status(500, "x" * 1000)
        self.assertLess(len(err.message), 400)

    def test_insufficient_credits(self):
        err = InsufficientCreditsError(8, 2)
        self.assertEqual(err.code, ErrorCode.INSUFFICIENT_CREDITS)
        self.assertFalse(err.retryable)
        self.assertEqual(err.shortfall, 6)

    def test_classify_known_exceptions(self):
        self.assertEqual(classify_error(requests.exceptions.Timeout("t")).code,
                         ErrorCode.PROVIDER_TIMEOUT)
        self.assertEqual(classify_error(requests.exceptions.ConnectionError("c")).code,
                         ErrorCode.NETWORK_TRANSIENT)
        self.assertEqual(classify_error(FileNotFoundError(2, "missing", "x.wav")).code,
                         ErrorCode.SOURCE_MISSING)
        self.assertEqual(classify_error(PermissionError("denied")).code,
                         ErrorCode.STORAGE_IO)

    def test_classify_unknown_is_retryable(self):
        err = classify_error(ValueError("boom"))
        self.assertEqual(err.code, ErrorCode.UNEXPECTED)
        self.assertTrue(err.retryable)

    def test_classify_passes_job_error_through(self):
        original = JobError(ErrorCode.CHUNKING, "bad plan")
        self.assertIs(classify_error(original), original)

    def test_is_final_attempt(self):
        self.assertFalse(is_final_attempt(1, 3))
        self.assertFalse(is_final_attempt(2, 3))
        self.assertTrue(is_final_attempt(3, 3))

    def test_retryable_set_is_consistent(self):
        for code in RETRYABLE_ERRORS:
            self.assertTrue(JobError(code, "x").retryable)


class TestConfig(unittest.TestCase):
    """Test configuration validation and persistence."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path)
        self.assertEqual(config.speed_factor, 1.5)
        self.assertEqual(config.max_attempts, 3)
        self.assertEqual(config.convert_profile, ConvertProfile.VOICE)
        self.assertEqual(config.chunk_settings(), ChunkSettings(3600, 5, 3600))

    def test_set_clamps_numeric_values(self):
        config = AppConfig(self.path)
        config.set('chunk_seconds', 10)
        self.assertEqual(config.get('chunk_seconds'), 300)
        config.set('speed_factor', 5)
        self.assertEqual(config.speed_factor, 2.0)

    def test_invalid_values_fall_back(self):
        config = AppConfig(self.path)
        config.set('max_attempts', "many")
        self.assertEqual(config.max_attempts, 3)
        config.set('convert_profile', "opera")
        self.assertEqual(config.convert_profile, ConvertProfile.VOICE)

    def test_load_validates_saved_file(self):
        self.path.write_text(json.dumps({'overlap_seconds': 500, 'convert_profile': 'music'}))
        config = AppConfig(self.path)
        self.assertEqual(config.get('overlap_seconds'), 60)
        self.assertEqual(config.convert_profile, ConvertProfile.MUSIC)

    def test_save_round_trip(self):
        config = AppConfig(self.path)
        config.set('max_attempts', 5)
        self.assertEqual(AppConfig(self.path).max_attempts, 5)


class TestChunking(unittest.TestCase):
    """Test time-based chunk planning."""

    settings = ChunkSettings(chunk_seconds=3600, overlap_seconds=5, min_duration_for_chunking=3600)

    def test_needs_chunking(self):
        self.assertFalse(needs_chunking(480, self.settings))
        self.assertFalse(needs_chunking(3599, self.settings))
        self.assertTrue(needs_chunking(3600, self.settings))
        self.assertTrue(needs_chunking(7800, self.settings))

    def test_short_recording_single_chunk_on_source(self):
        plan = plan_chunks("/tmp/audio.m4a", 480, self.settings)
        self.assertEqual(len(plan), 1)
        self.assertEqual(plan[0].path, "/tmp/audio.m4a")
        self.assertEqual(plan[0].start_time, 0.0)
        self.assertEqual(plan[0].duration, 480.0)

    def test_130_minute_plan(self):
        plan = plan_chunks("/tmp/audio.m4a", 7800, self.settings, Path("/tmp/chunks"))
        bounds = [(c.start_time, c.end_time) for c in plan]
        self.assertEqual(bounds, [(0.0, 3605.0), (3600.0, 7205.0), (7200.0, 7800.0)])
        self.assertEqual([c.index for c in plan], [0, 1, 2])
        self.assertTrue(all(c.path.startswith("/tmp/chunks/") for c in plan))

    def test_plan_covers_duration_with_fixed_overlap(self):
        for duration in (3600, 3601, 5000, 7200, 7204, 10000.5, 43199):
            plan = plan_chunks("/tmp/a.m4a", duration, self.settings, Path("/tmp/c"))
            self.assertEqual(plan[0].start_time, 0.0)
            self.assertAlmostEqual(plan[-1].end_time, duration)
            for left, right in zip(plan, plan[1:]):
                self.assertAlmostEqual(left.end_time - right.start_time, 5.0)
                self.assertLess(right.start_time, left.end_time)

    def test_non_positive_duration_rejected(self):
        with self.assertRaises(JobError) as ctx:
            plan_chunks("/tmp/a.m4a", 0, self.settings)
        self.assertEqual(ctx.exception.code, ErrorCode.CHUNKING)

    def test_split_writes_chunks_and_manifest(self):
        class Cutter:
            def __init__(self):
                self.calls = []

            def extract_segment(self, path, out, start, duration):
                self.calls.append((start, duration))
                Path(out).write_bytes(b"chunk")

        with tempfile.TemporaryDirectory() as tmpdir:
            chunks_dir = Path(tmpdir) / "chunks"
            plan = plan_chunks(Path(tmpdir) / "a.m4a", 7800, self.settings, chunks_dir)
            cutter = Cutter()
            result = split_audio_into_chunks(cutter, Path(tmpdir) / "a.m4a", plan, self.settings)
            self.assertEqual(result, plan)
            self.assertEqual(cutter.calls, [(0.0, 3605.0), (3600.0, 3605.0), (7200.0, 600.0)])
            manifest = json.loads((chunks_dir / "manifest.json").read_text())
            self.assertEqual(len(manifest['chunks']), 3)
            self.assertEqual(manifest['overlap_sec'], 5)

    def test_split_leaves_single_source_chunk_alone(self):
        plan = plan_chunks("/tmp/a.m4a", 480, self.settings)
        self.assertIs(split_audio_into_chunks(None, "/tmp/a.m4a", plan, self.settings), plan)


class TestMerge(unittest.TestCase):
    """Test chunk result merging."""

    def _chunks(self):
        return [
            ChunkDescriptor(index=0, path="c0", start_time=0.0, duration=3605.0),
            ChunkDescriptor(index=1, path="c1", start_time=3600.0, duration=600.0),
        ]

    def test_first_chunk_seeds_state(self):
        result = TranscriptionResult(
            text=" hello there ",
            segments=[Segment(0.0, 2.0, "hello", "speaker_0"), Segment(2.0, 4.0, "there", "speaker_1")],
            language="fr",
        )
        state = merge_chunk(MergeState(), result, 0, 0.0)
        self.assertEqual(state.text, "hello there")
        self.assertEqual(state.last_end_time, 4.0)
        self.assertEqual(state.language, "fr")
        self.assertEqual([s.speaker for s in state.segments], ["speaker_0", "speaker_1"])

    def test_overlap_segments_dropped_and_offsets_applied(self):
        first = TranscriptionResult(
            text="first part",
            segments=[Segment(0.0, 10.0, "first", "speaker_0"),
                      Segment(3590.0, 3603.0, "part", "speaker_1")],
        )
        second = TranscriptionResult(
            text="part again second",
            segments=[Segment(0.0, 2.0, "part again", "speaker_1"),
                      Segment(3.0, 6.0, "second", "speaker_0")],
        )
        state = fold_chunk_results([first, second], self._chunks())

        self.assertEqual([s.text for s in state.segments], ["first", "part", "second"])
        last = state.segments[-1]
        self.assertEqual((last.start, last.end), (3603.0, 3606.0))
        self.assertEqual(last.speaker, "speaker_0_c1")
        self.assertEqual(state.text, "first part part again second")
        self.assertEqual(state.last_end_time, 3606.0)

    def test_segments_stay_ordered(self):
        first = TranscriptionResult(text="a", segments=[Segment(0.0, 3601.0, "a")])
        second = TranscriptionResult(text="b", segments=[Segment(0.5, 1.0, "x"), Segment(2.0, 4.0, "b")])
        state = fold_chunk_results([first, second], self._chunks())
        starts = [s.start for s in state.segments]
        self.assertEqual(starts, sorted(starts))
        self.assertEqual(len(state.segments), 2)

    def test_empty_chunk_keeps_last_end(self):
        first = TranscriptionResult(text="a", segments=[Segment(0.0, 50.0, "a")])
        second = TranscriptionResult(text="", segments=[])
        state = fold_chunk_results([first, second], self._chunks())
        self.assertEqual(state.last_end_time, 50.0)
        self.assertEqual(state.text, "a")

    def test_result_count_mismatch(self):
        with self.assertRaises(ValueError):
            fold_chunk_results([TranscriptionResult(text="a")], self._chunks())

    def test_finalize_strips_suffix_and_rescales(self):
        segments = [Segment(2.0, 4.0, "hi", "speaker_1_c2"), Segment(4.0, 5.0, "yo", None)]
        final = finalize_segments(segments, 1.5)
        self.assertEqual([(s.start, s.end) for s in final], [(3.0, 6.0), (6.0, 7.5)])
        self.assertEqual(final[0].speaker, "speaker_1")
        self.assertIsNone(final[1].speaker)

    def test_strip_chunk_suffix_only_at_end(self):
        self.assertEqual(strip_chunk_suffix("speaker_0_c12"), "speaker_0")
        self.assertEqual(strip_chunk_suffix("Alice"), "Alice")
        self.assertEqual(strip_chunk_suffix("mc_cX"), "mc_cX")

    def test_apply_speaker_names(self):
        segments = [Segment(0, 1, "a", "speaker_0"), Segment(1, 2, "b", "speaker_1")]
        named = apply_speaker_names(segments, {"speaker_0": "Alice"})
        self.assertEqual([s.speaker for s in named], ["Alice", "speaker_1"])


class TestDatabase(unittest.TestCase):
    """Test SQLite database operations."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self.tmpdir.name) / "test.db"
        from recscribe.core.db_sqlite import Database
        self.db = Database(self.db_path)

    def tearDown(self):
        self.db.close()
        self.tmpdir.cleanup()

    def test_create_recording(self):
        rec = self.db.create_recording("org/abc-meeting.wav", user_id="u1", org_id="o1",
                                       file_name="meeting.wav")
        fetched = self.db.get_recording(rec.id)
        self.assertEqual(fetched.file_path, "org/abc-meeting.wav")
        self.assertEqual(fetched.status, RecordingStatus.PENDING)
        self.assertIsNone(fetched.current_job_id)

    def test_update_recording(self):
        rec = self.db.create_recording("org/a.wav")
        self.db.update_recording(rec.id, status=RecordingStatus.PROCESSING, duration=480.0)
        fetched = self.db.get_recording(rec.id)
        self.assertEqual(fetched.status, RecordingStatus.PROCESSING)
        self.assertEqual(fetched.duration, 480.0)

    def test_save_transcript_upserts(self):
        rec = self.db.create_recording("org/a.wav")
        self.db.save_transcript(TranscriptRecord(rec.id, "first", [Segment(0, 1, "first")], "fr"))
        self.db.save_transcript(TranscriptRecord(
            rec.id, "second", [Segment(0, 1, "second", "Alice")], "en", analysis="sum",
        ))
        transcript = self.db.get_transcript(rec.id)
        self.assertEqual(transcript.text, "second")
        self.assertEqual(transcript.language, "en")
        self.assertEqual(transcript.analysis, "sum")
        self.assertEqual(transcript.segments[0].speaker, "Alice")

    def test_deduct_credits(self):
        rec = self.db.create_recording("org/a.wav")
        self.db.set_balance("u1", "o1", 10)
        self.db.deduct_credits("u1", "o1", 8, "Audio analysis: a (480s)", rec.id)
        self.assertEqual(self.db.get_balance("u1", "o1"), 2)
        self.assertTrue(self.db.has_transaction(rec.id, CreditTransactionType.USAGE))
        self.assertEqual(self.db.count_transactions(rec.id, CreditTransactionType.USAGE), 1)

    def test_missing_balance(self):
        self.assertIsNone(self.db.get_balance("nobody", "nowhere"))

    def test_create_job(self):
        rec = self.db.create_recording("org/a.wav")
        job = self.db.create_job(rec.id, "u1", "o1", "org/a.wav", "a.wav", prompt="Summarize")
        fetched = self.db.get_job(job.id)
        self.assertEqual(fetched.status, JobStatus.QUEUED)
        self.assertEqual(fetched.attempt_number, 1)
        self.assertEqual(fetched.to_job().prompt, "Summarize")

    def test_update_job_status(self):
        rec = self.db.create_recording("org/a.wav")
        job = self.db.create_job(rec.id, "u1", "o1", "org/a.wav", "a.wav")
        self.db.update_job_status(job.id, JobStatus.RUNNING, stage=JobStage.TRANSCRIBING)
        fetched = self.db.get_job(job.id)
        self.assertEqual(fetched.status, JobStatus.RUNNING)
        self.assertEqual(fetched.stage, JobStage.TRANSCRIBING)
        self.db.update_job_status(job.id, JobStatus.COMPLETED)
        self.assertIsNotNone(self.db.get_job(job.id).completed_at)

    def test_has_active_job(self):
        rec = self.db.create_recording("org/a.wav")
        job = self.db.create_job(rec.id, "u1", "o1", "org/a.wav", "a.wav")
        self.assertTrue(self.db.has_active_job(rec.id))
        self.db.update_job_status(job.id, JobStatus.FAILED)
        self.assertFalse(self.db.has_active_job(rec.id))

    def test_delete_job(self):
        rec = self.db.create_recording("org/a.wav")
        job = self.db.create_job(rec.id, "u1", "o1", "org/a.wav", "a.wav")
        self.db.delete_job(job.id)
        self.assertIsNone(self.db.get_job(job.id))
        self.assertEqual(self.db.get_queued_jobs(), [])


class TestCredits(unittest.TestCase):
    """Test the credit gate over the SQLite ledger."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        from recscribe.core.db_sqlite import Database
        self.db = Database(Path(self.tmpdir.name) / "credits.db")
        self.rec = self.db.create_recording("o1/a.wav", user_id="u1", org_id="o1")
        self.job = Job(id="job-1", recording_id=self.rec.id, user_id="u1", org_id="o1",
                       source_path="o1/a.wav", file_name="meeting.wav")
        self.gate = CreditGate(SqliteCreditLedger(self.db))

    def tearDown(self):
        self.db.close()
        self.tmpdir.cleanup()

    def test_credits_needed(self):
        self.assertEqual(credits_needed(480), 8)
        self.assertEqual(credits_needed(61), 2)
        self.assertEqual(credits_needed(60), 1)
        self.assertEqual(credits_needed(0.5), 1)
        self.assertEqual(credits_needed(7800), 130)

    def test_usage_description(self):
        self.assertEqual(usage_description("meeting.wav", 480.4), "Audio analysis: meeting (480s)")

    def test_charge_once(self):
        self.db.set_balance("u1", "o1", 20)
        self.assertEqual(self.gate.ensure_charged(self.job, 480), 8)
        self.assertEqual(self.gate.ensure_charged(self.job, 480), 0)
        self.assertEqual(self.db.get_balance("u1", "o1"), 12)
        self.assertEqual(self.db.count_transactions(self.rec.id, CreditTransactionType.USAGE), 1)

    def test_insufficient(self):
        self.db.set_balance("u1", "o1", 2)
        with self.assertRaises(InsufficientCreditsError) as ctx:
            self.gate.ensure_charged(self.job, 480)
        self.assertEqual(ctx.exception.credits_needed, 8)
        self.assertEqual(ctx.exception.credits_available, 2)
        self.assertEqual(self.db.get_balance("u1", "o1"), 2)
        self.assertFalse(self.db.has_transaction(self.rec.id, CreditTransactionType.USAGE))

    def test_missing_account(self):
        with self.assertRaises(JobError) as ctx:
            self.gate.ensure_charged(self.job, 480)
        self.assertEqual(ctx.exception.code, ErrorCode.ACCOUNT_NOT_FOUND)
        self.assertFalse(ctx.exception.retryable)


class TestStorage(unittest.TestCase):
    """Test local file storage."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        from recscribe.core.storage import LocalFileStorage
        self.storage = LocalFileStorage(Path(self.tmpdir.name) / "storage")
        self.local = Path(self.tmpdir.name) / "local.m4a"
        self.local.write_bytes(b"audio-bytes")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_put_get_delete(self):
        stored = self.storage.put(self.local, "org1", {'originalName': "meeting.m4a",
                                                       'mimeType': "audio/mp4"})
        self.assertTrue(stored.path.startswith("org1/"))
        self.assertTrue(stored.path.endswith("-meeting.m4a"))
        self.assertEqual(stored.size, len(b"audio-bytes"))
        self.assertEqual(stored.mime_type, "audio/mp4")
        self.assertEqual(self.storage.get_bytes(stored.path), b"audio-bytes")

        self.storage.delete(stored.path)
        with self.assertRaises(JobError) as ctx:
            self.storage.get_bytes(stored.path)
        self.assertEqual(ctx.exception.code, ErrorCode.SOURCE_MISSING)
        # deleting twice is harmless
        self.storage.delete(stored.path)

    def test_missing_blob(self):
        with self.assertRaises(JobError) as ctx:
            self.storage.get_bytes("org1/nope.m4a")
        self.assertEqual(ctx.exception.code, ErrorCode.SOURCE_MISSING)

    def test_traversal_key_rejected(self):
        with self.assertRaises(JobError) as ctx:
            self.storage.get_bytes("../../etc/passwd")
        self.assertEqual(ctx.exception.code, ErrorCode.STORAGE_PATH)


class TestCleanup(unittest.TestCase):
    """Test per-attempt workspaces."""

    def test_workspace_removed_on_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            work_dir = Path(tmpdir)
            with self.assertRaises(RuntimeError):
                with attempt_workspace(work_dir, "job-1", 1) as workspace:
                    self.assertTrue((workspace / SOURCE_DIR).is_dir())
                    (workspace / CHUNKS_DIR / "chunk_000.m4a").write_bytes(b"x")
                    raise RuntimeError("boom")
            self.assertFalse(workspace.exists())
            self.assertFalse((work_dir / "job-1").exists())

    def test_debug_keeps_manifest(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with attempt_workspace(Path(tmpdir), "job-1", 2, keep_debug=True) as workspace:
                (workspace / CHUNKS_DIR / "manifest.json").write_text("{}")
                (workspace / CHUNKS_DIR / "chunk_000.m4a").write_bytes(b"x")
            self.assertTrue((workspace / CHUNKS_DIR / "manifest.json").exists())
            self.assertFalse((workspace / CHUNKS_DIR / "chunk_000.m4a").exists())
            self.assertFalse((workspace / SOURCE_DIR).exists())


if __name__ == "__main__":
    unittest.main()
