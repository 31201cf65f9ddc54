from asr_bridge.backend.runtime.metrics import Metrics
from asr_bridge.errors import ErrorCode


def test_metrics_snapshot_tracks_pipeline_counters():
    metrics = Metrics()
    metrics.increase_active_sessions()
    metrics.increase_active_sessions()
    metrics.decrease_active_sessions()
    metrics.record_vad_onset()
    metrics.record_chunk_dropped(3)
    metrics.record_flush(3200)
    metrics.record_submission(0.5)
    metrics.record_submission(1.5)
    metrics.record_transcript()

    snapshot = metrics.snapshot()

    assert snapshot["active_sessions"] == 1
    assert snapshot["sessions_opened"] == 2
    assert snapshot["vad_onsets"] == 1
    assert snapshot["chunks_dropped"] == 3
    assert snapshot["utterances_flushed"] == 1
    assert snapshot["transcripts_emitted"] == 1
    assert snapshot["submit_latency_avg"] == 1.0
    assert snapshot["submit_latency_max"] == 1.5


def test_active_sessions_never_negative():
    metrics = Metrics()
    metrics.decrease_active_sessions()
    assert metrics.snapshot()["active_sessions"] == 0


def test_render_includes_error_counts_by_code():
    metrics = Metrics()
    metrics.record_error(ErrorCode.RESPONSE_MALFORMED)
    metrics.record_error(ErrorCode.RESPONSE_MALFORMED)
    metrics.record_error(ErrorCode.SUBMISSION_FAILED)

    text = metrics.render()

    assert 'error_count{code="ERR3003"} 2' in text
    assert 'error_count{code="ERR3001"} 1' in text
    assert metrics.error_count(ErrorCode.RESPONSE_EMPTY) == 0
    assert metrics.snapshot()["errors"] == 3
