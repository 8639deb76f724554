"""Tests for duration, frame count and waveform estimation."""

import random

import pytest

from santa_video.render.audio_analysis import (
    EstimatingAudioAnalyzer,
    compute_total_frames,
    estimate_duration_seconds,
    generate_waveform,
)


class TestEstimateDuration:
    """Tests for size-based duration estimation."""

    def test_thirty_seconds(self):
        assert estimate_duration_seconds(600_000) == 30

    def test_floor_of_five_seconds(self):
        assert estimate_duration_seconds(0) == 5
        assert estimate_duration_seconds(50_000) == 5

    def test_rounds_half_up(self):
        assert estimate_duration_seconds(210_000) == 11
        assert estimate_duration_seconds(209_999) == 10

    def test_six_second_payload(self):
        assert estimate_duration_seconds(120_000) == 6


class TestComputeTotalFrames:
    """Tests for frame count including the intro."""

    def test_includes_intro(self):
        assert compute_total_frames(30, fps=60, intro_seconds=2) == 1920

    def test_minimum_duration(self):
        assert compute_total_frames(5, fps=60, intro_seconds=2) == 420


class TestGenerateWaveform:
    """Tests for the synthetic waveform."""

    def test_length(self):
        assert len(generate_waveform(3000)) == 3000

    def test_values_in_range(self):
        waveform = generate_waveform(5000, random.Random(1))
        assert min(waveform) >= 0.1
        assert max(waveform) <= 1.0

    def test_seeded_is_reproducible(self):
        assert generate_waveform(100, random.Random(42)) == generate_waveform(100, random.Random(42))

    def test_empty(self):
        assert generate_waveform(0) == []


class TestEstimatingAudioAnalyzer:
    """Tests for the default analyzer."""

    def test_analyze_thirty_second_call(self):
        inputs = EstimatingAudioAnalyzer(seed=3).analyze(600_000, fps=60, intro_seconds=2)

        assert inputs.duration_seconds == 30
        assert inputs.total_frames == 1920
        assert inputs.intro_frames == 120
        assert inputs.audio_frames == 1800
        assert len(inputs.amplitudes) == 3000

    @pytest.mark.parametrize("size", [1, 99_999, 100_000])
    def test_short_payloads_use_minimum(self, size):
        inputs = EstimatingAudioAnalyzer().analyze(size, fps=60, intro_seconds=2)
        assert inputs.duration_seconds == 5
        assert len(inputs.amplitudes) == 500
