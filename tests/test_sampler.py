"""
Tests for EnvironmentSampler and microphone activity
"""

import asyncio

import numpy as np
import pytest

from proctored_exam.errors import SamplingInfrastructureFailure
from proctored_exam.models.proctoring_model import SampleResult
from proctored_exam.proctoring.devices import ClientMediaSource
from proctored_exam.proctoring.events import AnalysisFailed, SampleTaken
from proctored_exam.proctoring.sampler import EnvironmentSampler, MicActivityMeter, byte_frequency_data

from conftest import LOUD_BINS, SILENT_BINS, VALID_FRAME, FakeClassifier


class TestMicActivityMeter:
    """Tests for the frequency-bin average check"""

    def test_silence_is_inactive(self):
        meter = MicActivityMeter(floor=0.5)
        assert meter.is_active(SILENT_BINS) is False
        assert meter.last_level == 0.0

    def test_sound_is_active(self):
        meter = MicActivityMeter(floor=0.5)
        assert meter.is_active(LOUD_BINS) is True
        assert meter.last_level == 40.0

    def test_no_data_is_inactive(self):
        meter = MicActivityMeter()
        assert meter.is_active(None) is False
        assert meter.is_active([]) is False


class TestByteFrequencyData:
    """Tests for raw PCM → analyser bins"""

    def test_bin_count(self):
        pcm = np.zeros(512, dtype=np.int16).tobytes()
        assert len(byte_frequency_data(pcm, fft_size=256)) == 128

    def test_silence_maps_to_zero(self):
        pcm = np.zeros(256, dtype=np.int16).tobytes()
        assert max(byte_frequency_data(pcm)) == 0

    def test_tone_is_detected_as_active(self):
        t = np.arange(1024)
        tone = (np.sin(2 * np.pi * t / 16) * 12000).astype(np.int16)
        bins = byte_frequency_data(tone.tobytes())

        assert all(0 <= b <= 255 for b in bins)
        assert MicActivityMeter(floor=0.5).is_active(bins)

    def test_short_buffer_is_padded(self):
        pcm = np.full(10, 1000, dtype=np.int16).tobytes()
        assert len(byte_frequency_data(pcm, fft_size=256)) == 128

    def test_odd_length_buffer_drops_trailing_byte(self):
        pcm = np.full(300, 8000, dtype=np.int16).tobytes() + b"\x01"
        assert byte_frequency_data(pcm) == byte_frequency_data(pcm[:-1])

    def test_single_byte_is_silence(self):
        assert max(byte_frequency_data(b"\x01")) == 0


def _make_sampler(classifier, media=None, is_blocked=lambda: False):
    events = []
    if media is None:
        media = ClientMediaSource()
        media.push_sample(VALID_FRAME, LOUD_BINS)
    sampler = EnvironmentSampler(media, classifier, events.append, is_blocked=is_blocked)
    return sampler, events


class TestEnvironmentSampler:
    """Tests for one sampling tick"""

    @pytest.mark.asyncio
    async def test_sample_emits_result_and_mic_state(self):
        result = SampleResult(human_present=False)
        sampler, events = _make_sampler(FakeClassifier([result]))

        assert await sampler.sample_once() is True

        assert events == [SampleTaken(result=result, mic_active=True)]
        assert sampler.samples_taken == 1

    @pytest.mark.asyncio
    async def test_missing_frame_emits_skipped_sample(self):
        classifier = FakeClassifier()
        sampler, events = _make_sampler(classifier, media=ClientMediaSource())

        assert await sampler.sample_once() is True

        assert len(events) == 1
        assert events[0].skipped
        assert classifier.calls == 0
        assert sampler.skipped_ticks == 1

    @pytest.mark.asyncio
    async def test_classifier_failure_is_not_a_violation(self):
        classifier = FakeClassifier([SamplingInfrastructureFailure("timeout")])
        sampler, events = _make_sampler(classifier)

        assert await sampler.sample_once() is False

        assert events == [AnalysisFailed(error="timeout")]
        assert sampler.failures == 1
        assert not sampler.in_flight

    @pytest.mark.asyncio
    async def test_tick_skipped_while_request_in_flight(self):
        """At most one outstanding analysis request"""
        gate = asyncio.Event()

        class SlowClassifier(FakeClassifier):
            async def analyze(self, image_data_uri):
                self.calls += 1
                await gate.wait()
                return SampleResult()

        classifier = SlowClassifier()
        sampler, events = _make_sampler(classifier)

        first = asyncio.create_task(sampler.sample_once())
        await asyncio.sleep(0)
        assert sampler.in_flight

        assert await sampler.sample_once() is False
        assert classifier.calls == 1

        gate.set()
        assert await first is True
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_stale_audio_means_inactive_mic(self):
        """Old frequency bins must not keep the microphone active after the feed stops"""
        media = ClientMediaSource(max_frame_age_seconds=15.0)
        media.push_sample(VALID_FRAME, LOUD_BINS)
        media._frequency_at -= 600
        media.push_sample(VALID_FRAME)
        sampler, events = _make_sampler(FakeClassifier(), media=media)

        await sampler.sample_once()

        assert events[0].mic_active is False

    @pytest.mark.asyncio
    async def test_result_dropped_when_blocked_mid_analysis(self):
        """A fullscreen countdown that starts during analysis discards the verdict"""
        gate = asyncio.Event()
        blocked = {"value": False}

        class SlowClassifier(FakeClassifier):
            async def analyze(self, image_data_uri):
                await gate.wait()
                return SampleResult(human_present=False)

        sampler, events = _make_sampler(SlowClassifier(), is_blocked=lambda: blocked["value"])

        pending = asyncio.create_task(sampler.sample_once())
        await asyncio.sleep(0)
        blocked["value"] = True
        gate.set()

        assert await pending is False
        assert events == []
        assert sampler.samples_taken == 0

    @pytest.mark.asyncio
    async def test_blocked_sampler_does_nothing(self):
        classifier = FakeClassifier()
        sampler, events = _make_sampler(classifier, is_blocked=lambda: True)

        assert await sampler.sample_once() is False
        assert events == []
        assert classifier.calls == 0

    @pytest.mark.asyncio
    async def test_result_dropped_when_stopped_mid_analysis(self):
        gate = asyncio.Event()

        class SlowClassifier(FakeClassifier):
            async def analyze(self, image_data_uri):
                await gate.wait()
                return SampleResult(human_present=False)

        sampler, events = _make_sampler(SlowClassifier())
        sampler.start(3_600_000)

        pending = asyncio.create_task(sampler.sample_once())
        await asyncio.sleep(0)
        sampler.stop()
        gate.set()

        assert await pending is False
        assert events == []
        assert not sampler.running

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        sampler, _ = _make_sampler(FakeClassifier())

        sampler.start(3_600_000)
        assert sampler.running

        sampler.stop()
        sampler.stop()
        assert not sampler.running
