"""
tempo_estimator.py - Bass-energy tempo heuristic over a microphone audio graph

The estimate is NOT beat detection: it is a bounded oscillation around
110 BPM, nudged upwards by low-frequency energy. Callers must not assume
musical accuracy.
"""

import logging
import math
from typing import Callable, Optional

import numpy as np

from config import Config
from errors import DeviceUnavailableError, TransientDetectionError
from scheduling import RepeatingTask, SystemClock

logger = logging.getLogger(__name__)


class FrequencyAnalyser:
    """
    Byte frequency data in the manner of a Web Audio AnalyserNode.

    Blackman window -> FFT -> magnitude / fft_size -> exponential smoothing
    against the previous block -> decibels -> linear map of
    [min_decibels, max_decibels] onto 0..255.
    """

    def __init__(self, fft_size: int = Config.AUDIO_FFT_SIZE,
                 smoothing: float = Config.AUDIO_SMOOTHING,
                 min_decibels: float = Config.AUDIO_MIN_DECIBELS,
                 max_decibels: float = Config.AUDIO_MAX_DECIBELS):
        if fft_size <= 0 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two")
        if not 0 <= smoothing < 1:
            raise ValueError("smoothing must be in [0, 1)")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")

        self.fft_size = fft_size
        self.frequency_bin_count = fft_size // 2
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._window = np.blackman(fft_size)
        self._previous = np.zeros(self.frequency_bin_count)

    def reset(self) -> None:
        self._previous = np.zeros(self.frequency_bin_count)

    def byte_frequency_data(self, samples: np.ndarray) -> np.ndarray:
        frame = np.asarray(samples, dtype=np.float64).ravel()[-self.fft_size:]
        if frame.size < self.fft_size:
            frame = np.concatenate([np.zeros(self.fft_size - frame.size), frame])

        spectrum = np.abs(np.fft.rfft(frame * self._window))[:self.frequency_bin_count] / self.fft_size
        smoothed = self.smoothing * self._previous + (1 - self.smoothing) * spectrum
        self._previous = smoothed

        with np.errstate(divide="ignore"):
            decibels = 20 * np.log10(smoothed)

        span = self.max_decibels - self.min_decibels
        scaled = 255 * (decibels - self.min_decibels) / span
        scaled = np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)


class AudioGraph:
    """Microphone stream -> source node -> analyser, torn down step by step"""

    def __init__(self, stream, analyser: FrequencyAnalyser):
        self.stream = stream
        self.analyser = analyser
        self.connected = True
        self.closed = False

    def read_frequency_data(self) -> np.ndarray:
        if not self.connected or self.closed:
            raise TransientDetectionError("audio graph is not connected")
        samples = self.stream.read(self.analyser.fft_size)
        return self.analyser.byte_frequency_data(samples)

    def disconnect(self) -> None:
        self.connected = False

    def stop_tracks(self) -> None:
        self.stream.stop()

    def close(self) -> None:
        self.closed = True
        self.analyser.reset()


def estimate_bpm(bass_bins: np.ndarray, now_seconds: float,
                 base_bpm: float = Config.TEMPO_BASE_BPM,
                 energy_span: float = Config.TEMPO_ENERGY_SPAN,
                 swing: float = Config.TEMPO_SWING) -> float:
    """bpm = base + (avg_bass / 255) * span + swing * sin(t)"""
    avg_bass = float(np.sum(bass_bins)) / max(1, len(bass_bins))
    return base_bpm + (avg_bass / 255) * energy_span + swing * math.sin(now_seconds)


class TempoEstimator:
    """Samples bass energy every 500 ms and reports a tempo estimate"""

    def __init__(self, microphone, scheduler, clock=None,
                 interval_ms: int = Config.TEMPO_INTERVAL_MS,
                 bass_bins: int = Config.AUDIO_BASS_BINS,
                 analyser_factory: Callable[[], FrequencyAnalyser] = FrequencyAnalyser):
        self.microphone = microphone
        self._clock = clock or SystemClock()
        self.bass_bins = bass_bins
        self._analyser_factory = analyser_factory
        self.is_monitoring = False
        self.last_bpm: Optional[float] = None
        self._graph: Optional[AudioGraph] = None
        self._callback: Optional[Callable[[float], None]] = None
        self._timer = RepeatingTask(scheduler, interval_ms, self.detect_tempo, name="tempo-sampling")

    def start(self, on_tempo: Callable[[float], None], resume: bool = False) -> bool:
        if self.is_monitoring:
            return True
        if self.microphone is None:
            raise DeviceUnavailableError("microphone")

        logger.info("🎤 Starting audio monitoring...")
        self._callback = on_tempo
        stream = self.microphone.open_stream()
        try:
            self._graph = AudioGraph(stream, self._analyser_factory())
        except Exception:
            stream.stop()
            raise

        self.is_monitoring = True
        self._timer.start()
        logger.info("✅ Audio monitoring started")
        return True

    def detect_tempo(self) -> None:
        if not self.is_monitoring or self._graph is None:
            return
        try:
            data = self._graph.read_frequency_data()
            bpm = estimate_bpm(data[:self.bass_bins], self._clock.now_ms() / 1000)
            self.last_bpm = bpm
            if self._callback:
                self._callback(bpm)
        except Exception as e:
            logger.warning(f"⚠️ Tempo detection error: {e}")

    def stop(self) -> None:
        logger.info("🎤 Stopping audio monitoring...")
        self.is_monitoring = False

        try:
            self._timer.stop()
        except Exception as e:
            logger.warning(f"⚠️ Could not clear tempo timer: {e}")

        graph = self._graph
        self._graph = None
        if graph is None:
            return

        try:
            graph.disconnect()
        except Exception as e:
            logger.warning(f"⚠️ Error disconnecting microphone node: {e}")
        try:
            graph.stop_tracks()
        except Exception as e:
            logger.warning(f"⚠️ Error stopping media stream tracks: {e}")
        try:
            graph.close()
        except Exception as e:
            logger.warning(f"⚠️ Error closing audio context: {e}")

        logger.info("✅ Audio monitoring stopped")
