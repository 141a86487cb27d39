"""Configuration constants for voice capture, calibration and segmentation."""

from pathlib import Path

# Audio Configuration
DEFAULT_SAMPLE_RATE = 16000  # Hz
DEFAULT_CHUNK_SIZE = 1024  # samples per chunk
SAMPLE_WIDTH_BYTES = 2  # 16-bit PCM
AUDIO_SAMPLE_NORMALIZATION = 32768.0  # Normalization factor for 16-bit audio

# Volume Analyzer
# Mirrors a Web Audio AnalyserNode so stored thresholds keep their meaning
ANALYZER_FFT_SIZE = 256  # samples per analysis block
ANALYZER_MIN_FFT_SIZE = 128
ANALYZER_SAMPLE_INTERVAL_MS = 50  # one LoudnessSample every 50 ms
ANALYZER_SMOOTHING_TIME_CONSTANT = 0.8
ANALYZER_MIN_DECIBELS = -100.0
ANALYZER_MAX_DECIBELS = -30.0
ANALYZER_BYTE_MAX = 255.0
ANALYZER_STALE_AFTER_MS = 1000  # no audio for this long = device probably gone

# Calibration
CALIBRATION_PHASE_DURATION = 5.0  # seconds per phase (silence, then speech)
CALIBRATION_TICK_INTERVAL = 0.1  # seconds between progress ticks
DEFAULT_SENTENCE_END_WAIT_MS = 500
MIN_SENTENCE_END_WAIT_MS = 100
MAX_SENTENCE_END_WAIT_MS = 5000
DEFAULT_CALIBRATION_KEY = "default"
DEFAULT_CALIBRATION_DB_PATH = str(Path.home() / ".live-interpreter" / "calibration.db")

# Threshold used before any calibration has run
DEFAULT_SILENCE_AVG = 5.0
DEFAULT_SPEECH_MAX = 41.0

# VAD Segmenter
PRE_ROLL_DURATION_MS = 300  # audio kept from before onset
VAD_TRACE_LOG_INTERVAL_MS = 10000  # log VAD stats every 10 seconds

# Service loop
CAPTURE_IDLE_SLEEP = 0.01  # seconds to wait when the stream has no data
