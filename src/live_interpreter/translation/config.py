"""Configuration constants for the transcription/translation/synthesis pipeline."""

# Pipeline filters
MIN_SEGMENT_PAYLOAD_BYTES = 1000  # smaller segments are silence or clicks
MIN_TRANSCRIPT_CHARS = 2
LATENCY_BUDGET_MS = 1500  # observability only, never aborts a call

# Phrases some STT engines produce on near-silent input
DEFAULT_NOISE_DENYLIST = (
    "字幕由Amara.org社区提供",
    "字幕由Amara.org社區提供",
    "请不吝点赞 订阅 转发 打赏支持明镜与点点栏目",
    "請不吝點贊 訂閱 轉發 打賞支持明鏡與點點欄目",
    "Subtitles by the Amara.org community",
    "Thank you for watching",
    "Thanks for watching",
    "Hãy subscribe cho kênh",
)

# Transcription (faster-whisper)
WHISPER_MODEL_SIZE = "small"
WHISPER_DEVICE = "cpu"
WHISPER_COMPUTE_TYPE = "int8"
WHISPER_BEAM_SIZE = 1  # greedy decoding keeps latency down
TRANSCRIBER_SAMPLE_RATE = 16000
MAX_AUDIO_PAYLOAD_BYTES = 10 * 1024 * 1024

# Translation (Ollama)
DEFAULT_OLLAMA_MODEL = "llama3.2:3b"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_TIMEOUT = 10.0  # seconds
TRANSLATION_TEMPERATURE = 0.3
TRANSLATION_MAX_TOKENS = 300  # conversational sentences are short

# Speech synthesis (edge-tts)
DEFAULT_TTS_VOICES = {
    "zh": "zh-TW-HsiaoChenNeural",
    "vi": "vi-VN-HoaiMyNeural",
    "en": "en-US-AriaNeural",
    "th": "th-TH-PremwadeeNeural",
}
DEFAULT_TTS_TIMEOUT = 15.0  # seconds

LANGUAGE_NAMES = {
    "zh": "Traditional Chinese",
    "vi": "Vietnamese",
    "en": "English",
    "th": "Thai",
}
