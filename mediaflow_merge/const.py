# Fixed logical names inside the engine's working filesystem. Never derived from user input.
VIDEO_INPUT_NAME = "input.mp4"
AUDIO_INPUT_NAME = "input.mp3"
SUBTITLE_INPUT_NAME = "input.srt"
OUTPUT_NAME = "output.mp4"

STAGED_NAMES = (
    VIDEO_INPUT_NAME,
    AUDIO_INPUT_NAME,
    SUBTITLE_INPUT_NAME,
    OUTPUT_NAME,
)

OUTPUT_MIME_TYPE = "video/mp4"
OUTPUT_FILENAME = "output.mp4"

STORAGE_FILES_PATH = "/getFiles"

# Shown to the user for every kind of merge failure.
GENERIC_FAILURE_MESSAGE = "Compilation failed"
