APP_NAME = "Frames"

SCHEMA_VERSION = 2

DATA_DIR_ENV = "FRAMES_DATA_DIR"
DB_FILENAME = "frames.db"

THUMBNAIL_WIDTH = 256

ENTRY_ID_PREFIX = "frame_"
