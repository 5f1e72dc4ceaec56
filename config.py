import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# SIX brand colors, creator default first, guest default second
SIX_COLORS = ['#ff2d92', '#d426ff', '#00d4ff', '#39ff14', '#ff6b35', '#ffff00']
DEFAULT_CREATOR_COLOR = SIX_COLORS[0]
DEFAULT_GUEST_COLOR = SIX_COLORS[1]

ROOM_NAME_MAX_LENGTH = 30

ALLOWED_MEDIA_TYPES = {
    'image/jpeg': 'image',
    'image/png': 'image',
    'image/gif': 'image',
    'image/webp': 'image',
    'video/mp4': 'video',
    'video/webm': 'video',
    'video/quicktime': 'video',
}
MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10MB


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv('SIX_DATABASE_URI', 'sqlite:///six.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = os.getenv('SIX_UPLOAD_FOLDER', os.path.join(BASE_DIR, 'static', 'uploads'))
    # multipart overhead on top of the media limit; the media limit itself is checked per file
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE + 1024 * 1024

    ROOM_TTL = timedelta(hours=float(os.getenv('SIX_ROOM_TTL_HOURS', '6')))
    MESSAGE_TTL = timedelta(minutes=float(os.getenv('SIX_MESSAGE_TTL_MINUTES', '6')))
    TYPING_THROTTLE_SECONDS = 0.5
    ROOM_TICK_SECONDS = 60
    SWEEP_INTERVAL_SECONDS = int(os.getenv('SIX_SWEEP_INTERVAL', '60'))

    HISTORY_LIMIT = 10
    HISTORY_TTL = timedelta(hours=6)
    STORAGE_PATH = os.getenv('SIX_STORAGE_PATH', os.path.join(os.path.expanduser('~'), '.six', 'storage.json'))

    LOG_LEVEL = os.getenv('SIX_LOG_LEVEL', 'INFO')
