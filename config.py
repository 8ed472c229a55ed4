import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Announcement language: 'vi' or 'en'
    LANGUAGE = os.environ.get('LANGUAGE', 'vi')
    # Automatic draw interval (milliseconds) and the accepted range
    AUTO_DRAW_INTERVAL_MS = int(os.environ.get('AUTO_DRAW_INTERVAL_MS', '6000'))
    AUTO_DRAW_MIN_MS = int(os.environ.get('AUTO_DRAW_MIN_MS', '2000'))
    AUTO_DRAW_MAX_MS = int(os.environ.get('AUTO_DRAW_MAX_MS', '10000'))
    # Chat retention window (messages)
    CHAT_LOG_LIMIT = int(os.environ.get('CHAT_LOG_LIMIT', '40'))
    # Simulated crowd chatter on the host. 0 disables.
    CHAT_BOTS_ENABLED = int(os.environ.get('CHAT_BOTS_ENABLED', '0'))
    BOT_CHAT_INTERVAL_SEC = int(os.environ.get('BOT_CHAT_INTERVAL_SEC', '4'))
    # langchain model id for announcements; empty disables generation
    PHRASE_MODEL = os.environ.get('PHRASE_MODEL', 'google_genai:gemini-2.5-flash')
    # Optional: debounce manual draw requests (ms). 0 disables.
    CONTROLLER_DEBOUNCE_MS = int(os.environ.get('CONTROLLER_DEBOUNCE_MS', '0'))
    # Session code shared with players; generated when unset
    SESSION_CODE = os.environ.get('SESSION_CODE')
    SESSION_CODE_LENGTH = int(os.environ.get('SESSION_CODE_LENGTH', '6'))
