import os
import dotenv
import logging

dotenv.load_dotenv()

GITHUB_PRIVATE_KEY = os.environ.get("GITHUB_PRIVATE_KEY")
GITHUB_APP_ID = os.environ.get("GITHUB_APP_ID")
if GITHUB_APP_ID is not None:
    GITHUB_APP_ID = int(GITHUB_APP_ID)

OVERRIDE_LOGGING = logging.getLevelName(os.environ.get("OVERRIDE_LOGGING", "WARNING"))

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")

CONFIG_FILE = os.environ.get("CONFIG_FILE", ".jobtrigger.yml")

OVERRIDE_CONFIG = os.environ.get("OVERRIDE_CONFIG")

HONOR_OK_TO_TEST = os.environ.get("HONOR_OK_TO_TEST", "false") == "true"

CONTEXT_IGNORE_FILTER = os.environ.get("CONTEXT_IGNORE_FILTER")

ACCESS_TOKEN_TTL = float(os.environ.get("ACCESS_TOKEN_TTL", 300))

PUSH_GATEWAY = os.environ.get("PUSH_GATEWAY")
