"""
AllCalc Configuration Settings
"""
import os

# Application Settings
APP_NAME = "AllCalc All-in-One Calculator"
VERSION = "1.0.0"

# Database Settings
DB_PATH = os.environ.get(
    "ALLCALC_DB_PATH",
    os.path.join(os.path.dirname(__file__), "allcalc.db"),
)

# History Settings
MAX_HISTORY_ITEMS = 100

# Evaluation Settings
RESULT_PRECISION = 10          # decimal places kept in a displayed result
ERROR_DISPLAY = "Error"

# Mode switching
MODE_SWITCH_COOLDOWN = float(os.environ.get("ALLCALC_MODE_COOLDOWN", "1.0"))   # seconds
CLASSIFY_DEBOUNCE = float(os.environ.get("ALLCALC_CLASSIFY_DEBOUNCE", "0.5"))  # seconds
REVERT_MODE_ON_CLEAR = os.environ.get("ALLCALC_REVERT_ON_CLEAR", "false").lower() in ("1", "true")

# AI (OpenAI-compatible chat completions endpoint)
LLM_BASE_URL = os.environ.get("LLM_BASE_URL", "").strip().rstrip("/")
LLM_API_KEY = os.environ.get("LLM_API_KEY", "").strip()
LLM_MODEL = os.environ.get("LLM_MODEL", "").strip()
LLM_TIMEOUT_SECONDS = float(os.environ.get("LLM_TIMEOUT_SECONDS", "20"))
LLM_TEMPERATURE = float(os.environ.get("LLM_TEMPERATURE", "0.2"))

# Graph settings
GRAPH_FIGSIZE = (6.0, 4.0)
GRAPH_DPI = 90
GRAPH_SAMPLES = 400
GRAPH_X_RANGE = (-10.0, 10.0)

# Web Portal settings
WEB_HOST = os.environ.get("ALLCALC_HOST", "0.0.0.0")
WEB_PORT = int(os.environ.get("ALLCALC_PORT", "8888"))
