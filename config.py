"""
Configuration module for the Health Triage Engine.
Loads environment variables and provides application-wide settings.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ── API Keys ───────────────────────────────────────────────────────────────
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

# ── MongoDB ────────────────────────────────────────────────────────────────
MONGODB_URI = os.getenv("MONGODB_URI", "")
MONGODB_DB_NAME = os.getenv("MONGODB_DB_NAME", "health_triage")
SESSIONS_COLLECTION = os.getenv("SESSIONS_COLLECTION", "sessions")
MEDICAL_RECORDS_COLLECTION = os.getenv("MEDICAL_RECORDS_COLLECTION", "medical_records")
HEALTH_WORKERS_COLLECTION = os.getenv("HEALTH_WORKERS_COLLECTION", "health_workers")
ESCALATIONS_COLLECTION = os.getenv("ESCALATIONS_COLLECTION", "escalations")
ANALYTICS_COLLECTION = os.getenv("ANALYTICS_COLLECTION", "analytics_events")

# ── Application Settings ──────────────────────────────────────────────────
APP_TITLE = "Health Triage Engine"
APP_DESCRIPTION = (
    "Multi-channel health triage: symptom assessment, escalation to "
    "health workers, and emergency guidance over web, WhatsApp and SMS."
)
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

EMERGENCY_HOTLINE = os.getenv("EMERGENCY_HOTLINE", "108")
DEFAULT_LANGUAGE = "en"

# ── Conversation Settings ─────────────────────────────────────────────────
SESSION_TIMEOUT_SECONDS = int(os.getenv("SESSION_TIMEOUT_SECONDS", "600"))
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
TURN_TIMEOUT_SECONDS = float(os.getenv("TURN_TIMEOUT_SECONDS", "5"))
MAX_MESSAGE_CHARS = 2000
MAX_PREVIOUS_QUERIES = 20

# ── Classifier Settings ───────────────────────────────────────────────────
CLASSIFIER_CONFIDENCE_FLOOR = 0.3
LANGUAGE_FALLBACK_PENALTY = 0.1
REPEATED_INTENT_WINDOW = 3

# ── LLM Settings ──────────────────────────────────────────────────────────
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "8"))
TEMPERATURE = 0.3  # Lower temperature for more consistent medical responses
TOP_P = 0.9
MAX_OUTPUT_TOKENS = 512

# ── Outbound Delivery ─────────────────────────────────────────────────────
DELIVERY_MAX_ATTEMPTS = 3
DELIVERY_BACKOFF_SECONDS = 0.5
HTTP_TIMEOUT_SECONDS = 15.0

WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v18.0")
WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
WHATSAPP_APP_SECRET = os.getenv("WHATSAPP_APP_SECRET", "")

SMS_GATEWAY_URL = os.getenv("SMS_GATEWAY_URL", "")
SMS_API_KEY = os.getenv("SMS_API_KEY", "")
SMS_SENDER_ID = os.getenv("SMS_SENDER_ID", "HEALTH")
SMS_MAX_LENGTH = 160
SMS_MAX_PARTS = 3  # Longer replies are truncated to fit
