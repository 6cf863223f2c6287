# config.py

import os
from dotenv import load_dotenv

load_dotenv()

# --- API Configuration ---
API_BASE_URL = os.getenv("API_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
API_MODEL = os.getenv("API_MODEL", "gemini-3-flash-preview")
API_TIMEOUT = int(os.getenv("API_TIMEOUT", 600))
API_VERIFY_SSL = os.getenv("API_VERIFY_SSL", "true").lower() not in ("0", "false", "no")


def get_api_key():
    """Reads the credential on every call so a key added after startup is picked up."""
    return os.getenv("API_KEY") or None


# --- Upload Configuration ---
# Mirrors the browser's accept="image/*,.pdf"; used for warnings only, never to reject.
ACCEPTED_MIME_PREFIXES = ["image/", "application/pdf"]
UPLOAD_ACCEPT_ATTRIBUTE = "image/*,.pdf"

SLOT_LABELS = {
    "invoice": "Commercial Invoice",
    "packing_list": "Packing List",
    "bill_of_lading": "Bill of Lading",
}

TEMP_DIR = os.getenv("TEMP_DIR", "temp_processing")
SESSION_MAX_COUNT = int(os.getenv("SESSION_MAX_COUNT", 100))
LOG_STREAM_POLL_SECONDS = float(os.getenv("LOG_STREAM_POLL_SECONDS", 1.0))

COPY_LABEL_IDLE = "Copy"
COPY_LABEL_DONE = "Copied!"
COPY_FEEDBACK_DELAY = float(os.getenv("COPY_FEEDBACK_DELAY", 2.0))

LOG_FILE = os.getenv("LOG_FILE", "app_log.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Extraction Prompt Configuration ---
NOT_FOUND_SENTINEL = os.getenv("NOT_FOUND_SENTINEL", "Not Found")


def _list_from_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return default
    items = [item.strip() for item in raw.split(";")]
    return [item for item in items if item] or default


EXTRACTION_FIELDS = _list_from_env("EXTRACTION_FIELDS", [
    "Total Invoice Value (USD)",
    "Total Packages",
    "SAP Cargo PO",
    "Invoice Number",
    "BL/AWB Number",
    "Shipper",
    "Incoterm",
    "Description of Goods",
    "Carrier",
    "Vessel/Voyage",
    "Freight Value (USD)",
    "CBM (Total Volume)",
])

CONTAINER_FIELDS = _list_from_env("CONTAINER_FIELDS", [
    "Container Number",
    "Seal Number",
    "Container Type",
])
