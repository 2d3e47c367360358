"""Application configuration and global constants for SecureCode."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


# Ensure environment variables are loaded from common locations
load_dotenv()
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env")


API_KEY_ENV_VAR = "GEMINI_API_KEY"
DEFAULT_MODEL = os.getenv("SECURECODE_MODEL", "gemini-2.5-flash")
DEFAULT_TEMPERATURE = float(os.getenv("SECURECODE_TEMPERATURE", "0.7"))
INFERENCE_TIMEOUT = int(os.getenv("SECURECODE_INFERENCE_TIMEOUT", "120"))
MAX_OUTPUT_TOKENS = 4096

# Only set when the operator forces one; otherwise chosen by key presence.
INFERENCE_MODE = os.getenv("SECURECODE_INFERENCE_MODE", "").strip().lower()
INFERENCE_MODES = {"gemini", "mock"}

# Bounds concurrent outbound model calls per batch.
BATCH_SIZE = max(1, int(os.getenv("SECURECODE_BATCH_SIZE", "3")))

MAX_UPLOAD_BYTES = 64 * 1024 * 1024
MAX_ARCHIVE_ENTRIES = 10_000
MAX_EXTRACTED_BYTES = 256 * 1024 * 1024
JOB_DIR_PREFIX = "securecode_job_"
# Job dirs younger than this may belong to a live submission in another worker.
STALE_JOB_DIR_SECONDS = int(os.getenv("SECURECODE_STALE_JOB_DIR_SECONDS", "3600"))

REPO_FETCH_TIMEOUT = int(os.getenv("SECURECODE_REPO_FETCH_TIMEOUT", "60"))
GITHUB_ARCHIVE_URL = "https://codeload.github.com/{owner}/{repo}/zip/{ref}"

RELAY_HOST = os.getenv("SECURECODE_RELAY_HOST", "127.0.0.1")
RELAY_PORT = int(os.getenv("SECURECODE_RELAY_PORT", "8765"))
PING_INTERVAL = float(os.getenv("SECURECODE_PING_INTERVAL", "10"))

# Seconds a request thread waits on the event loop before giving up.
SUBMIT_TIMEOUT = float(os.getenv("SECURECODE_SUBMIT_TIMEOUT", "300"))
READ_TIMEOUT = 30.0

ELEVATED_ROLES = {"admin"}

PARSE_ERROR_EXCERPT_CHARS = 2000

CODE_EXTENSIONS = (
    ".js",
    ".jsx",
    ".ts",
    ".tsx",
    ".py",
    ".java",
    ".c",
    ".cpp",
    ".h",
    ".hpp",
    ".php",
    ".rb",
    ".go",
    ".rs",
    ".swift",
    ".kt",
    ".scala",
    ".cs",
    ".m",
    ".sh",
)

VULNERABILITY_CLASSES = [
    "Injection (SQL, NoSQL, OS command, code evaluation)",
    "Cross-Site Scripting (XSS)",
    "Cross-Site Request Forgery (CSRF)",
    "Broken authentication and authorization",
    "Missing or insufficient input validation",
    "Risky or outdated dependencies",
    "Leaked secrets, keys and credentials",
    "Insecure file operations (path traversal, unsafe uploads)",
    "Insecure or unprotected endpoints",
    "Missing security headers",
]
