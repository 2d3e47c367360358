"""Inference collaborators and model response parsing.

Two interchangeable clients implement :class:`InferenceClient`: the live
Gemini client and a deterministic mock used for development and tests.
``build_inference_client`` picks one from configuration so the pipeline never
checks deployment mode itself.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .api_keys import resolve_api_key
from .config import (
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    INFERENCE_MODE,
    INFERENCE_MODES,
    INFERENCE_TIMEOUT,
    MAX_OUTPUT_TOKENS,
    PARSE_ERROR_EXCERPT_CHARS,
)
from .errors import InferenceParseError, InferenceTransportError
from .prompts import build_system_prompt, build_user_content
from .text_utils import excerpt

logger = logging.getLogger("securecode")
_configured_gemini_key: Optional[str] = None


class InferenceClient(ABC):
    """Inspects source text and returns the model's raw reply."""

    name = "base"

    @abstractmethod
    async def infer_vulnerabilities(self, source_text: str) -> str:
        """Return raw text expected to hold ``{"vulnerabilities": [...]}``.

        Transport-level failures must raise ``InferenceTransportError``.
        """


def ensure_gemini_client(api_key: str) -> None:
    """Configure the Gemini SDK once per API key."""
    global _configured_gemini_key
    if not api_key:
        raise InferenceTransportError("Missing Gemini API key.")
    if _configured_gemini_key == api_key:
        return
    genai.configure(api_key=api_key)
    _configured_gemini_key = api_key


def _response_text_from_gemini(response: Any) -> str:
    if response is None:
        return ""
    feedback = getattr(response, "prompt_feedback", None)
    if feedback and getattr(feedback, "block_reason", None):
        return f"Gemini blocked the request: {feedback.block_reason}"
    parts: List[str] = []
    for candidate in getattr(response, "candidates", []) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            value = getattr(part, "text", None)
            if value:
                parts.append(value)
    return "\n".join(parts).strip()


class GeminiInferenceClient(InferenceClient):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: int = INFERENCE_TIMEOUT,
    ) -> None:
        ensure_gemini_client(api_key)
        self.model = model
        self.timeout = timeout
        self._model = genai.GenerativeModel(
            model_name=model,
            system_instruction=build_system_prompt(),
        )
        self._generation_config = genai.GenerationConfig(
            response_mime_type="application/json",
            temperature=temperature,
            max_output_tokens=MAX_OUTPUT_TOKENS,
        )

    async def infer_vulnerabilities(self, source_text: str) -> str:
        try:
            response = await self._model.generate_content_async(
                build_user_content(source_text),
                generation_config=self._generation_config,
                request_options={"timeout": self.timeout},
            )
        except google_exceptions.GoogleAPIError as exc:
            raise InferenceTransportError(f"Gemini API error: {exc}") from exc
        except (asyncio.TimeoutError, OSError) as exc:
            raise InferenceTransportError(f"Gemini request failed: {exc}") from exc
        return _response_text_from_gemini(response)


# (pattern, type, severity, description, suggestion)
MOCK_RULES = [
    (
        re.compile(r"\beval\s*\("),
        "Code Injection",
        "high",
        "Dynamic evaluation of a runtime value can execute attacker-controlled code.",
        "Avoid eval; parse data explicitly or dispatch through a fixed table.",
    ),
    (
        re.compile(r"(?i)(select|insert|update|delete)\b[^;\n]*['\"]\s*\+"),
        "SQL Injection",
        "high",
        "SQL statement is built by string concatenation.",
        "Use parameterized queries or a query builder.",
    ),
    (
        re.compile(r"\b(os\.system|subprocess\.\w+\([^)]*shell\s*=\s*True|child_process\.exec)"),
        "Command Injection",
        "high",
        "Shell command execution with potentially untrusted input.",
        "Pass argument lists without a shell and validate inputs.",
    ),
    (
        re.compile(r"\.innerHTML\s*=|dangerouslySetInnerHTML|document\.write\("),
        "Cross-Site Scripting (XSS)",
        "medium",
        "Untrusted content may be written into the DOM without escaping.",
        "Use textContent or a sanitizer before rendering HTML.",
    ),
    (
        re.compile(r"(?i)\b(password|passwd|secret|api[_-]?key|token)\s*[:=]\s*['\"][^'\"]{4,}['\"]"),
        "Sensitive Data Exposure",
        "critical",
        "A credential appears to be hard-coded in source.",
        "Load secrets from the environment or a secret manager.",
    ),
    (
        re.compile(r"\bpickle\.loads?\(|\byaml\.load\((?![^)]*Loader)"),
        "Insecure Deserialization",
        "high",
        "Deserializing untrusted data can lead to code execution.",
        "Use safe loaders or a data-only format such as JSON.",
    ),
    (
        re.compile(r"verify\s*=\s*False|rejectUnauthorized\s*:\s*false"),
        "Broken Transport Security",
        "medium",
        "TLS certificate verification is disabled.",
        "Keep certificate verification enabled.",
    ),
    (
        re.compile(r"(?i)\b(md5|sha1)\s*\("),
        "Weak Cryptography",
        "low",
        "A weak hash function is in use.",
        "Use SHA-256 or a password hashing function such as bcrypt.",
    ),
]


class MockInferenceClient(InferenceClient):
    """Deterministic keyword-based findings for development and testing."""

    name = "mock"

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay

    async def infer_vulnerabilities(self, source_text: str) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        lines = source_text.splitlines() or [source_text]
        vulnerabilities = []
        for pattern, vuln_type, severity, description, suggestion in MOCK_RULES:
            for idx, line in enumerate(lines, start=1):
                if pattern.search(line):
                    vulnerabilities.append(
                        {
                            "type": vuln_type,
                            "severity": severity,
                            "line": idx,
                            "description": description,
                            "suggestion": suggestion,
                        }
                    )
                    break
        return json.dumps({"vulnerabilities": vulnerabilities})


def _extract_first_json_object(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def try_extract_json_block(text: str) -> Any:
    """Best-effort JSON recovery: plain JSON, fenced block, then first object."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        pass
    for fence in ("```json", "```"):
        s = text.find(fence)
        if s == -1:
            continue
        e = text.find("```", s + len(fence))
        if e == -1:
            continue
        try:
            return json.loads(text[s + len(fence) : e].strip())
        except ValueError:
            continue
    candidate = _extract_first_json_object(text)
    if candidate:
        try:
            return json.loads(candidate)
        except ValueError:
            return None
    return None


def parse_inference_payload(text: str) -> List[Dict[str, Any]]:
    """Return the raw finding dicts, or raise ``InferenceParseError``."""
    parsed = try_extract_json_block(text or "")
    if not isinstance(parsed, dict):
        raise InferenceParseError("Model response is not a JSON object.", raw_text=text or "")
    vulnerabilities = parsed.get("vulnerabilities")
    if not isinstance(vulnerabilities, list):
        raise InferenceParseError(
            "Model response has no 'vulnerabilities' list.", raw_text=text or ""
        )
    if not all(isinstance(item, dict) for item in vulnerabilities):
        raise InferenceParseError(
            "Model response contains malformed findings.", raw_text=text or ""
        )
    return vulnerabilities


def parse_failure_finding(raw_text: str) -> Dict[str, Any]:
    return {
        "type": "Analysis Error",
        "severity": "info",
        "line": "N/A",
        "description": excerpt(raw_text, PARSE_ERROR_EXCERPT_CHARS)
        or "The model returned an empty response.",
        "suggestion": "See description for details",
    }


def build_inference_client(
    mode: Optional[str] = None, api_key: Optional[str] = None
) -> InferenceClient:
    """Pick the collaborator: forced mode first, else Gemini when a key exists."""
    key = api_key if api_key is not None else resolve_api_key()
    chosen = (mode or INFERENCE_MODE or ("gemini" if key else "mock")).lower()
    if chosen not in INFERENCE_MODES:
        raise ValueError(f"Unknown inference mode: {chosen}")
    if chosen == "mock":
        if not key:
            logger.warning("GEMINI_API_KEY not set; using mock inference client.")
        return MockInferenceClient()
    return GeminiInferenceClient(key)


__all__ = [
    "GeminiInferenceClient",
    "InferenceClient",
    "MockInferenceClient",
    "build_inference_client",
    "ensure_gemini_client",
    "parse_failure_finding",
    "parse_inference_payload",
    "try_extract_json_block",
]
