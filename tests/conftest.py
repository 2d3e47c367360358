"""Shared fixtures for the SecureCode test suite."""

import asyncio
import io
import json
import zipfile

import pytest

from securecode.errors import InferenceTransportError
from securecode.gemini_service import InferenceClient


def build_zip(entries):
    """Return ZIP bytes for ``{name: text}`` entries."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_zip():
    return build_zip


class ScriptedClient(InferenceClient):
    """Returns canned replies keyed by file content and records call timing.

    ``replies`` maps content -> raw reply text or an exception instance to
    raise. Unknown content gets an empty vulnerability list.
    """

    name = "scripted"

    def __init__(self, replies=None, delay=0.0, gate=None):
        self.replies = replies or {}
        self.delay = delay
        self.gate = gate
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.events = []

    async def infer_vulnerabilities(self, source_text):
        self.calls.append(source_text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(("start", source_text))
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.replies.get(source_text, json.dumps({"vulnerabilities": []}))
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1
            self.events.append(("end", source_text))


def findings_reply(*findings):
    return json.dumps({"vulnerabilities": list(findings)})


def finding(severity="high", vuln_type="Code Injection", line=1):
    return {
        "type": vuln_type,
        "severity": severity,
        "line": line,
        "description": f"{vuln_type} issue",
        "suggestion": "Fix it",
    }


@pytest.fixture
def scripted_client():
    return ScriptedClient


@pytest.fixture
def transport_error():
    return InferenceTransportError("Gemini API error: 503 service unavailable")
