"""Prompt templates for the inference collaborator."""

from __future__ import annotations

from .config import VULNERABILITY_CLASSES


def build_system_prompt() -> str:
    classes = "\n".join(f"- {name}" for name in VULNERABILITY_CLASSES)
    return (
        "You are a cybersecurity expert reviewing a single source file. "
        "Analyze the provided code for security vulnerabilities, focusing on:\n"
        f"{classes}\n\n"
        "Only report issues evidenced by the code shown. "
        "Respond with JSON only, using exactly this structure:\n"
        "{\n"
        "  \"vulnerabilities\": [\n"
        "    {\n"
        "      \"type\": \"vulnerability type\",\n"
        "      \"severity\": \"low|medium|high|critical\",\n"
        "      \"line\": \"line number or range\",\n"
        "      \"description\": \"description of the issue\",\n"
        "      \"suggestion\": \"how to fix it\"\n"
        "    }\n"
        "  ]\n"
        "}\n"
        "Return an empty 'vulnerabilities' array if no issues are present."
    )


def build_user_content(source_text: str) -> str:
    return f"Analyze this code for security vulnerabilities:\n\n{source_text}"


__all__ = ["build_system_prompt", "build_user_content"]
