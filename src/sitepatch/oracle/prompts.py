"""Instructions, output schemas and request building for the oracle."""
from __future__ import annotations

import json
import re
from typing import Any

from sitepatch.model.job import JobPayload
from sitepatch.oracle.types import OracleRequest
from sitepatch.patch.ops import OpKind

HTML_FILE = "index.html"
CSS_FILE = "styles/style.css"

FULL_SITE_PRESET = "new"

OPS_INSTRUCTIONS = """\
You are a precise front-end refactor assistant.
- You MUST return strictly valid JSON following the provided JSON schema.
- Only propose minimal, surgical changes.
- Never modify navigation, external scripts, <head>, or any selector marked with [data-protect].
- Prefer selectors as specific as possible to avoid touching siblings.
- Use ops:
  - replace_text: change only the textContent inside matched nodes.
  - append_html: append safe HTML at the end of the matched node.
  - replace_html: replace innerHTML of the matched node (use sparingly).
  - set_attr: set or update an attribute on matched nodes.
  - add_class / remove_class
  - upsert_style: add/update CSS rules (provide cssSelector + styleRules).
Return JSON only. No prose."""

SITE_INSTRUCTIONS = """\
You are a professional web and UX/UI designer creating complete landing pages.
Given a client briefing, produce a responsive, accessible site with hero,
features, gallery, testimonials and contact sections. Mark each section with
a data-section attribute (hero, gallery, testimonials, contact, pricing) so
later edits can target it.
Return JSON only, following the provided JSON schema: "files" maps
"index.html" and "styles/style.css" to their full contents. No prose."""

OPS_SCHEMA: dict[str, Any] = {
    "name": "dom_patch_schema",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "required": ["ops"],
        "properties": {
            "notes": {"type": "string"},
            "targetRoot": {"type": "string"},
            "ops": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "required": ["op", "selector"],
                    "additionalProperties": False,
                    "properties": {
                        "op": {"enum": [k.value for k in OpKind]},
                        "selector": {"type": "string"},
                        "text": {"type": "string"},
                        "html": {"type": "string"},
                        "attr": {"type": "string"},
                        "value": {"type": "string"},
                        "cssSelector": {"type": "string"},
                        "styleRules": {"type": "string"},
                    },
                },
            },
        },
    },
}

SITE_SCHEMA: dict[str, Any] = {
    "name": "site_files_schema",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "required": ["files"],
        "properties": {
            "files": {
                "type": "object",
                "additionalProperties": False,
                "required": [HTML_FILE, CSS_FILE],
                "properties": {
                    HTML_FILE: {"type": "string"},
                    CSS_FILE: {"type": "string"},
                },
            },
        },
    },
}

# Keyword (English, Spanish, Catalan stems) -> section anchor.
PROMPT_TO_SECTION: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"testimoni|reseñ|opini", re.IGNORECASE), '[data-section="testimonials"]'),
    (re.compile(r"galeri|gallery|carrusel|carousel|slider", re.IGNORECASE), '[data-section="gallery"]'),
    (re.compile(r"inici|hero|cabecera|header|landing", re.IGNORECASE), '[data-section="hero"]'),
    (re.compile(r"contact", re.IGNORECASE), '[data-section="contact"]'),
    (re.compile(r"precios|planes|pricing", re.IGNORECASE), '[data-section="pricing"]'),
)

SECTION_ANCHORS = ("hero", "gallery", "testimonials", "contact", "pricing")

DEFAULT_TARGET = "main, body"


def guess_target_section(prompt: str, html: str) -> str:
    """Pick the root selector a prompt most likely refers to.

    Keywords in the prompt win; otherwise the first known ``data-section``
    anchor present in the HTML; otherwise ``main, body``.
    """
    for pattern, selector in PROMPT_TO_SECTION:
        if pattern.search(prompt or ""):
            return selector
    for anchor in SECTION_ANCHORS:
        if isinstance(html, str) and f'data-section="{anchor}"' in html:
            return f'[data-section="{anchor}"]'
    return DEFAULT_TARGET


def is_full_site(payload: JobPayload) -> bool:
    return payload.preset == FULL_SITE_PRESET


def build_request(payload: JobPayload) -> OracleRequest:
    """Turn a job payload into the request every model in the chain receives."""
    if is_full_site(payload):
        return OracleRequest(
            system_instructions=SITE_INSTRUCTIONS,
            prompt=payload.prompt,
            current_files=dict(payload.files),
            brand=payload.brand,
            mode="site",
        )
    html = payload.files.get(HTML_FILE, "")
    target = payload.target or guess_target_section(payload.prompt, html)
    return OracleRequest(
        system_instructions=OPS_INSTRUCTIONS,
        prompt=payload.prompt,
        current_files=dict(payload.files),
        brand=payload.brand,
        target_root=target,
        mode="ops",
    )


def build_input(request: OracleRequest) -> list[dict[str, Any]]:
    """Render a request as Responses API ``input`` messages."""
    blocks: list[dict[str, str]] = []
    if request.mode == "ops":
        guidance = (
            f"TARGET ROOT: {request.target_root}\n"
            "Context:\n"
            f'- You will operate only within "{request.target_root}".\n'
            '- Avoid broad selectors like "body" or "div". '
            'Prefer [data-section="..."] descendants.\n'
            "- Do not change colors, fonts, or layout globally unless explicitly asked.\n"
            f"Task: {request.prompt}"
        )
        blocks.append({"type": "input_text", "text": guidance})
        blocks.append(
            {"type": "input_text", "text": f"HTML:\n{request.current_files.get(HTML_FILE, '')}"}
        )
        blocks.append(
            {"type": "input_text", "text": f"CSS:\n{request.current_files.get(CSS_FILE, '')}"}
        )
    else:
        blocks.append({"type": "input_text", "text": f"Briefing: {request.prompt}"})
        for name, content in request.current_files.items():
            blocks.append({"type": "input_text", "text": f"{name}:\n{content}"})
    if request.brand:
        blocks.append(
            {"type": "input_text", "text": f"Brand:\n{json.dumps(request.brand, sort_keys=True)}"}
        )
    return [
        {"role": "system", "content": request.system_instructions},
        {"role": "user", "content": blocks},
    ]


def schema_for(request: OracleRequest) -> dict[str, Any]:
    return OPS_SCHEMA if request.mode == "ops" else SITE_SCHEMA
