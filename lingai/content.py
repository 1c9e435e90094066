"""Versioned markdown envelope for stored lesson content.

    ---
    schema: lingai.lesson/v1
    title: Tapas night
    topics:
    - food
    - travel
    ---
    <markdown body>

The front matter is a YAML mapping that must carry the ``schema`` tag.
Anything else is rejected rather than guessed at.
"""
from dataclasses import dataclass, field
from typing import Any, Dict

import yaml

from .errors import InvalidArgument

SCHEMA_TAG = "lingai.lesson/v1"
FENCE = "---"


@dataclass
class LessonDocument:
    meta: Dict[str, Any] = field(default_factory=dict)
    body: str = ""
    schema: str = SCHEMA_TAG


def render_lesson_markdown(meta: Dict[str, Any], body: str) -> str:
    header = {"schema": SCHEMA_TAG}
    header.update((k, v) for k, v in meta.items() if k != "schema")
    front = yaml.safe_dump(header, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"{FENCE}\n{front}{FENCE}\n\n{body.strip()}\n"


def parse_lesson_markdown(text: str) -> LessonDocument:
    lines = (text or "").replace("\r\n", "\n").split("\n")
    if not lines or lines[0].strip() != FENCE:
        raise InvalidArgument("Lesson content has no front matter")
    try:
        end = next(i for i in range(1, len(lines)) if lines[i].strip() == FENCE)
    except StopIteration:
        raise InvalidArgument("Lesson front matter is not closed")

    try:
        header = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError as e:
        raise InvalidArgument(f"Lesson front matter is not valid YAML: {e}") from e
    if not isinstance(header, dict):
        raise InvalidArgument("Lesson front matter must be a mapping")

    schema = header.pop("schema", None)
    if schema is None:
        raise InvalidArgument("Lesson front matter has no schema tag")
    if schema != SCHEMA_TAG:
        raise InvalidArgument(f"Unsupported lesson schema: {schema!r}")

    body = "\n".join(lines[end + 1:]).strip("\n")
    return LessonDocument(meta=header, body=body, schema=schema)
