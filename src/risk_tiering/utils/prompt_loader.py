"""Load markdown prompt templates with YAML frontmatter and Jinja2 bodies."""

import logging
from pathlib import Path
from typing import Any, Dict, List

import frontmatter
from jinja2 import StrictUndefined, Template, TemplateError

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

_ROLE_MARKERS = {"system:": "system", "user:": "user"}


def load_prompt(prompt_name: str, **kwargs) -> Dict[str, Any]:
    """Load a prompt file, render it, and split it into chat messages.

    Args:
        prompt_name: File name in the prompts/ directory, without .md
        **kwargs: Template variables

    Returns:
        {"config": frontmatter dict, "messages": [{"role", "content"}, ...]}

    Raises:
        FileNotFoundError: If the prompt file does not exist
        ValueError: If the file cannot be parsed or rendered
    """
    prompt_path = PROMPTS_DIR / f"{prompt_name}.md"
    if not prompt_path.exists():
        raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

    try:
        with open(prompt_path, "r", encoding="utf-8") as f:
            post = frontmatter.load(f)
    except Exception as e:
        raise ValueError(f"Failed to parse prompt file {prompt_path}: {e}")

    try:
        rendered = Template(post.content, undefined=StrictUndefined).render(**kwargs)
    except TemplateError as e:
        raise ValueError(f"Failed to render prompt {prompt_name}: {e}")

    messages = split_messages(rendered)
    logger.debug(f"Loaded prompt {post.metadata.get('name', prompt_name)} ({len(messages)} messages)")
    return {"config": dict(post.metadata), "messages": messages}


def split_messages(content: str) -> List[Dict[str, str]]:
    """Split rendered text on 'system:' / 'user:' marker lines."""
    messages: List[Dict[str, str]] = []
    role = None
    lines: List[str] = []

    def flush():
        text = "\n".join(lines).strip()
        if role and text:
            messages.append({"role": role, "content": text})

    for line in content.split("\n"):
        marker = _ROLE_MARKERS.get(line.strip())
        if marker:
            flush()
            role, lines = marker, []
        elif role:
            lines.append(line)
    flush()

    if not messages:
        raise ValueError("Invalid prompt format. Expected 'system:' and/or 'user:' markers")
    return messages
