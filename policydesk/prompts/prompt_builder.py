# policydesk/prompts/prompt_builder.py

import logging
from dataclasses import dataclass
from typing import Sequence

from policydesk import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextDocument:
    """One (title, content) pair to embed in a prompt."""
    title: str
    content: str
    label: str = "DOCUMENT"


def truncate_content(
    content: str,
    limit: int = config.MAX_DOCUMENT_CHARACTERS,
    marker: str = config.TRUNCATION_MARKER,
) -> str:
    """
    Cut content to `limit` characters and append `marker` when trimmed.

    Trailing content past the ceiling is lost.
    """

    content = (content or "").replace("\x00", "").strip()

    if len(content) <= limit:
        return content

    logger.warning(
        "prompt_content_truncated",
        extra={"original_length": len(content), "limit": limit},
    )

    return content[:limit] + marker


def render_document(
    document: ContextDocument,
    limit: int = config.MAX_DOCUMENT_CHARACTERS,
) -> str:

    body = truncate_content(document.content, limit)

    return f'{document.label} - {document.title}:\n"""\n{body}\n"""'


def build_prompt(
    template: str,
    documents: Sequence[ContextDocument],
    limit: int = config.MAX_DOCUMENT_CHARACTERS,
    **fields: str,
) -> str:
    """
    Assemble a bounded prompt from an instruction template and documents.

    Each document is truncated independently to `limit` characters.
    `fields` fill the remaining template placeholders (e.g. question).
    """

    context = "\n\n".join(render_document(doc, limit) for doc in documents)

    prompt = template.format(context=context, **fields)

    logger.info(
        "Prompt built",
        extra={
            "documents": len(documents),
            "prompt_length": len(prompt),
        },
    )

    return prompt
