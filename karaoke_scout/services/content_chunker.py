"""Turns extraction targets into dispatcher jobs.

Each target becomes one job, except text targets longer than
``max_chars``: those are split on paragraph boundaries into several
jobs that share the target (and therefore its ``source_url``) and differ
in ``chunk_index``.  Job indices are assigned densely in target order.
"""

from __future__ import annotations

import re

from karaoke_scout.models.targets import ExtractionJob, ExtractionTarget, PromptKind

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


def chunk_text(text: str, max_chars: int) -> list[str]:
    """Split *text* into pieces no longer than *max_chars*.

    Paragraphs are kept whole when they fit; a single paragraph longer
    than the limit is cut on line boundaries, then hard-cut as a last
    resort.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    text = text.strip()
    if len(text) <= max_chars:
        return [text] if text else []

    pieces: list[str] = []
    for paragraph in _PARAGRAPH_SPLIT_RE.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= max_chars:
            pieces.append(paragraph)
            continue
        for line in paragraph.splitlines():
            line = line.strip()
            while len(line) > max_chars:
                pieces.append(line[:max_chars])
                line = line[max_chars:]
            if line:
                pieces.append(line)

    chunks: list[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current}\n\n{piece}" if current else piece
        if len(candidate) <= max_chars:
            current = candidate
        else:
            chunks.append(current)
            current = piece
    if current:
        chunks.append(current)
    return chunks


def build_jobs(
    targets: list[ExtractionTarget],
    max_chars: int = 12000,
    prompt_kind: PromptKind = PromptKind.SHOW_DETAIL,
) -> list[ExtractionJob]:
    """One job per target, or one per chunk for oversized text targets."""
    jobs: list[ExtractionJob] = []
    for target in targets:
        if target.text is not None and target.image_bytes is None and len(target.text) > max_chars:
            for chunk_index, chunk in enumerate(chunk_text(target.text, max_chars)):
                jobs.append(
                    ExtractionJob(
                        target=target,
                        prompt_kind=prompt_kind,
                        index=len(jobs),
                        chunk_index=chunk_index,
                        content=chunk,
                    )
                )
            continue
        jobs.append(ExtractionJob(target=target, prompt_kind=prompt_kind, index=len(jobs)))
    return jobs
