"""Conversion of CMS documents into canonical, hashable text.

Each supported document type has one text builder registered in
``NORMALIZERS``; that table is the only place document shapes are known.
Builders read named fields in a fixed order so the CMS client's key order never
leaks into the canonical text, and they ignore presentation-only fields
(display order, featured flags, images, links).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping

from chatsync.errors import UnsupportedDocumentTypeError
from chatsync.models import NormalizedDocument, SourceDocument
from chatsync.utils.hashing import compute_sha256
from chatsync.utils.text import clean_block

LOGGER = logging.getLogger(__name__)

Fields = Mapping[str, Any]
TextBuilder = Callable[[Fields], List[str]]


def _text(value: Any) -> str:
    if isinstance(value, str):
        return clean_block(value)
    return ""


def _strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [text for text in (_text(value) for value in values) if text]


def _items(values: Any) -> List[Mapping[str, Any]]:
    if not isinstance(values, list):
        return []
    return [value for value in values if isinstance(value, Mapping)]


def portable_text_to_plain_text(blocks: Any) -> str:
    """Flatten Portable Text blocks into paragraphs of plain text.

    Non-text blocks (images, embeds) are skipped; a plain string is accepted as-is.
    """
    if isinstance(blocks, str):
        return clean_block(blocks)
    paragraphs = []
    for block in _items(blocks):
        if block.get("_type") != "block":
            continue
        spans = "".join(
            child.get("text", "")
            for child in _items(block.get("children"))
            if isinstance(child.get("text", ""), str)
        )
        spans = clean_block(spans)
        if spans:
            paragraphs.append(spans)
    return "\n\n".join(paragraphs)


def _section(parts: List[str], heading: str, lines: Iterable[str]) -> None:
    lines = [line for line in lines if line]
    if lines:
        parts.append(heading)
        parts.extend(lines)


def _labelled(items: Any) -> List[str]:
    return [
        f"- {_text(item.get('label'))}: {_text(item.get('value'))}"
        for item in _items(items)
        if _text(item.get("label")) or _text(item.get("value"))
    ]


def _bullets(values: Any) -> List[str]:
    return [f"- {value}" for value in _strings(values)]


def _add(parts: List[str], value: Any, prefix: str = "") -> None:
    text = _text(value)
    if text:
        parts.append(f"{prefix}{text}")


def _project_text(fields: Fields) -> List[str]:
    parts: List[str] = []
    _add(parts, fields.get("category"), "Category: ")
    _add(parts, fields.get("summary"))
    _add(parts, fields.get("description"))
    _add(parts, portable_text_to_plain_text(fields.get("content")))
    _section(parts, "## Key Metrics", _labelled(fields.get("metrics")))
    _section(parts, "## Key Achievements", _bullets(fields.get("achievements")))
    technologies = _strings(fields.get("technologies"))
    if technologies:
        parts.append(f"Technologies: {', '.join(technologies)}")
    return parts


def _profile_text(fields: Fields) -> List[str]:
    parts: List[str] = []
    _add(parts, fields.get("heroHeadline"))
    _add(parts, fields.get("heroSubheadline"))
    _add(parts, fields.get("heroIntro"))
    _section(parts, "## Quick Facts", _labelled(fields.get("quickFacts")))

    capabilities: List[str] = []
    for capability in _items(fields.get("capabilities")):
        title = _text(capability.get("title"))
        if title:
            capabilities.append(f"### {title}")
        _add(capabilities, capability.get("description"))
    _section(parts, "## Capabilities", capabilities)

    _section(parts, "## Background", [portable_text_to_plain_text(fields.get("bio"))])

    skills: List[str] = []
    for group in _items(fields.get("skills")):
        names = _strings(group.get("skills"))
        if names:
            skills.append(f"### {_text(group.get('category')) or 'Skills'}")
            skills.append(", ".join(names))
    _section(parts, "## Skills", skills)

    technologies: List[str] = []
    raw_technologies = fields.get("technologies")
    if isinstance(raw_technologies, Mapping):
        for category in sorted(raw_technologies):
            names = _strings(raw_technologies[category])
            if names:
                technologies.append(f"### {category}")
                technologies.append(", ".join(names))
    _section(parts, "## Technologies & Tools", technologies)

    experience: List[str] = []
    for entry in _items(fields.get("experience")):
        role = _text(entry.get("role"))
        company = _text(entry.get("company"))
        if role and company:
            experience.append(f"### {role} at {company}")
        elif role or company:
            experience.append(f"### {role or company}")
        _add(experience, entry.get("description"))
    _section(parts, "## Experience", experience)

    for section in _items(fields.get("sections")):
        _add(parts, section.get("heading"), "## ")
        _add(parts, portable_text_to_plain_text(section.get("content")))
        for subsection in _items(section.get("subsections")):
            _add(parts, subsection.get("heading"), "### ")
            _add(parts, portable_text_to_plain_text(subsection.get("content")))
    return parts


def _ai_project_text(fields: Fields) -> List[str]:
    parts: List[str] = []
    _add(parts, fields.get("subtitle"))
    _add(parts, fields.get("status"), "Status: ")
    _add(parts, fields.get("category"), "Category: ")
    _add(parts, fields.get("description"))

    overview = fields.get("overview")
    if isinstance(overview, Mapping):
        _section(parts, "## Problem", [_text(overview.get("problem"))])
        _section(parts, "## Solution", [_text(overview.get("solution"))])
        _add(parts, overview.get("role"), "Role: ")
        _add(parts, overview.get("timeline"), "Timeline: ")

    _section(parts, "## Key Metrics", _labelled(fields.get("metrics")))
    tech_stack = _strings(fields.get("techStack"))
    if tech_stack:
        parts.append(f"Tech Stack: {', '.join(tech_stack)}")

    components: List[str] = []
    for component in _items(fields.get("aiComponents")):
        name = _text(component.get("name"))
        technology = _text(component.get("technology"))
        if name:
            components.append(f"### {name} ({technology})" if technology else f"### {name}")
        _add(components, component.get("description"))
    _section(parts, "## AI Components", components)

    process: List[str] = []
    for phase in _items(fields.get("developmentProcess")):
        _add(process, phase.get("phase"), "### ")
        _add(process, phase.get("description"))
        outcomes = _bullets(phase.get("outcomes"))
        if outcomes:
            process.append("Outcomes:")
            process.extend(outcomes)
    _section(parts, "## Development Process", process)

    _section(parts, "## Key Learnings", _bullets(fields.get("learnings")))
    _section(parts, "## Achievements", _bullets(fields.get("achievements")))
    return parts


def _showcase_slide(slide: Mapping[str, Any]) -> List[str]:
    lines: List[str] = []
    _add(lines, slide.get("sectionLabel"))
    _add(lines, slide.get("heading"), "## ")
    _add(lines, portable_text_to_plain_text(slide.get("content")))
    for block in _items(slide.get("content")):
        if block.get("_type") == "image":
            _add(lines, block.get("caption"), "Image: ")

    quote_box = slide.get("quoteBox")
    if isinstance(quote_box, Mapping) and _text(quote_box.get("quote")):
        attribution = _text(quote_box.get("attribution"))
        quote = f'"{_text(quote_box.get("quote"))}"'
        lines.append(f"{quote} - {attribution}" if attribution else quote)

    for box in _items(slide.get("comparisonBoxes")):
        header = " ".join(filter(None, [_text(box.get("label")), _text(box.get("title"))]))
        _add(lines, header, "### ")
        _add(lines, box.get("text"))
        _add(lines, box.get("stat"), "Stat: ")

    for card in _items(slide.get("visualCards")):
        _add(lines, card.get("caption"))
        _add(lines, card.get("placeholderText"))

    pills = _strings(slide.get("techPills"))
    if pills:
        lines.append(f"Technologies: {', '.join(pills)}")
    return lines


def _ai_showcase_text(fields: Fields) -> List[str]:
    parts: List[str] = []
    _add(parts, fields.get("category"), "Category: ")
    hero = fields.get("heroSection")
    if isinstance(hero, Mapping):
        _add(parts, hero.get("badge"))
        hero_title = _text(hero.get("title"))
        if hero_title and hero_title != _text(fields.get("title")):
            parts.append(hero_title)
        _add(parts, hero.get("subtitle"))
        _add(parts, hero.get("summary"))

    for slide in _items(fields.get("slides")):
        parts.extend(_showcase_slide(slide))

    _add(parts, fields.get("horizontalSectionLabel"))
    _add(parts, fields.get("horizontalSectionHeading"), "## ")

    metrics: List[str] = []
    for metric in _items(fields.get("metrics")):
        label = _text(metric.get("label"))
        value = _text(metric.get("value"))
        if not (label or value):
            continue
        line = f"- {label}: {value}"
        description = _text(metric.get("description"))
        metrics.append(f"{line} ({description})" if description else line)
    _section(parts, "## Metrics", metrics)

    call_to_action = fields.get("callToAction")
    if isinstance(call_to_action, Mapping):
        _add(parts, call_to_action.get("text"))
    return parts


NORMALIZERS: Dict[str, TextBuilder] = {
    "project": _project_text,
    "profile": _profile_text,
    "aiProject": _ai_project_text,
    "aiShowcase": _ai_showcase_text,
}


def _title_for(document: SourceDocument) -> str:
    if document.type == "profile":
        return _text(document.fields.get("name"))
    return _text(document.fields.get("title"))


def _metadata_for(document: SourceDocument) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"updatedAt": document.updated_at}
    slug = document.fields.get("slug")
    if isinstance(slug, Mapping) and _text(slug.get("current")):
        metadata["slug"] = _text(slug.get("current"))
    category = _text(document.fields.get("category"))
    if category:
        metadata["category"] = category
    return metadata


def build_canonical_text(document: SourceDocument) -> tuple[str, str]:
    """Return ``(title, canonical_text)`` for a document.

    Raises:
        UnsupportedDocumentTypeError: if no builder is registered for the type.
    """
    builder = NORMALIZERS.get(document.type)
    if builder is None:
        raise UnsupportedDocumentTypeError(document.type)

    title = _title_for(document)
    body = builder(document.fields)
    if not title and not body:
        return "", ""
    heading = f"# {title}" if title else ""
    return title, "\n\n".join(part for part in [heading, *body] if part)


def normalize(document: SourceDocument) -> NormalizedDocument | None:
    """Normalize a CMS document, or return None when there is nothing to index."""
    try:
        title, canonical_text = build_canonical_text(document)
    except UnsupportedDocumentTypeError as exc:
        LOGGER.debug("Skipping %s: %s", document.id, exc)
        return None

    if not canonical_text:
        LOGGER.debug("Skipping %s: no indexable text", document.id)
        return None

    return NormalizedDocument(
        source_id=document.id,
        source_type=document.type,
        title=title or document.id,
        canonical_text=canonical_text,
        content_hash=compute_sha256(canonical_text),
        metadata=_metadata_for(document),
    )
