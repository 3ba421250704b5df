"""Placeholder substitution for document templates.

Substitution is purely textual. A token such as ``[party1]`` is replaced
wherever it appears, including inside attributes or inside another field's
value, so template authors must keep field ids from colliding with substrings
of other ids or of literal template text.

Wire format of ``template_html``:

* ``[field_id]`` - replaced by the field's value
* ``<!-- START field_id --> ... <!-- END field_id -->`` - repeatable block,
  instantiated once per entry of the field's instance list
* ``[current_date]`` - replaced by the render date as DD/MM/YYYY
"""
import logging
import re
from datetime import date, datetime
from html import escape as html_escape
from typing import Any, Dict, List, Mapping, Optional, Union

from finacco.domains.templates.entities import DocumentTemplate

logger = logging.getLogger(__name__)

CURRENT_DATE_TOKEN = "[current_date]"
DATE_FORMAT = "%d/%m/%Y"

_PLACEHOLDER = re.compile(r"\[([A-Za-z0-9_\-]+)\]")

FormData = Dict[str, Union[str, List[Dict[str, Any]]]]


def _text(value: Any, escape: bool) -> str:
    if value is None:
        return ""
    text = str(value)
    return html_escape(text, quote=True) if escape else text


def _block_pattern(field_id: str) -> "re.Pattern[str]":
    name = re.escape(field_id)
    return re.compile(rf"<!-- START {name} -->(.*?)<!-- END {name} -->", re.S)


def _fill_instance(block: str, keys: List[str], entry: Mapping[str, Any], escape: bool) -> str:
    for key in keys + [k for k in entry if k not in keys]:
        block = block.replace(f"[{key}]", _text(entry.get(key), escape))
    return block


def format_current_date(now: Union[date, datetime]) -> str:
    # strftime numeric directives do not depend on the locale
    return now.strftime(DATE_FORMAT)


def render_template(
    template: DocumentTemplate,
    data: Mapping[str, Any],
    now: Optional[Union[date, datetime]] = None,
    escape: bool = True,
) -> str:
    """Substitute ``data`` into the template HTML and return the final document.

    Missing optional values render as empty strings; nothing here raises for
    incomplete data. Values are HTML-escaped unless ``escape`` is False.
    """
    html = template.template_html
    repeatable_ids = {f.id for f in template.repeatable_fields}
    member_ids = {f.id for f in template.fields} - {f.id for f in template.top_level_fields}

    scalar_ids = [f.id for f in template.top_level_fields if f.id not in repeatable_ids]
    scalar_ids += [
        k for k, v in data.items()
        if k not in repeatable_ids and k not in member_ids and not isinstance(v, list) and k not in scalar_ids
    ]

    for field_id in scalar_ids:
        value = data.get(field_id)
        html = html.replace(f"[{field_id}]", _text(value, escape))

    for field in template.repeatable_fields:
        entries = data.get(field.id) or []
        if not isinstance(entries, list):
            entries = []

        keys = [f.id for f in template.instance_fields(field)]
        pattern = _block_pattern(field.id)
        if not pattern.search(html):
            logger.debug("Template %s has no block for repeatable field %s", template.id, field.id)
            continue

        def expand(match: "re.Match[str]") -> str:
            block = match.group(1)
            return "".join(_fill_instance(block, keys, entry, escape) for entry in entries if isinstance(entry, Mapping))

        html = pattern.sub(expand, html)

    html = html.replace(CURRENT_DATE_TOKEN, format_current_date(now or date.today()))
    return html


def find_placeholders(template_html: str) -> List[str]:
    """Distinct placeholder ids in order of first appearance."""
    seen: List[str] = []
    for token in _PLACEHOLDER.findall(template_html or ""):
        if token not in seen:
            seen.append(token)
    return seen


def unknown_placeholders(template: DocumentTemplate) -> List[str]:
    """Tokens in the HTML that no field (or sub-field) will ever fill."""
    known = {CURRENT_DATE_TOKEN.strip("[]")}
    for field in template.fields:
        known.add(field.id)
        if field.is_repeatable:
            known.update(f.id for f in template.instance_fields(field))
    return [p for p in find_placeholders(template.template_html) if p not in known]
