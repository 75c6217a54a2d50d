# vulnmap/crawler/parser.py
"""Best-effort extraction of links and forms from fetched pages"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup

from .fetcher import Document
from .scope import resolve
from .site_graph import FormDescriptor, InputDescriptor


logger = logging.getLogger(__name__)

LINK_ATTRIBUTES = {
    "a": "href",
    "area": "href",
    "iframe": "src",
    "frame": "src",
}

FORM_METHODS = ("get", "post")


@dataclass
class ParseResult:
    links: List[str] = field(default_factory=list)
    forms: List[FormDescriptor] = field(default_factory=list)


def parse(document: Document) -> ParseResult:
    """
    Extract outbound links and form descriptors from a document.

    Never raises: markup that cannot be parsed, or a document that is not
    HTML, yields an empty result.
    """
    if not document.is_html or not document.text:
        return ParseResult()

    try:
        soup = BeautifulSoup(document.text, "html.parser")
    except Exception as e:
        logger.debug("Unparseable document %s: %s", document.url, e)
        return ParseResult()

    base_url = _base_url(soup, document.url)
    result = ParseResult()

    for tag in soup.find_all(list(LINK_ATTRIBUTES)):
        link = resolve(base_url, tag.get(LINK_ATTRIBUTES[tag.name]))
        if link and link not in result.links:
            result.links.append(link)

    for form in soup.find_all("form"):
        descriptor = _parse_form(base_url, document.url, form)
        if descriptor and descriptor not in result.forms:
            result.forms.append(descriptor)

    return result


def _base_url(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base:
        resolved = resolve(page_url, base["href"])
        if resolved:
            return resolved
    return page_url


def _parse_form(base_url: str, page_url: str, form) -> Optional[FormDescriptor]:
    """Parse an HTML form element"""
    action = (form.get("action") or "").strip()
    action_url = resolve(base_url, action) if action else page_url
    if not action_url:
        return None

    method = (form.get("method") or "get").strip().lower()
    if method not in FORM_METHODS:
        method = "get"

    inputs = []
    for element in form.find_all(["input", "textarea", "select"]):
        name = element.get("name")
        if not name:
            continue
        if element.name == "input":
            input_type = (element.get("type") or "text").strip().lower()
            value = element.get("value") or ""
        elif element.name == "textarea":
            input_type = "textarea"
            value = element.get_text() or ""
        else:
            input_type = "select"
            option = element.find("option", selected=True) or element.find("option")
            value = (option.get("value") or option.get_text() or "") if option else ""
        inputs.append(InputDescriptor(name=name, type=input_type, value=value.strip()))

    return FormDescriptor(action=action_url, method=method, inputs=tuple(inputs))
