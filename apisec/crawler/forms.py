import logging
import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from pydantic import BaseModel

from apisec.config import HTML_PARSER

log = logging.getLogger(__name__)

# Swagger UI pages reference their spec as a quoted "*.json" string
_JSON_LINK_RE = re.compile(r"""["']([^"'\s<>]+?\.json)["']""")


class FormField(BaseModel):
    name: str
    type: str = "text"
    value: str = ""


class HtmlForm(BaseModel):
    action: str
    method: str = "POST"
    fields: list[FormField] = []

    def defaults(self) -> dict[str, str]:
        return {f.name: f.value for f in self.fields}


def _field_from_tag(tag) -> FormField | None:
    name = tag.get("name")
    if not name:
        return None
    if tag.name == "select":
        options = tag.find_all("option")
        chosen = next((o for o in options if o.has_attr("selected")), options[0] if options else None)
        value = chosen.get("value", chosen.get_text(strip=True)) if chosen else ""
        return FormField(name=name, type="select", value=value)
    if tag.name == "textarea":
        return FormField(name=name, type="textarea", value=tag.get_text())
    return FormField(name=name, type=(tag.get("type") or "text").lower(), value=tag.get("value", ""))


def extract_forms(html: str, page_url: str) -> list[HtmlForm]:
    """Every form on the page with its named inputs, textareas and selects."""
    soup = BeautifulSoup(html, HTML_PARSER)
    forms: list[HtmlForm] = []
    for form in soup.find_all("form"):
        fields = [f for f in (_field_from_tag(t) for t in form.find_all(["input", "textarea", "select"])) if f]
        forms.append(HtmlForm(
            action=urljoin(page_url, form.get("action") or page_url),
            method=(form.get("method") or "POST").upper(),
            fields=fields,
        ))
    return forms


def extract_first_form(html: str, page_url: str) -> HtmlForm | None:
    forms = extract_forms(html, page_url)
    return forms[0] if forms else None


def path_of(url: str) -> str:
    """Reduce an absolute URL to its path (plus query) so it can be replayed on any base."""
    parsed = urlparse(url)
    path = parsed.path or "/"
    return f"{path}?{parsed.query}" if parsed.query else path


def extract_json_links(html: str) -> list[str]:
    """Quoted ``*.json`` references in a page, first occurrence order."""
    seen: dict[str, None] = {}
    for match in _JSON_LINK_RE.finditer(html):
        seen.setdefault(match.group(1), None)
    return list(seen)


def extract_external_resources(html: str, page_url: str) -> list[dict]:
    """Scripts and stylesheets loaded from another host, with their integrity attribute."""
    soup = BeautifulSoup(html, HTML_PARSER)
    host = urlparse(page_url).netloc
    found: list[dict] = []

    for tag in soup.find_all("script", src=True):
        found.append({"tag": "script", "url": urljoin(page_url, tag["src"]), "integrity": tag.get("integrity")})
    for tag in soup.find_all("link", href=True):
        rel = [r.lower() for r in (tag.get("rel") or [])]
        if "stylesheet" in rel:
            found.append({"tag": "link", "url": urljoin(page_url, tag["href"]), "integrity": tag.get("integrity")})

    return [r for r in found if urlparse(r["url"]).netloc not in ("", host)]
