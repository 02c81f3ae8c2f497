"""Template rendering for lifecycle emails.

Operator copy arrives either as a lightweight markup (blank-line paragraphs,
``#`` headings, ``-`` bullet lists) or as HTML pasted from an editor. Markup is
compiled block by block into escaped HTML; HTML is passed through an
allow-list sanitizer. Both paths then receive inline styles because most
email clients ignore ``<style>`` blocks. Nothing in this module raises on
malformed input: the worst outcome is plain formatting.
"""

from __future__ import annotations

import html
import re
from dataclasses import asdict, dataclass
from html.parser import HTMLParser
from typing import Any, Dict, Iterable, List, Mapping
from urllib.parse import quote, urlparse

from loguru import logger

from bakeriq_api.core.urls import build_app_url

TOKEN_NAMES: tuple[str, ...] = (
    "first_name",
    "business_name",
    "quick_quote_url",
    "dashboard_url",
    "login_url",
    "unsubscribe_url",
    "base_url",
)

ALLOWED_TAGS = frozenset(
    {"p", "br", "strong", "b", "em", "i", "u", "a", "ul", "ol", "li", "h1", "h2", "h3", "blockquote", "span", "div"}
)
ALLOWED_ATTRIBUTES = frozenset({"href", "style"})
SAFE_URL_SCHEMES = frozenset({"http", "https", "mailto"})
VOID_TAGS = frozenset({"br"})
# Content inside these tags is dropped together with the tag itself.
DROP_CONTENT_TAGS = frozenset({"script", "style", "head", "title", "iframe", "object", "embed", "noscript", "template"})
BLOCK_TAGS = frozenset({"p", "div", "h1", "h2", "h3", "ul", "ol", "blockquote", "table", "tr"})

EMAIL_STYLES: Dict[str, str] = {
    "p": "margin: 0 0 16px 0; line-height: 1.6; color: #333333;",
    "h1": "margin: 0 0 16px 0; font-size: 24px; line-height: 1.3; color: #1f1f1f;",
    "h2": "margin: 0 0 14px 0; font-size: 20px; line-height: 1.3; color: #1f1f1f;",
    "h3": "margin: 0 0 12px 0; font-size: 17px; line-height: 1.3; color: #1f1f1f;",
    "ul": "margin: 0 0 16px 0; padding-left: 20px;",
    "ol": "margin: 0 0 16px 0; padding-left: 20px;",
    "li": "margin: 0 0 8px 0; line-height: 1.6;",
    "a": "color: #E91E63; text-decoration: underline;",
    "blockquote": "margin: 0 0 16px 0; padding-left: 12px; border-left: 3px solid #F06292; color: #555555;",
    "strong": "font-weight: 600;",
    "b": "font-weight: 600;",
}

_HTML_TAG_PATTERN = re.compile(r"</?[a-zA-Z][a-zA-Z0-9]*(\s[^<>]*)?/?>")
_BLOCK_SPLIT = re.compile(r"\n\s*\n")
_HEADING_PATTERN = re.compile(r"^(#{1,3})\s+(.*)$")
_BULLET_PATTERN = re.compile(r"^\s*[-*•]\s+(.*)$")
_BOLD_PATTERN = re.compile(r"\*\*(.+?)\*\*")
_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_OPEN_TAG_PATTERN = re.compile(r"<([a-z0-9]+)((?:\s[^<>]*?)?)(\s*/?)>")
_STYLE_ATTR_PATTERN = re.compile(r'\sstyle="([^"]*)"')
_UNSAFE_STYLE = re.compile(r"expression\s*\(|url\s*\(|javascript:|@import", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x20\x7f]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class PersonalizationTokens:
    first_name: str
    business_name: str
    quick_quote_url: str
    dashboard_url: str
    login_url: str
    unsubscribe_url: str
    base_url: str

    def as_mapping(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class RenderedEmail:
    subject: str
    text_body: str
    html_body: str
    template_key: str | None = None


def build_tokens(recipient: Any, base_url: str) -> PersonalizationTokens:
    """Build tokens from anything exposing tenant-like name, slug and email attributes."""

    email = getattr(recipient, "email", "") or ""
    business_name = getattr(recipient, "business_name", "") or ""
    first_name = getattr(recipient, "first_name", None) or (business_name.split()[0] if business_name.split() else "")
    slug = getattr(recipient, "slug", "") or ""
    return PersonalizationTokens(
        first_name=first_name,
        business_name=business_name,
        quick_quote_url=build_app_url(f"/c/{slug}", base_url),
        dashboard_url=build_app_url("/dashboard", base_url),
        login_url=build_app_url("/login", base_url),
        unsubscribe_url=build_app_url(f"/unsubscribe?email={quote(email, safe='')}", base_url),
        base_url=base_url.rstrip("/"),
    )


def render(template: str | None, tokens: PersonalizationTokens | Mapping[str, str]) -> str:
    """Substitute the known ``{{token}}`` names; anything else is left verbatim."""

    if not template:
        return ""
    values = tokens.as_mapping() if isinstance(tokens, PersonalizationTokens) else dict(tokens)
    result = template
    for name in TOKEN_NAMES:
        if name in values and values[name] is not None:
            result = result.replace("{{" + name + "}}", str(values[name]))
    return result


def looks_like_html(text: str | None) -> bool:
    if not text:
        return False
    return _HTML_TAG_PATTERN.search(text) is not None


def _safe_href(value: str | None) -> str | None:
    if not value:
        return None
    candidate = _CONTROL_CHARS.sub("", value)
    scheme = urlparse(candidate).scheme.lower()
    if scheme not in SAFE_URL_SCHEMES:
        return None
    return value.strip()


def _inline_markup(text: str) -> str:
    escaped = html.escape(text, quote=True)

    def _link(match: re.Match[str]) -> str:
        label, target = match.group(1), html.unescape(match.group(2))
        href = _safe_href(target)
        if href is None:
            return label
        return f'<a href="{html.escape(href, quote=True)}">{label}</a>'

    escaped = _LINK_PATTERN.sub(_link, escaped)
    return _BOLD_PATTERN.sub(r"<strong>\1</strong>", escaped)


def compile_markup(text: str | None) -> str:
    """Compile the operator markup into HTML, one blank-line separated block at a time."""

    if not text:
        return ""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n").strip()
    if not normalized:
        return ""

    output: List[str] = []
    for block in _BLOCK_SPLIT.split(normalized):
        paragraph: List[str] = []
        bullets: List[str] = []

        def flush_paragraph() -> None:
            if paragraph:
                output.append("<p>" + "<br>".join(_inline_markup(line) for line in paragraph) + "</p>")
                paragraph.clear()

        def flush_bullets() -> None:
            if bullets:
                items = "".join(f"<li>{_inline_markup(item)}</li>" for item in bullets)
                output.append(f"<ul>{items}</ul>")
                bullets.clear()

        for raw_line in block.split("\n"):
            line = raw_line.strip()
            if not line:
                continue
            heading = _HEADING_PATTERN.match(line)
            if heading:
                flush_paragraph()
                flush_bullets()
                level = len(heading.group(1))
                output.append(f"<h{level}>{_inline_markup(heading.group(2).strip())}</h{level}>")
                continue
            bullet = _BULLET_PATTERN.match(line)
            if bullet:
                flush_paragraph()
                bullets.append(bullet.group(1).strip())
                continue
            flush_bullets()
            paragraph.append(line)

        flush_paragraph()
        flush_bullets()

    return "\n".join(output)


class _AllowListSanitizer(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._open: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: List[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth += 1
            return
        if self._skip_depth or tag not in ALLOWED_TAGS:
            return
        rendered = self._render_attributes(tag, attrs)
        if tag in VOID_TAGS:
            self._parts.append(f"<{tag}{rendered}>")
            return
        self._parts.append(f"<{tag}{rendered}>")
        self._open.append(tag)

    def handle_startendtag(self, tag: str, attrs: List[tuple[str, str | None]]) -> None:
        if tag in VOID_TAGS and not self._skip_depth:
            self._parts.append(f"<{tag}{self._render_attributes(tag, attrs)}>")

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if self._skip_depth or tag not in self._open:
            return
        while self._open:
            current = self._open.pop()
            self._parts.append(f"</{current}>")
            if current == tag:
                break

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self._parts.append(html.escape(data, quote=False))

    def result(self) -> str:
        while self._open:
            self._parts.append(f"</{self._open.pop()}>")
        return "".join(self._parts)

    @staticmethod
    def _render_attributes(tag: str, attrs: Iterable[tuple[str, str | None]]) -> str:
        rendered: List[str] = []
        for name, value in attrs:
            name = name.lower()
            if name not in ALLOWED_ATTRIBUTES or value is None:
                continue
            if name == "href":
                if tag != "a":
                    continue
                href = _safe_href(value)
                if href is None:
                    continue
                rendered.append(f' href="{html.escape(href, quote=True)}"')
            elif name == "style":
                if _UNSAFE_STYLE.search(value):
                    continue
                rendered.append(f' style="{html.escape(value.strip(), quote=True)}"')
        return "".join(rendered)


def sanitize_html(markup: str | None) -> str:
    """Keep only allow-listed tags and attributes; text content is always preserved."""

    if not markup:
        return ""
    sanitizer = _AllowListSanitizer()
    try:
        sanitizer.feed(markup)
        sanitizer.close()
    except Exception as exc:  # pragma: no cover - HTMLParser is lenient
        logger.warning("HTML sanitizer fell back to escaping", error=str(exc))
        return f"<p>{html.escape(markup)}</p>"
    return sanitizer.result()


def inject_email_styles(markup: str) -> str:
    """Prefix each styled tag's inline style with the email defaults."""

    def _apply(match: re.Match[str]) -> str:
        tag, attrs, closing = match.group(1), match.group(2) or "", match.group(3) or ""
        default = EMAIL_STYLES.get(tag)
        if default is None:
            return match.group(0)
        existing = _STYLE_ATTR_PATTERN.search(attrs)
        if existing:
            merged = f"{default} {existing.group(1)}".strip()
            attrs = _STYLE_ATTR_PATTERN.sub(lambda _: f' style="{merged}"', attrs, count=1)
        else:
            attrs = f'{attrs} style="{default}"'
        return f"<{tag}{attrs}{closing}>"

    return _OPEN_TAG_PATTERN.sub(_apply, markup or "")


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._skip_depth = 0
        self._href_stack: List[str | None] = []

    def handle_starttag(self, tag: str, attrs: List[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth += 1
            return
        if self._skip_depth:
            return
        if tag == "br":
            self._parts.append("\n")
        elif tag == "li":
            self._parts.append("\n- ")
        elif tag in BLOCK_TAGS:
            self._parts.append("\n\n")
        if tag == "a":
            self._href_stack.append(dict(attrs).get("href"))

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if self._skip_depth:
            return
        if tag == "a" and self._href_stack:
            href = self._href_stack.pop()
            if href and not self._parts[-1:] == [href]:
                self._parts.append(f" <{href}>")
        elif tag in BLOCK_TAGS:
            self._parts.append("\n\n")

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self._parts.append(data)

    def result(self) -> str:
        return "".join(self._parts)


def _tidy_text(text: str) -> str:
    lines = [line.strip() for line in text.replace("\xa0", " ").split("\n")]
    return _EXCESS_NEWLINES.sub("\n\n", "\n".join(lines)).strip()


def html_to_text(markup: str | None) -> str:
    """Plaintext companion: tags removed, entities decoded, list items flattened."""

    if not markup:
        return ""
    extractor = _TextExtractor()
    try:
        extractor.feed(markup)
        extractor.close()
    except Exception as exc:  # pragma: no cover - HTMLParser is lenient
        logger.warning("HTML to text conversion fell back to tag stripping", error=str(exc))
        return _tidy_text(html.unescape(re.sub(r"<[^>]+>", " ", markup)))
    return _tidy_text(extractor.result())


def _text_link(match: re.Match[str]) -> str:
    label, target = match.group(1), match.group(2)
    return target if label == target else f"{label} <{target}>"


def markup_to_text(text: str | None) -> str:
    if not text:
        return ""
    lines: List[str] = []
    for raw_line in text.replace("\r\n", "\n").split("\n"):
        line = raw_line.strip()
        heading = _HEADING_PATTERN.match(line)
        if heading:
            line = heading.group(2).strip()
        bullet = _BULLET_PATTERN.match(line)
        if bullet:
            line = f"- {bullet.group(1).strip()}"
        line = _LINK_PATTERN.sub(_text_link, line)
        line = _BOLD_PATTERN.sub(r"\1", line)
        lines.append(line)
    return _tidy_text("\n".join(lines))


def prepare_body(body: str | None) -> tuple[str, str]:
    """Return ``(html, text)`` for an operator-authored body."""

    if looks_like_html(body):
        body_html = inject_email_styles(sanitize_html(body))
        return body_html, html_to_text(body_html)
    return inject_email_styles(compile_markup(body)), markup_to_text(body)


def escape_tokens(tokens: PersonalizationTokens | Mapping[str, str]) -> Dict[str, str]:
    values = tokens.as_mapping() if isinstance(tokens, PersonalizationTokens) else dict(tokens)
    return {name: html.escape(str(value), quote=True) for name, value in values.items() if value is not None}


def render_body(body: str | None, tokens: PersonalizationTokens | Mapping[str, str]) -> tuple[str, str]:
    """Substitute tokens into an operator body and return ``(html, text)``.

    HTML versus markup is decided on the stored body, never on the substituted
    one, so tenant-supplied values cannot switch modes. On the HTML path the
    values are escaped before sanitizing and stay literal text.
    """

    if looks_like_html(body):
        body_html = inject_email_styles(sanitize_html(render(body, escape_tokens(tokens))))
        return body_html, html_to_text(body_html)
    rendered = render(body, tokens)
    return inject_email_styles(compile_markup(rendered)), markup_to_text(rendered)


def render_cta_button(text: str, url: str) -> str:
    return (
        '<p style="text-align: center; margin: 24px 0;">'
        f'<a href="{html.escape(url, quote=True)}" style="display: inline-block; background: #E91E63; '
        "color: #ffffff; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: 600;\">"
        f"{html.escape(text)}</a></p>"
    )


def wrap_email_layout(
    inner_html: str,
    *,
    footer_note: str,
    preferences_url: str,
    preheader: str | None = None,
) -> str:
    """Shared BakerIQ chrome: branded header, content card and preferences footer."""

    hidden_preheader = ""
    if preheader:
        hidden_preheader = (
            '<div style="display: none; max-height: 0; overflow: hidden; opacity: 0;">'
            f"{html.escape(preheader)}</div>"
        )
    return (
        "<!DOCTYPE html>\n"
        '<html>\n<head><meta charset="utf-8"></head>\n'
        "<body style=\"margin: 0; font-family: 'Inter', Arial, sans-serif; line-height: 1.6; color: #333333;\">\n"
        f"{hidden_preheader}"
        '<div style="max-width: 600px; margin: 0 auto; padding: 20px;">\n'
        '<div style="background: #E91E63; background: linear-gradient(135deg, #E91E63, #F06292); color: #ffffff; '
        'padding: 24px; text-align: center; border-radius: 8px 8px 0 0;">'
        '<h1 style="margin: 0; font-size: 22px;">BakerIQ</h1></div>\n'
        '<div style="background: #f8f9fa; padding: 30px; border-radius: 0 0 8px 8px;">\n'
        f"{inner_html}\n"
        "</div>\n"
        '<div style="text-align: center; padding: 20px; color: #666666; font-size: 12px;">'
        f"<p>{html.escape(footer_note)}</p>"
        f'<p style="margin-top: 8px;"><a href="{html.escape(preferences_url, quote=True)}" '
        'style="color: #666666;">Manage email preferences</a></p>'
        "</div>\n</div>\n</body>\n</html>\n"
    )


__all__ = [
    "ALLOWED_TAGS",
    "EMAIL_STYLES",
    "PersonalizationTokens",
    "RenderedEmail",
    "SAFE_URL_SCHEMES",
    "TOKEN_NAMES",
    "build_tokens",
    "compile_markup",
    "escape_tokens",
    "html_to_text",
    "inject_email_styles",
    "looks_like_html",
    "markup_to_text",
    "prepare_body",
    "render",
    "render_body",
    "render_cta_button",
    "sanitize_html",
    "wrap_email_layout",
]
