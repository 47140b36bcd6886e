"""
Message rendering pipeline.

Messages are turned into HTML fragments by pure functions. User text is shown
literally. Assistant text goes through markdown, pygments highlighting and an
allow-list sanitizer, in that order, so that nothing produced by the model
reaches the page unsanitized. Tool parts are shown as labelled JSON.
"""

import html
import json
import logging
import re
import secrets
from html.parser import HTMLParser
from typing import Callable, List, NamedTuple, Optional

import markdown
import nh3
from markdown.extensions.codehilite import CodeHiliteExtension
from pygments.formatters import HtmlFormatter

from .messages import GenerationStatus, Message, TextPart, ToolInvocationPart, ToolResultPart

logger = logging.getLogger(__name__)

ALLOWED_TAGS = {
    "a", "blockquote", "br", "code", "del", "div", "em", "h1", "h2", "h3", "h4",
    "h5", "h6", "hr", "li", "ol", "p", "pre", "span", "strong", "table", "tbody",
    "td", "th", "thead", "tr", "ul",
}
ALLOWED_ATTRIBUTES = {
    "a": {"href", "title"},
    "code": {"class"},
    "div": {"class"},
    "span": {"class"},
    "td": {"align"},
    "th": {"align"},
}
ALLOWED_URL_SCHEMES = {"http", "https", "mailto"}

TOOL_LABELS = {
    "weather": "Weather Data",
    "convertFahrenheitToCelsius": "Conversion Result",
}

FALLBACK_HTML = (
    '<div class="render-error" role="alert">'
    "<h3>Something went wrong</h3>"
    "<p>An error occurred while rendering the chat interface.</p>"
    '<button type="button" class="retry">Try Again</button>'
    "</div>"
)


class _TextCollector(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.chunks = []

    def handle_data(self, data):
        self.chunks.append(data)


def html_text(fragment: str) -> str:
    """Return the text content of an HTML fragment, markup removed."""
    collector = _TextCollector()
    collector.feed(fragment)
    collector.close()
    return "".join(collector.chunks)


class CodeBlock(NamedTuple):
    """A highlighted code block and the literal code it shows."""

    html: str
    code: str


class RenderedMarkdown(NamedTuple):
    html: str
    code_blocks: List[CodeBlock]


class MarkdownRenderer:
    """Markdown renderer with syntax highlighting and sanitizing."""

    def __init__(self, css_class: str = "codehilite"):
        self.css_class = css_class
        # highlighted blocks carry a per-instance class model output cannot reproduce
        self._marker = f"{css_class}-{secrets.token_hex(8)}"
        self._code_block_re = re.compile(
            rf'<div class="{self._marker}">(.*?)</div>', re.DOTALL
        )
        self.md = markdown.Markdown(
            extensions=[
                "fenced_code",
                "tables",
                CodeHiliteExtension(css_class=self._marker, guess_lang=False),
            ]
        )

    def stylesheet(self) -> str:
        """Pygments CSS for the highlighted code blocks."""
        return HtmlFormatter().get_style_defs(f".{self.css_class}")

    def render(self, text: str) -> RenderedMarkdown:
        self.md.reset()
        raw = self.md.convert(text)
        clean = nh3.clean(
            raw,
            tags=ALLOWED_TAGS,
            attributes=ALLOWED_ATTRIBUTES,
            url_schemes=ALLOWED_URL_SCHEMES,
        )

        code_blocks = []

        def add_copy_button(match):
            block = f'<div class="{self.css_class}">{match.group(1)}</div>'
            code = html_text(match.group(1))
            if code.endswith("\n"):
                code = code[:-1]
            code_blocks.append(CodeBlock(block, code))
            return (
                '<div class="code-block">'
                f'<button type="button" class="copy-code" data-code="{html.escape(code)}">'
                "Copy</button>"
                f"{block}</div>"
            )

        rendered = self._code_block_re.sub(add_copy_button, clean)
        return RenderedMarkdown(rendered, code_blocks)


_default_renderer = MarkdownRenderer()


def render_markdown(text: str) -> RenderedMarkdown:
    return _default_renderer.render(text)


def _render_json(label: str, payload) -> str:
    dump = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    return (
        f'<div class="tool-part" role="region" aria-label="{html.escape(label)}">'
        f'<div class="tool-label">{html.escape(label)}</div>'
        f"<pre>{html.escape(dump)}</pre>"
        "</div>"
    )


def render_part(part, role: str) -> str:
    """Render one message part. Unknown part objects raise ``TypeError``."""
    if isinstance(part, TextPart):
        if role == "user":
            return f'<p class="user-text">{html.escape(part.content)}</p>'
        return f'<div class="markdown-content">{render_markdown(part.content).html}</div>'
    if isinstance(part, (ToolInvocationPart, ToolResultPart)):
        label = TOOL_LABELS.get(part.tool_name, part.tool_name)
        return _render_json(label, part.model_dump(mode="json", by_alias=True))
    raise TypeError(f"Cannot render part of type {type(part).__name__}")


def render_message(message: Message) -> str:
    """Render a message bubble. System messages are not displayed."""
    if message.role == "system":
        return ""
    is_user = message.role == "user"
    label = "Your message" if is_user else "AI response"
    body = "".join(render_part(part, message.role) for part in message.parts)
    return (
        f'<div class="message message-{message.role}" role="article" '
        f'aria-label="{label}" data-message-id="{html.escape(message.id)}">'
        f'<div class="bubble">{body}</div>'
        "</div>"
    )


def render_welcome() -> str:
    return (
        '<div class="welcome">'
        "<h1>Welcome</h1>"
        "<p>Ask me anything. I respond with beautifully formatted markdown.</p>"
        "</div>"
    )


def render_typing_indicator() -> str:
    return '<div class="typing-indicator"><span></span><span></span><span></span><p>Thinking...</p></div>'


class RenderResult(NamedTuple):
    html: str
    failed: bool = False
    retry: Optional[Callable[[], "RenderResult"]] = None


class RenderBoundary:
    """Catches rendering exceptions and substitutes a fallback panel.

    A failed result carries ``retry``, which runs the same render again.
    """

    def __init__(self, render: Callable[..., str] = render_message, fallback: str = FALLBACK_HTML):
        self.render = render
        self.fallback = fallback
        self.has_error = False

    def __call__(self, *args) -> RenderResult:
        try:
            output = self.render(*args)
        except Exception:
            logger.exception("Chat render error")
            self.has_error = True
            return RenderResult(self.fallback, failed=True, retry=lambda: self(*args))
        self.has_error = False
        return RenderResult(output)


def render_conversation(
    messages: List[Message], status: GenerationStatus = GenerationStatus.IDLE
) -> str:
    """Render the message list, the welcome screen when it is empty, and the
    typing indicator while a request is waiting for its first event."""
    if not messages:
        body = render_welcome()
    else:
        boundary = RenderBoundary()
        body = "".join(boundary(message).html for message in messages)
    if status == GenerationStatus.SUBMITTED:
        body += render_typing_indicator()
    return f'<div class="message-list">{body}</div>'
