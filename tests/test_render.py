"""Tests for the message rendering pipeline."""

from __future__ import annotations

import pytest

from stream_chat import RenderBoundary, render_conversation
from stream_chat.clipboard import CodeCopier
from stream_chat.messages import (
    GenerationStatus,
    Message,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
)
from stream_chat.render import FALLBACK_HTML, html_text, render_markdown, render_message, render_part


def assistant(*parts, message_id="a1"):
    return Message(id=message_id, role="assistant", parts=list(parts))


class TestMarkdown:
    def test_basic_formatting(self):
        rendered = render_markdown("# Title\n\nSome **bold** and *italic* text.\n\n- one\n- two")
        assert "<h1>Title</h1>" in rendered.html
        assert "<strong>bold</strong>" in rendered.html
        assert "<em>italic</em>" in rendered.html
        assert "<li>one</li>" in rendered.html
        assert rendered.code_blocks == []

    def test_tables(self):
        rendered = render_markdown("| a | b |\n|---|---|\n| 1 | 2 |\n")
        assert "<table>" in rendered.html
        assert "<td>1</td>" in rendered.html

    def test_script_removed(self):
        rendered = render_markdown("**bold** <script>alert('x')</script>")
        assert "<strong>bold</strong>" in rendered.html
        assert "<script" not in rendered.html
        assert "alert" not in rendered.html

    def test_event_handlers_removed(self):
        rendered = render_markdown('<p onclick="steal()">hi</p> <img src="x" onerror="steal()">')
        assert "onclick" not in rendered.html
        assert "onerror" not in rendered.html
        assert "steal" not in rendered.html

    def test_javascript_links_removed(self):
        rendered = render_markdown("[click](javascript:alert(1)) and [docs](https://example.com)")
        assert "javascript:" not in rendered.html
        assert 'href="https://example.com"' in rendered.html

    def test_renderer_state_reset_between_calls(self):
        render_markdown("[ref]: https://example.com\n\n[link][ref]")
        assert "example.com" not in render_markdown("[link][ref]").html


class TestCodeBlocks:
    def test_fenced_code_highlighted(self):
        rendered = render_markdown("Try this:\n\n```js\nconsole.log(1)\n```\n")

        assert '<div class="codehilite">' in rendered.html
        assert "<span" in rendered.html
        assert len(rendered.code_blocks) == 1
        assert rendered.code_blocks[0].code == "console.log(1)"
        assert 'data-code="console.log(1)"' in rendered.html
        assert 'class="copy-code"' in rendered.html

    def test_copied_code_is_literal(self):
        source = 'if (a < b && c > "d") {\n    return;\n}'
        rendered = render_markdown(f"```js\n{source}\n```")

        assert rendered.code_blocks[0].code == source
        assert "a &lt; b &amp;&amp; c &gt; &quot;d&quot;" in rendered.html

    def test_handwritten_code_block_gets_no_copy_button(self):
        rendered = render_markdown(
            '<div class="codehilite"><pre>rm -rf /</pre></div>\n\n```js\nconsole.log(1)\n```'
        )

        assert [b.code for b in rendered.code_blocks] == ["console.log(1)"]
        assert rendered.html.count('class="copy-code"') == 1
        assert 'data-code="rm -rf /"' not in rendered.html

    def test_marker_class_not_exposed(self):
        rendered = render_markdown("```js\nconsole.log(1)\n```")
        assert '<div class="codehilite">' in rendered.html
        assert "codehilite-" not in rendered.html

    def test_multiple_blocks(self):
        rendered = render_markdown("```python\nprint(1)\n```\n\ntext\n\n```\nplain\n```\n")
        assert [b.code for b in rendered.code_blocks] == ["print(1)", "plain"]

    async def test_copy_button_writes_block_code(self):
        written = []
        rendered = render_markdown("```js\nconsole.log(1)\n```")
        copier = CodeCopier(written.append)

        assert await copier.copy(rendered.code_blocks[0].code)

        assert written == ["console.log(1)"]
        assert copier.label == "Copied!"


class TestParts:
    def test_user_text_is_literal(self):
        html = render_part(TextPart(content="<b>**not bold**</b>"), "user")
        assert html == '<p class="user-text">&lt;b&gt;**not bold**&lt;/b&gt;</p>'

    def test_assistant_text_is_markdown(self):
        html = render_part(TextPart(content="**bold**"), "assistant")
        assert html.startswith('<div class="markdown-content">')
        assert "<strong>bold</strong>" in html

    @pytest.mark.parametrize(
        "tool_name, label",
        [
            ("weather", "Weather Data"),
            ("convertFahrenheitToCelsius", "Conversion Result"),
            ("other_tool", "other_tool"),
        ],
    )
    def test_tool_labels(self, tool_name, label):
        part = ToolResultPart(tool_call_id="c1", tool_name=tool_name, result={"ok": True})
        html = render_part(part, "assistant")
        assert f'<div class="tool-label">{label}</div>' in html
        assert "&quot;ok&quot;: true" in html

    def test_tool_payload_escaped(self):
        part = ToolInvocationPart(
            tool_call_id="c1", tool_name="weather", arguments={"location": "<script>"}
        )
        html = render_part(part, "assistant")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_unknown_part_raises(self):
        with pytest.raises(TypeError):
            render_part(object(), "assistant")


class TestMessages:
    def test_system_hidden(self):
        message = Message(id="s1", role="system", parts=[TextPart(content="secret prompt")])
        assert render_message(message) == ""

    def test_bubble_attributes(self):
        html = render_message(Message(id="u1", role="user", parts=[TextPart(content="hi")]))
        assert 'class="message message-user"' in html
        assert 'role="article"' in html
        assert 'aria-label="Your message"' in html
        assert 'data-message-id="u1"' in html

    def test_parts_rendered_in_order(self):
        html = render_message(
            assistant(
                ToolInvocationPart(tool_call_id="c1", tool_name="weather"),
                TextPart(content="Done"),
            )
        )
        assert html.index("Weather Data") < html.index("Done")
        assert 'aria-label="AI response"' in html


class TestRenderBoundary:
    def test_success(self):
        result = RenderBoundary()(assistant(TextPart(content="hi")))
        assert not result.failed
        assert result.retry is None
        assert "hi" in result.html

    def test_failure_shows_fallback_and_retry_recovers(self):
        attempts = []

        def flaky(message):
            attempts.append(message.id)
            if len(attempts) == 1:
                raise ValueError("bad markup")
            return render_message(message)

        boundary = RenderBoundary(flaky)
        result = boundary(assistant(TextPart(content="hi")))

        assert result.failed
        assert result.html == FALLBACK_HTML
        assert boundary.has_error
        assert "Something went wrong" in html_text(result.html)

        retried = result.retry()

        assert not retried.failed
        assert "hi" in retried.html
        assert not boundary.has_error
        assert attempts == ["a1", "a1"]


class TestConversation:
    def test_welcome_when_empty(self):
        html = render_conversation([])
        assert "Welcome" in html
        assert "Thinking..." not in html

    def test_typing_indicator_while_submitted(self):
        messages = [Message(id="u1", role="user", parts=[TextPart(content="hi")])]
        html = render_conversation(messages, GenerationStatus.SUBMITTED)
        assert "Thinking..." in html
        assert "Welcome" not in html

    def test_no_indicator_while_streaming(self):
        messages = [Message(id="u1", role="user", parts=[TextPart(content="hi")])]
        assert "Thinking..." not in render_conversation(messages, GenerationStatus.STREAMING)
