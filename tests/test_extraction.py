"""Tests for code extraction: extract_code, ensure_full_document, infer_title."""

from hypothesis import given, settings
from hypothesis import strategies as st

from awb.utils.extraction import document_shell, ensure_full_document, extract_code, infer_title

from conftest import widget_doc


def _pipeline(raw):
    return ensure_full_document(extract_code(raw))


# --- extract_code ---

class TestExtractCode:
    def test_plain_document_passes_through(self):
        doc = widget_doc()
        assert extract_code(doc) == doc

    def test_strips_html_fence(self):
        doc = widget_doc()
        assert extract_code(f"```html\n{doc}\n```") == doc

    def test_prefers_document_block_over_short_block(self):
        doc = widget_doc(body="<div>" + "x" * 150 + "</div>")
        raw = f"Tip:\n```\nnpm i x\n```\nHere you go:\n```html\n{doc}\n```"
        assert extract_code(raw) == doc

    def test_prefers_document_block_over_longer_fragment(self):
        fragment = "<div>" + "y" * 400 + "</div>"
        doc = widget_doc()
        raw = f"```html\n{fragment}\n```\n\n```html\n{doc}\n```"
        assert extract_code(raw) == doc

    def test_longest_block_wins_among_fragments(self):
        short = "<div>" + "a" * 40 + "</div>"
        long = "<div>" + "b" * 80 + "</div>"
        raw = f"```\n{short}\n```\n```\n{long}\n```"
        assert extract_code(raw) == long

    def test_blocks_under_minimum_are_noise(self):
        raw = "Use ```<b>hi</b>``` then:\n<div class=\"w\">widget</div>"
        assert extract_code(raw) == "<div class=\"w\">widget</div>"

    def test_cuts_prose_before_doctype(self):
        doc = widget_doc()
        assert extract_code(f"Sure! Here is your widget:\n\n{doc}") == doc

    def test_doctype_wins_over_body_mentioned_in_prose(self):
        doc = widget_doc()
        raw = f"Sure! I laid it out with a <body> flex grid.\n{doc}"
        assert extract_code(raw) == doc

    def test_fenced_prose_before_document_is_cut(self):
        raw = "```\nintro words here and more\n<html><body>z</body></html>\n```"
        assert extract_code(raw) == "<html><body>z</body></html>"

    def test_cuts_prose_before_fragment(self):
        assert extract_code("Here it is: <style>p{}</style><div>x</div>") == "<style>p{}</style><div>x</div>"

    def test_drops_commentary_after_closing_html(self):
        doc = widget_doc()
        assert extract_code(f"{doc}\n\nLet me know if you want changes!") == doc

    def test_strips_unterminated_fence(self):
        doc = widget_doc()
        assert extract_code(f"```html\n{doc}") == doc

    def test_empty_input(self):
        assert extract_code("") == ""
        assert extract_code("   \n") == ""
        assert extract_code(None) == ""


# --- ensure_full_document ---

class TestEnsureFullDocument:
    def test_full_document_unchanged(self):
        doc = widget_doc()
        assert ensure_full_document(doc) == doc

    def test_html_tag_counts_as_full(self):
        doc = "<html><body>x</body></html>"
        assert ensure_full_document(doc) == doc

    def test_fragment_is_wrapped(self):
        wrapped = ensure_full_document("<div>clock</div>")
        assert wrapped.startswith("<!DOCTYPE html>")
        assert "<meta charset=\"UTF-8\">" in wrapped
        assert "<body>\n<div>clock</div>\n</body>" in wrapped
        assert wrapped.endswith("</html>")

    def test_blank_stays_blank(self):
        assert ensure_full_document("") == ""
        assert ensure_full_document("  ") == ""

    def test_shell_head_extra(self):
        doc = document_shell("<p>x</p>", head_extra="<script>1</script>")
        assert doc.index("<script>1</script>") < doc.index("</head>")


# --- idempotence ---

_html_text = st.lists(
    st.sampled_from(list("abc <>/!`\n\t-=\"") + [
        "<!DOCTYPE html>", "<html>", "</html>", "<body>", "<div>", "<style>",
        "```", "```html", "<title>", "</title>",
    ]),
    max_size=40,
).map(lambda parts: "".join(parts))


class TestIdempotence:
    @settings(max_examples=300)
    @given(_html_text)
    def test_pipeline_is_idempotent(self, raw):
        once = _pipeline(raw)
        assert _pipeline(once) == once

    @given(st.text(max_size=200))
    def test_pipeline_is_idempotent_on_arbitrary_text(self, raw):
        once = _pipeline(raw)
        assert _pipeline(once) == once

    def test_fenced_prose_before_document(self):
        raw = "```\nintro words here and more\n<html><body>z</body></html>\n```"
        once = _pipeline(raw)
        assert _pipeline(once) == once


# --- infer_title ---

class TestInferTitle:
    def test_uses_document_title(self):
        assert infer_title(widget_doc("Pomodoro Timer"), "whatever") == "Pomodoro Timer"

    def test_falls_back_to_prompt_words(self):
        assert infer_title("<div></div>", "a pomodoro timer with a progress ring") == "A pomodoro timer with a"

    def test_overlong_title_falls_back(self):
        code = widget_doc("T" * 60)
        assert infer_title(code, "quote rotator") == "Quote rotator"

    def test_blank_title_falls_back(self):
        assert infer_title("<title>  </title>", "habit streak") == "Habit streak"
