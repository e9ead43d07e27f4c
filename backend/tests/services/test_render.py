# tests/services/test_render.py
import pytest

from docbin.services.render import PygmentsRenderer, UnknownFormatterError


@pytest.fixture
def renderer():
    return PygmentsRenderer()


def test_language_hint_wins(renderer):
    rendered = renderer.render("SELECT 1;", "python", filename="query.sql")
    assert rendered.language == "python"


def test_language_from_file_name(renderer):
    assert renderer.render("package main", "auto", filename="main.go").language == "go"


def test_unknown_hint_falls_back(renderer):
    assert renderer.render("package main", "klingon", filename="main.go").language == "go"


def test_plain_text_fallback(renderer):
    assert renderer.render("", "auto").language == "text"


def test_no_formatter(renderer):
    rendered = renderer.render("x = 1", "python")
    assert rendered.formatted is None
    assert rendered.css is None

    assert renderer.render("x = 1", "python", formatter="none").formatted is None


def test_html_formatter(renderer):
    rendered = renderer.render("x = 1", "python", formatter="html", style="friendly")

    assert rendered.formatted.startswith('<div class="highlight">')
    assert ".highlight" in rendered.css


def test_terminal_formatter(renderer):
    rendered = renderer.render("x = 1", "python", formatter="terminal256")

    assert "\x1b[" in rendered.formatted
    assert rendered.css is None


def test_unknown_style_uses_default(renderer):
    assert renderer.render("x = 1", "python", formatter="html", style="nope").formatted


def test_unknown_formatter(renderer):
    with pytest.raises(UnknownFormatterError):
        renderer.render("x = 1", "python", formatter="pdf")


def test_large_content_not_highlighted():
    renderer = PygmentsRenderer(max_highlight_size=5)

    rendered = renderer.render("def f(): pass", "python", formatter="html")

    assert rendered.language == "python"
    assert '<span class="k">' not in rendered.formatted
