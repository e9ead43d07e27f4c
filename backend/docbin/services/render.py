# backend/docbin/services/render.py
from dataclasses import dataclass
from typing import Optional, Protocol

from pygments import highlight
from pygments.formatters import HtmlFormatter, SvgFormatter, Terminal256Formatter, TerminalFormatter
from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name, get_lexer_for_filename, guess_lexer
from pygments.lexers.special import TextLexer
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

AUTO_LANGUAGE = "auto"
NO_FORMATTER = "none"

FORMATTERS = {
    "html": HtmlFormatter,
    "svg": SvgFormatter,
    "terminal": TerminalFormatter,
    "terminal256": Terminal256Formatter,
}

MEDIA_TYPES = {
    "html": "text/html; charset=utf-8",
    "svg": "image/svg+xml",
}


class UnknownFormatterError(ValueError):
    pass


@dataclass(frozen=True)
class Rendered:
    formatted: Optional[str]
    css: Optional[str]
    language: str


class Renderer(Protocol):
    def render(
            self,
            content: str,
            language: str,
            filename: Optional[str] = None,
            formatter: Optional[str] = None,
            style: Optional[str] = None
    ) -> Rendered:
        ...


class PygmentsRenderer:
    """Syntax highlighting backed by Pygments"""

    def __init__(self, default_style: str = "monokai", max_highlight_size: int = 0):
        self.default_style = default_style
        self.max_highlight_size = max_highlight_size

    def resolve_lexer(self, content: str, language: Optional[str], filename: Optional[str] = None) -> Lexer:
        """Pick a lexer from the language hint, then the file name, then the content itself"""
        if language and language.lower() != AUTO_LANGUAGE:
            try:
                return get_lexer_by_name(language)
            except ClassNotFound:
                pass
        if filename:
            try:
                return get_lexer_for_filename(filename, content)
            except ClassNotFound:
                pass
        if content.strip():
            try:
                return guess_lexer(content)
            except ClassNotFound:
                pass
        return TextLexer()

    def _style(self, style: Optional[str]) -> str:
        if style:
            try:
                get_style_by_name(style)
                return style
            except ClassNotFound:
                pass
        return self.default_style

    def render(
            self,
            content: str,
            language: str,
            filename: Optional[str] = None,
            formatter: Optional[str] = None,
            style: Optional[str] = None
    ) -> Rendered:
        lexer = self.resolve_lexer(content, language, filename)
        language_name = lexer.aliases[0] if lexer.aliases else lexer.name.lower()

        if not formatter or formatter == NO_FORMATTER:
            return Rendered(formatted=None, css=None, language=language_name)

        formatter_cls = FORMATTERS.get(formatter)
        if formatter_cls is None:
            raise UnknownFormatterError(f"unknown formatter: {formatter}")

        if self.max_highlight_size and len(content) > self.max_highlight_size:
            lexer = TextLexer()

        instance = formatter_cls(style=self._style(style))
        formatted = highlight(content, lexer, instance)
        css = instance.get_style_defs(".highlight") if formatter == "html" else None
        return Rendered(formatted=formatted, css=css, language=language_name)
