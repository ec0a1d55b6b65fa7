"""Fonts, CMaps and content-stream interpretation."""

from __future__ import annotations

from .cmap import CMap, parse_cmap, predefined_cmap
from .fonts import CompositeFont, DecodedChar, Font, FontLoader, SimpleFont
from .interpreter import ContentInterpreter, TextCollector, TextState
from .layout import FORMATS, TextBlock, TextLine, TextWord, format_fragments, render_text

__all__ = [
    "CMap",
    "parse_cmap",
    "predefined_cmap",
    "CompositeFont",
    "DecodedChar",
    "Font",
    "FontLoader",
    "SimpleFont",
    "ContentInterpreter",
    "TextCollector",
    "TextState",
    "FORMATS",
    "TextBlock",
    "TextLine",
    "TextWord",
    "format_fragments",
    "render_text",
]
