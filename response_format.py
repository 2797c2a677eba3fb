"""
Turns raw assistant replies into the markup the terminal renders.

The passes run in a fixed order and each one works on the output of the
previous one, so later passes can also touch markup produced by earlier ones.
"""

import html
import re

WRAP_WIDTH = 80

CODE_BLOCK_PATTERN = re.compile(r"```(\w+)?\n([\s\S]*?)```")
BULLET_PATTERN = re.compile(r"^- (.*)", re.MULTILINE)
SUB_BULLET_PATTERN = re.compile(r"^  - (.*)", re.MULTILINE)
PARENTHETICAL_PATTERN = re.compile(r"\(([^)]+)\)")
UNIT_PATTERN = re.compile(r"(\d+\.?\d*)( ?)(°[CF]|[kMG]?[BWV]|Hz)(?![A-Za-z])")


def wrap_text(text, width=WRAP_WIDTH):
    """Greedy wrap on single spaces, one source line at a time."""
    wrapped = []
    for source_line in text.split("\n"):
        current = None
        for word in source_line.split(" "):
            if current is None:
                current = word
            elif len(current) + len(word) + 1 > width:
                wrapped.append(current)
                current = word
            else:
                current = f"{current} {word}"
        wrapped.append(current)
    return "\n".join(wrapped)


def _code_block(match):
    language = match.group(1) or ""
    code = html.escape(match.group(2).strip(), quote=False)
    return f'<div class="code-block {language}">{code}</div>'


def format_code_blocks(text):
    return CODE_BLOCK_PATTERN.sub(_code_block, text)


def format_lists(text):
    text = BULLET_PATTERN.sub(r"• \1", text)
    return SUB_BULLET_PATTERN.sub(r"  ◦ \1", text)


def format_parentheticals(text):
    return PARENTHETICAL_PATTERN.sub(r'<span class="dim">(\1)</span>', text)


def format_units(text):
    return UNIT_PATTERN.sub(r'<span class="bright">\1</span>\2\3', text)


def format_response(text, width=WRAP_WIDTH):
    formatted = wrap_text(text, width)
    formatted = format_code_blocks(formatted)
    formatted = format_lists(formatted)
    formatted = format_parentheticals(formatted)
    return format_units(formatted)
