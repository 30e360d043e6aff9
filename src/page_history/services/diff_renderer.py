"""
HTML rendering of unified diffs.

Parses patch text into files, hunks and lines, then renders a side-by-side
(or line-by-line) table with intra-line highlighting computed by
diff-match-patch. The markup follows the familiar ``d2h-*`` class names so
existing diff stylesheets apply.
"""
import re
from dataclasses import dataclass, field
from typing import Literal

from diff_match_patch import diff_match_patch
from jinja2 import Environment
from markupsafe import Markup, escape

DiffStyle = Literal["word", "char"]
Matching = Literal["lines", "none"]
OutputFormat = Literal["side-by-side", "line-by-line"]

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")
_WORD_TOKEN = re.compile(r"\w+|\s+|[^\w\s]")


@dataclass(frozen=True)
class RenderOptions:
    """Rendering options; defaults give word-level, line-matched, side-by-side output."""

    diff_style: DiffStyle = "word"
    matching: Matching = "lines"
    output_format: OutputFormat = "side-by-side"
    draw_file_list: bool = False

    def __post_init__(self) -> None:
        if self.diff_style not in ("word", "char"):
            raise ValueError(f"Unknown diff_style: {self.diff_style!r}")
        if self.matching not in ("lines", "none"):
            raise ValueError(f"Unknown matching: {self.matching!r}")
        if self.output_format not in ("side-by-side", "line-by-line"):
            raise ValueError(f"Unknown output_format: {self.output_format!r}")


@dataclass
class DiffLine:
    """One line of a hunk, without its +/-/space prefix."""

    kind: Literal["context", "insert", "delete"]
    content: str
    old_number: int | None = None
    new_number: int | None = None


@dataclass
class DiffBlock:
    """One ``@@`` hunk."""

    header: str
    lines: list[DiffLine] = field(default_factory=list)


@dataclass
class DiffFile:
    """All hunks under one ``---``/``+++`` header pair."""

    old_name: str
    new_name: str
    blocks: list[DiffBlock] = field(default_factory=list)

    @property
    def added(self) -> int:
        return sum(1 for b in self.blocks for line in b.lines if line.kind == "insert")

    @property
    def deleted(self) -> int:
        return sum(1 for b in self.blocks for line in b.lines if line.kind == "delete")

    @property
    def display_name(self) -> str:
        if self.old_name == self.new_name or not self.old_name:
            return self.new_name
        if not self.new_name:
            return self.old_name
        return f"{self.old_name} → {self.new_name}"


@dataclass
class _Row:
    css: str
    prefix: str
    content: Markup
    old_number: int | None = None
    new_number: int | None = None


def _strip_header_name(value: str) -> str:
    # Drop an optional tab-separated timestamp after the file name
    return value.split("\t", 1)[0].strip()


def parse_unified_diff(patch: str) -> list[DiffFile]:  # noqa: PLR0912
    """
    Parse unified diff text into files and hunks.

    A ``---`` line is only treated as a file header outside a hunk, so a
    removed content line that itself starts with ``--`` is not misread.
    Hunks that appear before any file header are collected under an unnamed
    file. Unrecognized lines (``===``, ``Index:``, ``diff --git``) are skipped.
    """
    files: list[DiffFile] = []
    current_file: DiffFile | None = None
    current_block: DiffBlock | None = None
    old_remaining = new_remaining = 0
    old_number = new_number = 0

    # Unified diffs are \n-delimited; other line breaks belong to the content
    lines = patch.split("\n")
    i = 0
    while i < len(lines):
        line = lines[i]
        in_hunk = old_remaining > 0 or new_remaining > 0

        if in_hunk and current_block is not None:
            if line.startswith("\\"):
                i += 1
                continue
            prefix, content = (line[:1], line[1:]) if line else (" ", "")
            if prefix == "+":
                current_block.lines.append(
                    DiffLine("insert", content, new_number=new_number),
                )
                new_number += 1
                new_remaining -= 1
            elif prefix == "-":
                current_block.lines.append(
                    DiffLine("delete", content, old_number=old_number),
                )
                old_number += 1
                old_remaining -= 1
            else:
                current_block.lines.append(
                    DiffLine("context", content, old_number=old_number, new_number=new_number),
                )
                old_number += 1
                new_number += 1
                old_remaining -= 1
                new_remaining -= 1
            i += 1
            continue

        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            current_file = DiffFile(
                old_name=_strip_header_name(line[4:]),
                new_name=_strip_header_name(lines[i + 1][4:]),
            )
            files.append(current_file)
            current_block = None
            i += 2
            continue

        match = _HUNK_HEADER.match(line)
        if match:
            if current_file is None:
                current_file = DiffFile(old_name="", new_name="")
                files.append(current_file)
            old_number = int(match.group(1))
            old_remaining = int(match.group(2)) if match.group(2) is not None else 1
            new_number = int(match.group(3))
            new_remaining = int(match.group(4)) if match.group(4) is not None else 1
            # An empty range starts "at" the line before it
            if old_remaining == 0:
                old_number += 1
            if new_remaining == 0:
                new_number += 1
            current_block = DiffBlock(header=line)
            current_file.blocks.append(current_block)
        i += 1

    return files


def _tokens_to_chars(
    old: str, new: str,
) -> tuple[str, str, list[str]]:
    """Encode word tokens as single characters so diff-match-patch diffs by word."""
    token_array: list[str] = [""]
    token_index: dict[str, int] = {}

    def encode(text: str) -> str:
        chars = []
        for token in _WORD_TOKEN.findall(text):
            if token not in token_index:
                token_index[token] = len(token_array)
                token_array.append(token)
            chars.append(chr(token_index[token]))
        return "".join(chars)

    return encode(old), encode(new), token_array


def highlight_changes(old: str, new: str, diff_style: DiffStyle = "word") -> tuple[Markup, Markup]:
    """
    Mark the intra-line changes between two paired lines.

    Returns the escaped old line with removed spans wrapped in ``<del>`` and
    the escaped new line with added spans wrapped in ``<ins>``.
    """
    dmp = diff_match_patch()
    if diff_style == "word":
        old_chars, new_chars, token_array = _tokens_to_chars(old, new)
        diffs = dmp.diff_main(old_chars, new_chars, False)
        dmp.diff_charsToLines(diffs, token_array)
    else:
        diffs = dmp.diff_main(old, new)
        dmp.diff_cleanupEfficiency(diffs)

    old_parts: list[Markup] = []
    new_parts: list[Markup] = []
    for op, text in diffs:
        if op == dmp.DIFF_EQUAL:
            old_parts.append(escape(text))
            new_parts.append(escape(text))
        elif op == dmp.DIFF_DELETE:
            old_parts.append(Markup("<del>{}</del>").format(text))
        else:
            new_parts.append(Markup("<ins>{}</ins>").format(text))
    return Markup("").join(old_parts), Markup("").join(new_parts)


def _change_runs(lines: list[DiffLine]) -> list[tuple[DiffLine | None, list[DiffLine], list[DiffLine]]]:
    """
    Group hunk lines into (context, deletes, inserts) units.

    Each unit is either a single context line or a run of deletions followed
    by the run of insertions that replaces them.
    """
    runs: list[tuple[DiffLine | None, list[DiffLine], list[DiffLine]]] = []
    i = 0
    while i < len(lines):
        if lines[i].kind == "context":
            runs.append((lines[i], [], []))
            i += 1
            continue
        deletes: list[DiffLine] = []
        inserts: list[DiffLine] = []
        while i < len(lines) and lines[i].kind == "delete":
            deletes.append(lines[i])
            i += 1
        while i < len(lines) and lines[i].kind == "insert":
            inserts.append(lines[i])
            i += 1
        runs.append((None, deletes, inserts))
    return runs


def _pair_contents(
    deletes: list[DiffLine], inserts: list[DiffLine], options: RenderOptions,
) -> tuple[list[Markup], list[Markup]]:
    old_html = [escape(line.content) for line in deletes]
    new_html = [escape(line.content) for line in inserts]
    if options.matching == "lines":
        for j in range(min(len(deletes), len(inserts))):
            old_html[j], new_html[j] = highlight_changes(
                deletes[j].content, inserts[j].content, options.diff_style,
            )
    return old_html, new_html


def _side_by_side_rows(block: DiffBlock, options: RenderOptions) -> tuple[list[_Row], list[_Row]]:
    left: list[_Row] = []
    right: list[_Row] = []
    for context, deletes, inserts in _change_runs(block.lines):
        if context is not None:
            content = escape(context.content)
            left.append(_Row("d2h-cntx", " ", content, old_number=context.old_number))
            right.append(_Row("d2h-cntx", " ", content, new_number=context.new_number))
            continue
        old_html, new_html = _pair_contents(deletes, inserts, options)
        for j in range(max(len(deletes), len(inserts))):
            if j < len(deletes):
                left.append(_Row(
                    "d2h-del d2h-change" if j < len(inserts) else "d2h-del",
                    "-", old_html[j], old_number=deletes[j].old_number,
                ))
            else:
                left.append(_Row("d2h-cntx d2h-emptyplaceholder", "", Markup("")))
            if j < len(inserts):
                right.append(_Row(
                    "d2h-ins d2h-change" if j < len(deletes) else "d2h-ins",
                    "+", new_html[j], new_number=inserts[j].new_number,
                ))
            else:
                right.append(_Row("d2h-cntx d2h-emptyplaceholder", "", Markup("")))
    return left, right


def _line_by_line_rows(block: DiffBlock, options: RenderOptions) -> list[_Row]:
    rows: list[_Row] = []
    for context, deletes, inserts in _change_runs(block.lines):
        if context is not None:
            rows.append(_Row(
                "d2h-cntx", " ", escape(context.content),
                old_number=context.old_number, new_number=context.new_number,
            ))
            continue
        old_html, new_html = _pair_contents(deletes, inserts, options)
        for line, content in zip(deletes, old_html):
            rows.append(_Row("d2h-del", "-", content, old_number=line.old_number))
        for line, content in zip(inserts, new_html):
            rows.append(_Row("d2h-ins", "+", content, new_number=line.new_number))
    return rows


_env = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)

_ROW_MACRO = """
{% macro row(r, number) %}
<tr>
<td class="d2h-code-side-linenumber {{ r.css }}">{{ number if number is not none else "" }}</td>
<td class="{{ r.css }}"><div class="d2h-code-side-line"><span class="d2h-code-line-prefix">{{ r.prefix }}</span><span class="d2h-code-line-ctn">{{ r.content }}</span></div></td>
</tr>
{% endmacro %}
"""

_FILE_LIST_TEMPLATE = _env.from_string("""
<div class="d2h-file-list-wrapper">
<div class="d2h-file-list-header"><span class="d2h-file-list-title">Files changed ({{ files|length }})</span></div>
<ol class="d2h-file-list">
{% for f in files %}
<li class="d2h-file-list-line"><span class="d2h-file-name-wrapper"><a href="#{{ f.anchor }}" class="d2h-file-name">{{ f.name }}</a><span class="d2h-file-stats"><span class="d2h-lines-added">+{{ f.added }}</span><span class="d2h-lines-deleted">-{{ f.deleted }}</span></span></span></li>
{% endfor %}
</ol>
</div>
""")

_FILE_HEADER = """
<div class="d2h-file-header"><span class="d2h-file-name-wrapper"><span class="d2h-file-name">{{ f.name }}</span><span class="d2h-tag d2h-changed d2h-changed-tag">CHANGED</span></span></div>
"""

_SIDE_BY_SIDE_TEMPLATE = _env.from_string(_ROW_MACRO + """
<div id="{{ f.anchor }}" class="d2h-file-wrapper">
""" + _FILE_HEADER + """
<div class="d2h-files-diff">
{% for side, number_attr in (("left", "old_number"), ("right", "new_number")) %}
<div class="d2h-file-side-diff"><div class="d2h-code-wrapper"><table class="d2h-diff-table"><tbody class="d2h-diff-tbody">
{% for block in f.blocks %}
<tr><td class="d2h-code-side-linenumber d2h-info"></td><td class="d2h-info"><div class="d2h-code-side-line">{{ block.header if side == "left" else "" }}</div></td></tr>
{% for r in block[side] %}
{{ row(r, r|attr(number_attr)) }}
{% endfor %}
{% endfor %}
</tbody></table></div></div>
{% endfor %}
</div>
</div>
""")

_LINE_BY_LINE_TEMPLATE = _env.from_string("""
<div id="{{ f.anchor }}" class="d2h-file-wrapper">
""" + _FILE_HEADER + """
<div class="d2h-file-diff"><div class="d2h-code-wrapper"><table class="d2h-diff-table"><tbody class="d2h-diff-tbody">
{% for block in f.blocks %}
<tr><td class="d2h-code-linenumber d2h-info"></td><td class="d2h-info"><div class="d2h-code-line">{{ block.header }}</div></td></tr>
{% for r in block.rows %}
<tr>
<td class="d2h-code-linenumber {{ r.css }}"><div class="line-num1">{{ r.old_number if r.old_number is not none else "" }}</div><div class="line-num2">{{ r.new_number if r.new_number is not none else "" }}</div></td>
<td class="{{ r.css }}"><div class="d2h-code-line"><span class="d2h-code-line-prefix">{{ r.prefix }}</span><span class="d2h-code-line-ctn">{{ r.content }}</span></div></td>
</tr>
{% endfor %}
{% endfor %}
</tbody></table></div></div>
</div>
""")


def render_diff_html(patch: str | None, options: RenderOptions | None = None) -> str:
    """
    Render unified diff text as an HTML fragment.

    Args:
        patch: Unified diff text. None or empty renders an empty wrapper.
        options: Rendering options; defaults to RenderOptions().

    Returns:
        HTML string wrapped in ``<div class="d2h-wrapper">``. Identical input
        always renders identical output.
    """
    options = options or RenderOptions()
    files = parse_unified_diff(patch or "")

    parts: list[str] = []
    file_contexts = []
    for index, diff_file in enumerate(files):
        context: dict = {
            "anchor": f"d2h-file-{index}",
            "name": diff_file.display_name,
            "added": diff_file.added,
            "deleted": diff_file.deleted,
            "blocks": [],
        }
        for block in diff_file.blocks:
            if options.output_format == "side-by-side":
                left, right = _side_by_side_rows(block, options)
                context["blocks"].append({"header": block.header, "left": left, "right": right})
            else:
                rows = _line_by_line_rows(block, options)
                context["blocks"].append({"header": block.header, "rows": rows})
        file_contexts.append(context)

    if options.draw_file_list and file_contexts:
        parts.append(_FILE_LIST_TEMPLATE.render(files=file_contexts))

    template = (
        _SIDE_BY_SIDE_TEMPLATE if options.output_format == "side-by-side"
        else _LINE_BY_LINE_TEMPLATE
    )
    for context in file_contexts:
        parts.append(template.render(f=context))

    return '<div class="d2h-wrapper">' + "".join(parts) + "</div>"
