"""Unified diff generation for page content."""
import difflib

from page_history.services.exceptions import PatchError

# Both sides of every stored patch carry this label; it is cosmetic
PATCH_LABEL = "Content"

# Lines of unchanged context around each hunk
CONTEXT_LINES = 4

NO_NEWLINE_MARKER = "\\ No newline at end of file\n"


def split_lines(text: str) -> list[str]:
    """
    Split text into lines on ``\\n`` only, keeping the line endings.

    Unlike ``str.splitlines``, form feeds, lone carriage returns and Unicode
    line separators stay inside their line.
    """
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def create_patch(before: str, after: str) -> str:
    """
    Build a unified diff transforming ``before`` into ``after``.

    The output always starts with ``--- Content`` / ``+++ Content`` headers,
    even when the inputs are identical (in which case there are no hunks).
    A line that does not end in a newline is followed by the standard
    ``\\ No newline at end of file`` marker so the patch stays line-oriented.

    Args:
        before: Content before the change.
        after: Content after the change.

    Returns:
        The patch text. Identical inputs always produce identical output.

    Raises:
        TypeError: If either argument is not a string.
        PatchError: If the diff algorithm fails (e.g. runs out of memory).
    """
    if not isinstance(before, str) or not isinstance(after, str):
        raise TypeError("create_patch expects two strings")

    header = f"--- {PATCH_LABEL}\n+++ {PATCH_LABEL}\n"
    try:
        diff_lines = list(
            difflib.unified_diff(
                split_lines(before),
                split_lines(after),
                n=CONTEXT_LINES,
            ),
        )
    except (MemoryError, RecursionError) as e:
        raise PatchError(f"Failed to create patch: {e!r}") from e

    # difflib emits its own ---/+++ pair first; replace it with the fixed labels
    parts = [header]
    for line in diff_lines[2:]:
        if line.endswith("\n"):
            parts.append(line)
        else:
            parts.append(line + "\n" + NO_NEWLINE_MARKER)
    return "".join(parts)
