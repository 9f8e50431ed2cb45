"""
Composable plain-text formatting primitives for terminal output.

All formatting functions return plain text using box-drawing characters (no ANSI).
Color is applied separately via colorize() as a post-processing step for terminal display.

No external dependencies — pure Python.
"""

import os
import re
import sys
from typing import Any, Optional, Sequence, Tuple


def supports_color() -> bool:
    """Detect whether the terminal supports ANSI color output.

    Respects NO_COLOR (https://no-color.org/) and FORCE_COLOR env vars.
    """
    if os.environ.get('NO_COLOR') is not None:
        return False
    if os.environ.get('FORCE_COLOR') is not None:
        return True
    if not hasattr(sys.stdout, 'isatty'):
        return False
    return sys.stdout.isatty()


# ── Box-drawing characters ──────────────────────────────────────────

_HEAVY_H = '═'
_LIGHT_H = '─'

_TL = '┌'
_TR = '┐'
_BL = '└'
_BR = '┘'
_VL = '│'
_TJ = '┬'
_BJ = '┴'
_CJ = '┼'
_LJ = '├'
_RJ = '┤'


# ── Formatting primitives ──────────────────────────────────────────

def title(text: str, width: int = 60) -> str:
    """Prominent title with heavy-line borders.

    Example::

        ═════════════ Power Benchmark ═════════════
    """
    padding = width - len(text) - 2
    if padding < 4:
        padding = 4
    left = padding // 2
    right = padding - left
    return f"{_HEAVY_H * left} {text} {_HEAVY_H * right}"


def heading(text: str) -> str:
    """Section heading with light-line underline."""
    line = _LIGHT_H * len(text)
    return f"  {text}\n  {line}"


def kv_block(items: Sequence[Tuple[str, str]], indent: int = 2) -> str:
    """Aligned key-value pairs with dot leaders.

    Example::

        Active IDs ····· 0-11
        Avg power ······ 6.42 W
    """
    if not items:
        return ""
    max_key = max(len(k) for k, _ in items)
    prefix = ' ' * indent
    lines = []
    for key, value in items:
        dots = '·' * (max_key - len(key) + 2)
        lines.append(f"{prefix}{key} {dots} {value}")
    return "\n".join(lines)


def _align(text: str, width: int, align: str) -> str:
    if align == 'r':
        return text.rjust(width)
    if align == 'c':
        return text.center(width)
    return text.ljust(width)


def table(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    aligns: Optional[Sequence[str]] = None,
) -> str:
    """Box-drawing bordered table.

    Args:
        headers: Column header strings.
        rows: List of row data (each row is a sequence of values).
        aligns: Per-column alignment: 'l' (left), 'r' (right), 'c' (center).
                Defaults to left for all columns.

    Example::

        ┌─────┬───────────┬──────────┐
        │ CPU │ Requested │ Result   │
        ├─────┼───────────┼──────────┤
        │   1 │ Offline   │ changed  │
        └─────┴───────────┴──────────┘
    """
    if not headers:
        return ""

    n_cols = len(headers)
    if aligns is None:
        aligns = ['l'] * n_cols

    widths = [len(str(h)) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < n_cols:
                widths[i] = max(widths[i], len(str(cell)))

    def _row(values: Sequence[Any]) -> str:
        cells = []
        for i in range(n_cols):
            val = str(values[i]) if i < len(values) else ''
            cells.append(' ' + _align(val, widths[i], aligns[i]) + ' ')
        return _VL + _VL.join(cells) + _VL

    def _h_line(left: str, mid: str, right: str) -> str:
        return left + mid.join(_LIGHT_H * (w + 2) for w in widths) + right

    lines = [_h_line(_TL, _TJ, _TR), _row(headers), _h_line(_LJ, _CJ, _RJ)]
    lines.extend(_row(row) for row in rows)
    lines.append(_h_line(_BL, _BJ, _BR))
    return "\n".join(lines)


# Streaming tables: rows are printed as they arrive, so widths are fixed
# up front and there is no bottom border.

def stream_header(headers: Sequence[str], widths: Sequence[int]) -> str:
    """Header line plus rule for a table printed row by row."""
    cells = [h.ljust(w) for h, w in zip(headers, widths)]
    rule = _LIGHT_H * (sum(widths) + 3 * (len(widths) - 1))
    return f" {_VL} ".join(cells) + "\n" + rule


def stream_row(
    values: Sequence[Any],
    widths: Sequence[int],
    aligns: Optional[Sequence[str]] = None,
) -> str:
    """One line of a streaming table."""
    aligns = aligns or ['l'] * len(widths)
    cells = [_align(str(v), w, a) for v, w, a in zip(values, widths, aligns)]
    return f" {_VL} ".join(cells)


def info_line(text: str, indent: int = 2) -> str:
    """Indented informational text with diamond marker."""
    return f"{' ' * indent}◆ {text}"


def badge(label: str, value: str, indent: int = 2) -> str:
    """Highlighted key result with arrow marker.

    Example::

        ▸ Efficiency gain: +31.20%
    """
    return f"{' ' * indent}▸ {label}: {value}"


def note_block(lines_list: Sequence[str], indent: int = 2) -> str:
    """Indented note section with dot markers."""
    prefix = ' ' * indent
    return "\n".join(f"{prefix}· {line}" for line in lines_list)


def separator(width: int = 60) -> str:
    """Light horizontal rule."""
    return _LIGHT_H * width


def format_watts(watts: Optional[float]) -> str:
    return "N/A" if watts is None else f"{watts:.2f} W"


def format_percent(percent: Optional[float]) -> str:
    """Signed percentage, or 'undefined' when it cannot be computed."""
    return "undefined" if percent is None else f"{percent:+.2f}%"


# ── ANSI Color Post-Processing ─────────────────────────────────────

_RESET = '\033[0m'
_BOLD = '\033[1m'
_DIM = '\033[2m'
_GREEN = '\033[32m'
_RED = '\033[31m'
_YELLOW = '\033[33m'
_CYAN = '\033[36m'


def colorize(text: str) -> str:
    """Apply ANSI colors to formatted text via regex pattern matching.

    Detects and colorizes:
    - Title lines (═══) → bold cyan
    - Rules and table borders → dim
    - Positive percentages (+N%, power saved) → green
    - Negative percentages (-N%, power increased) → red
    - Transitional active sets (trailing *) → yellow
    - Key result markers (◆, ▸) → yellow
    - "undefined" and "N/A" → dim yellow
    """
    return '\n'.join(_colorize_line(line) for line in text.split('\n'))


def _colorize_line(line: str) -> str:
    stripped = line.strip()

    if _HEAVY_H in line and not stripped.startswith(_VL):
        return f"{_BOLD}{_CYAN}{line}{_RESET}"

    if stripped and all(c == _LIGHT_H for c in stripped):
        return f"{_DIM}{line}{_RESET}"

    if stripped and stripped[0] in (_TL, _BL, _LJ):
        return f"{_DIM}{line}{_RESET}"

    if _VL in line:
        return f"{_DIM}{_VL}{_RESET}".join(_colorize_cell(p) for p in line.split(_VL))

    if '◆' in line:
        line = line.replace('◆', f"{_YELLOW}◆{_RESET}")
    if '▸' in line:
        line = line.replace('▸', f"{_YELLOW}▸{_RESET}")
    if stripped.startswith('·'):
        return f"{_DIM}{line}{_RESET}"

    line = _colorize_markers(line)
    return _colorize_percentages(line)


def _colorize_cell(cell: str) -> str:
    stripped = cell.strip()
    if not stripped:
        return cell
    if stripped.endswith('*'):
        return cell.replace(stripped, f"{_YELLOW}{stripped}{_RESET}")
    if stripped in ('N/A', 'undefined'):
        return cell.replace(stripped, f"{_DIM}{_YELLOW}{stripped}{_RESET}")
    if stripped == 'changed':
        return cell.replace(stripped, f"{_GREEN}{stripped}{_RESET}")
    if stripped == 'unavailable':
        return cell.replace(stripped, f"{_RED}{stripped}{_RESET}")
    return cell


def _colorize_markers(line: str) -> str:
    return re.sub(r'\b(undefined|N/A)\b', lambda m: f"{_DIM}{_YELLOW}{m.group(0)}{_RESET}", line)


def _colorize_percentages(line: str) -> str:
    """Colorize +N% and -N% patterns in a line."""
    def _repl(m: re.Match) -> str:
        s = m.group(0)
        if s.startswith('+'):
            return f"{_GREEN}{s}{_RESET}"
        return f"{_RED}{s}{_RESET}"

    return re.sub(r'[+-]\d+\.?\d*%', _repl, line)
