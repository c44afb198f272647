"""
Include/exclude glob rules for snapshot membership.

Patterns are shell-style globs evaluated against paths relative to the
source root, using '/' as separator on every platform:

- `*` and `?` never cross a '/'
- `[abc]`, `[!abc]` character classes
- `**` as a whole segment matches zero or more directories
- a pattern without '/' also matches the last path component alone
  (e.g. `*.pyc`, `__pycache__`)
"""

import re
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence


def _translate_segment(segment: str) -> str:
    """Translate one path segment of a glob into a regex fragment."""
    i, n = 0, len(segment)
    out = []
    while i < n:
        c = segment[i]
        i += 1
        if c == '*':
            while i < n and segment[i] == '*':
                i += 1
            out.append('[^/]*')
        elif c == '?':
            out.append('[^/]')
        elif c == '[':
            j = i
            if j < n and segment[j] in '!^':
                j += 1
            if j < n and segment[j] == ']':
                j += 1
            while j < n and segment[j] != ']':
                j += 1
            if j >= n:
                # Unterminated class is a literal '['
                out.append('\\[')
                continue
            body = segment[i:j].replace('\\', '\\\\').replace('[', '\\[')
            i = j + 1
            if body[0] in '!^':
                body = '^' + body[1:]
            out.append(f'(?!/)[{body}]')
        else:
            out.append(re.escape(c))
    return ''.join(out)


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern:
    """
    Compile a glob pattern into an anchored regular expression.

    Args:
        pattern: Glob such as `logs/**/*.log`

    Returns:
        Compiled regex to be used with fullmatch()
    """
    segments = pattern.strip('/').split('/')
    regex = ''
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == '**':
            regex += '.*' if last else '(?:[^/]+/)*'
        else:
            regex += _translate_segment(segment) + ('' if last else '/')
    return re.compile(regex, re.DOTALL)


def _matches_any(relative_path: str, patterns: Sequence[str]) -> bool:
    name = relative_path.rsplit('/', 1)[-1]
    for pattern in patterns:
        if compile_pattern(pattern).fullmatch(relative_path):
            return True
        if '/' not in pattern.strip('/') and compile_pattern(pattern).fullmatch(name):
            return True
    return False


class PathFilter:
    """
    Decides whether a relative path belongs in a snapshot.

    Exclude patterns always win over include patterns. With no include
    patterns every path is include-eligible.
    """

    def __init__(self, include_patterns: Optional[Iterable[str]] = None,
                 exclude_patterns: Optional[Iterable[str]] = None):
        self.include_patterns: List[str] = [p for p in (include_patterns or []) if p]
        self.exclude_patterns: List[str] = [p for p in (exclude_patterns or []) if p]

    def is_excluded(self, relative_path: str) -> bool:
        """True if the path matches any exclude pattern."""
        return _matches_any(relative_path, self.exclude_patterns)

    def is_included(self, relative_path: str) -> bool:
        """True if the path is include-eligible, ignoring excludes."""
        if not self.include_patterns:
            return True
        return _matches_any(relative_path, self.include_patterns)

    def matches(self, relative_path: str) -> bool:
        """True if the path should be captured."""
        if self.is_excluded(relative_path):
            return False
        return self.is_included(relative_path)


def matches(relative_path: str, include_patterns: Sequence[str], exclude_patterns: Sequence[str]) -> bool:
    """Functional form of PathFilter.matches()."""
    return PathFilter(include_patterns, exclude_patterns).matches(relative_path)
