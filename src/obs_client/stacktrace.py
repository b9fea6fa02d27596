"""
Normalization of stack traces into a uniform list of frames.

Two sources are supported: free-text traces (JavaScript engines, CPython
``traceback`` output, or anything a caller forwards verbatim) and live
exception objects whose traceback the interpreter exposes directly.
"""

from __future__ import annotations

import re
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Pattern

ANONYMOUS = "(anonymous)"
THROW = "(throw)"


@dataclass(frozen=True)
class Frame:
  filename: str
  function: str
  lineno: int
  colno: Optional[int] = None

  def to_dict(self) -> Dict[str, Any]:
    data: Dict[str, Any] = {
      "filename": self.filename,
      "function": self.function,
      "lineno": self.lineno,
    }
    if self.colno is not None:
      data["colno"] = self.colno
    return data


LineMatcher = Callable[[str], Optional[Frame]]


def _grammar(pattern: Pattern[str], func: int, file: int, line: int, col: Optional[int]) -> LineMatcher:
  def match(text: str) -> Optional[Frame]:
    m = pattern.match(text)
    if m is None:
      return None
    return Frame(
      filename=m.group(file),
      function=m.group(func) or ANONYMOUS,
      lineno=int(m.group(line)),
      colno=int(m.group(col)) if col is not None else None,
    )

  return match


# Tried in order; the first grammar that matches a line wins.
LINE_GRAMMARS: List[LineMatcher] = [
  # V8: "    at funcName (file:line:col)" or "    at file:line:col"
  _grammar(re.compile(r"^\s*at\s+(?:(.+?)\s+\()?(.+?):(\d+):(\d+)\)?$"), 1, 2, 3, 4),
  # SpiderMonkey / JavaScriptCore: "funcName@file:line:col"
  _grammar(re.compile(r"^(.*?)@(.+?):(\d+):(\d+)$"), 1, 2, 3, 4),
  # CPython: '  File "file", line N, in funcName'
  _grammar(re.compile(r'^\s*File "(.+?)", line (\d+)(?:, in (.+))?$'), 3, 1, 2, None),
]


def parse_stack(stack: Optional[str]) -> List[Frame]:
  """
  Parse free-text trace output line by line.

  Lines no grammar recognizes (headers, source excerpts, blank lines) are
  dropped. ``None`` or an empty string yields an empty list.
  """
  if not stack:
    return []

  frames: List[Frame] = []
  for line in stack.splitlines():
    line = line.rstrip()
    for grammar in LINE_GRAMMARS:
      frame = grammar(line)
      if frame is not None:
        frames.append(frame)
        break
  return frames


def frames_from_exception(exc: BaseException) -> List[Frame]:
  """
  Build frames from an exception's traceback without parsing text.

  Frames run innermost first, the reverse of ``traceback.extract_tb``. A
  synthetic ``(throw)`` frame marking the raise site is placed first; it
  shares file and line with the innermost frame, which carries the name of
  the function that raised.
  """
  tb = exc.__traceback__
  if tb is None:
    return []

  entries = traceback.extract_tb(tb)
  if not entries:
    return []

  frames = [
    Frame(filename=entry.filename, function=entry.name or ANONYMOUS, lineno=entry.lineno or 0)
    for entry in reversed(entries)
  ]
  raise_site = entries[-1]
  frames.insert(0, Frame(filename=raise_site.filename, function=THROW, lineno=raise_site.lineno or 0))
  return frames
