"""Call-stack snippets attached to custom timings.

A snippet is the list of caller function names, innermost first, separated by
single spaces, with profiler internals and configured noise filtered out.
"""

import sys
import traceback
from types import FrameType

from blkarbs_stepprofiler._settings import PACKAGE_NAME, ProfilerSettings


def _module_excluded(module: str, excluded: frozenset[str]) -> bool:
    if module == PACKAGE_NAME or module.startswith(PACKAGE_NAME + "."):
        return True
    return any(module == name or module.startswith(name + ".") for name in excluded)


def _is_generated(frame: FrameType) -> bool:
    # lambdas, comprehensions, <module> bodies and exec'd source
    code = frame.f_code
    return code.co_name.startswith("<") or code.co_filename.startswith("<")


def _owner_type(frame: FrameType) -> str | None:
    parts = frame.f_code.co_qualname.split(".")
    parts = [p for p in parts[:-1] if p != "<locals>"]
    return parts[-1] if parts else None


def should_exclude(frame: FrameType, settings: ProfilerSettings) -> bool:
    module = frame.f_globals.get("__name__", "")
    if _module_excluded(module, settings.modules_to_exclude):
        return True
    if _is_generated(frame):
        return True
    owner = _owner_type(frame)
    if owner is not None and owner in settings.types_to_exclude:
        return True
    return frame.f_code.co_name in settings.methods_to_exclude


def get_stack_snippet(settings: ProfilerSettings, frame: FrameType | None = None) -> str:
    """Return the filtered caller snippet, at most ``settings.stack_max_length`` chars.

    Args:
        settings: Supplies the exclude lists and max length
        frame: Frame to start walking from (default: the caller's frame)
    """
    if frame is None:
        frame = sys._getframe(1)
    parts: list[str] = []
    length = 0
    for current, _ in traceback.walk_stack(frame):
        if should_exclude(current, settings):
            continue
        name = current.f_code.co_name
        added = len(name) + (1 if parts else 0)
        if length + added > settings.stack_max_length:
            break
        parts.append(name)
        length += added
    return " ".join(parts)
