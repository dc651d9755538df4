# forum/validation.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from forum.errors import ValidationError

BOARD_ID_MAX = 50
THREAD_TITLE_MAX = 200
POST_TEXT_MAX = 5000
BOARD_NAME_MAX = 100
BOARD_DESCRIPTION_MAX = 1000

_BOARD_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True)
class RuleResult:
    """Outcome of a single field check. `reason` is empty when `ok` is True."""

    ok: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.ok


_PASS = RuleResult(True)


def _check_length(label: str, value: str, max_len: int, allow_empty: bool = False) -> RuleResult:
    if not isinstance(value, str):
        return RuleResult(False, f"{label} must be a string.")
    if not allow_empty and not value.strip():
        return RuleResult(False, f"{label} must not be empty.")
    if len(value) > max_len:
        return RuleResult(False, f"{label} must be at most {max_len} characters (got {len(value)}).")
    return _PASS


def check_board_id(board_id: str) -> RuleResult:
    if not isinstance(board_id, str) or not _BOARD_ID_PATTERN.fullmatch(board_id):
        return RuleResult(False, f"Board id {board_id!r} may only contain letters, digits, '_' and '-'.")
    if len(board_id) > BOARD_ID_MAX:
        return RuleResult(False, f"Board id must be at most {BOARD_ID_MAX} characters (got {len(board_id)}).")
    return _PASS


def check_thread_title(title: str) -> RuleResult:
    return _check_length("Thread title", title, THREAD_TITLE_MAX)


def check_post_text(text: str) -> RuleResult:
    return _check_length("Post text", text, POST_TEXT_MAX)


def check_board_name(name: str) -> RuleResult:
    return _check_length("Board name", name, BOARD_NAME_MAX)


def check_board_description(description: Optional[str]) -> RuleResult:
    if description is None:
        return _PASS
    return _check_length("Board description", description, BOARD_DESCRIPTION_MAX, allow_empty=True)


def require(*results: RuleResult) -> None:
    """Raise ValidationError with the first failing reason, if any."""
    for result in results:
        if not result.ok:
            raise ValidationError(result.reason)
