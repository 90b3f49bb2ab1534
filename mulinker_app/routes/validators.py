"""Lightweight request validation helpers."""

import re
from typing import Any, Dict, List, Tuple, Optional


Rule = Tuple[str, type, Optional[int]]

SESSION_ID_PATTERN = re.compile(r'^session-[a-f0-9]{16}$')

MAX_TITLES = 1000
MAX_TITLE_LENGTH = 500


def validate_fields(payload: Dict[str, Any], rules: List[Rule]) -> Optional[str]:
    """
    Validate required fields with optional max length.

    Args:
        payload: Incoming JSON dict.
        rules: List of (field, type, max_length or None).

    Returns:
        None if valid, or error message string.
    """
    for field, expected_type, max_len in rules:
        if field not in payload:
            return f"Missing required field: {field}"
        value = payload.get(field)
        if not isinstance(value, expected_type):
            return f"Field '{field}' must be {expected_type.__name__}"
        if max_len is not None and len(str(value)) > max_len:
            return f"Field '{field}' exceeds max length {max_len}"
    return None


def validate_session_id(session_id: Optional[str]) -> Optional[str]:
    """
    Validate the shape of a session id.

    Returns:
        None if valid, or error message string.
    """
    if not session_id:
        return "Missing sessionId"
    if not isinstance(session_id, str) or not SESSION_ID_PATTERN.match(session_id):
        return "Invalid sessionId format"
    return None


def parse_subscriptions(payload: Dict[str, Any]) -> Tuple[Optional[List[Dict[str, Any]]], Optional[str]]:
    """
    Read the record list of a new session.

    Accepts {"titles": ["..."]} or {"subscriptions": [{"title": "...", "url": "..."}]}.

    Returns:
        (records, None) on success or (None, error message)
    """
    if 'subscriptions' in payload:
        raw = payload.get('subscriptions')
        if not isinstance(raw, list):
            return None, "Field 'subscriptions' must be list"
        items = raw
    elif 'titles' in payload:
        raw = payload.get('titles')
        if not isinstance(raw, list):
            return None, "Field 'titles' must be list"
        items = [{'title': title} for title in raw]
    else:
        return None, "Missing required field: titles"

    if len(items) > MAX_TITLES:
        return None, f"Too many titles (max {MAX_TITLES})"

    records = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            return None, f"Entry {position} must be an object"
        error = validate_fields(item, [('title', str, MAX_TITLE_LENGTH)])
        if error:
            return None, f"Entry {position}: {error}"
        if not item['title'].strip():
            return None, f"Entry {position}: title is empty"
        url = item.get('url')
        if url is not None and not isinstance(url, str):
            return None, f"Entry {position}: url must be str"
        records.append(item)
    return records, None
