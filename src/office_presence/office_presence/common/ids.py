from __future__ import annotations

import uuid


def new_id() -> str:
    """32-char hex ids; unique across tables so claim targets resolve unambiguously."""
    return uuid.uuid4().hex
