"""Stacked continuation tokens.

A token is an opaque string that decodes to a stack of ``PageFrame``
objects, one per level of a hierarchical walk. The top frame is the one
being paged. Each frame keeps the remote cursor and the set of identifiers
already emitted during the current pass, so a resumed page never repeats an
item.

The empty string means both "start" and "done": decoding it yields a single
frame seeded from the caller's scope, and encoding an exhausted stack
returns it.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Optional

from scripts.directory_sync.outcomes import MalformedToken

TOKEN_VERSION = 1


@dataclass
class PageFrame:
    scope_type: str
    scope_id: str = ""
    cursor: str = ""
    found: set[str] = field(default_factory=set)

    def mark_found(self, item_id: str) -> bool:
        """Record ``item_id``; returns False if it was already emitted."""
        if item_id in self.found:
            return False
        self.found.add(item_id)
        return True

    def to_dict(self) -> dict:
        return {
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "cursor": self.cursor,
            "found": sorted(self.found),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PageFrame":
        if not isinstance(data, dict) or not isinstance(data.get("scope_type"), str):
            raise MalformedToken("page frame is missing scope_type")
        found = data.get("found") or []
        if not isinstance(found, list) or not all(isinstance(f, str) for f in found):
            raise MalformedToken("page frame found-set must be a list of strings")
        scope_id = data.get("scope_id", "")
        cursor = data.get("cursor", "")
        if not isinstance(scope_id, str) or not isinstance(cursor, str):
            raise MalformedToken("page frame scope_id and cursor must be strings")
        return cls(scope_type=data["scope_type"], scope_id=scope_id, cursor=cursor, found=set(found))


@dataclass
class FrameStack:
    """Frames of a hierarchical walk, top frame last.

    The syncers page a single frame seeded by ``decode()``; ``push`` is there
    for nested walks, which resume the parent frame once a child scope pops.
    """

    frames: list[PageFrame] = field(default_factory=list)

    @property
    def current(self) -> Optional[PageFrame]:
        return self.frames[-1] if self.frames else None

    @property
    def page_token(self) -> str:
        """Remote cursor of the top frame (empty on a fresh frame)."""
        return self.current.cursor if self.current else ""

    def push(self, frame: PageFrame) -> None:
        self.frames.append(frame)

    def pop(self) -> Optional[PageFrame]:
        return self.frames.pop() if self.frames else None

    def next_token(self, cursor: str) -> str:
        """Advance the top frame to ``cursor`` and encode the result.

        An empty cursor means the frame is exhausted and is popped.
        """
        frame = self.current
        if frame is not None:
            if cursor:
                frame.cursor = cursor
            else:
                self.pop()
        return encode(self)


def encode(stack: FrameStack) -> str:
    """Deterministically encode ``stack``; ``""`` once it is exhausted."""
    if not stack.frames:
        return ""
    payload = {
        "v": TOKEN_VERSION,
        "frames": [frame.to_dict() for frame in stack.frames],
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode(token: str, scope_type: str, scope_id: str = "") -> FrameStack:
    """Decode ``token``; an empty token yields one frame for the given scope."""
    if not token:
        return FrameStack([PageFrame(scope_type=scope_type, scope_id=scope_id)])

    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise MalformedToken(f"continuation token is not decodable: {exc}") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("frames"), list):
        raise MalformedToken("continuation token has no frame list")
    if payload.get("v") != TOKEN_VERSION:
        raise MalformedToken(f"unsupported continuation token version: {payload.get('v')!r}")

    stack = FrameStack([PageFrame.from_dict(f) for f in payload["frames"]])
    if stack.current is None:
        stack.push(PageFrame(scope_type=scope_type, scope_id=scope_id))
    return stack


# SCIM pages by 1-based offset; the offset travels as the frame cursor.
SCIM_STARTING_OFFSET = 1


def scim_offset(stack: FrameStack) -> int:
    """Offset to request for the top frame of ``stack``."""
    if not stack.page_token:
        return SCIM_STARTING_OFFSET
    try:
        offset = int(stack.page_token)
    except ValueError as exc:
        raise MalformedToken(f"invalid SCIM offset: {stack.page_token!r}") from exc
    if offset < SCIM_STARTING_OFFSET:
        raise MalformedToken(f"invalid SCIM offset: {offset}")
    return offset


def next_offset(offset: int, limit: int, total: int) -> str:
    """Offset of the following page, or "" when ``offset`` was the last one."""
    nxt = offset + limit
    if nxt > total:
        return ""
    return str(nxt)
