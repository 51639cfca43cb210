"""Tests for the stacked continuation-token codec."""

from __future__ import annotations

import base64
import json

import pytest

from scripts.directory_sync.outcomes import MalformedToken
from scripts.directory_sync.pagination import (
    FrameStack,
    PageFrame,
    decode,
    encode,
    next_offset,
    scim_offset,
)


def _raw_token(payload) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


class TestDecode:
    def test_empty_token_seeds_frame_from_scope(self):
        stack = decode("", "workspace", "E1")
        assert stack.frames == [PageFrame(scope_type="workspace", scope_id="E1")]
        assert stack.page_token == ""

    def test_missing_found_set_means_nothing_found(self):
        token = _raw_token({"v": 1, "frames": [{"scope_type": "user", "cursor": "abc"}]})
        stack = decode(token, "user")
        assert stack.current.cursor == "abc"
        assert stack.current.found == set()

    def test_empty_frame_list_is_seeded(self):
        stack = decode(_raw_token({"v": 1, "frames": []}), "user", "T1")
        assert stack.frames == [PageFrame(scope_type="user", scope_id="T1")]

    @pytest.mark.parametrize("token", [
        "definitely not a token",
        base64.urlsafe_b64encode(b"{not json").decode(),
        _raw_token([1, 2, 3]),
        _raw_token({"v": 99, "frames": []}),
        _raw_token({"v": 1, "frames": "nope"}),
        _raw_token({"v": 1, "frames": [{"cursor": "x"}]}),
        _raw_token({"v": 1, "frames": [{"scope_type": "user", "found": "abc"}]}),
        _raw_token({"v": 1, "frames": [{"scope_type": "user", "cursor": 7}]}),
    ])
    def test_malformed_tokens_raise(self, token):
        with pytest.raises(MalformedToken):
            decode(token, "user")


class TestEncode:
    def test_exhausted_stack_encodes_to_empty_string(self):
        assert encode(FrameStack()) == ""

    def test_round_trip_preserves_frames(self):
        stack = FrameStack([
            PageFrame(scope_type="enterprise", scope_id="E1", cursor="c1", found={"Rl01", "Rl0A"}),
            PageFrame(scope_type="workspace", scope_id="T1", cursor="c2"),
        ])
        assert decode(encode(stack), "ignored") == stack

    def test_encoding_is_deterministic(self):
        a = FrameStack([PageFrame("user", "T1", "c", found={"U3", "U1", "U2"})])
        b = FrameStack([PageFrame("user", "T1", "c", found={"U2", "U3", "U1"})])
        assert encode(a) == encode(b)


class TestNextToken:
    def test_non_empty_cursor_advances_top_frame(self):
        stack = decode("", "user", "T1")
        stack.current.mark_found("U1")
        token = stack.next_token("next-page")
        resumed = decode(token, "user", "T1")
        assert resumed.current.cursor == "next-page"
        assert resumed.current.found == {"U1"}

    def test_empty_cursor_on_last_frame_completes(self):
        stack = decode("", "user", "T1")
        assert stack.next_token("") == ""

    def test_empty_cursor_pops_back_to_parent_frame(self):
        stack = FrameStack([
            PageFrame("enterprise", "E1", cursor="outer"),
            PageFrame("workspace", "T1", cursor="inner"),
        ])
        resumed = decode(stack.next_token(""), "enterprise")
        assert resumed.frames == [PageFrame("enterprise", "E1", cursor="outer")]

    def test_mark_found_reports_duplicates(self):
        frame = PageFrame("workspace")
        assert frame.mark_found("T1") is True
        assert frame.mark_found("T1") is False


class TestScimOffsets:
    def test_fresh_frame_starts_at_one(self):
        assert scim_offset(decode("", "group")) == 1

    def test_resumes_from_cursor(self):
        assert scim_offset(FrameStack([PageFrame("group", cursor="101")])) == 101

    @pytest.mark.parametrize("cursor", ["abc", "0", "-5", "1.5"])
    def test_invalid_offsets(self, cursor):
        with pytest.raises(MalformedToken):
            scim_offset(FrameStack([PageFrame("group", cursor=cursor)]))

    @pytest.mark.parametrize("offset, limit, total, expected", [
        (1, 100, 150, "101"),
        (101, 100, 150, ""),
        (1, 100, 100, ""),
        (1, 100, 0, ""),
    ])
    def test_next_offset(self, offset, limit, total, expected):
        assert next_offset(offset, limit, total) == expected
