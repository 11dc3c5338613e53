"""Tests for the redactor module."""

import pytest

from history_scrubber.config import DEFAULT_MARKER
from history_scrubber.errors import ConfigError
from history_scrubber.redactor import (
    PatternReplacer,
    Redactor,
    StreamRedactor,
    create_redactor,
    marker_overlap,
    prepare_secrets,
    redact,
)

MARKER = DEFAULT_MARKER.encode()


def stream_all(stream: StreamRedactor, data: bytes, chunk_size: int) -> bytes:
    out = [stream.feed(data[i:i + chunk_size]) for i in range(0, len(data), chunk_size)]
    out.append(stream.flush())
    return b"".join(out)


class TestRedactFunction:
    """Tests for the pure redact() function."""

    def test_replaces_every_occurrence(self):
        """Test that all occurrences of a secret are replaced."""
        result, changed = redact(b"secret data, more secret", ["secret"])

        assert changed is True
        assert result == MARKER + b" data, more " + MARKER

    def test_no_match_returns_original_object(self):
        """Test that unchanged content is the very same object."""
        content = b"nothing to see here"
        result, changed = redact(content, ["password", "token"])

        assert changed is False
        assert result is content

    def test_empty_secret_list(self):
        """Test that no secrets means no change."""
        content = b"secret data"
        assert redact(content, []) == (content, False)

    def test_empty_secret_is_ignored(self):
        """Test that an empty pattern does not insert markers everywhere."""
        content = b"secret data"
        assert redact(content, ["", "password"]) == (content, False)

    def test_longer_secret_redacted_as_one_unit(self):
        """Test the overlap case: longest first leaves no fragment behind."""
        result, changed = redact(b"the secretkey is X", ["secretkey", "secret"])

        assert changed is True
        assert result == b"the " + MARKER + b" is X"
        assert b"key" not in result

    def test_shorter_first_leaves_fragment(self):
        """Test why order matters: shorter first exposes the tail of the longer secret."""
        result, _ = redact(b"the secretkey is X", ["secret", "secretkey"])

        assert result == b"the " + MARKER + b"key is X"

    def test_sequential_passes_not_leftmost(self):
        """Test that each secret gets a full pass before the next one."""
        # Leftmost matching would take "xab" at offset 0 and expose "cd"
        result, _ = redact(b"xabcd", ["abcd", "xab"])

        assert result == b"x" + MARKER

    def test_custom_marker(self):
        """Test a caller-supplied marker."""
        result, _ = redact(b"token=hunter2", ["hunter2"], marker="[gone]")

        assert result == b"token=[gone]"

    def test_bytes_secrets(self):
        """Test that secrets may already be bytes."""
        result, changed = redact(b"key: \xc3\xa9t\xc3\xa9", [b"\xc3\xa9t\xc3\xa9"])

        assert changed is True
        assert result == b"key: " + MARKER

    @pytest.mark.parametrize("content", [
        b"the secretkey is X",
        b"secretsecretsecret",
        b"password=secret; api=secretkey; secretkeysecret",
        b"no secrets at all",
        b"",
    ])
    def test_idempotent(self, content: bytes):
        """Test that redacting redacted output changes nothing."""
        secrets = ["secretkey", "password", "secret"]
        once, _ = redact(content, secrets)
        twice, changed = redact(once, secrets)

        assert twice == once
        assert changed is False


class TestMarkerOverlap:
    """Tests for marker_overlap and prepare_secrets."""

    def test_secret_inside_marker(self):
        """Test that a secret found within the marker is flagged as inside."""
        assert marker_overlap("REMOVED", "***REMOVED***") == "inside"
        assert marker_overlap("*", "***REMOVED***") == "inside"

    def test_secret_sharing_marker_border(self):
        """Test that prefix/suffix overlap with the marker is flagged."""
        assert marker_overlap("pass*", "***REMOVED***") == "border"
        assert marker_overlap("*pass", "***REMOVED***") == "border"
        assert marker_overlap("x***REMOVED***x", "***REMOVED***") == "border"

    def test_unrelated_secret(self):
        """Test that an ordinary secret does not overlap."""
        assert marker_overlap("hunter2", "***REMOVED***") is None

    def test_prepare_drops_empty_and_duplicates(self):
        """Test filtering and stable longest-first ordering."""
        prepared = prepare_secrets(["bb", "", "aa", "bb", "cccc"], "***REMOVED***")

        assert prepared == ["cccc", "bb", "aa"]

    @pytest.mark.parametrize("secret", ["MOVE", "REMOVED", "*", "***REMOVED***"])
    def test_prepare_rejects_secret_inside_marker(self, secret: str):
        """Test that a secret the marker contains is refused, not silently kept in blobs."""
        with pytest.raises(ConfigError) as exc_info:
            prepare_secrets(["hunter2", secret], "***REMOVED***")

        message = str(exc_info.value)
        assert "secret #2" in message
        assert "inside the marker" in message
        assert "different marker" in message

    @pytest.mark.parametrize("secret", ["pass*", "***x", "x***REMOVED***x"])
    def test_prepare_rejects_border_secret(self, secret: str):
        """Test that a secret sharing an edge with the marker is refused."""
        with pytest.raises(ConfigError) as exc_info:
            prepare_secrets([secret], "***REMOVED***")

        assert "secret #1" in str(exc_info.value)

    def test_conflict_message_does_not_reveal_secret(self):
        """Test that the error names position and length only."""
        with pytest.raises(ConfigError) as exc_info:
            prepare_secrets(["hunter2*"], "***REMOVED***")

        assert "hunter2" not in str(exc_info.value)
        assert "8 characters" in str(exc_info.value)

    def test_conflicting_secret_allowed_with_other_marker(self):
        """Test that picking another marker resolves the conflict."""
        assert prepare_secrets(["MOVE", "abc", "***x"], "[gone]") == ["MOVE", "***x", "abc"]


class TestPatternReplacer:
    """Tests for the single-pattern streaming replacer."""

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 5, 7, 64])
    def test_matches_bytes_replace(self, chunk_size: int):
        """Test that any chunking gives the same output as bytes.replace."""
        data = b"aaabaaaabab secret sec-ret secretsecret s e c r e t secre"
        replacer = PatternReplacer(b"secret", b"#")

        out = [replacer.feed(data[i:i + chunk_size]) for i in range(0, len(data), chunk_size)]
        out.append(replacer.flush())

        assert b"".join(out) == data.replace(b"secret", b"#")
        assert replacer.count == data.count(b"secret")

    def test_overlapping_candidates(self):
        """Test non-overlapping left-to-right semantics on self-overlapping patterns."""
        data = b"aaaaa"
        replacer = PatternReplacer(b"aa", b"X")

        out = b"".join(replacer.feed(bytes([b])) for b in data) + replacer.flush()

        assert out == data.replace(b"aa", b"X") == b"XXa"

    def test_rejects_empty_pattern(self):
        """Test that an empty pattern is refused."""
        with pytest.raises(ValueError):
            PatternReplacer(b"", b"X")


class TestRedactor:
    """Tests for Redactor."""

    def test_redacts_payload(self):
        """Test basic redaction through the class."""
        redactor = create_redactor(["secret"])

        result, changed = redactor.redact(b"secret data\n")

        assert changed is True
        assert result == MARKER + b" data\n"

    def test_orders_unsorted_secrets(self):
        """Test that secrets given shortest first are still applied longest first."""
        redactor = Redactor(["secret", "secretkey"])

        assert redactor.secrets == ["secretkey", "secret"]
        result, _ = redactor.redact(b"the secretkey is X")
        assert result == b"the " + MARKER + b" is X"

    def test_disabled_redactor_passes_through(self):
        """Test that a disabled redactor doesn't modify content."""
        redactor = create_redactor(["secret"], enabled=False)
        content = b"secret data"

        assert redactor.redact(content) == (content, False)

    def test_tracks_stats_without_revealing_secrets(self):
        """Test that stats are keyed by rule name, not by secret."""
        redactor = create_redactor(["hunter2", "swordfish"])

        redactor.redact(b"hunter2 hunter2 swordfish")
        stats = redactor.get_stats()

        assert stats == {"secret-2": 2, "secret-1": 1}
        assert all("hunter" not in name for name in stats)

    def test_reset_stats(self):
        """Test resetting redaction statistics."""
        redactor = create_redactor(["hunter2"])
        redactor.redact(b"hunter2")

        redactor.reset_stats()

        assert redactor.get_stats() == {}

    def test_unchanged_records_no_stats(self):
        """Test that a clean payload leaves stats empty."""
        redactor = create_redactor(["hunter2"])
        redactor.redact(b"clean")

        assert redactor.get_stats() == {}

    def test_latin1_payload(self, monkeypatch: pytest.MonkeyPatch):
        """Test that secrets are also matched in a non-UTF-8 payload's encoding."""
        monkeypatch.setattr(
            "history_scrubber.redactor.detect_encoding", lambda sample: "iso-8859-1"
        )
        redactor = create_redactor(["pässwörd"])
        content = ("login: admin\npassword: pässwörd\n" * 20).encode("latin-1")

        result, changed = redactor.redact(content)

        assert changed is True
        assert "pässwörd".encode("latin-1") not in result
        assert result.count(MARKER) == 20

    def test_utf8_payload_only_uses_utf8_rules(self):
        """Test that UTF-8 payloads get exactly one rule per secret."""
        redactor = create_redactor(["pässwörd", "key"])

        assert len(redactor.rules_for("utf-8")) == 2
        assert len(redactor.rules_for("iso-8859-1")) == 3  # "key" is the same in both

    def test_idempotent_on_own_output(self):
        """Test that the class output redacts to itself."""
        redactor = create_redactor(["secret", "secretkey", "key"])
        once, _ = redactor.redact(b"secretkey key secret keysecret")

        assert redactor.redact(once) == (once, False)

    def test_secret_inside_marker_is_refused(self):
        """Test that a secret the marker contains can never survive redaction unnoticed."""
        with pytest.raises(ConfigError):
            Redactor(["MOVE", "hunter2"])

    def test_border_secret_is_refused(self):
        """Test that a secret that could re-form next to a marker is refused."""
        with pytest.raises(ConfigError):
            Redactor(["***x", "abc"])

    def test_idempotent_with_marker_free_of_conflicts(self):
        """Test that the same secrets redact idempotently under a compatible marker."""
        redactor = Redactor(["***x", "abc", "MOVE"], marker="[gone]")
        once, changed = redactor.redact(b"abcx ***x pw=MOVE")

        assert changed is True
        assert once == b"[gone]x [gone] pw=[gone]"
        assert redactor.redact(once) == (once, False)


class TestStreamRedactor:
    """Tests for streaming redaction."""

    @pytest.mark.parametrize("chunk_size", [1, 2, 4, 9, 16, 1000])
    def test_stream_equals_in_memory(self, chunk_size: int):
        """Test that chunked output is byte-identical to the in-memory result."""
        redactor = create_redactor(["secretkey", "secret", "key", "xab", "abcd"])
        data = b"the secretkey is X; xabcd; keysecretkeyy; secre tkey; " * 3

        expected, _ = redact(data, redactor.secrets)
        result = stream_all(redactor.stream(), data, chunk_size)

        assert result == expected

    def test_changed_flag(self):
        """Test that changed reflects whether anything matched."""
        redactor = create_redactor(["hunter2"])

        clean = redactor.stream()
        stream_all(clean, b"nothing here", 4)
        dirty = redactor.stream()
        stream_all(dirty, b"pw hunter2", 4)

        assert clean.changed is False
        assert dirty.changed is True

    def test_flush_records_stats(self):
        """Test that counts land in the redactor stats once the stream ends."""
        redactor = create_redactor(["hunter2"])
        stream = redactor.stream()

        stream.feed(b"hunter2 hun")
        assert redactor.get_stats() == {}

        stream.feed(b"ter2")
        stream.flush()

        assert redactor.get_stats() == {"secret-1": 2}

    def test_no_rules(self):
        """Test that a stream without secrets passes data through."""
        stream = StreamRedactor([])

        assert stream.feed(b"abc") + stream.flush() == b"abc"
        assert stream.changed is False
