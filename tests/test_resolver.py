"""Tests for slug derivation and collision resolution."""

import re

import pytest

from keyserver.links import LinkTemplate, build_vless_link
from keyserver.resolver import (
    ConnectionLine,
    LegacyPair,
    UserRecord,
    derive_base_identifier,
    probe_candidate,
    resolve,
    sanitize,
)

SLUG_RE = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]{0,62}[a-z0-9_])?$")

SAMPLE_INPUTS = [
    "Alice@Example.COM",
    "  --Hello World--  ",
    "",
    "!!!",
    "ÜBER straße",
    "a" * 100,
    "x-" * 40,
    "_under_",
    "Mixed_Case-123",
    "тест",
    "home-2",
    "e4392413-7142-4a95-a934-f084649b45e7",
]

EXAMPLE_UUID = "e4392413-7142-4a95-a934-f084649b45e7"


class TestSanitize:
    """Test sanitize function."""

    def test_email(self) -> None:
        """Test that @ and . collapse into dashes."""
        assert sanitize("alice@x.com") == "alice-x-com"

    def test_runs_collapse_to_single_dash(self) -> None:
        """Test that a run of invalid characters becomes one dash."""
        assert sanitize("Home  Sweet!!!Home") == "home-sweet-home"

    def test_strips_edge_dashes(self) -> None:
        """Test that leading and trailing separators are removed."""
        assert sanitize("--Hello--") == "hello"

    def test_keeps_underscores(self) -> None:
        """Test that underscores survive sanitizing."""
        assert sanitize("_my_key_") == "_my_key_"

    def test_empty_falls_back_to_key(self) -> None:
        """Test fallback for inputs with no valid characters."""
        assert sanitize("") == "key"
        assert sanitize("!!!") == "key"
        assert sanitize("тест") == "key"

    def test_truncates_to_64(self) -> None:
        """Test truncation of long inputs."""
        assert sanitize("a" * 100) == "a" * 64

    def test_truncation_does_not_leave_trailing_dash(self) -> None:
        """Test that a dash exposed by truncation is removed."""
        result = sanitize("x-" * 40)
        assert not result.endswith("-")
        assert len(result) <= 64

    def test_non_string_input(self) -> None:
        """Test that non-string values are accepted."""
        assert sanitize(42) == "42"
        assert sanitize(None) == "none"

    @pytest.mark.parametrize("value", SAMPLE_INPUTS)
    def test_idempotent(self, value: str) -> None:
        """Test that sanitizing twice equals sanitizing once."""
        assert sanitize(sanitize(value)) == sanitize(value)

    @pytest.mark.parametrize("value", SAMPLE_INPUTS)
    def test_output_is_valid_slug(self, value: str) -> None:
        """Test that every output matches the slug alphabet and length."""
        assert SLUG_RE.match(sanitize(value))


class TestDeriveBaseIdentifier:
    """Test derive_base_identifier function."""

    def test_user_prefers_email(self) -> None:
        """Test email has priority for user records."""
        entry = UserRecord(uuid="u", email="a@b.c", sub_id="sub", id="7")
        assert derive_base_identifier(entry) == "a@b.c"

    def test_user_sub_id(self) -> None:
        """Test subId is used when email is missing."""
        entry = UserRecord(uuid="u", sub_id="sub", id="7")
        assert derive_base_identifier(entry) == "sub"

    def test_user_numeric_id(self) -> None:
        """Test id fallback including a zero id."""
        assert derive_base_identifier(UserRecord.from_dict({"uuid": "u", "id": 7})) == "id-7"
        assert derive_base_identifier(UserRecord.from_dict({"uuid": "u", "id": 0})) == "id-0"

    def test_user_uuid_fallback(self) -> None:
        """Test uuid is used when nothing else is present."""
        assert derive_base_identifier(UserRecord(uuid="abc-1")) == "abc-1"

    def test_line_tag_is_percent_decoded(self) -> None:
        """Test fragment tag decoding."""
        entry = ConnectionLine(f"vless://{EXAMPLE_UUID}@h:443?type=tcp#Home%20Sweet")
        assert derive_base_identifier(entry) == "Home Sweet"

    def test_line_uuid_when_no_fragment(self) -> None:
        """Test uuid fallback for lines without a tag."""
        entry = ConnectionLine(f"vless://{EXAMPLE_UUID}@h:443?type=tcp")
        assert derive_base_identifier(entry) == EXAMPLE_UUID

    def test_line_uuid_when_fragment_empty(self) -> None:
        """Test that an empty fragment counts as missing."""
        entry = ConnectionLine(f"vless://{EXAMPLE_UUID}@h:443#")
        assert derive_base_identifier(entry) == EXAMPLE_UUID

    def test_line_key_fallback(self) -> None:
        """Test literal fallback when neither tag nor uuid can be parsed."""
        assert derive_base_identifier(ConnectionLine("vless://not a link")) == "key"

    def test_legacy_slug_used_as_is(self) -> None:
        """Test legacy pairs are not re-derived."""
        assert derive_base_identifier(LegacyPair("My Key", "vless://x")) == "My Key"


class TestResolve:
    """Test resolve function."""

    def test_user_record_scenario(self) -> None:
        """Test a single user record produces a templated link."""
        mapping = resolve([UserRecord(uuid="abc-1", email="alice@x.com")])

        assert list(mapping) == ["alice-x-com"]
        assert "abc-1" in mapping["alice-x-com"]
        assert mapping["alice-x-com"] == build_vless_link(
            "abc-1", LinkTemplate(), "alice@x.com"
        )

    def test_user_without_label_is_tagged_with_slug(self) -> None:
        """Test that the bound slug labels links of bare user records."""
        mapping = resolve([UserRecord(uuid="abc-1")])
        assert mapping["abc-1"].endswith("#abc-1")

    def test_same_tag_gets_numeric_suffix(self) -> None:
        """Test two lines tagged Home become home and home-2."""
        first = "vless://u1@h.example:443?type=tcp#Home"
        second = "vless://u2@h.example:443?type=tcp#Home"
        third = "vless://u3@h.example:443?type=tcp#Home"

        mapping = resolve([ConnectionLine(first), ConnectionLine(second), ConnectionLine(third)])

        assert dict(mapping) == {"home": first, "home-2": second, "home-3": third}

    def test_line_without_fragment_uses_uuid(self) -> None:
        """Test uuid slug for an untagged line."""
        line = f"vless://{EXAMPLE_UUID}@h.example:443?type=tcp"
        assert dict(resolve([ConnectionLine(line)])) == {EXAMPLE_UUID: line}

    def test_empty_uuid_is_skipped(self) -> None:
        """Test that records without uuid contribute nothing."""
        mapping = resolve([UserRecord(uuid="", email="a@b.c")])
        assert len(mapping) == 0

    def test_skipping_does_not_change_count(self) -> None:
        """Test that invalid entries leave the binding count unchanged."""
        valid = [ConnectionLine("vless://u1@h:1#One"), LegacyPair("two", "vless://u2@h:1")]
        invalid = [
            UserRecord(uuid=""),
            ConnectionLine("https://example.com#Nope"),
            LegacyPair("", "vless://u3@h:1"),
            LegacyPair("three", ""),
        ]

        assert len(resolve(valid + invalid)) == len(resolve(valid)) == 2

    def test_empty_input(self) -> None:
        """Test empty input gives an empty mapping."""
        assert len(resolve([])) == 0

    def test_first_writer_wins_across_sources(self) -> None:
        """Test an earlier source keeps the slug and the later one is suffixed."""
        line = "vless://u2@h.example:443#Home"
        legacy = LegacyPair("home", "vless://legacy@h.example:443")

        mapping = resolve([UserRecord(uuid="u1", email="home"), ConnectionLine(line), legacy])

        assert "u1" in mapping["home"]
        assert mapping["home-2"] == line
        assert mapping["home-3"] == legacy.value

    def test_insertion_order_follows_input(self) -> None:
        """Test mapping order reflects processing order."""
        entries = [
            LegacyPair("zeta", "vless://1@h:1"),
            LegacyPair("alpha", "vless://2@h:1"),
            LegacyPair("mid", "vless://3@h:1"),
        ]
        assert list(resolve(entries)) == ["zeta", "alpha", "mid"]

    def test_legacy_slug_is_sanitized(self) -> None:
        """Test legacy slugs still satisfy the slug contract."""
        assert list(resolve([LegacyPair("My Key!", "vless://1@h:1")])) == ["my-key"]

    def test_slug_prefix(self) -> None:
        """Test template slug prefix is applied before sanitizing and probing."""
        template = LinkTemplate(slug_prefix="vip-")
        entries = [ConnectionLine("vless://u1@h:1#Home"), ConnectionLine("vless://u2@h:1#Home")]

        assert list(resolve(entries, template)) == ["vip-home", "vip-home-2"]

    def test_no_duplicate_slugs(self) -> None:
        """Test that colliding inputs never share a slug."""
        names = [value for value in SAMPLE_INPUTS if value] * 3
        entries = [LegacyPair(name, f"vless://{i}@h:1") for i, name in enumerate(names)]
        mapping = resolve(entries)

        assert len(mapping) == len(entries)
        assert all(SLUG_RE.match(slug) for slug in mapping)

    def test_long_identifiers_terminate_with_unique_slugs(self) -> None:
        """Test collisions between identifiers cut by the length limit."""
        long_name = "a" * 70
        entries = [LegacyPair(long_name, f"vless://{i}@h:1") for i in range(4)]

        mapping = resolve(entries)

        assert len(mapping) == 4
        assert list(mapping)[0] == "a" * 64
        for slug in mapping:
            assert len(slug) <= 64
            assert SLUG_RE.match(slug)

    def test_mapping_is_read_only(self) -> None:
        """Test the resolved mapping cannot be modified."""
        mapping = resolve([LegacyPair("one", "vless://1@h:1")])
        with pytest.raises(TypeError):
            mapping["two"] = "vless://2@h:1"


class TestProbeCandidate:
    """Test probe_candidate function."""

    def test_first_attempt_is_plain(self) -> None:
        """Test attempt 1 is the sanitized base."""
        assert probe_candidate("Home", 1) == "home"

    def test_suffix(self) -> None:
        """Test numeric suffix on later attempts."""
        assert probe_candidate("Home", 2) == "home-2"
        assert probe_candidate("Home Sweet", 3) == "home-sweet-3"

    def test_suffix_keeps_existing_dash(self) -> None:
        """Test a dash is a slug character, so only the run before it collapses."""
        assert probe_candidate("Home!", 5) == "home--5"
        assert probe_candidate("Home !?", 2) == "home--2"

    def test_long_base_keeps_suffix(self) -> None:
        """Test that the counter stays visible for long identifiers."""
        second = probe_candidate("b" * 80, 2)
        third = probe_candidate("b" * 80, 3)

        assert second != third
        assert second.endswith("-2")
        assert third.endswith("-3")
        assert len(second) <= 64
