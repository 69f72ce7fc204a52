"""Tests for per-provider API key rotation."""

import pytest

from wanderer.config import Settings
from wanderer.core.errors import KeysExhausted, NoKeysConfigured
from wanderer.providers.credentials import CredentialRotator, KeyRing


class TestKeyRing:

    def test_current_is_first_key(self):
        ring = KeyRing("google", ["a", "b"])
        assert ring.current() == "a"

    def test_empty_raises_no_keys(self):
        with pytest.raises(NoKeysConfigured):
            KeyRing("google", []).current()

    def test_placeholders_are_ignored(self):
        ring = KeyRing("groq", ["", "YOUR_GROQ_KEY", "real"])
        assert ring.keys == ["real"]

    def test_advance_len_times_exhausts(self):
        ring = KeyRing("ors", ["a", "b", "c"])
        assert ring.advance() is True
        assert ring.advance() is True
        assert ring.advance() is False
        assert ring.exhausted
        with pytest.raises(KeysExhausted):
            ring.current()

    def test_exhausted_is_a_no_keys_error(self):
        ring = KeyRing("ors", ["a"])
        ring.advance()
        with pytest.raises(NoKeysConfigured):
            ring.current()

    def test_reset_restores(self):
        ring = KeyRing("ors", ["a", "b"])
        ring.advance()
        ring.advance()
        ring.reset()
        assert not ring.exhausted
        assert ring.current() == "a"

    def test_request_limit_rotates(self):
        ring = KeyRing("groq", ["a", "b"], max_requests_per_key=2)
        ring.record_request()
        assert ring.current() == "a"
        ring.record_request()
        assert ring.current() == "b"
        assert ring.request_count == 0

    def test_stats(self):
        ring = KeyRing("groq", ["a", "b", "c"])
        ring.advance()
        s = ring.stats()
        assert (s.total, s.current, s.remaining, s.has_keys, s.exhausted) == (3, 2, 2, True, False)

    def test_stats_when_exhausted(self):
        ring = KeyRing("groq", ["a"])
        ring.advance()
        s = ring.stats()
        assert s.current == 1
        assert s.remaining == 0
        assert s.exhausted


class TestCredentialRotator:

    def test_rings_are_independent(self):
        rot = CredentialRotator([KeyRing("google", ["g1", "g2"]), KeyRing("ors", ["o1"])])
        rot.advance("google")
        assert rot.current_key("google") == "g2"
        assert rot.current_key("ors") == "o1"

    def test_unknown_provider_has_no_keys(self):
        rot = CredentialRotator()
        assert not rot.has_keys("mapbox")
        with pytest.raises(NoKeysConfigured):
            rot.current_key("mapbox")

    def test_reset_all(self):
        rot = CredentialRotator([KeyRing("google", ["g1"]), KeyRing("ors", ["o1"])])
        rot.advance("google")
        rot.advance("ors")
        rot.reset_all()
        assert rot.current_key("google") == "g1"
        assert rot.current_key("ors") == "o1"

    def test_from_settings(self):
        cfg = Settings(google_maps_keys=["g1", "g2"], groq_keys=["q1"], max_requests_per_key=5)
        rot = CredentialRotator.from_settings(cfg)
        stats = rot.stats_all()
        assert stats["google"].total == 2
        assert stats["groq"].total == 1
        assert stats["ors"].total == 0
        assert rot.ring("google").max_requests_per_key == 5
