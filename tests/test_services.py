import pytest

from core.exceptions import HostAccessDenied, HostAccessForbidden
from database import get_settings
from services.host_token_service import ensure_host_access, issue_host_token, read_host_token
from services.naming_service import build_room_url, parse_room_channel, room_channel
from services.pin_service import generate_pin, hash_pin, pin_matches


def test_generated_pins_are_four_digits():
    for _ in range(200):
        pin = generate_pin()
        assert len(pin) == 4
        assert 1000 <= int(pin) <= 9999


def test_pin_digest_comparison():
    digest = hash_pin("4821")
    assert len(digest) == 64
    assert pin_matches("4821", digest)
    assert not pin_matches("4822", digest)


def test_channel_names():
    assert room_channel("abc") == "room-abc"
    assert parse_room_channel("room-abc") == "abc"
    assert parse_room_channel("lobby") is None
    assert parse_room_channel("room-") is None


def test_room_url_has_no_double_slash(monkeypatch):
    monkeypatch.setattr(get_settings(), "app_url", "https://example.com/")
    assert build_room_url("r1") == "https://example.com/room/r1"


def test_host_token_round_trip():
    assert read_host_token(issue_host_token("r1")) == "r1"


def test_host_token_rejects_tampering():
    token = issue_host_token("r1")
    with pytest.raises(HostAccessDenied):
        read_host_token(token[:-2] + "xx")


def test_host_token_expires():
    token = issue_host_token("r1")
    with pytest.raises(HostAccessDenied):
        read_host_token(token, max_age=-1)


def test_ensure_host_access():
    token = issue_host_token("r1")
    ensure_host_access(token, "r1")

    with pytest.raises(HostAccessDenied):
        ensure_host_access(None, "r1")
    with pytest.raises(HostAccessForbidden):
        ensure_host_access(token, "r2")


def test_host_check_can_be_disabled(monkeypatch):
    monkeypatch.setattr(get_settings(), "host_token_required", False)
    ensure_host_access(None, "r1")
