"""
Unit tests for the image store and duplicate filter.
"""

import pytest

from relay.services.image_store import (
    Fingerprinter,
    ImageStore,
    IMAGE_PREFIX,
    normalize_payload
)


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: int = 1000):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ImageStore(clock=clock)


def test_normalize_adds_prefix():
    """Raw base64 gets the JPEG data-URI prefix."""
    assert normalize_payload("abcd") == IMAGE_PREFIX + "abcd"


def test_normalize_keeps_existing_prefix():
    """Payloads with a media prefix are left alone."""
    assert normalize_payload("data:image/png;base64,abcd") == "data:image/png;base64,abcd"
    assert normalize_payload("data:video/mp4;base64,abcd") == "data:video/mp4;base64,abcd"


def test_get_before_first_frame(store):
    """Unknown devices have no record."""
    assert store.get("AA:BB") is None
    assert store.get_all() == []
    assert len(store) == 0


def test_put_new_frame(store):
    """First frame creates the record."""
    record, is_duplicate = store.put("AA:BB", "IMG1", captured_at=100)

    assert is_duplicate is False
    assert record.esp_hmac == "AA:BB"
    assert record.image_data == IMAGE_PREFIX + "IMG1"
    assert record.timestamp == 100
    assert store.get("AA:BB") is record


def test_duplicate_updates_timestamp_only(store):
    """Identical payload refreshes the timestamp on the existing record."""
    first, _ = store.put("AA:BB", "IMG1", captured_at=100)
    second, is_duplicate = store.put("AA:BB", "IMG1", captured_at=200)

    assert is_duplicate is True
    assert second is first
    assert store.get("AA:BB").image_data == IMAGE_PREFIX + "IMG1"
    assert store.get("AA:BB").timestamp == 200


def test_duplicate_timestamp_strictly_increases(store, clock):
    """Duplicates within the same millisecond still move the timestamp forward."""
    store.put("AA:BB", "IMG1")
    before = store.get("AA:BB").timestamp

    store.put("AA:BB", "IMG1")

    assert store.get("AA:BB").timestamp > before


def test_new_frame_replaces_record(store):
    """A changed payload replaces the stored record."""
    first, _ = store.put("AA:BB", "IMG1", captured_at=100)
    second, is_duplicate = store.put("AA:BB", "IMG2", captured_at=200)

    assert is_duplicate is False
    assert second is not first
    assert store.get("AA:BB").image_data == IMAGE_PREFIX + "IMG2"
    assert first.image_data == IMAGE_PREFIX + "IMG1"


def test_get_returns_latest_payload(store, clock):
    """get() always reflects the most recent put."""
    payloads = ["A", "B", "B", "C", "A", "A", "D"]
    for i, payload in enumerate(payloads):
        clock.now = 1000 + i
        store.put("AA:BB", payload)
        assert store.get("AA:BB").image_data == IMAGE_PREFIX + payload


def test_devices_are_independent(store):
    """Each device keeps its own record."""
    store.put("AA:BB", "IMG1", captured_at=100)
    store.put("CC:DD", "IMG1", captured_at=150)

    _, is_duplicate = store.put("CC:DD", "IMG1", captured_at=300)

    assert is_duplicate is True
    assert store.get("AA:BB").timestamp == 100
    assert len(store) == 2
    assert {r.esp_hmac for r in store.get_all()} == {"AA:BB", "CC:DD"}


def test_sha256_fingerprint_distinguishes_shared_prefix():
    """Full hashing tells apart frames that only differ after the prefix."""
    store = ImageStore(fingerprinter=Fingerprinter("sha256"))
    common = "x" * 200

    store.put("AA:BB", common + "1", captured_at=100)
    _, is_duplicate = store.put("AA:BB", common + "2", captured_at=200)

    assert is_duplicate is False


def test_prefix_fingerprint_treats_shared_prefix_as_duplicate():
    """Prefix mode only looks at the first characters of the payload."""
    store = ImageStore(fingerprinter=Fingerprinter("prefix", prefix_length=100))
    common = "x" * 200

    store.put("AA:BB", common + "1", captured_at=100)
    _, is_duplicate = store.put("AA:BB", common + "2", captured_at=200)

    assert is_duplicate is True
    assert store.get("AA:BB").image_data.endswith("1")


def test_invalid_fingerprint_mode():
    """Unknown modes are rejected."""
    with pytest.raises(ValueError):
        Fingerprinter("md5")
