import pytest

from airelay.core.errors import ValidationError
from airelay.core.models import ReferenceImage


def test_reference_image_from_data_url():
    image = ReferenceImage.from_payload("data:image/jpeg;base64,aGVsbG8=")
    assert image.mime_type == "image/jpeg"
    assert image.data_b64 == "aGVsbG8="
    assert image.raw_bytes == b"hello"


def test_reference_image_from_object_and_raw_base64():
    camel = ReferenceImage.from_payload({"mimeType": "image/webp", "data": "aGVs\nbG8="})
    assert camel.mime_type == "image/webp"
    assert camel.data_b64 == "aGVsbG8="

    snake = ReferenceImage.from_payload({"mime_type": "image/gif", "data": "data:image/png;base64,aGVsbG8="})
    assert snake.mime_type == "image/png"

    bare = ReferenceImage.from_payload("aGVsbG8=")
    assert bare.mime_type == "image/png"


def test_reference_image_from_bytes():
    image = ReferenceImage.from_bytes(b"hello", "")
    assert image.mime_type == "image/png"
    assert image.data_b64 == "aGVsbG8="


@pytest.mark.parametrize("item", ["", {"mimeType": "image/png"}, "%%%", 42, None])
def test_reference_image_rejects_unusable_values(item):
    with pytest.raises(ValidationError):
        ReferenceImage.from_payload(item)
