import base64
import binascii
from dataclasses import dataclass


@dataclass
class DecodedImage:
    data: bytes
    content_type: str
    filename: str


def decode_image_payload(image: str) -> DecodedImage:
    """
    Decode an uploaded image sent as a data URL or bare base64.

    Raises:
        ValueError: If the payload is neither.
    """
    if image.startswith("data:"):
        header, _, encoded = image.partition(",")
        content_type = header[len("data:"):].split(";")[0] or "image/png"
        filename = "image.jpg" if content_type == "image/jpeg" else "image.png"
    elif len(image) > 100:
        encoded, content_type, filename = image, "image/png", "image.png"
    else:
        raise ValueError("Invalid image format. Please provide base64 or data URL.")

    try:
        data = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError):
        raise ValueError("Invalid image format. Please provide base64 or data URL.")
    if not data:
        raise ValueError("Invalid image format. Please provide base64 or data URL.")
    return DecodedImage(data=data, content_type=content_type, filename=filename)
