"""Image dimension sniffing from raw bytes (JPEG and PNG only)."""
import struct
from typing import Optional, Tuple

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SOI = b"\xff\xd8"

# Start-of-frame markers carrying dimensions: baseline, extended, progressive
JPEG_SOF_MARKERS = frozenset({0xC0, 0xC1, 0xC2})
# Markers without a length field
JPEG_STANDALONE_MARKERS = frozenset({0x01, *range(0xD0, 0xD8)})

Dimensions = Tuple[int, int]


def jpeg_dimensions(data: bytes) -> Optional[Dimensions]:
    """Walk JPEG marker segments to the first SOF0/1/2 and read width/height.

    Returns None for non-JPEG or truncated input.
    """
    if len(data) < 4 or not data.startswith(JPEG_SOI):
        return None

    offset = 2
    while offset + 4 <= len(data):
        if data[offset] != 0xFF:
            return None
        marker = data[offset + 1]
        if marker == 0xFF:
            # Fill byte
            offset += 1
            continue
        if marker in JPEG_STANDALONE_MARKERS:
            offset += 2
            continue
        if marker in (0xD9, 0xDA):
            # EOI or start of scan before any frame header
            return None

        (segment_length,) = struct.unpack(">H", data[offset + 2:offset + 4])
        if marker in JPEG_SOF_MARKERS:
            if offset + 9 > len(data):
                return None
            height, width = struct.unpack(">HH", data[offset + 5:offset + 9])
            return width, height
        if segment_length < 2:
            return None
        offset += 2 + segment_length
    return None


def png_dimensions(data: bytes) -> Optional[Dimensions]:
    """Read width/height from the IHDR chunk at its fixed offset."""
    if len(data) < 24 or not data.startswith(PNG_SIGNATURE):
        return None
    width, height = struct.unpack(">II", data[16:24])
    return width, height


def sniff_dimensions(data: bytes) -> Optional[Dimensions]:
    """Return (width, height) for JPEG/PNG buffers, None for anything else."""
    return jpeg_dimensions(data) or png_dimensions(data)
