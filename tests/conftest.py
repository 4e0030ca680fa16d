import struct
import sys
import zlib
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
import tifffile

# Ensure the repository's root modules are importable
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# PNG color types
GRAYSCALE = 0
RGB = 2
PALETTE = 3
GRAYSCALE_ALPHA = 4
RGBA = 6



def _png_chunk(chunk_type: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def build_png(samples: np.ndarray, color_type: int, bit_depth: int = 8, palette: bytes = None) -> bytes:
    """Build a non-interlaced PNG from a (rows x columns [x channels]) sample array (8 or 16 bit)."""
    height, width = samples.shape[:2]
    rows = samples.reshape(height, -1).astype(">u2" if bit_depth == 16 else np.uint8)
    scanlines = b"".join(b"\x00" + row.tobytes() for row in rows)
    ihdr = struct.pack(">IIBBBBB", width, height, bit_depth, color_type, 0, 0, 0)
    png = PNG_SIGNATURE + _png_chunk(b"IHDR", ihdr)
    if palette is not None:
        png += _png_chunk(b"PLTE", palette)
    png += _png_chunk(b"IDAT", zlib.compress(scanlines))
    png += _png_chunk(b"IEND", b"")
    return png


@pytest.fixture
def write_png(tmp_path):
    """Factory fixture writing a hand-built PNG into tmp_path and returning its path."""

    def _write_png(name: str, samples: np.ndarray, color_type: int = RGB, bit_depth: int = 8, palette: bytes = None) -> Path:
        path = tmp_path / name
        path.write_bytes(build_png(samples, color_type, bit_depth, palette))
        return path

    return _write_png




def read_dng(source) -> tuple:
    """Read a DNG (path or file data) with tifffile, returning ({tag code: value}, pixels) of its single page."""
    if isinstance(source, bytes):
        source = BytesIO(source)
    with tifffile.TiffFile(source) as tif:
        assert len(tif.pages) == 1
        page = tif.pages[0]
        tags = {tag.code: tag.value for tag in page.tags.values()}
        return tags, page.asarray()
