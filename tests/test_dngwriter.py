import struct

import numpy as np
import pytest
import tifffile

from bayermosaic import BayerPattern, RawImage
from conftest import read_dng
from dngwriter import AsShotNeutral, AsShotWhiteXY, ColorMatrix1, DngVersion, buildDng, flattenRationals, writeDng


def make_raw(samples, pattern=BayerPattern.RGGB) -> RawImage:
    data = np.array(samples, dtype=np.uint16)
    return RawImage(width=data.shape[1], height=data.shape[0], data=data, bayerPattern=pattern)


@pytest.fixture
def raw_2x2():
    return make_raw([[0xAA00, 0xBB00], [0xBB01, 0xCC02]])


def test_named_tags_of_written_file(tmp_path, raw_2x2):
    filename = tmp_path / "out.dng"
    writeDng(raw_2x2, str(filename))

    with tifffile.TiffFile(filename) as tif:
        assert tif.byteorder == "<"
        assert len(tif.pages) == 1
        page = tif.pages[0]
        assert page.tags["PhotometricInterpretation"].value == 32803
        assert tuple(page.tags[33422].value) == (0, 1, 1, 2)
        assert tuple(page.tags[50706].value) == DngVersion
        assert page.tags["StripByteCounts"].value == (2 * 2 * 2,)
        np.testing.assert_array_equal(page.asarray(), raw_2x2.data)


def test_geometry_tags(raw_2x2):
    tags, _ = read_dng(buildDng(raw_2x2))

    assert tags.get(0x00FE, 0) == 0
    assert tags[0x0100] == 2
    assert tags[0x0101] == 2
    assert tags[0x0102] == 16
    assert tags[0x0103] == 1
    assert tags[0x0106] == 32803
    assert tags[0x0112] == 1
    assert tags[0x0115] == 1
    assert tags[0x0116] == 2
    assert tags[0x0117] == (2 * 2 * 2,)


def test_strip_is_little_endian_row_major(raw_2x2):
    data = buildDng(raw_2x2)
    tags, pixels = read_dng(data)
    (strip_offset,) = tags[0x0111]

    assert data[:4] == b"II*\x00"
    assert data[strip_offset:strip_offset + 8] == bytes([0x00, 0xAA, 0x00, 0xBB, 0x01, 0xBB, 0x02, 0xCC])
    assert data[strip_offset:strip_offset + 8] == struct.pack("<4H", 0xAA00, 0xBB00, 0xBB01, 0xCC02)
    np.testing.assert_array_equal(pixels, raw_2x2.data)


def test_non_square_dimensions():
    raw = make_raw(np.arange(8).reshape(2, 4))
    tags, pixels = read_dng(buildDng(raw))

    assert (tags[0x0100], tags[0x0101]) == (4, 2)
    assert tags[0x0116] == 2
    assert tags[0x0117] == (16,)
    assert pixels.shape == (2, 4)
    np.testing.assert_array_equal(pixels, raw.data)


def test_dng_tags(raw_2x2):
    tags, _ = read_dng(buildDng(raw_2x2))

    assert tuple(tags[0x828D]) == (2, 2)
    assert tuple(tags[0xC612]) == (1, 4, 0, 0)
    assert tuple(tags[0xC621]) == tuple(flattenRationals(ColorMatrix1))
    assert tuple(tags[0xC628]) == tuple(flattenRationals(AsShotNeutral))
    assert tuple(tags[0xC629]) == tuple(flattenRationals(AsShotWhiteXY))


def test_color_matrix_values():
    assert ColorMatrix1[0] == (4124564, 10000000)
    assert ColorMatrix1[5] == (721750, 10000000)
    assert ColorMatrix1[6] == (193339, 10000000)
    assert ColorMatrix1[8] == (9503041, 10000000)
    assert AsShotNeutral == ((1, 1), (1, 1), (1, 1))
    assert AsShotWhiteXY == ((1, 1), (1, 1))
    assert flattenRationals(AsShotWhiteXY) == [1, 1, 1, 1]


@pytest.mark.parametrize(
    "pattern, cfa",
    [
        (BayerPattern.RGGB, (0, 1, 1, 2)),
        (BayerPattern.BGGR, (2, 1, 1, 0)),
        (BayerPattern.GRBG, (1, 0, 2, 1)),
        (BayerPattern.GBRG, (1, 2, 0, 1)),
    ],
)
def test_cfa_pattern_matches_bayer_pattern(pattern, cfa):
    tags, _ = read_dng(buildDng(make_raw([[1, 2], [3, 4]], pattern)))
    assert tuple(tags[0x828E]) == cfa


def test_empty_raw_image_is_rejected():
    raw = RawImage(width=0, height=0, data=np.zeros((0, 0), dtype=np.uint16), bayerPattern=BayerPattern.RGGB)
    with pytest.raises(AssertionError):
        buildDng(raw)


def test_sample_count_mismatch_is_rejected():
    raw = RawImage(width=4, height=4, data=np.zeros((2, 2), dtype=np.uint16), bayerPattern=BayerPattern.RGGB)
    with pytest.raises(AssertionError):
        buildDng(raw)


def test_write_dng_matches_in_memory_build(tmp_path, raw_2x2):
    filename = tmp_path / "out.dng"
    writeDng(raw_2x2, str(filename))

    assert filename.read_bytes() == buildDng(raw_2x2)


def test_write_dng_io_error_is_raised(tmp_path, raw_2x2):
    with pytest.raises(OSError):
        writeDng(raw_2x2, str(tmp_path / "missing" / "out.dng"))
