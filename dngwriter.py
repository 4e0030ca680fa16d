"""
dngwriter.py
Writes a bayered raw image as a minimal uncompressed DNG. A DNG is a TIFF file with a handful of
extra tags - tifffile generates a little-endian TIFF holding the raw data as a single strip, and we
add the CFA tags describing the bayer pattern plus the DNG tags a raw developer requires before it
will accept the file. The color tags are fixed placeholder values; no color calibration is attempted.
"""

from   io import BytesIO
from   typing import List, Tuple

import tifffile

from   bayermosaic import RawImage, colorOffsets


#
# module data
#

# tags tifffile doesn't generate itself
TAG_ORIENTATION               = 0x0112
TAG_CFAREPEATPATTERNDIM       = 0x828D
TAG_CFAPATTERN2               = 0x828E
TAG_DNGVERSION                = 0xC612
TAG_COLORMATRIX1              = 0xC621
TAG_ASSHOTNEUTRAL             = 0xC628
TAG_ASSHOTWHITEXY             = 0xC629

PHOTOMETRIC_CFA = 32803
ORIENTATION_NORMAL = 1

DngVersion = (1, 4, 0, 0)

# sRGB -> XYZ (D65), scaled by 10^7
ColorMatrix1 = (
    (4124564, 10000000), (3575761, 10000000), (1804375, 10000000),
    (2126729, 10000000), (7151522, 10000000), ( 721750, 10000000),
    ( 193339, 10000000), (1191920, 10000000), (9503041, 10000000),
)
AsShotNeutral = ((1, 1), (1, 1), (1, 1))
AsShotWhiteXY = ((1, 1), (1, 1))


def flattenRationals(rationals: Tuple[Tuple[int, int], ...]) -> List[int]:
    return [x for pair in rationals for x in pair]


def generateDngExtraTags(raw: RawImage) -> list:

    """
    Generates the tifffile extratags for the CFA and DNG tags of a raw image. Each
    entry is (code, dtype, count, value, writeonce); rationals are written as '2I'/'2i'
    with count being the number of rationals

    :param raw: Raw image the tags describe
    :return: List of extratags
    """

    return [
        (TAG_ORIENTATION,         'H',  1, ORIENTATION_NORMAL,                True),
        (TAG_CFAREPEATPATTERNDIM, 'H',  2, (2, 2),                            True),
        (TAG_CFAPATTERN2,         'B',  4, colorOffsets(raw.bayerPattern),    True),
        (TAG_DNGVERSION,          'B',  4, DngVersion,                        True),
        (TAG_COLORMATRIX1,        '2i', len(ColorMatrix1), flattenRationals(ColorMatrix1), True),
        (TAG_ASSHOTNEUTRAL,       '2I', len(AsShotNeutral), flattenRationals(AsShotNeutral), True),
        (TAG_ASSHOTWHITEXY,       '2I', len(AsShotWhiteXY), flattenRationals(AsShotWhiteXY), True),
    ]


def writeDngPage(dng: tifffile.TiffWriter, raw: RawImage) -> None:

    """
    Writes the raw image as the single, primary page of a DNG

    :param dng: TiffWriter to write to
    :param raw: Raw image to write
    :return: None
    """

    assert raw.width > 0 and raw.height > 0, f"writeDngPage: Can't write an empty {raw.width}x{raw.height} raw image"
    assert raw.data.shape == (raw.height, raw.width), f"writeDngPage: {raw.width}x{raw.height} raw image has data of shape {raw.data.shape}"

    dng.write(raw.data,
        photometric=PHOTOMETRIC_CFA,
        compression=None,
        rowsperstrip=raw.height,    # entire image is one strip
        subfiletype=0,              # primary image
        metadata=None,
        extratags=generateDngExtraTags(raw))


def buildDng(raw: RawImage) -> bytes:

    """
    Generates the complete contents of a DNG file for a raw image, in memory

    :param raw: Raw image to encode
    :return: DNG file data
    """

    memoryFile = BytesIO()
    with tifffile.TiffWriter(memoryFile, byteorder='<') as dng:
        writeDngPage(dng, raw)
    return memoryFile.getvalue()


def writeDng(raw: RawImage, filename: str) -> None:

    """
    Writes a raw image to a DNG file. I/O errors are raised to the caller

    :param raw: Raw image to write
    :param filename: Output filename
    :return: None
    """

    with tifffile.TiffWriter(filename, byteorder='<') as dng:
        writeDngPage(dng, raw)
