"""
bayermosaic.py
Re-mosaics a decoded RGB/RGBA image into a single-channel 16-bit bayered raw image, which can then
be written out as a DNG by dngwriter.py. This is the reverse of what a raw developer does when it
demosaics - each output pixel keeps only the one color channel its bayer filter position would
have passed, scaled into the top bits of a 16-bit value.
"""

from   enum import Enum
from   typing import NamedTuple

import numpy as np


#
# types
#
class BayerPattern(Enum):
    RGGB=0; BGGR=1; GRBG=2; GBRG=3
    def __str__(self):
        return self.name

class BayerPatternError(ValueError): pass

DecodedImage = NamedTuple('DecodedImage', [('width', int), ('height', int), ('pixels', np.ndarray), ('channelCount', int), ('bitDepth', int)])
RawImage = NamedTuple('RawImage', [('width', int), ('height', int), ('data', np.ndarray), ('bayerPattern', BayerPattern)])


#
# module data
#
BayerPatternStrs = [x.name for x in BayerPattern]
SupportedBitDepths = [1, 2, 4, 8, 16]
SupportedChannelCounts = [3, 4]

# source channel (0=R, 1=G, 2=B) for each 2x2 tile position: top-left, top-right, bottom-left, bottom-right
BayerColorOffsets = {
    BayerPattern.RGGB : (0, 1, 1, 2),
    BayerPattern.BGGR : (2, 1, 1, 0),
    BayerPattern.GRBG : (1, 0, 2, 1),
    BayerPattern.GBRG : (1, 2, 0, 1),
}


def parseBayerPattern(string: str) -> BayerPattern:

    """
    Converts a user-supplied bayer pattern name into its enumerated value. Case and
    surrounding whitespace are ignored, ie " rggb " is RGGB

    :param string: Pattern name
    :return: BayerPattern. Raises BayerPatternError if the name isn't a known pattern
    """

    patternStr = string.strip().upper()
    if patternStr not in BayerPatternStrs:
        raise BayerPatternError(f"Unknown bayer pattern \"{string}\" - must be one of {', '.join(BayerPatternStrs)}")
    return BayerPattern[patternStr]


def colorOffsets(bayerPattern: BayerPattern) -> tuple[int, int, int, int]:
    return BayerColorOffsets[bayerPattern]


def evenDimension(amount: int) -> int:
    return amount - (amount % 2)


def mosaic(image: DecodedImage, bayerPattern: BayerPattern) -> RawImage:

    """
    Converts a decoded RGB/RGBA image into a bayered raw image using the specified pattern. If
    either dimension of the source is odd its last column/row is dropped, since the bayer
    pattern is defined over 2x2 tiles. Alpha (if present) is ignored

    :param image: Decoded source image. pixels must hold one element per channel sample
    :param bayerPattern: Bayer pattern to generate
    :return: RawImage, with data as a (rows x columns) uint16 array whose values are the source
    samples shifted into the most-significant bits
    """

    assert image.channelCount in SupportedChannelCounts, f"mosaic: Unsupported channel count {image.channelCount}"
    assert image.bitDepth in SupportedBitDepths, f"mosaic: Unsupported bit depth {image.bitDepth}"
    assert image.pixels.size == image.width * image.height * image.channelCount,\
        f"mosaic: Expected {image.width * image.height * image.channelCount} samples for {image.width}x{image.height}x{image.channelCount} but buffer has {image.pixels.size}"

    shift = 16 - image.bitDepth
    evenWidth = evenDimension(image.width)
    evenHeight = evenDimension(image.height)

    rows, columns = np.mgrid[0:evenHeight, 0:evenWidth]

    # linear index of every output pixel in the (cropped) raw image
    rawIndex = rows * evenWidth + columns

    #
    # when the source width is odd each source row is one pixel longer than a raw row, so
    # the raw index drifts one pixel further behind the source index for every row. compensate
    # by adding the row number, which makes the index land on the same (row, column) in the source
    #
    if image.width % 2:
        srcIndex = rawIndex + rows # each pixel's own row, not its tile's row, so the dropped column is never sampled
    else:
        srcIndex = rawIndex

    # 2x2 tile position of every output pixel -> color offset table slot (0=TL, 1=TR, 2=BL, 3=BR)
    tileSlot = (rows % 2) * 2 + (columns % 2)
    channelOffset = np.array(colorOffsets(bayerPattern), dtype=np.intp)[tileSlot]

    pixels = image.pixels.reshape(-1)
    samples = pixels[srcIndex * image.channelCount + channelOffset]

    data = np.zeros((evenHeight, evenWidth), dtype=np.uint16)
    data[:, :] = samples.astype(np.uint16) << np.uint16(shift)

    return RawImage(width=evenWidth, height=evenHeight, data=data, bayerPattern=bayerPattern)
