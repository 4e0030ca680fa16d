"""
pngsource.py
Loads a PNG into a DecodedImage for bayermosaic.py. PIL opens the image lazily, reading only the
header, so that images without RGB/RGBA color can be rejected (with a useful reason) before any
pixel data is decoded; the pixel data itself is decoded by opencv, which preserves 16-bit samples.
"""

import os
from   typing import NamedTuple

import cv2
import numpy as np
from   PIL import Image, UnidentifiedImageError

from   bayermosaic import DecodedImage, SupportedChannelCounts


#
# types
#
class SourceOpenError(Exception): pass
class SourceDecodeError(Exception): pass
class UnsupportedColorTypeError(SourceDecodeError): pass

PngHeader = NamedTuple('PngHeader', [('width', int), ('height', int), ('mode', str)])


#
# module data
#
SupportedModes = ['RGB', 'RGBA']
DtypeToBitDepth = {
    np.dtype(np.uint8)  : 8,
    np.dtype(np.uint16) : 16,
}
ChannelCountToRgbConversion = {
    3: cv2.COLOR_BGR2RGB,
    4: cv2.COLOR_BGRA2RGBA,
}


def readPngHeader(filename: str) -> PngHeader:

    """
    Reads the dimensions and PIL mode of a PNG file without decoding its pixel data

    :param filename: PNG filename
    :return: PngHeader. Raises SourceOpenError if the file can't be read, SourceDecodeError if it isn't a valid PNG
    """

    # UnidentifiedImageError is an OSError, so it has to be caught first
    try:
        with Image.open(filename, formats=['PNG']) as image:
            return PngHeader(width=image.width, height=image.height, mode=image.mode)
    except UnidentifiedImageError as e:
        raise SourceDecodeError(f"\"{filename}\" appears to be corrupted or isn't a PNG image") from e
    except OSError as e:
        raise SourceOpenError(f"PNG image \"{filename}\" couldn't be opened: {e}") from e


def decodePng(filename: str) -> DecodedImage:

    """
    Loads and decodes an RGB or RGBA PNG

    :param filename: PNG filename
    :return: DecodedImage with one pixels element per channel sample, in RGB(A) order. Raises SourceOpenError,
    SourceDecodeError or UnsupportedColorTypeError on failure
    """

    header = readPngHeader(filename)
    if header.mode not in SupportedModes:
        raise UnsupportedColorTypeError(f"PNG image \"{filename}\" has mode {header.mode} - it needs to be RGB or RGBA color type")

    #
    # imread() doesn't throw exceptions or return error codes, so anything that gets past
    # the header check but doesn't decode is a corrupt stream
    #
    image = cv2.imread(os.fspath(filename), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise SourceDecodeError(f"An error occurred decoding PNG image \"{filename}\"")

    # a tRNS chunk can make opencv return RGB images with an alpha channel, so use the decoded channel count
    channelCount = image.shape[2] if image.ndim == 3 else 1
    if channelCount not in SupportedChannelCounts:
        raise SourceDecodeError(f"PNG image \"{filename}\" decoded to {channelCount} channel(s) - expected RGB or RGBA")

    bitDepth = DtypeToBitDepth.get(image.dtype)
    if bitDepth is None:
        raise SourceDecodeError(f"PNG image \"{filename}\" decoded to unsupported sample type {image.dtype}")

    if (image.shape[1], image.shape[0]) != (header.width, header.height):
        raise SourceDecodeError(f"PNG image \"{filename}\" header is {header.width}x{header.height} but decoded to {image.shape[1]}x{image.shape[0]}")

    image = cv2.cvtColor(image, ChannelCountToRgbConversion[channelCount])

    return DecodedImage(width=header.width, height=header.height, pixels=np.ascontiguousarray(image).reshape(-1),
        channelCount=channelCount, bitDepth=bitDepth)
