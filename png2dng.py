#!/usr/bin/env python3
"""
png2dng.py
This app converts RGB/RGBA PNG images into synthetic bayered raw DNG files, which can then be opened
in any raw developer that supports DNG. The image is re-mosaiced into a single-channel 16-bit bayer
pattern (RGGB, BGGR, GRBG or GBRG), simulating what a camera sensor with a color filter array would
have captured, and stored uncompressed in a minimal DNG.

Creating raws from images is useful for developing and testing raw image development software,
since the "ground truth" full-color image is known exactly.
"""

#
# verify python version early, before executing any logic that relies on features not available in all versions
#
import sys
if (sys.version_info.major < 3) or (sys.version_info.minor < 10):
    print("Requires Python v3.10 or later but you're running v{}.{}.{}".format(sys.version_info.major, sys.version_info.minor, sys.version_info.micro))
    sys.exit(1)

#
# standard Python module imports
#
import argparse
from   enum import Enum
from   functools import partial
import importlib
import os
import platform
import subprocess
import time
import types
from   typing import Any, NamedTuple


#
# types
#
class IfFileExists(Enum): ADDSUFFIX=0; OVERWRITE=1; EXIT=2
class Verbosity(Enum): SILENT=0; WARNING=1; INFO=2; VERBOSE=3; DEBUG=4


#
# module data
#
AppName = "png2dng"
AppVersion = "1.00"
IfFileExistsStrs = [x.name for x in IfFileExists]
VerbosityStrs = [x.name for x in Verbosity]
Config = types.SimpleNamespace()

#
# verify all optional modules we need are installed before we attempt to import them.
# this allows us to display a user-friendly message for the missing modules instead of the
# python-generated error message for missing imports
#
if __name__ == "__main__":
    def verifyRequiredModulesInstalled():
        RequiredModule = NamedTuple('RequiredModule', [('importName', str), ('pipInstallName', str)])
        requiredModules = [
            RequiredModule(importName="cv2", pipInstallName="opencv-python"),
            RequiredModule(importName="numpy", pipInstallName="numpy"),
            RequiredModule(importName="PIL", pipInstallName="pillow"),
            RequiredModule(importName="tifffile", pipInstallName="tifffile"),
        ]
        missingModules = list()
        for requiredModule in requiredModules:
            try:
                importlib.import_module(requiredModule.importName)
            except ImportError:
                missingModules.append(requiredModule)
        if missingModules:
            print(f"Run the following commands to install required modules before using {AppName}:\n")
            for requiredModule in missingModules:
                print(f"\tpip install {requiredModule.pipInstallName}")
            print("")
            sys.exit(1)

    verifyRequiredModulesInstalled()


#
# import our modules now we've established the optional modules they use are available
#
from   bayermosaic import BayerPattern, BayerPatternError, BayerPatternStrs, RawImage, mosaic, parseBayerPattern
from   dngwriter import writeDng
from   pngsource import SourceDecodeError, SourceOpenError, decodePng


#
# methods to handle conditional printing based on user-specified verbosity level
#
def isVerbose() -> bool:
    return Config.args.verbosity.value >= Verbosity.VERBOSE.value
def printA(string: str): # print "always"
    print(string)
def printIfVerbosityAllows(string: str, requiredVerbosityLevel: Verbosity) -> None:
    if hasattr(Config, "args"):
        if Config.args.verbosity.value >= requiredVerbosityLevel.value:
            printA(string)
    else:
        # called before we've initialized Config.args
        printA(string)
def printE(string: str): # print error
    printA(f"ERROR: {string}")
def printW(string: str): # print warnings, if verbosity config allows
    printIfVerbosityAllows(f"WARNING: {string}", Verbosity.WARNING)
def printI(string: str): # print "informational" messages, if verbosity config allows
    printIfVerbosityAllows(f"INFO: {string}", Verbosity.INFO)
def printV(string: str): # print "verbose" messages, if verbosity config allows
    printIfVerbosityAllows(f"VERBOSE: {string}", Verbosity.VERBOSE)
def printD(string: str): # print "debug" messages, if verbosity config allows
    printIfVerbosityAllows(f"DEBUG: {string}", Verbosity.DEBUG)


def getScriptDir() -> str:

    """
    Returns absolute path to the directory this script is running in

    :return: Absolute dirctory
    """

    return os.path.dirname(os.path.realpath(__file__))


def openFileInOS(filename: str) -> bool:

    """
    Opens a file in the OS's default viewer/editor/handler for file

    :param filename: Filename to open
    :return: False if successful, TRUE if error
    """
    printV(f"Opening \"{os.path.realpath(filename)}\" in default system image viewer")
    try:
        if platform.system() == "Windows":
            os.startfile(filename)
        else: # both Linux and Darwin (aka Mac) use "open"
            subprocess.call(['open', filename])
    except Exception as e:
        printW(f"Unable to open file \"{filename}\" in your OS's file viewer, error: {e}")
        return True
    return False


def processCmdLine() -> argparse.Namespace:

    """
    Processes the command line

    :return: Parsed arguments, or None if error
    """

    # custom ArgumentParser that throws exception on parsing error
    class ArgumentParserError(Exception): pass
    class ArgumentParserWithException(argparse.ArgumentParser):
        def error(self, message):
            raise ArgumentParserError(message)

    # converts string value like "True", "T", "No", etc... to boolean
    def strValueToBool(string: str) -> bool:
        if string is None:
            return True
        if string.upper() in ['1', 'TRUE', 'T', 'YES', 'Y']:
            return True
        if string.upper() in ['0', 'FALSE', 'F', 'NO', 'N']:
            return False
        raise argparse.ArgumentTypeError(f"Boolean value expected but '{string}' was specified")

    # converts bayer pattern name like " rggb" to BayerPattern
    def strToBayerPattern(string: str) -> BayerPattern:
        try:
            return parseBayerPattern(string)
        except BayerPatternError as e:
            raise argparse.ArgumentTypeError(str(e))

    # arg parser that throws exceptions on errors
    parser = ArgumentParserWithException(fromfile_prefix_chars='!',\
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description='Converts an RGB/RGBA PNG into a bayered raw DNG',\
        epilog="Options can also be specified from a file. Use !<filename>. Each word in the file must be on its own line.\n\nYou "\
            "can abbreviate any argument name provided you use enough characters to uniquely distinguish it from other argument names.\n")

    parser.add_argument('inputfilename', metavar="<PNG filename>", help="Required: Input PNG file. Must be RGB or RGBA color type, 8 or 16 bits per channel.")
    parser.add_argument('outputfilename', nargs="?", metavar="<output filename>", help="Optional - If not specified, the input filename is used with its extension changed to DNG.")
    parser.add_argument('--bayerpattern', type=strToBayerPattern, default="RGGB", metavar="/".join(BayerPatternStrs), help="""Bayer pattern of the generated raw, listed as the colors of the
        top-left, top-right, bottom-left and bottom-right pixels of each 2x2 tile. Case is ignored. Default is %(default)s.""")
    parser.add_argument('--openinviewer', type=strValueToBool, nargs='?', default=False, const=True, metavar="yes/no", help="Open generated DNG in default image editor after creating. Default is %(default)s.")
    parser.add_argument('--outputdir', type=str, metavar="<path>", help="Directory to store image/file(s) to.  Default is the input file's directory. If path contains any spaces enclose it in double quotes. Example: --outputdir \"c:\\My Documents\"", default=None, required=False)
    parser.add_argument('--ifexists', type=str.upper, choices=IfFileExistsStrs, default='ADDSUFFIX', required=False, help="""Action to take if the output file already exists. Default is \"%(default)s\", which means a suffix is
        added to the output filename to create a unique filename.""")

    troubleshootingOptions = parser.add_argument_group("Troubleshooting Options", "These options help in troubleshooting issues")
    troubleshootingOptions.add_argument('--showperfstats', metavar="yes/no", type=strValueToBool, nargs='?', default=False, const=True, help="Show performance statistics. Implicitly enabled when --verbosity is >= VERBOSE")
    troubleshootingOptions.add_argument('--verbosity', type=str.upper, choices=VerbosityStrs, default="INFO", required=False, help="Verbosity of output during execution. Default is %(default)s.")

    if len(sys.argv) == 1:
        # print help if no parameters passed
        parser.print_help()
        return None

    #
    # if there is a default arguments file present, add it to the argument list so that parse_args() will process it
    #
    defaultOptionsFilename = os.path.join(getScriptDir(), f".{AppName}-defaultoptions")
    if os.path.isfile(defaultOptionsFilename):
        sys.argv.insert(1, "!" + defaultOptionsFilename) # insert as first arg (past script name), so that the options in the file can still be overriden by user-entered cmd line options

    # perform the argparse
    try:
        args = parser.parse_args()
    except ArgumentParserError as e:
        print("Command line error: " + str(e))
        return None

    # do post-processing/conversion of args
    args.ifexists = IfFileExists[args.ifexists]       # convert from str to enumerated value
    args.verbosity = Verbosity[args.verbosity]        # convert from str to enumerated value

    return args


def splitPathIntoParts(fullPath: str) -> tuple[str, str, str]:

    """
    Splits path into parts (directory, root filename, and extension)

    :param fullPath: Full path to split
    :return: Tuple containing (directory, root filename, extension)
    """

    dir, filename = os.path.split(fullPath)
    root, ext = os.path.splitext(filename)
    return (dir, root, ext)


def generateFilenameWithDifferentExtensionAndDir(fullPath: str, newDir: str, newExt: str) -> str:

    """
    Generates filename based on existing filename but with different extension and/or directory

    :param fullPath: Full path to filename
    :param newDir: New directory, or None to use existing directory of fullPath
    :param newExt: New extension (with or without the leading period), or None to use existing extension
    :return: Generated full path to filename with changed extension
    """

    dir, root, ext = splitPathIntoParts(fullPath)
    if newDir is not None:
        dir = newDir
    if newExt is not None:
        if newExt[0] != '.': newExt = '.' + newExt
        ext = newExt
    return os.path.join(dir, root + ext)


def generateUniqueFilenameFromExistingIfNecessary(fullPath: str) -> str:

    """
    If a file with the specified name exists, adds a numerical suffix to the filename
    to make it a unique filename for the path the file is in

    :param fullPath: Full path to original filename
    :return: fullPath if a file with that name doesn't already exist, or a
    fullPath with a unique suffix
    """

    dir, root, ext = splitPathIntoParts(fullPath)

    seqNum = 0; seqNumStr = "" # first candidate is without a suffix
    while True:
        filenameCandidate = os.path.join(dir, root + seqNumStr + ext)
        if not os.path.exists(filenameCandidate):
            return filenameCandidate
        seqNum += 1
        seqNumStr = f"-{seqNum}"


def generateOutputFilename() -> str:

    """
    Generates the filename to hold the DNG output, based on user settings

    :return: Output filename, or None if output filename couldn't be determined.
    """

    outputFilename = Config.args.outputfilename
    if outputFilename is None:
        # user didn't specify an output filename. use the input filename with a DNG extension
        outputFilename = generateFilenameWithDifferentExtensionAndDir(Config.args.inputfilename, Config.args.outputdir, "DNG")
    else:
        outputFilename = generateFilenameWithDifferentExtensionAndDir(outputFilename, Config.args.outputdir, None)

    match Config.args.ifexists:
        case IfFileExists.ADDSUFFIX:
            outputFilename = generateUniqueFilenameFromExistingIfNecessary(outputFilename)
        case IfFileExists.OVERWRITE:
             pass
        case IfFileExists.EXIT:
            if os.path.exists(outputFilename):
                printE(f"Output file \"{outputFilename}\" already exists. Exiting per --ifexists setting")
                return None

    return outputFilename


def printExecutionTime(desc: str, timeElapsed: float) -> None:

    """
    Prints the execution time of an operation

    :param desc: Text description of operation
    :param timeElapsed: Execution time of operation (from time.perf_counter)
    :return: None
    """

    if Config.args.showperfstats or isVerbose():
        printA(f"Perf: Completed {desc} in {timeElapsed / (1/1000):.2f} ms")


def execMethodPartialAndPrintExecutionTime(partialInst: partial) -> Any:

    """
    Executes a method, timing and printing its execution time.

    :param partialInst: Method and its argument, bound via functools.partial()
    :return: The return value from the method called
    """

    timeStart = time.perf_counter()
    result = partialInst()
    timeElapsed = time.perf_counter() - timeStart
    printExecutionTime(partialInst.func.__name__, timeElapsed)
    return result


def writeOutputDNG(rawImage: RawImage) -> bool:

    """
    Writes the bayered raw image to the output DNG

    :param rawImage: Raw image to write
    :return: False if successful, TRUE if error
    """

    outputFilename = generateOutputFilename()
    if not outputFilename:
        return True

    try:
        execMethodPartialAndPrintExecutionTime(partial(writeDng, rawImage, outputFilename))
    except OSError as e:
        printE(f"Unable to create/write output DNG \"{outputFilename}\", error: {e}")
        return True

    printI(f"Successfully generated \"{os.path.realpath(outputFilename)}\"")
    if Config.args.openinviewer:
        openFileInOS(outputFilename) # we ignore any viewer errors since it's not an essential operation

    return False


def run() -> bool:

    """
    main module routine

    :return: False if successful, True if error
    """

    # process the cmd line
    Config.args = processCmdLine()
    if Config.args is None:
        return True

    printI(f"{AppName} v{AppVersion}")
    printD(f"Args: {Config.args}")

    # load the source PNG. all input validation happens here, before any conversion work
    try:
        decodedImage = execMethodPartialAndPrintExecutionTime(partial(decodePng, Config.args.inputfilename))
    except (SourceOpenError, SourceDecodeError) as e:
        printE(str(e))
        return True
    printV(f"Source: {decodedImage.width}x{decodedImage.height}, {decodedImage.channelCount} channels, {decodedImage.bitDepth}-bit")

    # re-mosaic into a bayered raw image
    rawImage = execMethodPartialAndPrintExecutionTime(partial(mosaic, decodedImage, Config.args.bayerpattern))
    if (rawImage.width, rawImage.height) != (decodedImage.width, decodedImage.height):
        printW(f"Source dimensions {decodedImage.width}x{decodedImage.height} aren't even - cropped to {rawImage.width}x{rawImage.height}")
    if rawImage.width == 0 or rawImage.height == 0:
        printE(f"Source image {decodedImage.width}x{decodedImage.height} is too small to hold a 2x2 bayer tile")
        return True
    printI(f"Raw: {rawImage.width}x{rawImage.height} {rawImage.bayerPattern} bayer, {rawImage.width * rawImage.height * 2:,} bytes")

    fWriteFailed = writeOutputDNG(rawImage)
    if fWriteFailed:
        printE("Error generating/writing output DNG")
        return True

    return False


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
