# QOI "Quite OK Image" file format, image/qoi
# A small lossless format with a single-pass encoder and decoder.
#
# Format (all big-endian):
#   "qoif" literal header
#   32-bit unsigned width, then height, of image
#   Single byte channel count, 3 (RGB) or 4 (RGBA)
#   Single byte colorspace, 0 (sRGB, linear alpha) or 1 (all linear)
#   Then data is a sequence of chunks, tagged by the top bits of a byte:
#     11111110 RGB: followed by red, green, blue bytes.
#     11111111 RGBA: followed by red, green, blue, alpha bytes.
#     00xxxxxx INDEX: the color in slot x of the index cache.
#     01rrggbb DIFF: each channel differs from the previous pixel by -2..1,
#              stored biased by 2.
#     10gggggg LUMA: green differs by -32..31, biased by 32, then a second
#              byte rrrrbbbb of red and blue deltas relative to the green
#              delta, -8..7 biased by 8.
#     11xxxxxx RUN: the previous pixel repeated x+1 times; x is 0..61, since
#              62 and 63 would collide with the RGB/RGBA tags.
#   Then seven 0x00 and one 0x01 end marker.
#
# The index cache is 64 colors addressed by (r*3 + g*5 + b*7 + a*11) % 64,
# all zero (including alpha) at the start of the image. The "previous"
# pixel starts out as opaque black. Alpha is always 255 for RGB images.
#
# Copyright 2023 Philip Boulain.
# Licensed under the EUPL-1.2-or-later.

import enum
import io
import itertools
import logging
import typing
from PIL import Image

QOI_MAGIC = b"qoif"
QOI_HEADER_SIZE = 14
QOI_END_MARKER = b"\x00\x00\x00\x00\x00\x00\x00\x01"
# Keeps worst-case encodings (5 bytes per pixel) under 2GB.
QOI_PIXELS_MAX = 400_000_000

QOI_OP_INDEX = 0x00  # 00xxxxxx
QOI_OP_DIFF = 0x40   # 01xxxxxx
QOI_OP_LUMA = 0x80   # 10xxxxxx
QOI_OP_RUN = 0xc0    # 11xxxxxx
QOI_OP_RGB = 0xfe    # 11111110
QOI_OP_RGBA = 0xff   # 11111111
QOI_MASK = 0xc0      # 11000000

_MAX_RUN = 62
_INDEX_SIZE = 64

Color = typing.Tuple[int, int, int, int]

_START_COLOR: Color = (0, 0, 0, 255)
_ZERO_COLOR: Color = (0, 0, 0, 0)

class QoiError(ValueError):
    """Base class for anything wrong with a QOI image or its pixels."""

class HeaderError(QoiError):
    """Bad magic, or an impossible width, height, channel or colorspace."""

class SizeError(QoiError):
    """Pixel buffer does not match the descriptor, or the image is too big."""

class TruncatedInputError(QoiError):
    """Stream ended before the image did, or the end marker is wrong."""

class Channels(enum.IntEnum):
    RGB = 3
    RGBA = 4

class Colorspace(enum.IntEnum):
    SRGB = 0    # sRGB color channels, linear alpha.
    LINEAR = 1  # Everything linear.

class Descriptor(typing.NamedTuple):
    width: int
    height: int
    channels: Channels
    colorspace: Colorspace

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def buffer_size(self) -> int:
        """Length in bytes of the raw pixel buffer this describes."""
        return self.width * self.height * int(self.channels)

def validate_descriptor(width: int, height: int, channels: int,
                        colorspace: int = Colorspace.SRGB) -> Descriptor:
    """Build a Descriptor from raw values, or raise HeaderError/SizeError."""
    if width <= 0 or height <= 0:
        raise HeaderError(f"Image size {width}x{height} is empty")
    try:
        channels = Channels(channels)
    except ValueError:
        raise HeaderError(f"Unsupported channel count {channels}") from None
    try:
        colorspace = Colorspace(colorspace)
    except ValueError:
        raise HeaderError(f"Unsupported colorspace {colorspace}") from None
    if height >= QOI_PIXELS_MAX // width:
        raise SizeError(
            f"Image size {width}x{height} exceeds {QOI_PIXELS_MAX} pixels")
    return Descriptor(width, height, channels, colorspace)

def color_hash(color: Color) -> int:
    r, g, b, a = color
    return (r * 3 + g * 5 + b * 7 + a * 11) % _INDEX_SIZE

class IndexCache:
    """The 64 most recently seen colors, slotted by color_hash().

    One of these lives for exactly one encode or decode; it is never
    shared between images.
    """

    def __init__(self) -> None:
        self._slots: typing.List[Color] = [_ZERO_COLOR] * _INDEX_SIZE

    def __getitem__(self, slot: int) -> Color:
        return self._slots[slot]

    def lookup(self, color: Color) -> typing.Optional[int]:
        """Return the slot holding this color, if its own slot holds it."""
        slot = color_hash(color)
        if self._slots[slot] == color:
            return slot
        return None

    def store(self, color: Color) -> None:
        self._slots[color_hash(color)] = color

def _delta(current: int, previous: int) -> int:
    """Signed 8-bit wrapping difference, -128..127."""
    d = (current - previous) & 0xff
    if d >= 0x80:
        d -= 0x100
    return d

def _pixels_of(pixels: memoryview,
               channels: Channels) -> typing.Iterator[Color]:
    if channels == Channels.RGBA:
        return zip(pixels[0::4], pixels[1::4], pixels[2::4], pixels[3::4])
    return zip(pixels[0::3], pixels[1::3], pixels[2::3],
               itertools.repeat(255))

def encode(pixels: typing.Union[bytes, bytearray, memoryview],
           desc: Descriptor) -> bytes:
    """Encode a raw RGB or RGBA pixel buffer to QOI in memory."""
    buf = io.BytesIO()
    encode_stream(pixels, desc, buf)
    return buf.getvalue()

def encode_stream(pixels: typing.Union[bytes, bytearray, memoryview],
                  desc: Descriptor, out: typing.BinaryIO) -> None:
    desc = validate_descriptor(*desc)
    pixel_data = memoryview(pixels).cast('B')
    if len(pixel_data) != desc.buffer_size:
        raise SizeError(
            f"Pixel buffer is {len(pixel_data)} bytes, but a "
            f"{desc.width}x{desc.height} {desc.channels.name} image needs "
            f"{desc.buffer_size}")
    logging.debug("Encoding %dx%d %s QOI image",
                  desc.width, desc.height, desc.channels.name)

    # Header
    out.write(QOI_MAGIC)
    out.write(desc.width.to_bytes(length=4, byteorder='big'))
    out.write(desc.height.to_bytes(length=4, byteorder='big'))
    out.write(bytes((desc.channels, desc.colorspace)))

    # Chunks. Built up here and written in one go; the worst case is only
    # five bytes per pixel.
    chunks = bytearray()
    index = IndexCache()
    previous = _START_COLOR
    run = 0
    for pixel in _pixels_of(pixel_data, desc.channels):
        if pixel == previous:
            run += 1
            if run == _MAX_RUN:
                chunks.append(QOI_OP_RUN | (run - 1))
                run = 0
            # Storing here only matters for the very first pixel, which has
            # no earlier chance to land in the cache.
            index.store(pixel)
            continue

        if run > 0:
            chunks.append(QOI_OP_RUN | (run - 1))
            run = 0

        slot = index.lookup(pixel)
        if slot is not None:
            chunks.append(QOI_OP_INDEX | slot)
        elif pixel[3] == previous[3]:
            dr = _delta(pixel[0], previous[0])
            dg = _delta(pixel[1], previous[1])
            db = _delta(pixel[2], previous[2])
            dr_dg = dr - dg
            db_dg = db - dg
            if -2 <= dr <= 1 and -2 <= dg <= 1 and -2 <= db <= 1:
                chunks.append(QOI_OP_DIFF
                              | (dr + 2) << 4 | (dg + 2) << 2 | (db + 2))
            elif -32 <= dg <= 31 and -8 <= dr_dg <= 7 and -8 <= db_dg <= 7:
                chunks.append(QOI_OP_LUMA | (dg + 32))
                chunks.append((dr_dg + 8) << 4 | (db_dg + 8))
            else:
                chunks.append(QOI_OP_RGB)
                chunks.extend(pixel[0:3])
        else:
            chunks.append(QOI_OP_RGBA)
            chunks.extend(pixel)

        index.store(pixel)
        previous = pixel

    # Whatever run was still going when the pixels ran out.
    if run > 0:
        chunks.append(QOI_OP_RUN | (run - 1))

    out.write(chunks)
    out.write(QOI_END_MARKER)

def decode(qoi: typing.Union[bytes, bytearray, memoryview],
           channels: typing.Optional[int] = None
           ) -> typing.Tuple[bytes, Descriptor]:
    """Decode an in-memory QOI image to a raw pixel buffer and Descriptor.

    If channels is given, the pixel buffer has that many bytes per pixel
    whatever the file says, and the Descriptor reports it to match.
    """
    return decode_stream(io.BytesIO(qoi), channels)

def _read_exact(qoi: typing.BinaryIO, size: int, what: str) -> bytes:
    data = qoi.read(size)
    if len(data) != size:
        raise TruncatedInputError(
            f"File truncated in {what}: wanted {size} bytes, got {len(data)}")
    return data

def decode_stream(qoi: typing.BinaryIO,
                  channels: typing.Optional[int] = None
                  ) -> typing.Tuple[bytes, Descriptor]:
    # Header. Nothing more is read if the magic is wrong.
    magic = qoi.read(4)
    if magic != QOI_MAGIC:
        raise HeaderError(f"Incorrect magic header {magic!r}")
    header = _read_exact(qoi, QOI_HEADER_SIZE - 4, "header")
    desc = validate_descriptor(
        int.from_bytes(header[0:4], byteorder='big'),
        int.from_bytes(header[4:8], byteorder='big'),
        header[8],
        header[9])
    if channels is not None:
        try:
            desc = desc._replace(channels=Channels(channels))
        except ValueError:
            raise HeaderError(
                f"Unsupported output channel count {channels}") from None
    logging.debug("Decoding %dx%d %s QOI image",
                  desc.width, desc.height, desc.channels.name)

    # Grown as chunks arrive, so a lying header cannot make us allocate the
    # whole image before the input runs out.
    pixels = bytearray()
    size = desc.buffer_size
    stride = int(desc.channels)
    index = IndexCache()
    pixel = _START_COLOR
    while len(pixels) < size:
        op = _read_exact(qoi, 1, "chunk")[0]
        run = 1
        if op == QOI_OP_RGB:
            r, g, b = _read_exact(qoi, 3, "RGB chunk")
            pixel = (r, g, b, pixel[3])
        elif op == QOI_OP_RGBA:
            r, g, b, a = _read_exact(qoi, 4, "RGBA chunk")
            pixel = (r, g, b, a)
        elif (op & QOI_MASK) == QOI_OP_INDEX:
            pixel = index[op]
        elif (op & QOI_MASK) == QOI_OP_DIFF:
            pixel = ((pixel[0] + ((op >> 4) & 0x03) - 2) & 0xff,
                     (pixel[1] + ((op >> 2) & 0x03) - 2) & 0xff,
                     (pixel[2] + (op & 0x03) - 2) & 0xff,
                     pixel[3])
        elif (op & QOI_MASK) == QOI_OP_LUMA:
            rb = _read_exact(qoi, 1, "LUMA chunk")[0]
            dg = (op & 0x3f) - 32
            pixel = ((pixel[0] + dg + (rb >> 4) - 8) & 0xff,
                     (pixel[1] + dg) & 0xff,
                     (pixel[2] + dg + (rb & 0x0f) - 8) & 0xff,
                     pixel[3])
        else:
            # QOI_OP_RUN; RGB and RGBA were caught above.
            run = (op & 0x3f) + 1

        index.store(pixel)
        # A run can claim more pixels than remain; never write past the end.
        run = min(run, (size - len(pixels)) // stride)
        pixels += bytes(pixel[0:stride]) * run

    if _read_exact(qoi, len(QOI_END_MARKER), "end marker") != QOI_END_MARKER:
        raise TruncatedInputError("Incorrect end marker")
    return bytes(pixels), desc

def encode_image(image: Image.Image,
                 colorspace: int = Colorspace.SRGB,
                 alpha: typing.Optional[bool] = None) -> bytes:
    """Encode a PIL image to QOI.

    Images with transparency become RGBA and everything else RGB, unless
    alpha forces one or the other.
    """
    if alpha is None:
        alpha = image.mode in ('RGBA', 'LA', 'PA', 'RGBa', 'La') or (
            'transparency' in image.info)
    mode = 'RGBA' if alpha else 'RGB'
    if image.mode != mode:
        image = image.convert(mode)
    desc = validate_descriptor(image.width, image.height,
                               Channels.RGBA if alpha else Channels.RGB,
                               colorspace)
    return encode(image.tobytes(), desc)

def decode_image(qoi: typing.Union[bytes, bytearray, memoryview]
                 ) -> Image.Image:
    """Decode a QOI image to a PIL image."""
    return decode_image_stream(io.BytesIO(qoi))

def decode_image_stream(qoi: typing.BinaryIO) -> Image.Image:
    pixels, desc = decode_stream(qoi)
    mode = 'RGBA' if desc.channels == Channels.RGBA else 'RGB'
    return Image.frombytes(mode, (desc.width, desc.height), pixels)
