# QOI image codec, with a converter and a small image server around it.
#
# Copyright 2023 Philip Boulain.
# Licensed under the EUPL-1.2-or-later.

from qoiframe.qoi import (Channels, Colorspace, Descriptor, HeaderError,
                          QoiError, SizeError, TruncatedInputError, decode,
                          decode_image, decode_stream, encode, encode_image,
                          encode_stream, validate_descriptor)
