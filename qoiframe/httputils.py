# Flask response builders for serving images.
#
# Copyright 2023 Philip Boulain.
# Licensed under the EUPL-1.2-or-later.

import flask
import io
from PIL import Image
from qoiframe import qoi

QOI_MIMETYPE = 'image/qoi'

_MIMETYPES = {
    'qoi': QOI_MIMETYPE,
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'txt': 'text/plain',
}

def respond_qoi(image: Image.Image,
                colorspace: int = qoi.Colorspace.SRGB) -> flask.Response:
    """Build a response from a PIL image by QOI-encoding it."""
    # Handing flask a stream makes it go chunked; give it the whole body.
    response: flask.Response = flask.make_response(
        qoi.encode_image(image, colorspace))
    response.mimetype = QOI_MIMETYPE
    return response

def respond_png(image: Image.Image) -> flask.Response:
    """Build a response from a PIL image by PNG-encoding it."""
    buf = io.BytesIO()
    image.save(buf, format='PNG')
    response: flask.Response = flask.make_response(buf.getvalue())
    response.mimetype = 'image/png'
    return response

def respond_txt(text: str, status: int = 200) -> flask.Response:
    """Build a response from UTF-8 plaintext."""
    response: flask.Response = flask.make_response(text, status)
    response.content_type = 'text/plain; charset=utf-8'
    return response

def mimetype_for(filename: str) -> str:
    extension = filename.rsplit('.', 1)[-1].lower()
    try:
        return _MIMETYPES[extension]
    except KeyError:
        raise ValueError(
            f'file "{filename}" has unsupported extension') from None

def respond_file(directory: str, filename: str) -> flask.Response:
    """Respond directly with a QOI, PNG, JPG, or TXT file from disk."""
    return flask.make_response(flask.send_from_directory(
        directory,
        filename,
        mimetype=mimetype_for(filename),
        as_attachment=False,
        conditional=False))
