# Serve a directory of images, transcoding to or from QOI on request.
#
# Copyright 2023 Philip Boulain.
# Licensed under the EUPL-1.2-or-later.

import flask
import logging
import os
from PIL import Image
from qoiframe import httputils, qoi

app = flask.Flask(__name__)
app.config['IMAGE_DIRECTORY'] = 'images'
app.config.from_prefixed_env()

@app.route("/hello")
def hello():
    return "", 204

@app.route("/images/<filename>")
def image(filename: str) -> flask.Response:
    directory = app.config['IMAGE_DIRECTORY']
    path = os.path.join(directory, filename)
    if not os.path.isfile(path):
        return httputils.respond_txt("No such image", 404)
    wanted = flask.request.args.get('format')
    is_qoi = filename.lower().endswith('.qoi')
    try:
        if wanted is None or (wanted == 'qoi' and is_qoi):
            return httputils.respond_file(directory, filename)
        if wanted not in ('qoi', 'png'):
            return httputils.respond_txt(f"Unsupported format {wanted}", 400)
        if is_qoi:
            with open(path, "rb") as qoifile:
                im = qoi.decode_image_stream(qoifile)
        else:
            im = Image.open(path)
        with im:
            if wanted == 'qoi':
                return httputils.respond_qoi(im)
            return httputils.respond_png(im)
    except qoi.QoiError as e:
        logging.error('Cannot decode %s: %s', filename, e)
        return httputils.respond_txt(str(e), 422)
    except ValueError as e:
        # Unsupported extension.
        return httputils.respond_txt(str(e), 400)
    except (OSError, Image.DecompressionBombError) as e:
        # OSError includes PIL's UnidentifiedImageError.
        logging.error('Cannot open %s: %s', filename, e)
        return httputils.respond_txt(str(e), 422)
