#!/usr/bin/env python3
# QOI command line tool.
#
# Copyright 2023 Philip Boulain.
# Licensed under the EUPL-1.2-or-later.

import argparse
import logging
import os
import sys
import typing
from PIL import Image
from qoiframe import qoi

def default_output(infile: str, output_dir: typing.Optional[str]) -> str:
    """QOI files become PNGs, and anything else becomes QOI."""
    stem, extension = os.path.splitext(infile)
    outfile = stem + ('.png' if extension.lower() == '.qoi' else '.qoi')
    if output_dir is not None:
        outfile = os.path.join(output_dir, os.path.basename(outfile))
    return outfile

def is_qoi(filename: str) -> bool:
    return filename.lower().endswith('.qoi')

def convert(infile: str, outfile: str,
            colorspace: int = qoi.Colorspace.SRGB,
            alpha: typing.Optional[bool] = None) -> None:
    image: Image.Image
    if is_qoi(infile):
        with open(infile, "rb") as qoifile:
            image = qoi.decode_image_stream(qoifile)
    else:
        image = Image.open(infile)
    with image:
        if is_qoi(outfile):
            with open(outfile, "wb") as qoifile:
                qoifile.write(qoi.encode_image(image, colorspace, alpha))
        else:
            image.save(outfile)
    logging.info("%s (%d bytes) -> %s (%d bytes)",
                 infile, os.path.getsize(infile),
                 outfile, os.path.getsize(outfile))

def make_parser() -> argparse.ArgumentParser:
    arg_parser = argparse.ArgumentParser(
        prog="qoiframe-convert",
        description="QOI image encoder and decoder.",
        epilog="Encodes any image PIL can read to QOI, or decodes QOI to any "
               "image PIL can write (type determined by file extension). "
               "Without an output, QOI files become PNGs and anything else "
               "becomes QOI, next to the input.")
    arg_parser.add_argument("infiles", nargs="+", metavar="infile",
        help="File to read")
    arg_parser.add_argument("-o", "--output",
        help="File to write, will be overwritten (single input only)")
    arg_parser.add_argument("-d", "--output-dir",
        help="Directory to write converted files into")
    arg_parser.add_argument("--alpha", action=argparse.BooleanOptionalAction,
        default=None,
        help="Force an RGBA (or with --no-alpha, RGB) QOI file; by default "
             "only images with transparency get an alpha channel")
    arg_parser.add_argument("--colorspace", choices=("srgb", "linear"),
        default="srgb", help="Colorspace tag for written QOI files")
    arg_parser.add_argument("-v", "--verbose", action="count", default=0,
        help="Log each conversion; twice for codec debugging")
    return arg_parser

def main(argv: typing.Optional[typing.List[str]] = None) -> int:
    arg_parser = make_parser()
    args = arg_parser.parse_args(argv)
    if args.output is not None and len(args.infiles) > 1:
        arg_parser.error("--output needs exactly one input file")

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    colorspace = qoi.Colorspace[args.colorspace.upper()]
    if args.output_dir is not None:
        os.makedirs(args.output_dir, exist_ok=True)

    failed = 0
    for infile in args.infiles:
        outfile = args.output or default_output(infile, args.output_dir)
        try:
            convert(infile, outfile, colorspace, args.alpha)
        except (ValueError, OSError, Image.DecompressionBombError) as e:
            # Every qoi.QoiError is a ValueError, as are PIL's unknown output
            # extensions; OSError covers its UnidentifiedImageError.
            logging.error("%s: %s", infile, e)
            failed += 1
    return 1 if failed else 0

if __name__ == "__main__":
    sys.exit(main())
