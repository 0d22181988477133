import argparse
import logging
import sys
import warnings
from skimage.io import imsave
from .color import standardize_image
from .config import MosaicConfig, SOURCES, STRATEGIES
from .errors import (ImageLoadError, InsufficientTiles, MosaicError,
                     SourceUnavailable)
from .mosaic import auto_sample_size, make_mosaic
from .sources import load_image


logger = logging.getLogger(__name__)

FORMAT = "%(name)s.%(funcName)s:  %(message)s"


def sample_size(s):
    if s == 'auto':
        return s
    try:
        value = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(
            "Sample size must be a positive integer or 'auto'")
    if value < 1:
        raise argparse.ArgumentTypeError(
            "Sample size must be a positive integer or 'auto'")
    return value


def args_parser():
    parser = argparse.ArgumentParser(
        prog='webmosaic',
        description="Make a photomosaic from images found online.")
    parser.add_argument('infile', help="path or http(s) URL of the image")
    parser.add_argument('outfile', help="where to write the mosaic (PNG)")
    parser.add_argument('-n', '--num-tiles', default=100, type=int)
    parser.add_argument('-t', '--tile-size', default=25, type=int)
    parser.add_argument('-s', '--sample-size', default=None, type=sample_size,
                        help="cell size in the input image, or 'auto'; "
                             "defaults to the tile size")
    parser.add_argument('--strategy', default='color', choices=STRATEGIES)
    parser.add_argument('--source', default='reddit', choices=SOURCES)
    parser.add_argument('--topic', default='pics',
                        help="subreddit, search text, or directory")
    parser.add_argument('-w', '--workers', default=10, type=int)
    parser.add_argument('-q', '--quiet', action='store_true',
                        help="hide progress bars")
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser


def main(argv=None):
    args = args_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format=FORMAT)
    try:
        image = standardize_image(load_image(args.infile))
    except (ImageLoadError, ValueError) as err:
        print("Bad input image: {}".format(err), file=sys.stderr)
        return 1
    size = args.sample_size
    if size == 'auto':
        size = auto_sample_size(image.shape, args.tile_size)
        logger.info("Using a sample size of %d pixels", size)
    try:
        config = MosaicConfig.from_env(
            num_tiles=args.num_tiles, tile_size=args.tile_size,
            sample_size=size, strategy=args.strategy, source=args.source,
            topic=args.topic, num_workers=args.workers)
        mosaic = make_mosaic(image, config, progress=not args.quiet)
    except ValueError as err:
        print("Invalid settings: {}".format(err), file=sys.stderr)
        return 2
    except InsufficientTiles as err:
        print("Insufficient tiles: {}".format(err), file=sys.stderr)
        return 1
    except SourceUnavailable as err:
        print("Tile source unavailable: {}".format(err), file=sys.stderr)
        return 1
    except MosaicError as err:
        print("Failed: {}".format(err), file=sys.stderr)
        return 1
    # imsave warns when saving low-contrast images.
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", ".*low contrast.*")
        imsave(args.outfile, mosaic)
    logger.info("Wrote %s (%dx%d)", args.outfile, mosaic.shape[1],
                mosaic.shape[0])
    return 0


if __name__ == '__main__':
    sys.exit(main())
