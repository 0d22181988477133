import logging
import numpy as np
from .color import standardize_image
from .fetch import fetch_tiles
from .parallel import parallel_map
from .tile_index import TileIndex


logger = logging.getLogger(__name__)


def grid_dims(shape, sample_size):
    """
    Number of whole cells along height, width. Any remainder is dropped.

    Parameters
    ----------
    shape : tuple
        image shape; only the first two entries are used
    sample_size : int
        edge length of one cell, in pixels

    Returns
    -------
    grid_dims : tuple
        ``(ny, nx)``
    """
    if sample_size < 1:
        raise ValueError("sample_size must be positive, not {}"
                         "".format(sample_size))
    return shape[0] // sample_size, shape[1] // sample_size


def crop_to_multiple(image, sample_size):
    """
    Crop the bottom and right edges so both dimensions divide evenly.

    Returns a view; the image is cropped, never stretched.
    """
    ny, nx = grid_dims(image.shape, sample_size)
    return image[:ny * sample_size, :nx * sample_size]


def partition(grid, sample_size):
    """
    List the cells of a grid as pairs of slice objects.

    Parameters
    ----------
    grid : tuple
        ``(ny, nx)``, as from :func:`grid_dims`
    sample_size : int

    Returns
    -------
    cells : list
        ``(y_slice, x_slice)`` for each cell, row by row
    """
    ny, nx = grid
    return [(slice(y * sample_size, (y + 1) * sample_size),
             slice(x * sample_size, (x + 1) * sample_size))
            for y in range(ny) for x in range(nx)]


def auto_sample_size(shape, tile_size, ideal_tiles_across=150):
    """
    Pick a cell size so that about ``ideal_tiles_across`` tiles span the
    longer side of the image.

    Parameters
    ----------
    shape : tuple
    tile_size : int
    ideal_tiles_across : int, optional
        default 150

    Returns
    -------
    sample_size : int
    """
    ideal_width = tile_size * ideal_tiles_across
    max_dim = max(shape[0], shape[1])
    return max(1, max_dim * tile_size // ideal_width)


def compose(image, index, tile_size, strategy='color', sample_size=None,
            progress=True):
    """
    Replace each cell of an image with its best-matching tile.

    Cells are matched independently and in parallel; each writes only its own
    region of the canvas.

    Parameters
    ----------
    image : array
    index : TileIndex
        tiles must be ``tile_size`` square
    tile_size : int
    strategy : {'color', 'image-variance'}, optional
        default 'color'
    sample_size : int or None, optional
        edge length of each cell of ``image``; defaults to ``tile_size``
    progress : bool, optional

    Returns
    -------
    mosaic : array
        uint8 RGBA, shape ``(ny * tile_size, nx * tile_size, 4)``
    """
    if sample_size is None:
        sample_size = tile_size
    if index.tile_shape[:2] != (tile_size, tile_size):
        raise ValueError("Index holds tiles of shape {}, expected {}x{}"
                         "".format(index.tile_shape[:2], tile_size, tile_size))
    image = crop_to_multiple(standardize_image(image), sample_size)
    grid = grid_dims(image.shape, sample_size)
    if 0 in grid:
        raise ValueError("Image of shape {} is smaller than one {}-pixel cell"
                         "".format(image.shape[:2], sample_size))
    match = index.matcher(strategy)
    scale = tile_size / sample_size
    canvas = np.zeros((grid[0] * tile_size, grid[1] * tile_size, 4),
                      dtype=np.uint8)

    def fill(cell):
        y, x = cell
        tile = match(image[cell])
        top = int(round(y.start * scale))
        left = int(round(x.start * scale))
        canvas[top:top + tile_size, left:left + tile_size] = tile.image

    logger.debug("composing %dx%d grid with %r matching", grid[0], grid[1],
                 strategy)
    parallel_map(fill, partition(grid, sample_size), progress=progress)
    return canvas


def make_mosaic(image, config, listing=None, image_source=None,
                progress=True):
    """
    Fetch tiles and make a mosaic in one step.

    Parameters
    ----------
    image : array
    config : MosaicConfig
    listing : object, optional
        see :func:`webmosaic.fetch.fetch_tiles`
    image_source : object, optional
        see :func:`webmosaic.fetch.fetch_tiles`
    progress : bool, optional

    Returns
    -------
    mosaic : array

    Examples
    --------
        >>> from skimage.io import imread, imsave
        >>> config = MosaicConfig(num_tiles=200, topic='EarthPorn')
        >>> mosaic = make_mosaic(imread('my_image.jpg'), config)
        >>> imsave('my_mosaic.png', mosaic)
    """
    image = standardize_image(image)
    sample_size = config.effective_sample_size
    # Fail before any download if the image cannot hold a single cell.
    if 0 in grid_dims(image.shape, sample_size):
        raise ValueError("Image of shape {} is smaller than one {}-pixel cell"
                         "".format(image.shape[:2], sample_size))
    tiles = fetch_tiles(config, listing=listing, image_source=image_source,
                        progress=progress)
    index = TileIndex(tiles)
    return compose(image, index, config.tile_size, strategy=config.strategy,
                   sample_size=sample_size, progress=progress)
