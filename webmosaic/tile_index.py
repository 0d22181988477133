from collections import namedtuple
import numpy as np
from skimage.transform import resize
from .color import (average_color, color_distances, standardize_image,
                    to_ycbcr)
from .config import STRATEGIES
from .errors import EmptyIndexError


Tile = namedtuple('Tile', ['image', 'descriptor'])
Tile.__doc__ = """
A fixed-size tile image and its average color.

The image array is read-only; tiles are shared between composer threads.
"""


def resize_image(image, shape):
    """
    Resize a uint8 image to a (height, width) using bilinear resampling.

    Parameters
    ----------
    image : array
    shape : tuple
        ``(height, width)``

    Returns
    -------
    resized : array
        uint8, a copy
    """
    shape = tuple(shape)
    if image.shape[:2] == shape:
        return image.copy()
    # Only smooth when shrinking; enlarging needs no anti-aliasing.
    shrinking = image.shape[0] > shape[0] or image.shape[1] > shape[1]
    resized = resize(image, shape + image.shape[2:], order=1,
                     preserve_range=True, anti_aliasing=shrinking)
    return np.clip(np.round(resized), 0, 255).astype(np.uint8)


def crop_to_square(image):
    """
    Return a view of the largest centered square within an image.

    If the overflow is odd, the extra pixel is cropped from the bottom/right.
    """
    height, width = image.shape[:2]
    size = min(height, width)
    top = (height - size) // 2
    left = (width - size) // 2
    return image[top:top + size, left:left + size]


def make_tile(image):
    """
    Characterize an image and freeze it as a Tile.

    Parameters
    ----------
    image : array
        any image accepted by :func:`standardize_image`

    Returns
    -------
    tile : Tile
    """
    image = np.array(standardize_image(image), copy=True)
    image.flags.writeable = False
    return Tile(image, average_color(image))


class TileIndex:
    """
    Answer nearest-tile queries over an ordered, fixed set of tiles.

    The index is never modified after construction, so it may be queried from
    many threads at once.

    Parameters
    ----------
    tiles : iterable of Tile
        all of the same shape; must not be empty
    """
    def __init__(self, tiles):
        self.tiles = tuple(tiles)
        if not self.tiles:
            raise EmptyIndexError("Cannot build a TileIndex from zero tiles.")
        shapes = {tile.image.shape for tile in self.tiles}
        if len(shapes) != 1:
            raise ValueError("All tiles must have the same shape; got {}"
                             "".format(sorted(shapes)))
        self.tile_shape, = shapes
        self._descriptors = np.array([tile.descriptor for tile in self.tiles],
                                     dtype=np.int64)
        # Luma/chroma projection of every tile, for image-variance matching.
        self._projected = to_ycbcr(np.stack([tile.image
                                             for tile in self.tiles]))

    @classmethod
    def from_images(cls, images):
        "Build an index from raw, same-sized images."
        return cls(make_tile(image) for image in images)

    def __len__(self):
        return len(self.tiles)

    def __iter__(self):
        return iter(self.tiles)

    def __getitem__(self, index):
        return self.tiles[index]

    def nearest_by_color(self, query):
        """
        Find the tile whose average color is nearest to a color.

        Ties go to the tile that comes first in the index.

        Parameters
        ----------
        query : ColorDescriptor

        Returns
        -------
        tile : Tile
        """
        distances = color_distances(query, self._descriptors)
        return self.tiles[int(np.argmin(distances))]

    def nearest_by_image(self, region):
        """
        Find the tile that differs most uniformly from an image region.

        For each tile, take the per-pixel absolute difference from the region
        in luma/chroma space and compute the variance of that difference image
        (summed over channels). The tile with the lowest variance wins; exact
        ties are broken by average-color distance, then by index order.

        This costs O(pixels) per tile instead of O(1).

        Parameters
        ----------
        region : array
            resized to the tile shape if necessary

        Returns
        -------
        tile : Tile
        """
        region = standardize_image(region)
        if region.shape != self.tile_shape:
            region = resize_image(region, self.tile_shape[:2])
        diff = np.abs(self._projected - to_ycbcr(region)).astype(np.float64)
        n = len(self.tiles)
        variance = diff.reshape(n, -1, diff.shape[-1]).var(axis=1).sum(axis=1)
        distance = color_distances(average_color(region), self._descriptors)
        # np.lexsort sorts by the last key first.
        order = np.lexsort((np.arange(n), distance, variance))
        return self.tiles[int(order[0])]

    def matcher(self, strategy='color'):
        """
        Build a matching function for the given strategy.

        Parameters
        ----------
        strategy : {'color', 'image-variance'}

        Returns
        -------
        match_func : function
            function that accepts an image region and returns a Tile
        """
        if strategy == 'color':
            def match(region):
                "Return the tile nearest in average color to the region."
                return self.nearest_by_color(average_color(region))
        elif strategy == 'image-variance':
            match = self.nearest_by_image
        else:
            raise ValueError("strategy must be one of {}, not {!r}"
                             "".format(STRATEGIES, strategy))
        return match
