from collections import namedtuple
import numpy as np
from skimage import img_as_ubyte
from skimage.color import gray2rgb


ColorDescriptor = namedtuple('ColorDescriptor', ['r', 'g', 'b', 'a'])
ColorDescriptor.__doc__ = "Average color of an image: 8-bit RGBA channels."

# JFIF RGB -> YCbCr coefficients in 16.16 fixed point. Offsets are dropped;
# only differences between projected colors are ever used.
_YCBCR = np.array([[19595, 38470, 7471, 0],
                   [-11056, -21712, 32768, 0],
                   [32768, -27440, -5328, 0],
                   [0, 0, 0, 65536]], dtype=np.int64)


def standardize_image(image):
    """
    Ensure that image is uint8 RGBA.

    Parameters
    ----------
    image : array
        gray, gray+alpha, RGB or RGBA; float (scaled 0-1) or integer

    Returns
    -------
    image : array
        shape ``(height, width, 4)``; may or may not be a copy of the original
    """
    image = np.asarray(image)
    if (image.dtype.kind == 'i' and image.size and
            image.min() >= 0 and image.max() <= 255):
        # Plain integer arrays (e.g., built from lists) are taken as 0-255.
        image = image.astype(np.uint8)
    if image.dtype != np.uint8:
        image = img_as_ubyte(image)
    # If there is no color axis, create one.
    if image.ndim == 2:
        image = gray2rgb(image)
    # Gray with alpha: spread the gray channel over RGB.
    elif image.ndim == 3 and image.shape[-1] == 2:
        image = np.concatenate([gray2rgb(image[..., 0]), image[..., 1:]],
                               axis=-1)
    if image.ndim != 3 or image.shape[-1] not in (3, 4):
        raise ValueError("expected a gray, gray+alpha, RGB or RGBA image; "
                         "got shape {}".format(image.shape))
    # Assume last axis is color axis. If there is no alpha channel, add an
    # opaque one.
    if image.shape[-1] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=-1)
    return image


def average_color(image):
    """
    Compute the mean of each channel over every pixel of an image region.

    Parameters
    ----------
    image : array
        any region with at least one pixel; see :func:`standardize_image`

    Returns
    -------
    color : ColorDescriptor
        channel means, truncated to integers
    """
    image = standardize_image(image)
    num_pixels = image.shape[0] * image.shape[1]
    if num_pixels == 0:
        raise ValueError("Cannot average the color of an empty region; "
                         "got shape {}".format(image.shape))
    sums = image.reshape(num_pixels, 4).sum(axis=0, dtype=np.uint64)
    return ColorDescriptor(*(int(s) // num_pixels for s in sums))


def to_ycbcr(pixels):
    """
    Project RGBA colors into luma/chroma space (plus alpha).

    The projection is linear and exact (integer fixed point), so distinct
    colors never collide.

    Parameters
    ----------
    pixels : array
        anything with a last axis of length 4, e.g. a ColorDescriptor,
        a list of them, or an RGBA image

    Returns
    -------
    projected : array
        int64, same shape as the input
    """
    pixels = np.asarray(pixels, dtype=np.int64)
    return pixels @ _YCBCR.T


def color_distance(a, b):
    """
    Squared euclidean distance between two colors in luma/chroma space.

    This is meant for ranking candidates, not as a calibrated measure.

    Parameters
    ----------
    a, b : ColorDescriptor

    Returns
    -------
    distance : int
        non-negative; zero iff ``a == b``
    """
    diff = to_ycbcr(a) - to_ycbcr(b)
    return int(np.sum(diff * diff))


def color_distances(query, descriptors):
    """
    Vectorized :func:`color_distance` from one color to many.

    Parameters
    ----------
    query : ColorDescriptor
    descriptors : array
        shape ``(n, 4)``

    Returns
    -------
    distances : array
        int64, shape ``(n,)``
    """
    diff = to_ycbcr(descriptors) - to_ycbcr(query)
    return np.sum(diff * diff, axis=-1)
