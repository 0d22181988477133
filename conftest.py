import itertools
import threading
import time
import numpy as np
import pytest
import webmosaic as wm
from skimage.data import chelsea


def solid(color, shape=(10, 10)):
    "A uniform uint8 image of the given RGB or RGBA color."
    color = np.asarray(color, dtype=np.uint8)
    return np.ones(tuple(shape) + (len(color),), dtype=np.uint8) * color


def rainbow_of_squares(size=10, range_params=(0, 256, 85)):
    "Solid-color tiles striding through each color channel."
    return [wm.make_tile(solid((r, g, b), (size, size)))
            for r in range(*range_params)
            for g in range(*range_params)
            for b in range(*range_params)]


class PagedListing:
    """
    A listing serving fixed pages; the last page has no next cursor.

    With ``repeat=True`` the pages are served over and over forever.
    """
    def __init__(self, pages, repeat=False):
        self.pages = [list(page) for page in pages]
        self.repeat = repeat
        self.calls = []
        self._counter = itertools.count()

    def list_page(self, topic, cursor):
        self.calls.append(cursor)
        page = cursor or 0
        if self.repeat:
            n = next(self._counter)
            items = ['{}#{}'.format(url, n)
                     for url in self.pages[page % len(self.pages)]]
            return items, page + 1
        if page >= len(self.pages):
            return [], None
        next_cursor = page + 1 if page + 1 < len(self.pages) else None
        return list(self.pages[page]), next_cursor


class BrokenListing:
    def __init__(self, error):
        self.error = error

    def list_page(self, topic, cursor):
        raise self.error


class FakeImageSource:
    """
    Serve images without any network.

    URLs starting with 'ok' load an image whose color is derived from the
    URL, 'bad' raises NotAnImage, 'weird' returns an unusable array, and
    'slow' sleeps before succeeding.
    """
    def __init__(self, delay=0.2):
        self.delay = delay
        self.loaded = []
        self._lock = threading.Lock()

    @staticmethod
    def color_of(url):
        digest = sum(ord(c) * (i + 1) for i, c in enumerate(url))
        return (digest % 256, (digest // 7) % 256, (digest // 13) % 256)

    def load_image(self, url):
        with self._lock:
            self.loaded.append(url)
        if url.startswith('bad'):
            raise wm.NotAnImage(url, "the response was not an image: "
                                     "'text/html'")
        if url.startswith('weird'):
            return np.zeros((5, 5, 7), dtype=np.uint8)
        if url.startswith('slow'):
            time.sleep(self.delay)
        elif not url.startswith('ok'):
            raise wm.NotFound(url, "HTTP 404")
        return solid(self.color_of(url), (12, 16))


@pytest.fixture(scope='module')
def pool():
    return rainbow_of_squares()


@pytest.fixture(scope='module')
def index(pool):
    return wm.TileIndex(pool)


@pytest.fixture(scope='module')
def image():
    # sample image from scikit-image
    return chelsea()


@pytest.fixture
def image_source():
    return FakeImageSource()
