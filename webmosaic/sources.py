"""
Image sources: anything with a ``load_image(identifier) -> array`` method.

Variants are composed by wrapping rather than subclassing, e.g.
``CachedImageSource(WebImageSource(), max_entries=500)``.
"""
import io
import logging
import os
import threading
import time
from collections import OrderedDict
import requests
from skimage.io import imread
from .config import DEFAULT_USER_AGENT
from .errors import DecodeError, NotAnImage, NotFound, TransportError


logger = logging.getLogger(__name__)


def decode_image(data, identifier=''):
    """
    Decode an encoded image (PNG, JPEG, ...) held in memory.

    Parameters
    ----------
    data : bytes
    identifier : string, optional
        used in error messages

    Returns
    -------
    image : array
    """
    try:
        image = imread(io.BytesIO(data))
    except Exception as err:
        raise DecodeError(identifier, str(err)) from err
    if image is None or image.size == 0:
        raise DecodeError(identifier, "decoded to an empty image")
    return image


def is_url(identifier):
    return identifier.startswith(('http://', 'https://'))


class WebImageSource:
    """
    Download images over HTTP(S).

    Parameters
    ----------
    session : requests.Session, optional
        reused for every request; a new one is made by default
    timeout : float or None, optional
        per-request timeout in seconds; default 30
    user_agent : string, optional
    """
    def __init__(self, session=None, timeout=30,
                 user_agent=DEFAULT_USER_AGENT):
        if session is None:
            session = requests.Session()
        self.session = session
        self.timeout = timeout
        self.user_agent = user_agent

    def load_image(self, url):
        try:
            response = self.session.get(
                url, timeout=self.timeout,
                headers={'User-Agent': self.user_agent})
        except requests.RequestException as err:
            raise TransportError(url, str(err)) from err
        if response.status_code == 404:
            raise NotFound(url, "HTTP 404")
        if not response.ok:
            raise TransportError(url, "HTTP {}".format(response.status_code))
        content_type = response.headers.get('Content-Type', '')
        if 'image/' not in content_type:
            raise NotAnImage(url, "the response was not an image: {!r}"
                                  "".format(content_type))
        return decode_image(response.content, url)


class LocalImageSource:
    "Read images from the local filesystem."
    def load_image(self, path):
        if not os.path.isfile(path):
            raise NotFound(path, "no such file")
        try:
            return imread(path)
        except Exception as err:
            raise DecodeError(path, str(err)) from err


class CachedImageSource:
    """
    Wrap an image source with an in-memory get-or-populate cache.

    Failures from the wrapped source propagate and are never cached.
    Safe to share between fetch workers.

    Parameters
    ----------
    source : image source
        consulted on a miss
    max_entries : int or None, optional
        least recently used entries are evicted beyond this; None (default)
        means unbounded
    ttl : float or None, optional
        entries older than this many seconds are treated as misses
    clock : callable, optional
        returns the current time in seconds; default ``time.monotonic``
    """
    def __init__(self, source, max_entries=None, ttl=None, clock=None):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.source = source
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._entries = OrderedDict()  # identifier -> (timestamp, image)
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    def __contains__(self, identifier):
        return self._lookup(identifier) is not None

    def _lookup(self, identifier):
        with self._lock:
            try:
                stamp, image = self._entries[identifier]
            except KeyError:
                return None
            if self.ttl is not None and self._clock() - stamp > self.ttl:
                del self._entries[identifier]
                return None
            self._entries.move_to_end(identifier)
            return image

    def load_image(self, identifier):
        image = self._lookup(identifier)
        with self._lock:
            if image is not None:
                self.hits += 1
                return image
            self.misses += 1
        logger.debug("cache miss for %s", identifier)
        image = self.source.load_image(identifier)
        with self._lock:
            self._entries[identifier] = (self._clock(), image)
            self._entries.move_to_end(identifier)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
        return image

    def clear(self):
        with self._lock:
            self._entries.clear()


def load_image(identifier, timeout=30):
    """
    Load an image from a URL or a local path.

    Parameters
    ----------
    identifier : string
        http(s) URL or filepath
    timeout : float or None, optional

    Returns
    -------
    image : array
    """
    if is_url(identifier):
        return WebImageSource(timeout=timeout).load_image(identifier)
    return LocalImageSource().load_image(identifier)
