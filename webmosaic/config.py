import copy
import os


STRATEGIES = ('color', 'image-variance')
SOURCES = ('reddit', 'imgur', 'flickr', 'directory')

DEFAULT_USER_AGENT = 'python:webmosaic:0.1 (photomosaic generator)'


class MosaicConfig:
    """
    Settings consumed by the fetch pipeline and the composer.

    Parameters
    ----------
    num_tiles : int, optional
        Number of tiles to collect before the fetch pipeline stops.
        Default is 100.
    tile_size : int, optional
        Edge length, in pixels, of each (square) tile in the output.
        Default is 25.
    sample_size : int or None, optional
        Edge length, in pixels, of each block of the input image. If None
        (default), same as ``tile_size`` so that output and input have the
        same size.
    strategy : {'color', 'image-variance'}, optional
        How blocks are matched to tiles. Default is 'color'.
    topic : string, optional
        Subreddit, gallery tag, search text or directory to draw tiles from.
        Default is 'pics'.
    source : {'reddit', 'imgur', 'flickr', 'directory'}, optional
        Which listing to page through. Default is 'reddit'.
    num_workers : int, optional
        Number of concurrent download workers. Default is 10.
    timeout : float or None, optional
        Per-request timeout in seconds passed to ``requests``; None waits
        indefinitely. Default is 30.
    user_agent : string, optional
    imgur_client_id : string or None, optional
        Required when ``source='imgur'``.
    flickr_api_key : string or None, optional
        Required when ``source='flickr'``.
    """
    def __init__(self, *, num_tiles=100, tile_size=25, sample_size=None,
                 strategy='color', topic='pics', source='reddit',
                 num_workers=10, timeout=30, user_agent=DEFAULT_USER_AGENT,
                 imgur_client_id=None, flickr_api_key=None):
        if int(num_tiles) < 1:
            raise ValueError("num_tiles must be at least 1, not {}"
                             "".format(num_tiles))
        if int(tile_size) < 1:
            raise ValueError("tile_size must be positive, not {}"
                             "".format(tile_size))
        if sample_size is not None and int(sample_size) < 1:
            raise ValueError("sample_size must be positive, not {}"
                             "".format(sample_size))
        if strategy not in STRATEGIES:
            raise ValueError("strategy must be one of {}, not {!r}"
                             "".format(STRATEGIES, strategy))
        if source not in SOURCES:
            raise ValueError("source must be one of {}, not {!r}"
                             "".format(SOURCES, source))
        if int(num_workers) < 1:
            raise ValueError("num_workers must be at least 1, not {}"
                             "".format(num_workers))
        self.num_tiles = int(num_tiles)
        self.tile_size = int(tile_size)
        self.sample_size = None if sample_size is None else int(sample_size)
        self.strategy = strategy
        self.topic = topic
        self.source = source
        self.num_workers = int(num_workers)
        self.timeout = timeout
        self.user_agent = user_agent
        self.imgur_client_id = imgur_client_id
        self.flickr_api_key = flickr_api_key

    @classmethod
    def from_env(cls, environ=None, **kwargs):
        """
        Build a config, taking API credentials from environment variables.

        ``WEBMOSAIC_IMGUR_CLIENT_ID`` and ``WEBMOSAIC_FLICKR_API_KEY`` are
        read unless given explicitly in ``kwargs``.
        """
        if environ is None:
            environ = os.environ
        kwargs.setdefault('imgur_client_id',
                          environ.get('WEBMOSAIC_IMGUR_CLIENT_ID'))
        kwargs.setdefault('flickr_api_key',
                          environ.get('WEBMOSAIC_FLICKR_API_KEY'))
        return cls(**kwargs)

    @property
    def effective_sample_size(self):
        if self.sample_size is None:
            return self.tile_size
        return self.sample_size

    def replace(self, **kwargs):
        "Return a validated copy with some settings changed."
        params = copy.copy(vars(self))
        params.update(kwargs)
        return type(self)(**params)

    def __repr__(self):
        params = ', '.join('{}={!r}'.format(k, v)
                           for k, v in sorted(vars(self).items()))
        return '{}({})'.format(type(self).__name__, params)
