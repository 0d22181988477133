from .config import MosaicConfig
from .color import (ColorDescriptor, average_color, color_distance,
                    standardize_image)
from .errors import (MosaicError, SourceUnavailable, ImageLoadError,
                     NotFound, NotAnImage, DecodeError, TransportError,
                     InsufficientTiles, EmptyIndexError)
from .sources import (WebImageSource, LocalImageSource, CachedImageSource,
                      load_image)
from .listing import (RedditListing, ImgurListing, FlickrListing,
                      DirectoryListing, SourcePager, make_listing)
from .tile_index import Tile, TileIndex, make_tile
from .fetch import (FetchJob, FetchState, FetchWorkerPool, FetchAggregator,
                    fetch_tiles, prepare_tile)
from .mosaic import (grid_dims, crop_to_multiple, partition,
                     auto_sample_size, compose, make_mosaic)

__version__ = '0.1.0'
