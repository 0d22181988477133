"""
Collect a fixed number of tiles from a paginated listing.

A single aggregator pages through the listing and hands one job at a time to
a fixed pool of worker threads. Workers download, validate and resize their
candidate and post the outcome to the aggregator's mailbox. The aggregator
reacts to whichever of "a worker is free", "a job failed" or "a job
succeeded" happens first, and stops as soon as the target count is reached.
"""
import enum
import logging
import queue
import threading
from collections import namedtuple
from tqdm import tqdm
from .color import standardize_image
from .errors import (DecodeError, ImageLoadError, InsufficientTiles,
                     SourceUnavailable)
from .listing import SourcePager, make_listing
from .sources import LocalImageSource, WebImageSource
from .tile_index import crop_to_square, make_tile, resize_image


logger = logging.getLogger(__name__)

NUM_WORKERS = 10

FetchJob = namedtuple('FetchJob', ['index', 'url'])

SUCCESS = 'success'
FAILURE = 'failure'


class FetchState(enum.Enum):
    PAGING = 'paging'
    DISPATCHING = 'dispatching'
    DRAINING = 'draining'
    DONE = 'done'
    FAILED = 'failed'


def prepare_tile(image, tile_size):
    """
    Crop an image to its largest centered square and resize it to a tile.

    Parameters
    ----------
    image : array
    tile_size : int

    Returns
    -------
    tile : Tile
    """
    square = crop_to_square(standardize_image(image))
    if square.shape[0] == 0:
        raise ValueError("cannot make a tile from an empty image")
    return make_tile(resize_image(square, (tile_size, tile_size)))


class FetchWorkerPool:
    """
    A fixed number of threads turning FetchJobs into Tiles.

    Each outcome is posted to ``results`` as ``(SUCCESS, job, tile)`` or
    ``(FAILURE, job, error)``. A failed job is not retried.

    Parameters
    ----------
    image_source : object
        with a ``load_image(url)`` method; shared by all workers
    tile_size : int
    results : queue.Queue
        mailbox of the owning aggregator
    num_workers : int, optional
        default 10
    """
    def __init__(self, image_source, tile_size, results,
                 num_workers=NUM_WORKERS):
        self.image_source = image_source
        self.tile_size = tile_size
        self.results = results
        self.num_workers = num_workers
        self.jobs = queue.Queue()
        self.closed = False
        self.workers = [threading.Thread(target=self._work,
                                         name='fetch-worker-{}'.format(i),
                                         daemon=True)
                        for i in range(num_workers)]

    def start(self):
        for t in self.workers:
            t.start()

    def submit(self, job):
        if self.closed:
            raise RuntimeError("Cannot submit to a closed pool.")
        self.jobs.put(job)

    def close(self):
        """
        Stop accepting jobs. Workers finish what is queued, then exit.
        """
        if not self.closed:
            self.closed = True
            for _ in self.workers:
                self.jobs.put(None)

    def join(self):
        "Block until every worker has exited."
        for t in self.workers:
            if t.is_alive():
                t.join()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.close()
        self.join()

    def _work(self):
        while True:
            job = self.jobs.get()
            if job is None:
                break
            try:
                image = self.image_source.load_image(job.url)
                tile = prepare_tile(image, self.tile_size)
            except ImageLoadError as err:
                self.results.put((FAILURE, job, err))
            except Exception as err:
                # Anything else went wrong with this candidate's data.
                self.results.put((FAILURE, job, DecodeError(job.url, str(err))))
            else:
                self.results.put((SUCCESS, job, tile))


class FetchAggregator:
    """
    Page through a listing until ``num_tiles`` tiles have been collected.

    Parameters
    ----------
    pager : SourcePager
    image_source : object
        with a ``load_image(url)`` method
    num_tiles : int
        target count
    tile_size : int
    num_workers : int, optional
        default 10
    progress : bool, optional
        show a progress bar; default True

    Examples
    --------
        >>> pager = SourcePager(RedditListing(), 'pics')
        >>> tiles = FetchAggregator(pager, WebImageSource(), 100, 25).run()
    """
    def __init__(self, pager, image_source, num_tiles, tile_size,
                 num_workers=NUM_WORKERS, progress=True):
        if num_tiles < 1:
            raise ValueError("num_tiles must be at least 1")
        self.pager = pager
        self.image_source = image_source
        self.num_tiles = num_tiles
        self.tile_size = tile_size
        self.num_workers = num_workers
        self.progress = progress
        self.state = FetchState.PAGING
        self.tiles = []
        self.submitted = 0
        self.failed = 0
        self._results = queue.Queue()
        self._idle = num_workers
        self._pbar = None

    @property
    def in_flight(self):
        "Jobs submitted whose outcome has not been handled yet."
        return self.submitted - self.failed - len(self.tiles)

    @property
    def done(self):
        return len(self.tiles) >= self.num_tiles

    def run(self):
        """
        Run the pipeline to completion.

        Returns
        -------
        tiles : list
            exactly ``num_tiles`` Tiles, in the order they finished

        Raises
        ------
        SourceUnavailable
        InsufficientTiles
        """
        pool = FetchWorkerPool(self.image_source, self.tile_size,
                               self._results, self.num_workers)
        self._pbar = tqdm(total=self.num_tiles, desc='collecting tiles',
                          disable=not self.progress)
        try:
            with pool:
                self._collect(pool)
        finally:
            self._pbar.close()
        logger.info("Collected %d tiles (%d submitted, %d failed) from %d "
                    "pages", len(self.tiles), self.submitted, self.failed,
                    self.pager.pages)
        return self.tiles

    def _collect(self, pool):
        while True:
            self.state = FetchState.PAGING
            try:
                urls, _ = self.pager.next_page()
            except SourceUnavailable:
                self.state = FetchState.FAILED
                raise
            if not urls and self.pager.exhausted:
                break
            self.state = FetchState.DISPATCHING
            for url in urls:
                self._dispatch(pool, url)
                if self.done:
                    # Abandon the rest of this page.
                    self.state = FetchState.DONE
                    return

        # The listing is exhausted; outstanding jobs may still succeed.
        self.state = FetchState.DRAINING
        while self.in_flight:
            self._handle(self._results.get())
            if self.done:
                self.state = FetchState.DONE
                return
        self.state = FetchState.FAILED
        raise InsufficientTiles(requested=self.num_tiles,
                                collected=len(self.tiles),
                                failed=self.failed,
                                submitted=self.submitted,
                                unprocessed=self.in_flight)

    def _dispatch(self, pool, url):
        """
        Submit one job, handling outcomes that arrive first.

        Returns early, without submitting, if the target is reached.
        """
        while True:
            # Deliberately handle outcomes that are already waiting before
            # submitting: a success may end the run and save a download, and
            # a failure is only ever counted, so results never starve
            # submission.
            while True:
                try:
                    event = self._results.get_nowait()
                except queue.Empty:
                    break
                self._handle(event)
                if self.done:
                    return
            if self._idle:
                pool.submit(FetchJob(self.submitted, url))
                self.submitted += 1
                self._idle -= 1
                return
            # Every worker is busy: wait for the next outcome.
            self._handle(self._results.get())
            if self.done:
                return

    def _handle(self, event):
        kind, job, payload = event
        self._idle += 1
        if kind == FAILURE:
            self.failed += 1
            logger.warning("Skipping candidate %d (%s): %s", job.index,
                           job.url, payload)
        elif not self.done:
            self.tiles.append(payload)
            self._pbar.update()


def fetch_tiles(config, listing=None, image_source=None, progress=True):
    """
    Collect ``config.num_tiles`` tiles of size ``config.tile_size``.

    Parameters
    ----------
    config : MosaicConfig
    listing : object, optional
        defaults to the listing named by ``config.source``
    image_source : object, optional
        defaults to a web source, or a local one for ``source='directory'``
    progress : bool, optional

    Returns
    -------
    tiles : list
    """
    if listing is None:
        listing = make_listing(config)
    if image_source is None:
        if config.source == 'directory':
            image_source = LocalImageSource()
        else:
            image_source = WebImageSource(timeout=config.timeout,
                                          user_agent=config.user_agent)
    pager = SourcePager(listing, config.topic)
    aggregator = FetchAggregator(pager, image_source, config.num_tiles,
                                 config.tile_size,
                                 num_workers=config.num_workers,
                                 progress=progress)
    return aggregator.run()
