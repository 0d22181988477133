import os
import queue
import threading
import numpy as np
import pytest
import requests
import webmosaic as wm
from skimage.io import imsave
from webmosaic.cli import main
from webmosaic.color import color_distances, to_ycbcr
from webmosaic.fetch import FAILURE, SUCCESS
from conftest import (BrokenListing, FakeImageSource, PagedListing,
                      rainbow_of_squares, solid)


def save_png(path, image):
    imsave(str(path), image, check_contrast=False)
    return str(path)


def png_bytes(tmp_path, image):
    path = save_png(tmp_path / 'encoded.png', image)
    with open(path, 'rb') as f:
        return f.read()


# color profiling

def test_average_color_of_solid_image():
    assert wm.average_color(solid((10, 20, 30))) == (10, 20, 30, 255)
    assert wm.average_color(solid((1, 2, 3, 4))) == (1, 2, 3, 4)


def test_average_color_within_bounds_and_order_invariant():
    rng = np.random.RandomState(0)
    img = rng.randint(20, 200, size=(13, 7, 4)).astype(np.uint8)
    avg = wm.average_color(img)
    pixels = img.reshape(-1, 4)
    for c in range(4):
        assert pixels[:, c].min() <= avg[c] <= pixels[:, c].max()
    shuffled = pixels[rng.permutation(len(pixels))].reshape(7, 13, 4)
    assert wm.average_color(shuffled) == avg


def test_average_color_truncates():
    img = np.array([[[0, 0, 0, 0], [1, 3, 255, 255]]], dtype=np.uint8)
    assert wm.average_color(img) == (0, 1, 127, 127)


def test_average_color_large_region_does_not_overflow():
    img = np.full((2000, 2000, 4), 255, dtype=np.uint8)
    assert wm.average_color(img) == (255, 255, 255, 255)


def test_average_color_of_empty_region():
    with pytest.raises(ValueError):
        wm.average_color(np.zeros((0, 3, 4), dtype=np.uint8))


def test_standardize_image():
    gray = np.linspace(0, 1, 12).reshape(3, 4)
    result = wm.standardize_image(gray)
    assert result.shape == (3, 4, 4)
    assert result.dtype == np.uint8
    assert np.all(result[..., 3] == 255)
    assert result[0, 0, 0] == 0 and result[-1, -1, 0] == 255

    rgb = solid((5, 6, 7))
    result = wm.standardize_image(rgb)
    assert result.shape == (10, 10, 4)
    assert tuple(result[0, 0]) == (5, 6, 7, 255)

    with pytest.raises(ValueError):
        wm.standardize_image(np.zeros((3, 3, 5), dtype=np.uint8))


def test_standardize_gray_with_alpha():
    gray_alpha = np.zeros((3, 4, 2), dtype=np.uint8)
    gray_alpha[..., 0] = 70
    gray_alpha[..., 1] = 128
    result = wm.standardize_image(gray_alpha)
    assert result.shape == (3, 4, 4)
    assert result.dtype == np.uint8
    assert tuple(result[1, 2]) == (70, 70, 70, 128)
    assert wm.average_color(gray_alpha) == (70, 70, 70, 128)


def test_color_distance_identity_and_symmetry():
    colors = [wm.ColorDescriptor(0, 0, 0, 0),
              wm.ColorDescriptor(255, 255, 255, 255),
              wm.ColorDescriptor(12, 200, 40, 255),
              wm.ColorDescriptor(128, 128, 128, 0)]
    for a in colors:
        assert wm.color_distance(a, a) == 0
        for b in colors:
            assert wm.color_distance(a, b) == wm.color_distance(b, a)
            if a != b:
                assert wm.color_distance(a, b) > 0


def test_color_distance_distinguishes_single_steps():
    black = wm.ColorDescriptor(0, 0, 0, 0)
    for other in [(1, 0, 0, 0), (0, 1, 0, 0), (0, 0, 1, 0), (0, 0, 0, 1)]:
        assert wm.color_distance(black, wm.ColorDescriptor(*other)) > 0


def test_color_distance_weights_luma():
    # A step in green moves luma the most.
    black = wm.ColorDescriptor(0, 0, 0, 255)
    green = wm.ColorDescriptor(0, 10, 0, 255)
    blue = wm.ColorDescriptor(0, 0, 10, 255)
    assert to_ycbcr(green)[0] > to_ycbcr(blue)[0]
    assert wm.color_distance(black, green) != wm.color_distance(black, blue)


def test_color_distances_matches_scalar_version():
    rng = np.random.RandomState(1)
    descriptors = rng.randint(0, 256, size=(20, 4))
    query = wm.ColorDescriptor(*rng.randint(0, 256, size=4).tolist())
    expected = [wm.color_distance(query, wm.ColorDescriptor(*d.tolist()))
                for d in descriptors]
    assert color_distances(query, descriptors).tolist() == expected


# tile index

def test_nearest_by_color_scenario():
    tiles = [wm.make_tile(solid(c)) for c in [(0, 0, 0, 0),
                                               (255, 255, 255, 0),
                                               (128, 128, 128, 0)]]
    index = wm.TileIndex(tiles)
    nearest = index.nearest_by_color(wm.ColorDescriptor(10, 10, 10, 0))
    assert nearest.descriptor == (0, 0, 0, 0)
    assert nearest is tiles[0]


def test_nearest_by_color_breaks_ties_by_order():
    tiles = [wm.make_tile(solid(c)) for c in [(20, 20, 20), (0, 0, 0),
                                               (20, 20, 20)]]
    index = wm.TileIndex(tiles)
    query = wm.ColorDescriptor(10, 10, 10, 255)
    # equidistant from gray 20 and black
    assert (wm.color_distance(query, tiles[0].descriptor) ==
            wm.color_distance(query, tiles[1].descriptor))
    assert index.nearest_by_color(query) is tiles[0]
    assert index.nearest_by_color(tiles[2].descriptor) is tiles[0]


def test_nearest_by_color_minimizes_distance(index):
    rng = np.random.RandomState(2)
    for _ in range(20):
        query = wm.ColorDescriptor(*rng.randint(0, 256, size=4).tolist())
        distances = [wm.color_distance(query, t.descriptor) for t in index]
        best = distances.index(min(distances))
        assert index.nearest_by_color(query) is index[best]


def test_empty_index():
    with pytest.raises(wm.EmptyIndexError):
        wm.TileIndex([])
    # It is also a ValueError, i.e. a configuration error.
    with pytest.raises(ValueError):
        wm.TileIndex(iter([]))


def test_index_rejects_mixed_shapes():
    with pytest.raises(ValueError):
        wm.TileIndex([wm.make_tile(solid((0, 0, 0), (10, 10))),
                      wm.make_tile(solid((0, 0, 0), (5, 5)))])


def test_tiles_are_read_only(pool):
    with pytest.raises(ValueError):
        pool[0].image[0, 0, 0] = 1


def test_make_tile_copies_input():
    img = solid((1, 2, 3, 4))
    tile = wm.make_tile(img)
    img[:] = 0
    assert tile.descriptor == (1, 2, 3, 4)
    assert img.flags.writeable


def test_from_images():
    index = wm.TileIndex.from_images([solid((0, 0, 0)), solid((9, 9, 9))])
    assert len(index) == 2
    assert index[1].descriptor == (9, 9, 9, 255)


def test_nearest_by_image_prefers_matching_texture():
    checker = np.zeros((10, 10, 3), dtype=np.uint8)
    checker[::2, ::2] = 255
    checker[1::2, 1::2] = 255
    tiles = [wm.make_tile(solid((128, 128, 128))), wm.make_tile(checker)]
    index = wm.TileIndex(tiles)
    assert index.nearest_by_image(checker) is tiles[1]


def test_nearest_by_image_falls_back_to_color_on_ties():
    tiles = [wm.make_tile(solid(c)) for c in [(0, 0, 0), (255, 255, 255),
                                               (240, 240, 240)]]
    index = wm.TileIndex(tiles)
    # Every solid tile differs uniformly from a solid region.
    assert index.nearest_by_image(solid((200, 200, 200))) is tiles[2]
    # Regions of another size are resized first.
    assert index.nearest_by_image(solid((10, 10, 10), (30, 20))) is tiles[0]


def test_matcher(index):
    region = solid((80, 170, 10), (7, 7))
    by_color = index.matcher('color')
    assert by_color(region) is index.nearest_by_color(
        wm.average_color(region))
    by_image = index.matcher('image-variance')
    assert by_image(region) is index.nearest_by_image(region)
    with pytest.raises(ValueError):
        index.matcher('dominant-color')


# composition

def test_grid_dims():
    assert wm.grid_dims((100, 100, 3), 25) == (4, 4)
    assert wm.grid_dims((110, 99), 25) == (4, 3)
    with pytest.raises(ValueError):
        wm.grid_dims((100, 100), 0)


def test_crop_to_multiple_is_a_view():
    img = np.zeros((110, 95, 4), dtype=np.uint8)
    cropped = wm.crop_to_multiple(img, 25)
    assert cropped.shape == (100, 75, 4)
    assert np.shares_memory(cropped, img)


def test_partition():
    cells = wm.partition((4, 4), 25)
    assert len(cells) == 16
    assert cells[0] == (slice(0, 25), slice(0, 25))
    assert cells[-1] == (slice(75, 100), slice(75, 100))


def test_compose_scenario():
    "100x100 image, tile size 25: a 4x4 grid, output 100x100"
    rng = np.random.RandomState(3)
    img = rng.randint(0, 256, size=(100, 100, 3)).astype(np.uint8)
    index = wm.TileIndex(rainbow_of_squares(size=25))
    mosaic = wm.compose(img, index, 25, progress=False)
    assert mosaic.shape == (100, 100, 4)
    assert mosaic.dtype == np.uint8


def test_compose_every_pixel_comes_from_the_matched_tile(index):
    rng = np.random.RandomState(4)
    img = rng.randint(0, 256, size=(53, 47, 3)).astype(np.uint8)
    mosaic = wm.compose(img, index, 10, progress=False)
    assert mosaic.shape == (50, 40, 4)
    source = wm.standardize_image(img)
    for y, x in wm.partition((5, 4), 10):
        expected = index.nearest_by_color(wm.average_color(source[y, x]))
        assert np.array_equal(mosaic[y, x], expected.image)


def test_compose_is_deterministic(index, image):
    first = wm.compose(image, index, 10, progress=False)
    second = wm.compose(image, index, 10, progress=False)
    assert first.shape == (300, 450, 4)
    assert np.array_equal(first, second)


def test_compose_with_sample_size(index):
    img = solid((200, 10, 10), (100, 100))
    mosaic = wm.compose(img, index, 10, sample_size=20, progress=False)
    assert mosaic.shape == (50, 50, 4)
    tile = index.nearest_by_color(wm.average_color(img))
    assert np.array_equal(mosaic[:10, :10], tile.image)


def test_compose_image_variance(index, image):
    mosaic = wm.compose(image[:60, :80], index, 10,
                        strategy='image-variance', progress=False)
    assert mosaic.shape == (60, 80, 4)


def test_compose_rejects_bad_input(index):
    with pytest.raises(ValueError):
        wm.compose(solid((0, 0, 0), (5, 50)), index, 10, progress=False)
    with pytest.raises(ValueError):
        wm.compose(solid((0, 0, 0), (50, 50)), index, 25, progress=False)
    with pytest.raises(ValueError):
        wm.compose(solid((0, 0, 0), (50, 50)), index, 10, strategy='nope',
                   progress=False)


def test_auto_sample_size():
    assert wm.auto_sample_size((3000, 2000, 3), 25) == 20
    assert wm.auto_sample_size((10, 10, 3), 25) == 1


# fetch pipeline

def test_prepare_tile_crops_center_square():
    img = solid((255, 0, 0), (30, 50))
    img[:, 10:40] = (0, 0, 255)
    tile = wm.prepare_tile(img, 10)
    assert tile.image.shape == (10, 10, 4)
    assert not tile.image.flags.writeable
    assert np.allclose(tile.image[..., :3], (0, 0, 255), atol=1)
    assert tile.descriptor[2] >= 254


def test_prepare_tile_enlarges_small_images():
    tile = wm.prepare_tile(solid((7, 8, 9), (4, 6)), 12)
    assert tile.image.shape == (12, 12, 4)


def test_prepare_tile_from_gray_with_alpha():
    tile = wm.prepare_tile(solid((90, 200), (20, 30)), 10)
    assert tile.image.shape == (10, 10, 4)
    assert tile.descriptor == (90, 90, 90, 200)


def test_pool_reports_each_outcome(image_source):
    results = queue.Queue()
    pool = wm.FetchWorkerPool(image_source, 8, results, num_workers=3)
    with pool:
        jobs = [wm.FetchJob(i, url)
                for i, url in enumerate(['ok-1', 'bad-2', 'weird-3',
                                         'ok-4', 'missing-5'])]
        for job in jobs:
            pool.submit(job)
    outcomes = {}
    while not results.empty():
        kind, job, payload = results.get()
        outcomes[job.url] = (kind, payload)
    assert len(outcomes) == 5
    assert outcomes['ok-1'][0] == SUCCESS
    assert outcomes['ok-1'][1].image.shape == (8, 8, 4)
    assert outcomes['ok-4'][0] == SUCCESS
    assert outcomes['bad-2'][0] == FAILURE
    assert isinstance(outcomes['bad-2'][1], wm.NotAnImage)
    assert isinstance(outcomes['weird-3'][1], wm.DecodeError)
    assert isinstance(outcomes['missing-5'][1], wm.NotFound)
    with pytest.raises(RuntimeError):
        pool.submit(wm.FetchJob(6, 'ok-6'))


def run_aggregator(listing, image_source, num_tiles, num_workers,
                   tile_size=8):
    pager = wm.SourcePager(listing, 'pics')
    aggregator = wm.FetchAggregator(pager, image_source, num_tiles,
                                    tile_size, num_workers=num_workers,
                                    progress=False)
    return aggregator, pager


def test_fetch_collects_exactly_the_target(image_source):
    listing = PagedListing([['ok-a', 'bad-b', 'ok-c', 'ok-d']], repeat=True)
    aggregator, pager = run_aggregator(listing, image_source, 7, 4)
    tiles = aggregator.run()
    assert len(tiles) == 7
    assert aggregator.state == wm.FetchState.DONE
    assert all(t.image.shape == (8, 8, 4) for t in tiles)
    assert aggregator.submitted >= 7


def test_fetch_stops_mid_page(image_source):
    "N=5, pages of 3 candidates of which 2 fail"
    listing = PagedListing([['ok', 'bad-1', 'bad-2']], repeat=True)
    aggregator, pager = run_aggregator(listing, image_source, 5, 1)
    tiles = aggregator.run()
    assert len(tiles) == 5
    # With one worker, the fifth success arrives while the second candidate
    # of the fifth page waits to be submitted.
    assert pager.pages == 5
    assert len(listing.calls) == 5
    assert aggregator.submitted == 13
    assert aggregator.failed == 8
    assert len(image_source.loaded) == 13


def test_fetch_insufficient_tiles(image_source):
    listing = PagedListing([['ok-1', 'bad-1'], ['bad-2', 'ok-2']])
    aggregator, pager = run_aggregator(listing, image_source, 5, 3)
    with pytest.raises(wm.InsufficientTiles) as excinfo:
        aggregator.run()
    err = excinfo.value
    assert aggregator.state == wm.FetchState.FAILED
    assert err.requested == 5
    assert err.collected == 2
    assert err.failed == 2
    assert err.submitted == 4
    assert err.collected + err.failed + err.unprocessed == err.submitted


def test_fetch_drains_in_flight_jobs(image_source):
    "The listing runs out, but jobs still in flight complete the target."
    listing = PagedListing([['slow-1', 'slow-2', 'slow-3']])
    aggregator, pager = run_aggregator(listing, image_source, 3, 3)
    tiles = aggregator.run()
    assert len(tiles) == 3
    assert pager.exhausted
    assert aggregator.state == wm.FetchState.DONE


def test_fetch_orders_tiles_by_arrival(image_source):
    listing = PagedListing([['slow-1', 'ok-2']])
    aggregator, pager = run_aggregator(listing, image_source, 2, 2)
    tiles = aggregator.run()
    colors = [t.descriptor[:3] for t in tiles]
    assert colors == [FakeImageSource.color_of('ok-2'),
                      FakeImageSource.color_of('slow-1')]


def test_fetch_source_unavailable(image_source):
    listing = BrokenListing(wm.SourceUnavailable("listing is down"))
    aggregator, pager = run_aggregator(listing, image_source, 3, 2)
    with pytest.raises(wm.SourceUnavailable):
        aggregator.run()
    assert aggregator.state == wm.FetchState.FAILED
    assert image_source.loaded == []


def test_fetch_source_unavailable_after_first_page(image_source):
    class FlakyListing:
        def list_page(self, topic, cursor):
            if cursor is None:
                return ['bad-1', 'bad-2'], 'next'
            raise wm.SourceUnavailable("gone")

    aggregator, pager = run_aggregator(FlakyListing(), image_source, 3, 2)
    with pytest.raises(wm.SourceUnavailable):
        aggregator.run()


def test_fetch_leaves_no_workers_running(image_source):
    listing = PagedListing([['slow-a', 'ok-b', 'ok-c', 'slow-d']],
                           repeat=True)
    aggregator, pager = run_aggregator(listing, image_source, 2, 4)
    aggregator.run()
    assert not [t for t in threading.enumerate()
                if t.name.startswith('fetch-worker')]


def test_fetch_tiles(image_source):
    config = wm.MosaicConfig(num_tiles=4, tile_size=6, num_workers=2)
    listing = PagedListing([['ok-1', 'ok-2'], ['ok-3', 'ok-4', 'ok-5']])
    tiles = wm.fetch_tiles(config, listing=listing,
                           image_source=image_source, progress=False)
    assert len(tiles) == 4
    assert tiles[0].image.shape == (6, 6, 4)


# pager and listings

def test_pager_tracks_cursor():
    listing = PagedListing([['a', 'b'], ['c']])
    pager = wm.SourcePager(listing, 'pics')
    assert pager.next_page() == (['a', 'b'], 1)
    assert not pager.exhausted
    assert pager.next_page() == (['c'], None)
    assert pager.exhausted
    assert pager.next_page() == ([], None)
    # No request is made once exhausted.
    assert listing.calls == [None, 1]


def test_pager_wraps_malformed_data():
    pager = wm.SourcePager(BrokenListing(KeyError('data')), 'pics')
    with pytest.raises(wm.SourceUnavailable):
        pager.next_page()


class FakeResponse:
    def __init__(self, payload=None, status_code=200, headers=None,
                 content=b''):
        self.payload = payload
        self.status_code = status_code
        self.headers = headers or {}
        self.content = content

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError("{} Error".format(self.status_code))

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_reddit_listing():
    payload = {'kind': 'Listing',
               'data': {'children': [
                   {'data': {'url': 'https://i.imgur.com/a.jpg'}},
                   {'data': {'url': 'https://imgur.com/b'}},
                   {'data': {'title': 'no url'}},
                   'junk',
                   {'kind': 't3'}],
                        'after': 't3_x'}}
    last = {'data': {'children': [], 'after': None}}
    session = FakeSession(FakeResponse(payload), FakeResponse(last))
    listing = wm.RedditListing(session=session)
    urls, cursor = listing.list_page('pics', None)
    assert urls == ['https://i.imgur.com/a.jpg', 'https://imgur.com/b.jpg']
    assert cursor == 't3_x'
    assert listing.list_page('pics', cursor) == ([], None)
    assert session.requests[0][1]['params'] == {}
    url, kwargs = session.requests[1]
    assert url == 'https://www.reddit.com/r/pics.json'
    assert kwargs['params'] == {'after': 't3_x'}
    assert 'User-Agent' in kwargs['headers']


@pytest.mark.parametrize('response', [
    FakeResponse({'error': 404}),
    FakeResponse({'data': {'after': None}}),
    FakeResponse(['not', 'a', 'dict']),
    FakeResponse(ValueError("Expecting value")),
    FakeResponse({}, status_code=503),
    requests.ConnectionError("connection refused"),
])
def test_reddit_listing_unavailable(response):
    listing = wm.RedditListing(session=FakeSession(response))
    with pytest.raises(wm.SourceUnavailable):
        listing.list_page('pics', None)


def test_imgur_listing():
    payload = {'success': True, 'status': 200,
               'data': [{'link': 'https://i.imgur.com/abc.jpg'},
                        {'link': 'https://i.imgur.com/def.png'},
                        {'title': 'album without link'}]}
    session = FakeSession(FakeResponse(payload),
                          FakeResponse({'success': True, 'data': []}),
                          FakeResponse({'success': False, 'data': {}}))
    listing = wm.ImgurListing('client', session=session)
    urls, cursor = listing.list_page('aww', None)
    assert urls == ['https://i.imgur.com/abcs.jpg',
                    'https://i.imgur.com/defs.png']
    assert cursor == 1
    assert listing.list_page('aww', cursor) == ([], None)
    url, kwargs = session.requests[1]
    assert url == 'https://api.imgur.com/3/gallery/r/aww/top/1.json'
    assert kwargs['headers'] == {'Authorization': 'Client-ID client'}
    with pytest.raises(wm.SourceUnavailable):
        listing.list_page('aww', 2)
    with pytest.raises(ValueError):
        wm.ImgurListing(None)


def test_flickr_listing():
    photo = {'id': '1', 'secret': 's', 'server': '2', 'farm': 3,
             'title': 't'}
    page1 = {'stat': 'ok', 'photos': {'page': 1, 'pages': 2,
                                      'photo': [photo, {'id': '9'}]}}
    page2 = {'stat': 'ok', 'photos': {'page': 2, 'pages': 2,
                                      'photo': [photo]}}
    session = FakeSession(FakeResponse(page1), FakeResponse(page2),
                          FakeResponse({'stat': 'fail'}),
                          FakeResponse({'stat': 'fail'}))
    listing = wm.FlickrListing('key', session=session)
    urls, cursor = listing.list_page('cats', None)
    assert urls == ['https://live.staticflickr.com/2/1_s_q.jpg']
    assert cursor == 2
    assert listing.list_page('cats', cursor)[1] is None
    assert session.requests[0][1]['params']['text'] == 'cats'
    # Failing past the first page just means we are out of photos.
    assert listing.list_page('cats', 3) == ([], None)
    with pytest.raises(wm.SourceUnavailable):
        listing.list_page('cats', None)


def test_directory_listing(tmp_path):
    save_png(tmp_path / 'b.png', solid((1, 2, 3)))
    os.makedirs(str(tmp_path / 'sub'))
    save_png(tmp_path / 'sub' / 'a.png', solid((1, 2, 3)))
    (tmp_path / 'notes.txt').write_text('not an image')
    files, cursor = wm.DirectoryListing().list_page(str(tmp_path), None)
    assert cursor is None
    assert [os.path.basename(f) for f in files] == ['b.png', 'a.png']
    with pytest.raises(wm.SourceUnavailable):
        wm.DirectoryListing().list_page(str(tmp_path / 'missing'), None)


def test_make_listing():
    config = wm.MosaicConfig()
    assert isinstance(wm.make_listing(config), wm.RedditListing)
    config = config.replace(source='imgur', imgur_client_id='id')
    assert isinstance(wm.make_listing(config), wm.ImgurListing)
    config = config.replace(source='directory')
    assert isinstance(wm.make_listing(config), wm.DirectoryListing)
    with pytest.raises(ValueError):
        wm.make_listing(config.replace(source='flickr'))


# image sources

def test_web_image_source(tmp_path):
    data = png_bytes(tmp_path, solid((9, 8, 7), (4, 6)))
    session = FakeSession(
        FakeResponse(headers={'Content-Type': 'image/png'}, content=data),
        FakeResponse(headers={'Content-Type': 'text/html; charset=utf-8'},
                     content=b'<html></html>'),
        FakeResponse(status_code=404),
        FakeResponse(status_code=500),
        FakeResponse(headers={'Content-Type': 'image/jpeg'},
                     content=b'definitely not a jpeg'),
        requests.ConnectionError("connection reset"))
    source = wm.WebImageSource(session=session)
    img = source.load_image('https://example.com/a.png')
    assert img.shape[:2] == (4, 6)
    assert tuple(img[0, 0, :3]) == (9, 8, 7)
    with pytest.raises(wm.NotAnImage):
        source.load_image('https://example.com/page')
    with pytest.raises(wm.NotFound):
        source.load_image('https://example.com/gone.png')
    with pytest.raises(wm.TransportError):
        source.load_image('https://example.com/error.png')
    with pytest.raises(wm.DecodeError):
        source.load_image('https://example.com/corrupt.jpg')
    with pytest.raises(wm.TransportError):
        source.load_image('https://example.com/reset.png')


def test_local_image_source(tmp_path):
    path = save_png(tmp_path / 'a.png', solid((3, 2, 1)))
    (tmp_path / 'fake.png').write_text('not an image')
    source = wm.LocalImageSource()
    assert source.load_image(path).shape[:2] == (10, 10)
    with pytest.raises(wm.NotFound):
        source.load_image(str(tmp_path / 'missing.png'))
    with pytest.raises(wm.DecodeError):
        source.load_image(str(tmp_path / 'fake.png'))
    assert wm.load_image(path).shape[:2] == (10, 10)


class CountingSource:
    def __init__(self):
        self.calls = []

    def load_image(self, identifier):
        self.calls.append(identifier)
        if identifier.startswith('bad'):
            raise wm.NotAnImage(identifier)
        return solid((len(self.calls), 0, 0))


def test_cached_image_source():
    inner = CountingSource()
    cache = wm.CachedImageSource(inner, max_entries=2)
    first = cache.load_image('a')
    assert cache.load_image('a') is first
    assert inner.calls == ['a']
    assert (cache.hits, cache.misses) == (1, 1)
    cache.load_image('b')
    cache.load_image('a')  # 'a' is now the most recently used
    cache.load_image('c')  # evicts 'b'
    assert len(cache) == 2
    assert 'a' in cache and 'c' in cache and 'b' not in cache
    cache.load_image('b')
    assert inner.calls == ['a', 'b', 'c', 'b']


def test_cached_image_source_does_not_cache_failures():
    inner = CountingSource()
    cache = wm.CachedImageSource(inner)
    for _ in range(2):
        with pytest.raises(wm.NotAnImage):
            cache.load_image('bad')
    assert inner.calls == ['bad', 'bad']
    assert len(cache) == 0


def test_cached_image_source_expiry():
    now = [0.0]
    inner = CountingSource()
    cache = wm.CachedImageSource(inner, ttl=10, clock=lambda: now[0])
    cache.load_image('a')
    now[0] = 5
    cache.load_image('a')
    now[0] = 16
    cache.load_image('a')
    assert inner.calls == ['a', 'a']
    with pytest.raises(ValueError):
        wm.CachedImageSource(inner, max_entries=0)


# configuration

def test_config_defaults():
    config = wm.MosaicConfig()
    assert config.num_tiles == 100
    assert config.tile_size == 25
    assert config.effective_sample_size == 25
    assert config.strategy == 'color'
    assert config.num_workers == 10
    assert config.replace(sample_size=5).effective_sample_size == 5
    assert 'tile_size=25' in repr(config)


@pytest.mark.parametrize('kwargs', [
    {'num_tiles': 0},
    {'tile_size': 0},
    {'sample_size': -1},
    {'strategy': 'nearest'},
    {'source': 'instagram'},
    {'num_workers': 0},
])
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        wm.MosaicConfig(**kwargs)


def test_config_from_env():
    env = {'WEBMOSAIC_IMGUR_CLIENT_ID': 'abc'}
    config = wm.MosaicConfig.from_env(env, topic='aww')
    assert config.imgur_client_id == 'abc'
    assert config.flickr_api_key is None
    assert config.topic == 'aww'
    config = wm.MosaicConfig.from_env(env, imgur_client_id='explicit')
    assert config.imgur_client_id == 'explicit'


# end to end

def test_make_mosaic(image, image_source):
    config = wm.MosaicConfig(num_tiles=6, tile_size=10, num_workers=3)
    listing = PagedListing([['ok-{}'.format(i) for i in range(4)],
                            ['bad-1', 'ok-x', 'ok-y', 'ok-z']])
    mosaic = wm.make_mosaic(image, config, listing=listing,
                            image_source=image_source, progress=False)
    assert mosaic.shape == (300, 450, 4)


def test_make_mosaic_produces_nothing_without_enough_tiles(image,
                                                           image_source):
    config = wm.MosaicConfig(num_tiles=6, tile_size=10, num_workers=3)
    listing = PagedListing([['ok-1', 'bad-1']])
    with pytest.raises(wm.InsufficientTiles):
        wm.make_mosaic(image, config, listing=listing,
                       image_source=image_source, progress=False)


def test_make_mosaic_rejects_tiny_image_before_fetching(image_source):
    config = wm.MosaicConfig(num_tiles=2, tile_size=10)
    listing = PagedListing([['ok-1', 'ok-2']])
    with pytest.raises(ValueError):
        wm.make_mosaic(solid((0, 0, 0), (5, 5)), config, listing=listing,
                       image_source=image_source, progress=False)
    assert listing.calls == []


def test_cli(tmp_path):
    tile_dir = tmp_path / 'tiles'
    os.makedirs(str(tile_dir))
    for i, color in enumerate([(0, 0, 0), (255, 0, 0), (0, 0, 255)]):
        save_png(tile_dir / '{}.png'.format(i), solid(color, (8, 12)))
    infile = save_png(tmp_path / 'in.png', solid((250, 10, 10), (40, 30)))
    outfile = str(tmp_path / 'out.png')
    status = main([infile, outfile, '--source', 'directory',
                   '--topic', str(tile_dir), '-n', '3', '-t', '5', '-q'])
    assert status == 0
    assert os.path.exists(outfile)

    status = main([str(tmp_path / 'missing.png'), outfile])
    assert status == 1

    status = main([infile, outfile, '--source', 'directory',
                   '--topic', str(tile_dir), '-n', '10', '-t', '5', '-q'])
    assert status == 1


def test_cli_accepts_gray_with_alpha_input(tmp_path):
    tile_dir = tmp_path / 'tiles'
    os.makedirs(str(tile_dir))
    for i, color in enumerate([(0, 0, 0), (255, 255, 255)]):
        save_png(tile_dir / '{}.png'.format(i), solid(color, (8, 8)))
    infile = save_png(tmp_path / 'in.png', solid((200, 255), (40, 40)))
    assert wm.load_image(infile).shape == (40, 40, 2)
    outfile = str(tmp_path / 'out.png')
    status = main([infile, outfile, '--source', 'directory',
                   '--topic', str(tile_dir), '-n', '2', '-t', '5', '-q'])
    assert status == 0
    assert os.path.exists(outfile)


def test_cli_reports_unusable_input_image(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr('webmosaic.cli.load_image',
                        lambda identifier: np.zeros((40, 40, 7), np.uint8))
    status = main(['in.png', str(tmp_path / 'out.png'), '-q'])
    assert status == 1
    err = capsys.readouterr().err
    assert 'Bad input image' in err
    assert 'Invalid settings' not in err
