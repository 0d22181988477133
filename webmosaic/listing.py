"""
Paginated listings of candidate tile images.

A listing has one method, ``list_page(topic, cursor) -> (items, next_cursor)``.
``cursor`` is None for the first page, and a ``next_cursor`` of None means
there are no further pages. Responses are parsed permissively: items lacking
a usable URL are skipped, and only a response missing its critical structure
raises :class:`SourceUnavailable`.
"""
import logging
import os
import re
import requests
from .config import DEFAULT_USER_AGENT
from .errors import SourceUnavailable


logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp')


def _get_json(session, url, timeout, **kwargs):
    try:
        response = session.get(url, timeout=timeout, **kwargs)
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as err:
        raise SourceUnavailable("{}: {}".format(url, err)) from err


class RedditListing:
    """
    Links posted to a subreddit, paged with reddit's ``after`` token.

    Links that do not end in an image extension get ``.jpg`` appended, which
    turns imgur page links into direct image links.
    """
    URL = "https://www.reddit.com/r/{topic}.json"

    def __init__(self, session=None, timeout=30,
                 user_agent=DEFAULT_USER_AGENT):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.user_agent = user_agent

    def list_page(self, topic, cursor):
        params = {}
        if cursor:
            params['after'] = cursor
        url = self.URL.format(topic=topic)
        payload = _get_json(self.session, url, self.timeout, params=params,
                            headers={'User-Agent': self.user_agent})
        data = payload.get('data') if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise SourceUnavailable("{}: response has no 'data'".format(url))
        children = data.get('children')
        if not isinstance(children, list):
            raise SourceUnavailable(
                "{}: response has no 'data.children'".format(url))
        urls = []
        for child in children:
            post = child.get('data') if isinstance(child, dict) else None
            link = post.get('url') if isinstance(post, dict) else None
            if not isinstance(link, str) or not link:
                continue
            if not link.lower().endswith(IMAGE_EXTENSIONS):
                link += '.jpg'
            urls.append(link)
        after = data.get('after')
        return urls, (after if isinstance(after, str) and after else None)


class ImgurListing:
    """
    Top posts of a subreddit gallery on imgur, paged by page number.

    Links are rewritten to imgur's small-thumbnail variant
    (``abc.jpg`` -> ``abcs.jpg``).
    """
    URL = "https://api.imgur.com/3/gallery/r/{topic}/top/{page}.json"
    _ENDING = re.compile(r'\.([a-z]{3})$')

    def __init__(self, client_id, session=None, timeout=30):
        if not client_id:
            raise ValueError("an imgur client id is required")
        self.client_id = client_id
        self.session = session or requests.Session()
        self.timeout = timeout

    def list_page(self, topic, cursor):
        page = cursor or 0
        url = self.URL.format(topic=topic, page=page)
        payload = _get_json(
            self.session, url, self.timeout,
            headers={'Authorization': 'Client-ID {}'.format(self.client_id)})
        if not isinstance(payload, dict) or payload.get('success') is False:
            raise SourceUnavailable("{}: request was not successful"
                                    "".format(url))
        posts = payload.get('data')
        if not isinstance(posts, list):
            raise SourceUnavailable("{}: response has no 'data'".format(url))
        urls = []
        for post in posts:
            link = post.get('link') if isinstance(post, dict) else None
            if isinstance(link, str) and link:
                urls.append(self._ENDING.sub(r's.\1', link))
        # An empty page is the end of the gallery.
        return urls, (page + 1 if posts else None)


class FlickrListing:
    """
    Photos matching a Flickr text search with the given license(s).

    Parameters
    ----------
    api_key : string
    license : list or None
        List of license codes documented by Flickr at
        https://www.flickr.com/services/api/flickr.photos.licenses.getInfo.html
        If None, defaults to ``[1, 2, 4, 5, 7, 8]``.
    per_page : int, optional
        default 500, the max allowed value, to conserve our queries
    """
    API_URL = 'https://api.flickr.com/services/rest/'
    PHOTO_URL = "https://live.staticflickr.com/{server}/{id}_{secret}_q.jpg"

    def __init__(self, api_key, license=None, per_page=500, session=None,
                 timeout=30):
        if not api_key:
            raise ValueError("a Flickr API key is required")
        if license is None:
            license = [1, 2, 4, 5, 7, 8]
        self.api_key = api_key
        self.license = license
        self.per_page = per_page
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, **kwargs):
        params = dict(api_key=self.api_key,
                      format='json',
                      nojsoncallback=1,
                      **kwargs)
        return _get_json(self.session, self.API_URL, self.timeout,
                         params=params)

    def list_page(self, topic, cursor):
        page = cursor or 1
        response = self._request(
                method='flickr.photos.search',
                license=','.join(map(str, self.license)),
                per_page=self.per_page,
                text=topic,
                content_type=1,  # photos only
                page=page
        )
        if not isinstance(response, dict) or response.get('stat') != 'ok':
            # If we fail requesting page 1, that's an error. If we fail
            # requesting page > 1, we're just out of photos.
            if page == 1:
                raise SourceUnavailable("response: {}".format(response))
            return [], None
        photos = response.get('photos')
        if not isinstance(photos, dict):
            raise SourceUnavailable("response has no 'photos': {}"
                                    "".format(response))
        urls = []
        for photo in photos.get('photo') or []:
            try:
                urls.append(self.PHOTO_URL.format(**photo))
            except (KeyError, TypeError):
                logger.debug("Skipping incomplete photo record %r", photo)
        pages = photos.get('pages')
        if not urls or (isinstance(pages, int) and page >= pages):
            return urls, None
        return urls, page + 1


class DirectoryListing:
    """
    Every image file below a local directory, as a single page.

    The ``topic`` passed to :meth:`list_page` is the directory.
    """
    def __init__(self, extensions=IMAGE_EXTENSIONS):
        self.extensions = tuple(ext.lower() for ext in extensions)

    def list_page(self, topic, cursor):
        if not os.path.isdir(topic):
            raise SourceUnavailable("{} is not a directory".format(topic))
        files = []
        for root, dirs, filenames in os.walk(topic):
            dirs.sort()
            for f in sorted(filenames):
                if f.lower().endswith(self.extensions):
                    files.append(os.path.join(root, f))
        return files, None


def make_listing(config, session=None):
    """
    Build the listing named by ``config.source``.

    Parameters
    ----------
    config : MosaicConfig
    session : requests.Session, optional

    Returns
    -------
    listing
    """
    if config.source == 'reddit':
        return RedditListing(session=session, timeout=config.timeout,
                             user_agent=config.user_agent)
    if config.source == 'imgur':
        return ImgurListing(config.imgur_client_id, session=session,
                            timeout=config.timeout)
    if config.source == 'flickr':
        return FlickrListing(config.flickr_api_key, session=session,
                             timeout=config.timeout)
    if config.source == 'directory':
        return DirectoryListing()
    raise ValueError("unknown source {!r}".format(config.source))


class SourcePager:
    """
    Step through a listing one page at a time.

    Not thread-safe; only the fetch aggregator should call
    :meth:`next_page`.

    Parameters
    ----------
    listing : object
        with a ``list_page(topic, cursor)`` method
    topic : string
    """
    def __init__(self, listing, topic):
        self.listing = listing
        self.topic = topic
        self.cursor = None
        self.exhausted = False
        self.pages = 0

    def next_page(self):
        """
        Request the page at the current cursor and advance.

        Returns
        -------
        urls : list
        cursor : object
            cursor for the following page; None once the listing is exhausted

        Raises
        ------
        SourceUnavailable
        """
        if self.exhausted:
            return [], None
        try:
            items, cursor = self.listing.list_page(self.topic, self.cursor)
        except SourceUnavailable:
            raise
        except (KeyError, TypeError, ValueError,
                requests.RequestException) as err:
            raise SourceUnavailable(
                "listing for {!r} failed: {}".format(self.topic, err)) from err
        self.pages += 1
        self.cursor = cursor
        if cursor is None:
            self.exhausted = True
        logger.debug("page %d of %r: %d candidates", self.pages, self.topic,
                     len(items))
        return list(items), cursor
