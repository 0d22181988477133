"""
Exceptions raised by webmosaic.

Per-candidate failures (``ImageLoadError`` and its subclasses) are reported
and skipped by the fetch pipeline. ``SourceUnavailable`` and
``InsufficientTiles`` abort a whole run.
"""


class MosaicError(Exception):
    "Base class for every error raised by this package."


class SourceUnavailable(MosaicError):
    "The listing source failed or returned data that could not be parsed."


class ImageLoadError(MosaicError):
    """
    A single image could not be loaded.

    Parameters
    ----------
    identifier : string
        URL or path of the image
    reason : string
    """
    def __init__(self, identifier, reason=''):
        self.identifier = identifier
        self.reason = reason
        msg = str(identifier)
        if reason:
            msg = '{}: {}'.format(identifier, reason)
        super().__init__(msg)


class NotFound(ImageLoadError):
    pass


class NotAnImage(ImageLoadError):
    pass


class DecodeError(ImageLoadError):
    pass


class TransportError(ImageLoadError):
    pass


class InsufficientTiles(MosaicError):
    """
    The listing source ran out before enough tiles were collected.

    Every submitted job is accounted for:
    ``collected + failed + unprocessed == submitted``.
    """
    def __init__(self, requested, collected, failed, submitted,
                 unprocessed=0):
        self.requested = requested
        self.collected = collected
        self.failed = failed
        self.submitted = submitted
        self.unprocessed = unprocessed
        super().__init__(
            "Only {collected} of {requested} tiles could be collected "
            "({submitted} candidates submitted, {failed} failed, "
            "{unprocessed} unprocessed)".format(
                collected=collected, requested=requested,
                submitted=submitted, failed=failed, unprocessed=unprocessed))


class EmptyIndexError(MosaicError, ValueError):
    "A TileIndex was built from zero tiles."
