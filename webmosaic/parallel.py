from contextlib import nullcontext
import dask.bag
from dask.diagnostics import ProgressBar


def parallel_map(func, items, *, progress=True, num_workers=None):
    """
    Apply ``func`` to every item on a pool of threads.

    Threads (not processes) are used so that ``func`` may write into shared
    arrays, provided no two items write to the same region.

    Parameters
    ----------
    func : callable
    items : sequence
    progress : bool, optional
        display a progress bar while computing; default True
    num_workers : int or None, optional
        thread count; dask's default if None

    Returns
    -------
    results : list
        in the order of ``items``
    """
    items = list(items)
    if not items:
        return []
    bag = dask.bag.from_sequence(items).map(func)
    with (ProgressBar() if progress else nullcontext()):
        return bag.compute(scheduler='threads', num_workers=num_workers)
