# SPDX-License-Identifier: MIT
"""
Worker pool for parallel processing.

:func:`create_cluster` sizes a :mod:`joblib` pool to the available cores
minus a reserve. The resulting :class:`Cluster` is a scoped resource: the
caller releases it with :meth:`Cluster.close` (or a ``with`` block). It is
used for the local fits of GWR (through ``n_jobs``) and for resampling
several predictor layers at once (through :meth:`Cluster.map`).

Runtime dependencies
--------------------
- joblib
"""

from __future__ import annotations

from contextlib import ExitStack
from typing import Any, Callable, Iterable, List

from joblib import Parallel, cpu_count, delayed

from .errors import InvalidArgument

__all__ = ["Cluster", "create_cluster"]


class Cluster:
    """A fixed-size joblib worker pool kept alive between calls.

    Parameters
    ----------
    n_jobs : int
        Number of workers (>= 1).
    backend : str, default "loky"
        joblib backend (``"loky"``, ``"multiprocessing"`` or ``"threading"``).
    """

    def __init__(self, n_jobs: int, backend: str = "loky") -> None:
        if int(n_jobs) < 1:
            raise InvalidArgument(f"A cluster needs at least one worker, got {n_jobs}.")
        self.n_jobs = int(n_jobs)
        self.backend = backend
        self._stack = ExitStack()
        self._parallel = self._stack.enter_context(
            Parallel(n_jobs=self.n_jobs, backend=backend)
        )
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Cluster(n_jobs={self.n_jobs}, backend={self.backend!r}, {state})"

    def __enter__(self) -> "Cluster":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def map(self, func: Callable[..., Any], iterable: Iterable[Any]) -> List[Any]:
        """Apply *func* to every item; results come back in input order."""
        if self._closed:
            raise InvalidArgument("This cluster has been closed.")
        return list(self._parallel(delayed(func)(item) for item in iterable))

    def close(self) -> None:
        """Terminate the workers. Calling it again is a no-op."""
        if not self._closed:
            self._stack.close()
            self._closed = True


def create_cluster(free: int = 1, *, backend: str = "loky") -> Cluster:
    """
    Create a cluster for parallel processing.

    Detects the number of available cores, subtracts the number of cores to
    leave free, and starts a pool with the rest.

    Parameters
    ----------
    free : int, default 1
        Number of cores to leave free.
    backend : str, default "loky"
        joblib backend for the pool.

    Returns
    -------
    Cluster
        Open worker pool; release it with :meth:`Cluster.close`.

    Examples
    --------
    >>> with create_cluster(free=2) as cl:
    ...     out = downscale(tavg, elev, dem, method="gwr", cluster=cl)
    """
    if isinstance(free, bool) or int(free) != free or free < 0:
        raise InvalidArgument(f"free must be a non-negative integer, got {free!r}.")
    n_cores = cpu_count() - int(free)
    if n_cores < 1:
        raise InvalidArgument(
            f"Leaving {free} core(s) free leaves no worker on a "
            f"{cpu_count()}-core machine."
        )
    return Cluster(n_cores, backend=backend)
