"""
Dask-based execution helpers

Runs the per-file DIS analysis as Dask delayed tasks, one per event
file, either on a local cluster or, without a client, on the
synchronous scheduler.
"""

import dask
from dask.distributed import Client, LocalCluster
from dask import delayed


def create_local_client(n_workers=4, threads_per_worker=1, processes=False):
    """
    Start a LocalCluster and connect a client to it.

    Parameters
    ----------
    n_workers : int
        Number of workers.
    threads_per_worker : int
        Threads per worker.
    processes : bool
        Run workers as processes; the default keeps them as threads,
        which works under WSL.

    Returns
    -------
    dask.distributed.Client
    """
    cluster = LocalCluster(
        n_workers=max(1, int(n_workers)),
        threads_per_worker=threads_per_worker,
        processes=processes,
    )
    return Client(cluster)


def compute_files(client, filenames, process_function, config):
    """
    Run `process_function(filename, config)` over every file.

    Parameters
    ----------
    client : dask.distributed.Client or None
        Cluster to compute on; None uses the synchronous scheduler.
    filenames : list of str
        Event files to process.
    process_function : callable
        Returns the per-file (histograms, info) pair, or None on failure.
    config : dict
        Passed unchanged to every call.

    Returns
    -------
    list
        One result per file, in the order of `filenames`.
    """
    tasks = [delayed(process_function)(name, config) for name in filenames]
    if client is None:
        return list(dask.compute(*tasks, scheduler="synchronous"))
    return client.gather(client.compute(tasks))
