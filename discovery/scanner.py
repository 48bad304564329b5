from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from client.probe import probe
from common.address import Address, subnet_hosts
from common.config import SCAN_FIRST_HOST, SCAN_LAST_HOST, SCAN_MAX_WORKERS, SOCKET_SEARCH_TIMEOUT
from common.errors import UnexpectedResponseError
from common.log import service_log

log = service_log()


def scan_network(
    ip: str,
    port: int,
    *,
    timeout: float = SOCKET_SEARCH_TIMEOUT,
    first_host: int = SCAN_FIRST_HOST,
    last_host: int = SCAN_LAST_HOST,
    max_workers: int = SCAN_MAX_WORKERS,
    prober: Callable[[str, int, float], Optional[Address]] = probe,
) -> Optional[Address]:
    """
    Look for a running sync server on the /24 subnet of `ip`.

    Every candidate is probed at once (max_workers=0) or through a capped
    pool, and the scan waits for all of them. The winner is the first valid
    address in host order, not the first to answer, so `.3` beats `.7` even
    if `.7` replies sooner.

    Probe failures never stop the scan; they only mean "no server there".
    """
    candidates = subnet_hosts(ip, first_host, last_host)
    workers = max_workers if max_workers > 0 else len(candidates)

    log.info("SCAN_START", subnet=f"{candidates[0]}..{candidates[-1]}", port=port, workers=workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync-probe") as pool:
        futures = [pool.submit(prober, candidate, port, timeout) for candidate in candidates]
        results: List[Optional[Address]] = [_outcome(f, candidate, port) for f, candidate in zip(futures, candidates)]

    found = next((r for r in results if r is not None), None)
    if found is None:
        log.info("SCAN_DONE", found="-", scanned=len(candidates))
    else:
        log.info("SCAN_DONE", found=found, scanned=len(candidates))
    return found


def _outcome(future, candidate: str, port: int) -> Optional[Address]:
    try:
        return future.result()
    except UnexpectedResponseError as e:
        log.warn("SCAN_INVALID_SERVER", addr=(candidate, port), response=repr(e.response))
    except OSError as e:
        log.warn("SCAN_PROBE_FAILED", addr=(candidate, port), error=e)
    return None
