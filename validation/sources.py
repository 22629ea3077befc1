"""
Validation - Concurrent Source Fetch.

Fetches every source for one validation pass in parallel, each under
its own timeout, so a slow or dead source cannot stall the others.
A source that fails or times out comes back as None; validators treat
it as missing data.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional


logger = logging.getLogger(__name__)

SourceFetcher = Callable[[], Awaitable[Any]]


async def fetch_source(name: str, fetcher: SourceFetcher, timeout_seconds: float) -> Optional[Any]:
    """Fetch one source; None on timeout or error."""
    start_time = time.time()
    try:
        return await asyncio.wait_for(fetcher(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Source {name} TIMEOUT after {timeout_seconds}s")
    except Exception as e:
        logger.warning(
            f"Source {name} failed after {(time.time() - start_time) * 1000:.0f}ms: {e}"
        )
    return None


async def fetch_all(
    fetchers: Mapping[str, SourceFetcher],
    timeout_seconds: float,
) -> Dict[str, Optional[Any]]:
    """
    Fetch all sources concurrently.
    
    Args:
        fetchers: Source name to zero-argument coroutine function
        timeout_seconds: Budget applied to each source independently
        
    Returns:
        Source name to payload, None where the fetch failed
    """
    names = list(fetchers)
    results = await asyncio.gather(
        *(fetch_source(name, fetchers[name], timeout_seconds) for name in names)
    )
    fetched = dict(zip(names, results))
    
    missing = [name for name, value in fetched.items() if value is None]
    if missing:
        logger.info(f"Fetched {len(names) - len(missing)}/{len(names)} sources, missing: {missing}")
    return fetched
