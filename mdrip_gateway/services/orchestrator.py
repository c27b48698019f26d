"""
Run conversion requests against the engine.

`run_single` never raises for engine failures: they come back as a
FetchFailure. `run_batch` starts every URL at once and joins by index, so the
output lines up with the input whatever order the fetches finish in.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Union

from mdrip_gateway.core.errors import describe_exception
from mdrip_gateway.fetch import engine
from mdrip_gateway.fetch.base import FetchOptions, MarkdownResult
from mdrip_gateway.schemas import BatchFetchRequest, FetchRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchSuccess:
    url: str
    result: MarkdownResult
    success: bool = True


@dataclass(frozen=True)
class FetchFailure:
    url: str
    error: str
    success: bool = False


FetchOutcome = Union[FetchSuccess, FetchFailure]


def _options(request: Union[FetchRequest, BatchFetchRequest], user_agent: str) -> FetchOptions:
    return FetchOptions(
        timeout_ms=request.timeout_ms,
        html_fallback=request.html_fallback,
        user_agent=user_agent,
    )


async def _convert(url: str, options: FetchOptions) -> FetchOutcome:
    try:
        result = await engine.fetch_markdown(url, options)
    except Exception as e:
        # CancelledError is not an Exception and still propagates
        message = describe_exception(e)
        logger.warning("Fetch failed for %s: %s", url, message)
        return FetchFailure(url=url, error=message)
    return FetchSuccess(url=url, result=result)


async def run_single(request: FetchRequest, user_agent: str) -> FetchOutcome:
    return await _convert(request.url, _options(request, user_agent))


async def run_batch(request: BatchFetchRequest, user_agent: str) -> List[FetchOutcome]:
    options = _options(request, user_agent)

    # gather() returns results in argument order, not completion order. No
    # extra timeout here: the engine enforces options.timeout_ms, and
    # cancelling the caller cancels every pending conversion.
    outcomes = list(await asyncio.gather(*(_convert(url, options) for url in request.urls)))

    failed = sum(1 for outcome in outcomes if not outcome.success)
    logger.info("Batch of %d finished: %d ok, %d failed", len(outcomes), len(outcomes) - failed, failed)
    return outcomes
