"""Batched LLM map with per-batch fallback.

Items are split into fixed-size batches of consecutive, index-tagged entries.
Each batch becomes one prompt and one model call; at most ``max_concurrent``
batches are in flight. A batch that fails for any reason (exhausted failover,
unparseable output, missing ``results``) is replaced by fallback values, and
indices the model left out of an otherwise good answer get fallbacks too, so
the returned map always has exactly one entry per input index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar

from ai_digest.config import DEFAULT_BATCH_SIZE, DEFAULT_MAX_CONCURRENT_BATCHES
from ai_digest.errors import ResponseParseError
from ai_digest.llm.parsing import parse_structured_response
from ai_digest.pipeline.concurrency import bounded_gather

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

InvokeFn = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class IndexedItem(Generic[T]):
    index: int
    value: T


@dataclass(frozen=True)
class Batch(Generic[T]):
    number: int  # 1-based, for log lines
    items: List[IndexedItem[T]]

    @property
    def indices(self) -> List[int]:
        return [item.index for item in self.items]


def partition(items: Sequence[T], batch_size: int) -> List[Batch[T]]:
    """Split ``items`` into ceil(N / batch_size) batches, keeping each item's index."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    indexed = [IndexedItem(i, value) for i, value in enumerate(items)]
    return [
        Batch(number=n, items=indexed[start:start + batch_size])
        for n, start in enumerate(range(0, len(indexed), batch_size), 1)
    ]


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def iter_result_records(parsed: Dict[str, Any]) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """Yield ``(index, record)`` for each well-formed entry of ``parsed["results"]``."""
    results = parsed.get("results")
    if not isinstance(results, list):
        raise ResponseParseError("Model response has no 'results' list")
    for record in results:
        if not isinstance(record, dict):
            continue
        index = _as_index(record.get("index"))
        if index is None:
            continue
        yield index, record


async def run_batched(
    items: Sequence[T],
    *,
    invoke: InvokeFn,
    build_prompt: Callable[[Batch[T]], str],
    parse_results: Callable[[Dict[str, Any], Batch[T]], Dict[int, R]],
    fallback: Callable[[IndexedItem[T]], R],
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT_BATCHES,
    label: str = "LLM",
) -> Dict[int, R]:
    """Map every item to a result through batched model calls.

    Parameters
    ----------
    invoke:
        Coroutine function sending one prompt and returning the model text.
    build_prompt:
        Builds the prompt for one batch.
    parse_results:
        Turns the parsed JSON object into ``{index: result}`` for that batch.
    fallback:
        Neutral result for an item whose batch failed or was not answered.
    """
    batches = partition(items, batch_size)
    total = len(batches)
    if not total:
        return {}
    logger.info("%s: %d items in %d batches (max %d concurrent)", label, len(items), total, max_concurrent)
    completed = 0

    async def _process(batch: Batch[T]) -> Dict[int, R]:
        nonlocal completed
        try:
            out = await _run_batch(batch)
        finally:
            completed += 1
            logger.info("%s progress: %d/%d batches", label, completed, total)
        return out

    async def _run_batch(batch: Batch[T]) -> Dict[int, R]:
        try:
            prompt = build_prompt(batch)
            logger.debug("%s prompt (batch %d/%d):\n%s", label, batch.number, total, prompt)
            text = await invoke(prompt)
            values = parse_results(parse_structured_response(text), batch)
        except Exception as e:  # noqa: BLE001
            logger.warning("%s batch %d/%d failed, using fallback values: %s", label, batch.number, total, e)
            return {item.index: fallback(item) for item in batch.items}

        wanted = set(batch.indices)
        stray = sorted(set(values) - wanted)
        if stray:
            logger.debug("%s batch %d: ignoring results for foreign indices %s", label, batch.number, stray)
        out: Dict[int, R] = {}
        missing = 0
        for item in batch.items:
            if item.index in values:
                out[item.index] = values[item.index]
            else:
                out[item.index] = fallback(item)
                missing += 1
        if missing:
            logger.warning("%s batch %d/%d: %d items missing from response, using fallback", label, batch.number, total, missing)
        return out

    outcomes = await bounded_gather(batches, _process, max_concurrent)

    merged: Dict[int, R] = {}
    for batch, outcome in zip(batches, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("%s batch %d crashed: %s", label, batch.number, outcome)
            outcome = {item.index: fallback(item) for item in batch.items}
        merged.update(outcome)
    return merged
