"""
Tradeoff-curve calculators.

The degree sweep behind the bias-variance tradeoff chart is the slowest
routine in the app (15 degrees x N trials of polynomial fits). Two
interchangeable calculators produce it:

- ``InlineTradeoffCalculator`` computes it in the request threadpool, off
  the event loop.
- ``BackgroundTradeoffCalculator`` runs it as a job on the shared thread
  pool and awaits the result, falling back to inline computation when the
  pool refuses work.

Both resolve the random seed before dispatch, so a request produces the
same curve whichever path serves it.

The worker message protocol is kept from the browser worker:
``{"type": "CALCULATE_TRADEOFF", "params": {...}}`` is answered with
``{"type": "TRADEOFF_COMPLETE", "data": {...}}`` or
``{"type": "TRADEOFF_ERROR", "error": "..."}``.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
from fastapi.concurrency import run_in_threadpool

from ..jobs import JobStatus, JobType, job_manager
from ..settings import Settings
from ..shared.logger import get_logger
from .bias_variance import TRADEOFF_DEGREES, TRADEOFF_TRIALS, TradeoffCurve, calculate_tradeoff_curve

logger = get_logger(__name__)

CALCULATE_TRADEOFF = "CALCULATE_TRADEOFF"
TRADEOFF_COMPLETE = "TRADEOFF_COMPLETE"
TRADEOFF_ERROR = "TRADEOFF_ERROR"

MIN_SAMPLES, MAX_SAMPLES = 10, 500
MAX_NOISE = 2.0
MAX_TRIALS = 200


@dataclass(frozen=True)
class TradeoffParams:
    samples: int = 75
    noise: float = 0.3
    n_trials: int = TRADEOFF_TRIALS
    degrees: tuple = TRADEOFF_DEGREES
    seed: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TradeoffParams":
        """Build and validate params from a worker message payload.

        Accepts both ``n_trials`` and the camelCase ``nTrials`` used by the
        frontend.

        Raises:
            ValueError: On missing or out-of-range values.
        """
        try:
            samples = int(data.get("samples", cls.samples))
            noise = float(data.get("noise", cls.noise))
            n_trials = int(data.get("n_trials", data.get("nTrials", cls.n_trials)))
            degrees = tuple(int(d) for d in data.get("degrees", cls.degrees))
            seed = data.get("seed")
            seed = None if seed is None else int(seed)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid tradeoff parameters: {e}") from e

        if not MIN_SAMPLES <= samples <= MAX_SAMPLES:
            raise ValueError(f"samples must be in [{MIN_SAMPLES}, {MAX_SAMPLES}]")
        if not 0.0 <= noise <= MAX_NOISE:
            raise ValueError(f"noise must be in [0, {MAX_NOISE}]")
        if not 1 <= n_trials <= MAX_TRIALS:
            raise ValueError(f"n_trials must be in [1, {MAX_TRIALS}]")
        if not degrees or min(degrees) < 1 or max(degrees) > 15:
            raise ValueError("degrees must be a non-empty list within [1, 15]")

        return cls(samples=samples, noise=noise, n_trials=n_trials, degrees=degrees, seed=seed)

    def with_seed(self) -> "TradeoffParams":
        """Return params with a concrete seed, drawing one if absent."""
        if self.seed is not None:
            return self
        seed = int(np.random.default_rng().integers(0, 2**31 - 1))
        return replace(self, seed=seed)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["degrees"] = list(self.degrees)
        return data


def compute_tradeoff(params: TradeoffParams, progress_callback=None) -> TradeoffCurve:
    """Pure sweep shared by both calculators."""
    return calculate_tradeoff_curve(
        samples=params.samples,
        noise=params.noise,
        degrees=params.degrees,
        n_trials=params.n_trials,
        seed=params.seed,
        progress_callback=progress_callback,
    )


class TradeoffCalculator(ABC):
    """Strategy producing a tradeoff curve for a parameter bundle."""

    name = "abstract"

    @abstractmethod
    async def calculate(self, params: TradeoffParams) -> TradeoffCurve:
        """Compute the curve; ``params.seed`` is resolved before dispatch."""


class InlineTradeoffCalculator(TradeoffCalculator):
    name = "inline"

    async def calculate(self, params: TradeoffParams) -> TradeoffCurve:
        params = params.with_seed()
        logger.debug("Inline tradeoff sweep (seed=%s)", params.seed)
        return await run_in_threadpool(compute_tradeoff, params)


class BackgroundTradeoffCalculator(TradeoffCalculator):
    """Runs the sweep as a TRADEOFF job and awaits its future."""

    name = "background"

    def __init__(self, manager=None):
        self._manager = manager or job_manager
        self._fallback = InlineTradeoffCalculator()

    async def calculate(self, params: TradeoffParams) -> TradeoffCurve:
        params = params.with_seed()
        curves: List[TradeoffCurve] = []

        def task(job, progress_callback):
            curve = compute_tradeoff(params, progress_callback)
            curves.append(curve)
            return curve.to_dict()

        job = self._manager.create_job(JobType.TRADEOFF, params.to_dict())
        try:
            self._manager.submit_job(job, task)
        except RuntimeError as e:
            logger.warning("Job pool unavailable (%s), computing tradeoff inline", e)
            job.status = JobStatus.FAILED
            job.error = f"Job pool unavailable: {e}"
            return await self._fallback.calculate(params)

        future = self._manager.get_future(job.id)
        await asyncio.wrap_future(future)

        if job.status == JobStatus.FAILED:
            raise RuntimeError(job.error or "Tradeoff job failed")
        if job.status == JobStatus.CANCELLED or not curves:
            raise RuntimeError("Tradeoff job was cancelled")
        return curves[0]


def select_calculator(settings: Settings) -> TradeoffCalculator:
    """Pick the calculator configured for this process."""
    if settings.background_tradeoff:
        return BackgroundTradeoffCalculator()
    return InlineTradeoffCalculator()


async def handle_worker_message(message: Mapping[str, Any], calculator: TradeoffCalculator) -> Dict[str, Any]:
    """Answer one worker-protocol message.

    Never raises: every failure is reported as a ``TRADEOFF_ERROR`` reply.
    """
    message_type = message.get("type")
    if message_type != CALCULATE_TRADEOFF:
        return {"type": TRADEOFF_ERROR, "error": f"Unknown message type: {message_type!r}"}

    try:
        params = TradeoffParams.from_mapping(message.get("params") or {})
        curve = await calculator.calculate(params)
    except (ValueError, RuntimeError) as e:
        logger.warning("Tradeoff request failed: %s", e)
        return {"type": TRADEOFF_ERROR, "error": str(e)}

    return {"type": TRADEOFF_COMPLETE, "data": curve.to_dict()}
