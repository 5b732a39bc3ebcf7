"""
Persistence Port

Load/save interface for experiments, assignments, promotions, dynamic
pricing and seasonal events. The engine keeps registries in memory and
writes through this port; the adapters below are injected at construction.
"""

import asyncio
import copy
from typing import TYPE_CHECKING, Any, Awaitable, Dict, List, Protocol, Tuple, TypeVar

import structlog

from plutus.exceptions import StorageError

if TYPE_CHECKING:
    from plutus.services.ab_testing import Experiment, UserAssignment
    from plutus.services.dynamic_pricing import DynamicPricing
    from plutus.services.promotions import Promotion
    from plutus.services.seasonal import SeasonalEvent

logger = structlog.get_logger()

T = TypeVar("T")


class PersistencePort(Protocol):
    """Storage collaborator. Must be safe to call concurrently."""

    async def load_experiments(self) -> List["Experiment"]: ...
    async def save_experiment(self, experiment: "Experiment") -> None: ...
    async def load_assignments(self) -> List["UserAssignment"]: ...
    async def save_assignment(self, assignment: "UserAssignment") -> None: ...
    async def load_promotions(self) -> List["Promotion"]: ...
    async def save_promotion(self, promotion: "Promotion") -> None: ...
    async def load_dynamic_pricing(self) -> List["DynamicPricing"]: ...
    async def save_dynamic_pricing(self, pricing: "DynamicPricing") -> None: ...
    async def load_seasonal_events(self) -> List["SeasonalEvent"]: ...
    async def save_seasonal_event(self, event: "SeasonalEvent") -> None: ...


class InMemoryPersistence:
    """
    Dict-backed port.

    Records are stored as deep copies so callers cannot mutate stored state
    without an explicit save. `fail_writes` / `fail_reads` simulate outages.
    """

    def __init__(self):
        self.experiments: Dict[str, Any] = {}
        self.assignments: Dict[Tuple[str, str], Any] = {}
        self.promotions: Dict[str, Any] = {}
        self.pricing: Dict[str, Any] = {}
        self.seasonal_events: Dict[str, Any] = {}
        self.fail_writes = False
        self.fail_reads = False
        self.write_count = 0

    def _check_read(self) -> None:
        if self.fail_reads:
            raise StorageError("in-memory store unavailable for reads")

    def _check_write(self) -> None:
        if self.fail_writes:
            raise StorageError("in-memory store unavailable for writes")
        self.write_count += 1

    async def load_experiments(self):
        self._check_read()
        return [copy.deepcopy(e) for e in self.experiments.values()]

    async def save_experiment(self, experiment):
        self._check_write()
        self.experiments[experiment.id] = copy.deepcopy(experiment)

    async def load_assignments(self):
        self._check_read()
        return [copy.deepcopy(a) for a in self.assignments.values()]

    async def save_assignment(self, assignment):
        self._check_write()
        key = (assignment.user_id, assignment.test_id)
        self.assignments[key] = copy.deepcopy(assignment)

    async def load_promotions(self):
        self._check_read()
        return [copy.deepcopy(p) for p in self.promotions.values()]

    async def save_promotion(self, promotion):
        self._check_write()
        self.promotions[promotion.id] = copy.deepcopy(promotion)

    async def load_dynamic_pricing(self):
        self._check_read()
        return [copy.deepcopy(p) for p in self.pricing.values()]

    async def save_dynamic_pricing(self, pricing):
        self._check_write()
        self.pricing[pricing.package_id] = copy.deepcopy(pricing)

    async def load_seasonal_events(self):
        self._check_read()
        return [copy.deepcopy(e) for e in self.seasonal_events.values()]

    async def save_seasonal_event(self, event):
        self._check_write()
        self.seasonal_events[event.id] = copy.deepcopy(event)


class BoundedPersistence:
    """
    Wraps a port so every call is time-bounded and every failure is a
    StorageError.
    """

    def __init__(self, inner: PersistencePort, timeout_seconds: float):
        self.inner = inner
        self.timeout_seconds = timeout_seconds

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except StorageError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning("Persistence call timed out", operation=operation)
            raise StorageError(f"{operation} timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            logger.error("Persistence call failed", operation=operation, error=str(e))
            raise StorageError(f"{operation} failed: {e}") from e

    async def load_experiments(self):
        return await self._call("load_experiments", self.inner.load_experiments())

    async def save_experiment(self, experiment):
        await self._call("save_experiment", self.inner.save_experiment(experiment))

    async def load_assignments(self):
        return await self._call("load_assignments", self.inner.load_assignments())

    async def save_assignment(self, assignment):
        await self._call("save_assignment", self.inner.save_assignment(assignment))

    async def load_promotions(self):
        return await self._call("load_promotions", self.inner.load_promotions())

    async def save_promotion(self, promotion):
        await self._call("save_promotion", self.inner.save_promotion(promotion))

    async def load_dynamic_pricing(self):
        return await self._call("load_dynamic_pricing", self.inner.load_dynamic_pricing())

    async def save_dynamic_pricing(self, pricing):
        await self._call("save_dynamic_pricing", self.inner.save_dynamic_pricing(pricing))

    async def load_seasonal_events(self):
        return await self._call("load_seasonal_events", self.inner.load_seasonal_events())

    async def save_seasonal_event(self, event):
        await self._call("save_seasonal_event", self.inner.save_seasonal_event(event))
