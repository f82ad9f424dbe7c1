"""
Area management module for the AOI Layer Analyzer.

AreaManager owns the collection of areas of interest: it creates them (up to
a hard cap), removes them, and runs analyses one at a time. A failing area
never aborts a bulk run; it is marked Failed and the remaining areas are
still analyzed.

Classes:
    AreaOutcome: Per-area result of a bulk run
    AreaManager: Capacity-bounded, insertion-ordered area collection
"""

import asyncio
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List, Optional, Union

from shapely.geometry.base import BaseGeometry

from core.errors import (
    AreaAnalysisError, CapacityExceededError, InvalidStateError,
    MissingInputError, NotFoundError
)
from core.layer_processor import (
    AnalysisConfig, AnalysisResult, AnalysisRules, ProgressCallback,
    DEFAULT_BATCH_SIZE, DEFAULT_PROGRESS_SPAN, analyze_area
)
from core.layer_registry import ReferenceLayerRegistry
from core.models import AreaEntry, AreaState, Feature
from geometry_input.load_input import extract_source_polygon, load_geometry_file
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_AREAS = 10

AreaInput = Union[Feature, BaseGeometry, Dict, Iterable]


@dataclass
class AreaOutcome:
    """What happened to one area during analyze_all."""

    entry: AreaEntry
    result: Optional[AnalysisResult] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


def _source_from_input(polygon: AreaInput):
    """
    Extract the polygon to analyze from whatever the caller uploaded.

    Returns (source feature or None, ignored polygon count). A missing
    polygon is not raised here; the analysis reports it as MissingInputError
    so the area shows up as Failed alongside the others.
    """
    if isinstance(polygon, BaseGeometry):
        polygon = Feature(geometry=polygon)
    if isinstance(polygon, Feature):
        polygon = [polygon]
    elif isinstance(polygon, dict) and polygon.get('type') != 'FeatureCollection':
        if polygon.get('type') != 'Feature':
            polygon = {'type': 'Feature', 'geometry': polygon, 'properties': {}}
        polygon = [polygon]

    try:
        return extract_source_polygon(polygon)
    except MissingInputError as e:
        logger.warning(f"  ⚠ {e}")
        return None, 0


class AreaManager:
    """
    Insertion-ordered collection of areas of interest.

    Ids are assigned monotonically and never reused. Analyses run one at a
    time under an internal lock; an area already being analyzed is never
    started again.
    """

    def __init__(self,
                 registry: ReferenceLayerRegistry,
                 max_areas: int = DEFAULT_MAX_AREAS,
                 rules: Optional[AnalysisRules] = None,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 progress_span=DEFAULT_PROGRESS_SPAN):
        if max_areas < 1:
            raise ValueError(f"max_areas must be >= 1, got {max_areas}")
        self.registry = registry
        self.max_areas = max_areas
        self.rules = rules or AnalysisRules()
        self.batch_size = batch_size
        self.progress_span = progress_span
        self._areas: Dict[int, AreaEntry] = {}
        self._ids = count(1)
        self._lock: Optional[asyncio.Lock] = None

    @classmethod
    def from_settings(cls, registry: ReferenceLayerRegistry, settings: Dict,
                      rules: Optional[AnalysisRules] = None) -> 'AreaManager':
        return cls(
            registry,
            max_areas=settings.get('max_areas', DEFAULT_MAX_AREAS),
            rules=rules,
            batch_size=settings.get('batch_size', DEFAULT_BATCH_SIZE),
            progress_span=(settings.get('progress_start', DEFAULT_PROGRESS_SPAN[0]),
                           settings.get('progress_end', DEFAULT_PROGRESS_SPAN[1]))
        )

    def _get_lock(self) -> asyncio.Lock:
        """Lazy-init the run lock (must be created within an event loop)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def __len__(self) -> int:
        return len(self._areas)

    def add_area(self, polygon: AreaInput, name: str) -> AreaEntry:
        """
        Create a new area in the Created state.

        Args:
            polygon: Feature, Shapely geometry, GeoJSON geometry/feature/
                     FeatureCollection, or a list of features (converted KML)
            name: Display name, usually the source file name

        Raises:
            CapacityExceededError: If max_areas areas already exist
        """
        if len(self._areas) >= self.max_areas:
            raise CapacityExceededError(self.max_areas)

        source, ignored = _source_from_input(polygon)
        entry = AreaEntry(
            id=next(self._ids),
            name=name,
            source_polygon=source,
            ignored_polygons=ignored
        )
        self._areas[entry.id] = entry

        logger.info(f"Area added: '{name}' (id {entry.id}, {len(self._areas)}/{self.max_areas})")
        return entry

    def add_area_from_file(self, file_path: Union[str, Path], name: Optional[str] = None) -> AreaEntry:
        """Load an area file (KML, GeoJSON, ...) and add its first polygon."""
        if len(self._areas) >= self.max_areas:
            raise CapacityExceededError(self.max_areas)

        features = load_geometry_file(file_path)
        return self.add_area(features, name or Path(file_path).stem)

    def remove_area(self, area_id: int) -> None:
        """
        Delete an area and everything derived from it. Unknown ids are ignored.

        Raises:
            InvalidStateError: If the area is being analyzed right now
        """
        entry = self._areas.get(area_id)
        if entry is None:
            logger.debug(f"remove_area: area {area_id} not found, nothing to do")
            return
        if entry.state is AreaState.ANALYZING:
            raise InvalidStateError(area_id, entry.state.value, 'be removed')

        del self._areas[area_id]
        logger.info(f"Area removed: '{entry.name}' (id {area_id})")

    def get_area(self, area_id: int) -> AreaEntry:
        entry = self._areas.get(area_id)
        if entry is None:
            raise NotFoundError(area_id)
        return entry

    def list_areas(self) -> List[AreaEntry]:
        """All areas in insertion order."""
        return list(self._areas.values())

    async def analyze_one(self,
                          area_id: int,
                          config: AnalysisConfig,
                          on_progress: Optional[ProgressCallback] = None,
                          cancel_event: Optional[asyncio.Event] = None) -> AnalysisResult:
        """
        Analyze a single area.

        Raises:
            NotFoundError: If area_id is unknown
            InvalidStateError: If the area is already being analyzed
            MissingInputError / AnalysisError: If the analysis fails (area left Failed)
        """
        entry = self.get_area(area_id)
        if entry.state is AreaState.ANALYZING:
            raise InvalidStateError(area_id, entry.state.value)

        async with self._get_lock():
            return await analyze_area(
                entry, config, self.registry, on_progress,
                rules=self.rules,
                batch_size=self.batch_size,
                progress_span=self.progress_span,
                cancel_event=cancel_event
            )

    async def analyze_all(self,
                          config: AnalysisConfig,
                          on_progress: Optional[ProgressCallback] = None,
                          force: bool = False,
                          cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[AreaOutcome]:
        """
        Analyze every pending area sequentially, yielding one outcome per area.

        Pending means Created or Failed; Analyzed areas are skipped unless
        force is True. Errors of one area are captured in its outcome and
        never stop the run. Setting cancel_event stops the run at the next
        batch boundary; the interrupted area is marked Failed and no further
        areas are started.

        Example:
            >>> async for outcome in manager.analyze_all(config):
            ...     print(outcome.entry.name, outcome.succeeded)
        """
        pending_states = (AreaState.CREATED, AreaState.FAILED)
        pending = [
            entry for entry in self.list_areas()
            if entry.state in pending_states or (force and entry.state is AreaState.ANALYZED)
        ]

        logger.info("=" * 80)
        logger.info(f"Analyzing {len(pending)} area(s)")
        logger.info("=" * 80)

        for position, entry in enumerate(pending, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"⚠ Bulk analysis cancelled; {len(pending) - position + 1} area(s) not started")
                break
            if entry.id not in self._areas:
                # Removed by the caller while an earlier area was running
                continue

            def area_progress(percent: float, message: str, _position=position) -> None:
                if on_progress is not None:
                    overall = ((_position - 1) + percent / 100.0) / len(pending) * 100.0
                    on_progress(overall, message)

            try:
                result = await self.analyze_one(entry.id, config, area_progress, cancel_event)
            except AreaAnalysisError as e:
                logger.warning(f"  ⚠ Area '{entry.name}' failed: {e}")
                yield AreaOutcome(entry=entry, error=e)
            else:
                yield AreaOutcome(entry=entry, result=result)

            await asyncio.sleep(0)

        succeeded = sum(1 for e in pending if e.state is AreaState.ANALYZED)
        logger.info(f"Bulk analysis finished: {succeeded} of {len(pending)} area(s) analyzed")
