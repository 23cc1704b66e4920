"""
Checklist grid catalog.

Grids are read-only reference data: one YAML file per grid, each holding
ordered sections of numbered criteria. Criterion IDs are unique within a grid
and are the ``criterion_id`` stored by the response ledger.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import NotFound, ValidationFailure
from .models import SavedResponse

logger = logging.getLogger(__name__)

BUILTIN_GRIDS = Path(__file__).parent / "grids"


class Criterion(BaseModel):
    """One checklist item."""

    id: int = Field(..., ge=1)
    reference: str = Field("", description="Regulatory reference")
    description: str
    pre_opening: bool = Field(False, description="Checked before opening")


class Section(BaseModel):
    id: int
    title: str
    items: List[Criterion] = Field(default_factory=list)


class Grid(BaseModel):
    """A versioned checklist."""

    id: str = Field(..., min_length=1)
    name: str
    code: str = ""
    version: str = "1"
    description: str = ""
    icon: str = ""
    color: str = ""
    sections: List[Section] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_criteria(self) -> "Grid":
        """Criterion IDs must not repeat across sections."""
        seen = set()
        for criterion in self.criteria:
            if criterion.id in seen:
                raise ValueError(f"Duplicate criterion id {criterion.id}")
            seen.add(criterion.id)
        return self

    @property
    def criteria(self) -> List[Criterion]:
        return [item for section in self.sections for item in section.items]

    @property
    def criteria_count(self) -> int:
        return sum(len(section.items) for section in self.sections)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "version": self.version,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "sections_count": len(self.sections),
            "criteria_count": self.criteria_count,
        }


class GridCatalog:
    """In-memory registry of grids keyed by ID."""

    def __init__(self, grids: Optional[Iterable[Grid]] = None):
        self._grids: Dict[str, Grid] = {}
        for grid in grids or []:
            self.register(grid)

    @classmethod
    def from_directory(cls, path: Union[str, Path]) -> "GridCatalog":
        """
        Load every ``*.yaml``/``*.yml`` file of a directory, in name order.

        Raises:
            ValidationFailure: A file is not a valid grid
        """
        directory = Path(path)
        catalog = cls()
        files = sorted(directory.glob("*.yaml")) + sorted(directory.glob("*.yml"))
        for file in files:
            catalog.register(load_grid(file))
        logger.info(f"Loaded {len(catalog)} grid(s) from {directory}")
        return catalog

    @classmethod
    def builtin(cls) -> "GridCatalog":
        """Grids shipped with the package."""
        return cls.from_directory(BUILTIN_GRIDS)

    def register(self, grid: Grid) -> None:
        if grid.id in self._grids:
            raise ValidationFailure(f"Grille '{grid.id}' déjà enregistrée")
        self._grids[grid.id] = grid

    def __len__(self) -> int:
        return len(self._grids)

    def __contains__(self, grid_id: object) -> bool:
        return grid_id in self._grids

    def all(self) -> List[Grid]:
        return list(self._grids.values())

    def find(self, grid_id: str) -> Optional[Grid]:
        return self._grids.get(grid_id)

    def get(self, grid_id: str) -> Grid:
        grid = self.find(grid_id)
        if grid is None:
            raise NotFound("grille", grid_id)
        return grid

    def summaries(self) -> List[Dict[str, Any]]:
        """Grid headers with section and criteria counts, without items."""
        return [grid.summary() for grid in self._grids.values()]


def load_grid(path: Union[str, Path]) -> Grid:
    """Parse one grid file."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValidationFailure(f"Grille invalide : {path.name}")
    try:
        return Grid.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()
        ]
        raise ValidationFailure(f"Grille invalide : {path.name}", errors) from e


def pending_criteria(grid: Grid, responses: Iterable[SavedResponse]) -> List[Criterion]:
    """Criteria of the grid without an answered (non-null) response."""
    answered = {r.criterion_id for r in responses if r.conforme is not None}
    return [item for item in grid.criteria if item.id not in answered]
