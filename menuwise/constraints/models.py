from __future__ import annotations

from typing import NamedTuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..menu.models import MenuItem


class HardCoreTag(NamedTuple):
    name: str


class NegativeKeyTag(NamedTuple):
    key: str


class SoftTag(NamedTuple):
    text: str


TagClass = Union[HardCoreTag, NegativeKeyTag, SoftTag]


class ConstraintSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    hard_core: tuple[str, ...] = ()
    negative_keys: tuple[str, ...] = ()
    soft: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _hard_and_soft_disjoint(self) -> "ConstraintSet":
        overlap = set(self.hard_core) & set(self.soft)
        if overlap:
            raise ValueError(f"tags cannot be both hard and soft: {sorted(overlap)}")
        return self

    @property
    def hard_constraints(self) -> list[str]:
        """Hard rules as restated to the generative steps, e.g. ``["vegan", "no:mushroom"]``."""
        return [*self.hard_core, *(f"no:{key}" for key in self.negative_keys)]

    @property
    def is_empty(self) -> bool:
        return not (self.hard_core or self.negative_keys or self.soft)


class RemovedItem(BaseModel):
    name: str
    reason: str
    tag: str
    matched: str | None = None


class HardFilterResult(BaseModel):
    allowed: list[MenuItem] = Field(default_factory=list)
    removed: list[RemovedItem] = Field(default_factory=list)
