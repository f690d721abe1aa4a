from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MenuItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(..., gt=0)
    category: str = ""
    estimated_calories: float | None = Field(default=None, ge=0)

    @property
    def text(self) -> str:
        """Lowercased name and description, the text constraint checks run against."""
        return f"{self.name} {self.description}".lower()


class MenuInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str = "$"
    items: list[MenuItem] = Field(..., min_length=1)
