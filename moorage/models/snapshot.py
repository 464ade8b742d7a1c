"""Container snapshot models persisted by the state store."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContainerRecord(BaseModel):
    """Identity of one running container at save time."""

    model_config = ConfigDict(extra='ignore')

    id: str = Field(..., description="Runtime-assigned container identifier")
    name: str = Field("", description="Display name")
    image: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        """Container IDs must be non-empty."""
        if not v.strip():
            raise ValueError("Container id must not be empty")
        return v

    @property
    def display_name(self) -> str:
        return self.name or self.id[:12]


class ContainerSnapshot(BaseModel):
    """Ordered list of containers captured by ``save``."""

    model_config = ConfigDict(extra='ignore')

    version: int = 1
    saved_at: datetime = Field(default_factory=datetime.now)
    containers: List[ContainerRecord] = Field(default_factory=list)

    def ids(self) -> List[str]:
        return [record.id for record in self.containers]
