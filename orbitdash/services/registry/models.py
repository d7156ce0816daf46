"""Service catalog schemas"""

from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field


class ServiceRecord(BaseModel):
    """A stored service bookmark."""
    id: str
    name: str
    url: str
    description: Optional[str] = None
    icon: Optional[str] = Field(None, description="Icon filename in the icon area")
    category: Optional[str] = None
    open_in_new_tab: bool = True
    created_at: int = Field(..., description="ms since epoch")
    updated_at: int = Field(..., description="ms since epoch")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ServiceRecord":
        """Convert a database row, mapping open_in_new_tab 0/1 to bool."""
        return cls(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            description=row["description"],
            icon=row["icon"],
            category=row["category"],
            open_in_new_tab=bool(row["open_in_new_tab"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class ServiceCreate(BaseModel):
    """Create service request. Name and url are checked by the registry."""
    name: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    open_in_new_tab: bool = True
    icon_url: Optional[str] = Field(None, description="Remote icon to download")


class ServiceUpdate(BaseModel):
    """
    Partial update request.

    Only fields present in the request are applied; use
    model_fields_set to tell "absent" from "null".
    """
    name: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    open_in_new_tab: Optional[bool] = None
    icon_url: Optional[str] = Field(None, description="Replace icon from a remote URL")
    remove_icon: bool = Field(False, description="Drop the current icon")
