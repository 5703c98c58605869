"""Base Pydantic model configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class AppModel(BaseModel):
    """Base model for published state: strict fields, immutable once built."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        validate_default=True,
    )


class XmlModel(BaseModel):
    """Base model for documents decoded from report XML.

    Unknown elements and attributes (``@xmlns``, vendor extensions) are
    ignored. Fields may be populated by their XML element alias or by name.
    """

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
