"""
Models for the image metadata document (metadata.yaml) and its template descriptors.
"""
from typing import Any, Dict, List
from pydantic import BaseModel, ConfigDict, field_validator


def _scalar_to_str(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


class TemplateDescriptor(BaseModel):
    """
    One entry of the metadata `templates` mapping, keyed by the path the
    rendered file is written to inside the container.
    """
    model_config = ConfigDict(extra="allow")

    properties: Dict[str, str] = {}
    template: str
    when: List[str] = []

    @field_validator("properties", mode="before")
    @classmethod
    def _scalar_properties(cls, value):
        # LXD reads property values as strings; unquoted YAML scalars count too.
        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        return {key: _scalar_to_str(item) for key, item in value.items()}

    def to_document(self) -> Dict[str, Any]:
        """
        Returns the descriptor as plain data, leaving out empty optional fields.
        """
        empty = {name for name in ("properties", "when") if not getattr(self, name)}
        return self.model_dump(exclude=empty)


class ImageMetadata(BaseModel):
    """
    The metadata document of an image. Only `templates` is typed; any other
    keys (architecture, creation_date, properties, ...) are carried through
    untouched.
    """
    model_config = ConfigDict(extra="allow")

    templates: Dict[str, TemplateDescriptor]

    def to_document(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"templates"})
        data["templates"] = {
            path: descriptor.to_document()
            for path, descriptor in self.templates.items()
        }
        return data
