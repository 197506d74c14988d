from __future__ import annotations

from types import MappingProxyType
from typing import Annotated, Any, Iterable, Literal, Mapping, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, ValidationError, model_validator

from jsonllm.errors import InvalidSchema

SchemaType = Literal["string", "number", "integer", "boolean", "array", "object"]


def _freeze(value: dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(value)


def _thaw(value: Mapping[str, Any]) -> dict[str, Any]:
    return dict(value)


class SchemaProperty(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: SchemaType
    description: str | None = None
    enum: tuple[str, ...] | None = None
    items: SchemaProperty | None = None  # required when type == "array"
    properties: Annotated[
        dict[str, SchemaProperty], AfterValidator(_freeze), PlainSerializer(_thaw)
    ] | None = None
    required: tuple[str, ...] | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> SchemaProperty:
        if self.type == "array" and self.items is None:
            raise ValueError("array property has no item schema")
        if self.required:
            missing = [n for n in self.required if n not in (self.properties or {})]
            if missing:
                raise ValueError(f"nested required names not in properties: {missing}")
        return self


PropertySpec = Union[SchemaProperty, Mapping[str, Any]]


class ObjectSchema(BaseModel):
    """Root JSON Schema for a structured response or a tool's parameters."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["object"] = "object"
    properties: Annotated[dict[str, SchemaProperty], AfterValidator(_freeze), PlainSerializer(_thaw)]
    required: tuple[str, ...] = ()
    additional_properties: bool = Field(default=False, alias="additionalProperties")

    @model_validator(mode="after")
    def _check_required(self) -> ObjectSchema:
        missing = [n for n in self.required if n not in self.properties]
        if missing:
            raise ValueError(f"required names not in properties: {missing}")
        return self

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ObjectSchema:
        """Validate a schema loaded from JSON, applying the builder's rules."""
        if not isinstance(data, Mapping):
            raise InvalidSchema(f"schema must be a JSON object, got {type(data).__name__}")
        if data.get("type", "object") != "object":
            raise InvalidSchema(f"root schema must be an object, got {data.get('type')!r}")
        return build_object_schema(
            data.get("properties") or {},
            required=data.get("required") or (),
            allow_additional=bool(data.get("additionalProperties", False)),
        )


class ToolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: ObjectSchema
    strict: bool = False


def build_object_schema(
    properties: Mapping[str, PropertySpec],
    required: Iterable[str] = (),
    allow_additional: bool = False,
) -> ObjectSchema:
    """
    Build a root object schema.

    Raises InvalidSchema when `required` names an unknown property, when an
    array property (at any depth) has no item schema, or when a nested object
    requires a sub-field it does not declare.
    """
    if not isinstance(properties, Mapping):
        raise InvalidSchema(f"properties must be a JSON object, got {type(properties).__name__}")
    resolved = {name: _coerce(name, spec) for name, spec in properties.items()}
    try:
        return ObjectSchema(
            properties=resolved,
            required=tuple(required),
            additional_properties=allow_additional,
        )
    except (ValidationError, TypeError) as exc:
        raise InvalidSchema(f"invalid object schema: {exc}") from exc


def _coerce(name: str, spec: PropertySpec) -> SchemaProperty:
    if isinstance(spec, SchemaProperty):
        return spec
    try:
        return SchemaProperty.model_validate(dict(spec))
    except (ValidationError, TypeError, ValueError) as exc:
        raise InvalidSchema(f"property {name!r} is not a valid schema: {exc}") from exc
