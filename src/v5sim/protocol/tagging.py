"""
V5 Simulator Protocol - Externally Tagged Unions

Every union in the protocol is encoded as a single-key object whose key names
the variant:

    {"Circle": {"center": {"x": 1, "y": 2}, "radius": 4}}   struct variant
    {"Smart": 3}                                              newtype variant
    {"ControllerUpdate": [null, {"UUID": "..."}]}             tuple variant
    "Ready"                                                   unit variant

TaggedModel does the wrapping/unwrapping; tagged_union() and open_union()
build pydantic discriminated unions out of TaggedModel subclasses.
"""

from __future__ import annotations

from typing import Annotated, Any, Callable, ClassVar, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Tag,
    model_serializer,
    model_validator,
)

# Discriminator value used for open-union payloads nobody here understands
OPAQUE_TAG = "__opaque__"


class WireModel(BaseModel):
    """Base for every value on the wire: immutable, unknown fields ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class TaggedModel(WireModel):
    """A single variant of an externally tagged union.

    Subclasses set ``wire_tag``. ``wire_newtype`` names the one field that is
    the whole payload; ``wire_fields`` lists the fields of a positional
    (tuple) variant. A subclass with no fields is a unit variant.
    """

    wire_tag: ClassVar[str] = ""
    wire_newtype: ClassVar[Optional[str]] = None
    wire_fields: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def is_unit(cls) -> bool:
        return not cls.model_fields

    @model_validator(mode="before")
    @classmethod
    def _unwrap_tag(cls, data: Any) -> Any:
        tag = cls.wire_tag
        if isinstance(data, str) and data == tag and cls.is_unit():
            return {}
        if isinstance(data, dict) and len(data) == 1 and tag in data:
            return cls._unwrap_payload(data[tag])
        return data

    @classmethod
    def _unwrap_payload(cls, payload: Any) -> Any:
        if cls.wire_newtype:
            return {cls.wire_newtype: payload}
        if cls.wire_fields:
            if not isinstance(payload, (list, tuple)) or len(payload) != len(cls.wire_fields):
                raise ValueError(
                    f"{cls.wire_tag} expects {len(cls.wire_fields)} positional values"
                )
            return dict(zip(cls.wire_fields, payload))
        if cls.is_unit():
            if payload is not None:
                raise ValueError(f"{cls.wire_tag} carries no payload")
            return {}
        return payload

    @model_serializer(mode="wrap")
    def _wrap_tag(self, handler: Callable[[Any], Any]) -> Any:
        cls = type(self)
        if cls.is_unit():
            return cls.wire_tag
        data = handler(self)
        if cls.wire_newtype:
            return {cls.wire_tag: data[cls.wire_newtype]}
        if cls.wire_fields:
            return {cls.wire_tag: [data[name] for name in cls.wire_fields]}
        return {cls.wire_tag: data}


class OpaqueVariant(WireModel):
    """Catch-all for an open-union variant this revision does not define.

    Keeps the raw tag and payload so the value re-encodes unchanged. ``bare``
    records that the variant arrived as a plain string (a unit variant).
    """

    tag: str
    payload: Any = None
    bare: bool = False

    @model_validator(mode="before")
    @classmethod
    def _split_tag(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"tag": data, "bare": True}
        if isinstance(data, dict) and len(data) == 1 and "tag" not in data:
            tag, payload = next(iter(data.items()))
            return {"tag": tag, "payload": payload}
        return data

    @model_serializer(mode="plain")
    def _join_tag(self) -> Any:
        if self.bare:
            return self.tag
        return {self.tag: self.payload}


def wire_tag_of(value: Any) -> Optional[str]:
    """Return the variant tag of a model instance or of its raw wire form."""
    if isinstance(value, TaggedModel):
        return value.wire_tag
    if isinstance(value, OpaqueVariant):
        return OPAQUE_TAG
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and len(value) == 1:
        return next(iter(value))
    return None


def tagged_union(*models: type[TaggedModel]) -> Any:
    """Closed union: an unknown tag is a validation error."""
    choices = tuple(Annotated[m, Tag(m.wire_tag)] for m in models)
    return Annotated[Union[choices], Discriminator(wire_tag_of)]


def open_union(*models: type[TaggedModel]) -> Any:
    """Open union: unknown tags decode into OpaqueVariant."""
    known = frozenset(m.wire_tag for m in models)

    def _discriminate(value: Any) -> Optional[str]:
        tag = wire_tag_of(value)
        if tag is None or tag in known:
            return tag
        return OPAQUE_TAG

    choices = tuple(Annotated[m, Tag(m.wire_tag)] for m in models)
    choices += (Annotated[OpaqueVariant, Tag(OPAQUE_TAG)],)
    return Annotated[Union[choices], Discriminator(_discriminate)]
