"""
Component Tree Model — 元件樹資料結構

ComponentState is a closed tagged variant over ``kind``: each variant is its own
dataclass and carries only the fields it needs. The flat ``list`` of states is the
source of truth; nesting is expressed through ``parent_uuid`` back-references and
sibling order is array order.

The ``*_to_dict`` / ``*_from_dict`` helpers convert to the camelCase JSON shape the
editor exchanges (``componentName``, ``parentUUID``, ``metadataUUID`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class ComponentStateKind(str, Enum):
    FRAGMENT = "Fragment"
    BUILT_IN = "BuiltIn"
    STANDARD = "Standard"
    MODULE = "Module"
    REPEATER = "Repeater"


class PropValueKind(str, Enum):
    LITERAL = "Literal"
    EXPRESSION = "Expression"
    PROP_REF = "PropRef"
    LIST = "List"


class PropValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    UNKNOWN = "unknown"


class FileMetadataKind(str, Enum):
    COMPONENT = "Component"
    MODULE = "Module"


# ════════════════════════════════════════════════════════════
# Prop values / prop shape
# ════════════════════════════════════════════════════════════

@dataclass
class PropValue:
    """單一 prop 的值.

    Literal → value 為 str / int / float / bool；
    Expression → value 為原始碼文字（原樣保留，不重新推導）；
    PropRef → value 為宿主元件的 prop 名稱；
    List → value 為 Literal PropValue 的 list。
    """
    kind: PropValueKind
    value: Any
    value_type: Optional[PropValueType] = None

    @classmethod
    def literal(cls, value: Any) -> "PropValue":
        if isinstance(value, bool):
            value_type = PropValueType.BOOLEAN
        elif isinstance(value, (int, float)):
            value_type = PropValueType.NUMBER
        elif isinstance(value, str):
            value_type = PropValueType.STRING
        else:
            raise TypeError(f"Unsupported literal value: {value!r}")
        return cls(PropValueKind.LITERAL, value, value_type)

    @classmethod
    def expression(cls, text: str, value_type: PropValueType = PropValueType.UNKNOWN) -> "PropValue":
        return cls(PropValueKind.EXPRESSION, text, value_type)

    @classmethod
    def prop_ref(cls, name: str) -> "PropValue":
        return cls(PropValueKind.PROP_REF, name)


PropValues = dict  # dict[str, PropValue]


@dataclass
class PropMetadata:
    """Declared type of one field of a component's props interface."""
    type: PropValueType
    doc: Optional[str] = None
    union_values: Optional[list] = None
    required: bool = False
    type_text: Optional[str] = None


PropShape = dict  # dict[str, PropMetadata]


# ════════════════════════════════════════════════════════════
# Component states
# ════════════════════════════════════════════════════════════

@dataclass
class FragmentState:
    uuid: str
    parent_uuid: Optional[str] = None
    kind: ComponentStateKind = field(default=ComponentStateKind.FRAGMENT, init=False)


@dataclass
class BuiltInState:
    uuid: str
    component_name: str
    props: dict = field(default_factory=dict)
    parent_uuid: Optional[str] = None
    kind: ComponentStateKind = field(default=ComponentStateKind.BUILT_IN, init=False)


@dataclass
class StandardState:
    uuid: str
    component_name: str
    props: dict = field(default_factory=dict)
    metadata_uuid: Optional[str] = None
    parent_uuid: Optional[str] = None
    kind: ComponentStateKind = field(default=ComponentStateKind.STANDARD, init=False)


@dataclass
class ModuleState:
    uuid: str
    component_name: str
    props: dict = field(default_factory=dict)
    metadata_uuid: Optional[str] = None
    parent_uuid: Optional[str] = None
    kind: ComponentStateKind = field(default=ComponentStateKind.MODULE, init=False)


@dataclass
class RepeatedComponent:
    """Template of a Repeater: a BuiltIn/Standard/Module node without identity."""
    kind: ComponentStateKind
    component_name: str
    props: dict = field(default_factory=dict)
    metadata_uuid: Optional[str] = None

    def __post_init__(self):
        if self.kind not in _REPEATABLE_KINDS:
            raise ValueError(f"A {self.kind.value} component cannot be repeated")


@dataclass
class RepeaterState:
    uuid: str
    list_expression: str
    repeated_component: RepeatedComponent
    parent_uuid: Optional[str] = None
    kind: ComponentStateKind = field(default=ComponentStateKind.REPEATER, init=False)


ComponentState = Union[FragmentState, BuiltInState, StandardState, ModuleState, RepeaterState]

_REPEATABLE_KINDS = (
    ComponentStateKind.BUILT_IN,
    ComponentStateKind.STANDARD,
    ComponentStateKind.MODULE,
)


# ════════════════════════════════════════════════════════════
# File metadata / page state
# ════════════════════════════════════════════════════════════

@dataclass
class ComponentMetadata:
    filepath: str
    metadata_uuid: str
    prop_shape: Optional[dict] = None
    initial_props: Optional[dict] = None
    accepts_children: bool = False
    kind: FileMetadataKind = field(default=FileMetadataKind.COMPONENT, init=False)


@dataclass
class ModuleMetadata:
    filepath: str
    metadata_uuid: str
    component_tree: list = field(default_factory=list)
    prop_shape: Optional[dict] = None
    initial_props: Optional[dict] = None
    kind: FileMetadataKind = field(default=FileMetadataKind.MODULE, init=False)


FileMetadata = Union[ComponentMetadata, ModuleMetadata]


@dataclass
class PageState:
    component_tree: list
    css_imports: list = field(default_factory=list)
    filepath: str = ""


# ════════════════════════════════════════════════════════════
# JSON conversion
# ════════════════════════════════════════════════════════════

def prop_value_to_dict(value: PropValue) -> dict:
    raw = value.value
    if value.kind == PropValueKind.LIST:
        raw = [prop_value_to_dict(item) for item in value.value]
    result = {"kind": value.kind.value, "value": raw}
    if value.value_type is not None:
        result["valueType"] = value.value_type.value
    return result


def prop_value_from_dict(data: dict) -> PropValue:
    kind = PropValueKind(data["kind"])
    raw = data.get("value")
    if kind == PropValueKind.LIST:
        raw = [prop_value_from_dict(item) for item in raw or []]
    value_type = data.get("valueType")
    return PropValue(kind, raw, PropValueType(value_type) if value_type else None)


def _props_to_dict(props: dict) -> dict:
    return {name: prop_value_to_dict(v) for name, v in props.items()}


def _props_from_dict(data: Optional[dict]) -> dict:
    return {name: prop_value_from_dict(v) for name, v in (data or {}).items()}


def component_state_to_dict(state: ComponentState) -> dict:
    result: dict[str, Any] = {"kind": state.kind.value, "uuid": state.uuid}
    if isinstance(state, RepeaterState):
        template = state.repeated_component
        repeated = {
            "kind": template.kind.value,
            "componentName": template.component_name,
            "props": _props_to_dict(template.props),
        }
        if template.metadata_uuid:
            repeated["metadataUUID"] = template.metadata_uuid
        result["listExpression"] = state.list_expression
        result["repeatedComponent"] = repeated
    elif not isinstance(state, FragmentState):
        result["componentName"] = state.component_name
        result["props"] = _props_to_dict(state.props)
        if getattr(state, "metadata_uuid", None):
            result["metadataUUID"] = state.metadata_uuid
    if state.parent_uuid is not None:
        result["parentUUID"] = state.parent_uuid
    return result


def component_state_from_dict(data: dict) -> ComponentState:
    kind = ComponentStateKind(data["kind"])
    uuid = data["uuid"]
    parent_uuid = data.get("parentUUID")
    if kind == ComponentStateKind.FRAGMENT:
        return FragmentState(uuid=uuid, parent_uuid=parent_uuid)
    if kind == ComponentStateKind.REPEATER:
        repeated = data["repeatedComponent"]
        return RepeaterState(
            uuid=uuid,
            list_expression=data["listExpression"],
            repeated_component=RepeatedComponent(
                kind=ComponentStateKind(repeated["kind"]),
                component_name=repeated["componentName"],
                props=_props_from_dict(repeated.get("props")),
                metadata_uuid=repeated.get("metadataUUID"),
            ),
            parent_uuid=parent_uuid,
        )
    props = _props_from_dict(data.get("props"))
    if kind == ComponentStateKind.BUILT_IN:
        return BuiltInState(uuid, data["componentName"], props, parent_uuid=parent_uuid)
    cls = StandardState if kind == ComponentStateKind.STANDARD else ModuleState
    return cls(
        uuid=uuid,
        component_name=data["componentName"],
        props=props,
        metadata_uuid=data.get("metadataUUID"),
        parent_uuid=parent_uuid,
    )


def prop_shape_to_dict(shape: dict) -> dict:
    result = {}
    for name, meta in shape.items():
        entry: dict[str, Any] = {"type": meta.type.value, "required": meta.required}
        if meta.doc is not None:
            entry["doc"] = meta.doc
        if meta.union_values is not None:
            entry["unionValues"] = list(meta.union_values)
        if meta.type_text is not None:
            entry["typeText"] = meta.type_text
        result[name] = entry
    return result


def prop_shape_from_dict(data: dict) -> dict:
    return {
        name: PropMetadata(
            type=PropValueType(entry["type"]),
            doc=entry.get("doc"),
            union_values=entry.get("unionValues"),
            required=entry.get("required", False),
            type_text=entry.get("typeText"),
        )
        for name, entry in data.items()
    }


def file_metadata_to_dict(metadata: FileMetadata) -> dict:
    result: dict[str, Any] = {
        "kind": metadata.kind.value,
        "filepath": metadata.filepath,
        "metadataUUID": metadata.metadata_uuid,
    }
    if metadata.prop_shape is not None:
        result["propShape"] = prop_shape_to_dict(metadata.prop_shape)
    if metadata.initial_props is not None:
        result["initialProps"] = _props_to_dict(metadata.initial_props)
    if isinstance(metadata, ModuleMetadata):
        result["componentTree"] = [component_state_to_dict(s) for s in metadata.component_tree]
    elif metadata.accepts_children:
        result["acceptsChildren"] = True
    return result


def file_metadata_from_dict(data: dict) -> FileMetadata:
    kind = FileMetadataKind(data["kind"])
    prop_shape = prop_shape_from_dict(data["propShape"]) if "propShape" in data else None
    initial_props = _props_from_dict(data["initialProps"]) if "initialProps" in data else None
    if kind == FileMetadataKind.MODULE:
        return ModuleMetadata(
            filepath=data.get("filepath", ""),
            metadata_uuid=data.get("metadataUUID", ""),
            component_tree=[component_state_from_dict(s) for s in data.get("componentTree", [])],
            prop_shape=prop_shape,
            initial_props=initial_props,
        )
    return ComponentMetadata(
        filepath=data.get("filepath", ""),
        metadata_uuid=data.get("metadataUUID", ""),
        prop_shape=prop_shape,
        initial_props=initial_props,
        accepts_children=data.get("acceptsChildren", False),
    )


def page_state_to_dict(page: PageState) -> dict:
    return {
        "componentTree": [component_state_to_dict(s) for s in page.component_tree],
        "cssImports": list(page.css_imports),
        "filepath": page.filepath,
    }


def page_state_from_dict(data: dict) -> PageState:
    return PageState(
        component_tree=[component_state_from_dict(s) for s in data.get("componentTree", [])],
        css_imports=list(data.get("cssImports", [])),
        filepath=data.get("filepath", ""),
    )
