"""
Form model tree.

A FormModel wraps one level of a form's primary instance: the root element
or any of its fields. Export code walks this tree to derive column names.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, List, Optional


class DataType(str, Enum):
    """Data type of an instance node, as declared by its bind."""
    NULL = "null"
    TEXT = "string"
    INTEGER = "int"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATE_TIME = "dateTime"
    CHOICE = "select1"
    MULTIPLE_ITEMS = "select"
    GEOPOINT = "geopoint"
    GEOTRACE = "geotrace"
    GEOSHAPE = "geoshape"
    BINARY = "binary"
    BARCODE = "barcode"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_bind_type(cls, bind_type: Optional[str]) -> "DataType":
        """
        Map an XForm bind type (optionally xsd: prefixed) to a DataType.

        Unknown types map to UNSUPPORTED; a missing type defaults to TEXT.
        """
        if not bind_type:
            return cls.TEXT
        name = bind_type.split(":")[-1]
        return _BIND_TYPE_ALIASES.get(name, cls.UNSUPPORTED)


_BIND_TYPE_ALIASES = {
    "string": DataType.TEXT,
    "int": DataType.INTEGER,
    "integer": DataType.INTEGER,
    "long": DataType.INTEGER,
    "decimal": DataType.DECIMAL,
    "double": DataType.DECIMAL,
    "boolean": DataType.BOOLEAN,
    "date": DataType.DATE,
    "time": DataType.TIME,
    "dateTime": DataType.DATE_TIME,
    "select1": DataType.CHOICE,
    "select": DataType.MULTIPLE_ITEMS,
    "geopoint": DataType.GEOPOINT,
    "geotrace": DataType.GEOTRACE,
    "geoshape": DataType.GEOSHAPE,
    "binary": DataType.BINARY,
    "barcode": DataType.BARCODE,
}

SPATIAL_TYPES = (DataType.GEOPOINT, DataType.GEOTRACE, DataType.GEOSHAPE)


class ControlType(str, Enum):
    """Body control bound to an instance node."""
    INPUT = "input"
    SELECT_ONE = "select1"
    SELECT_MULTI = "select"
    RANK = "rank"
    TEXTAREA = "textarea"
    SECRET = "secret"
    RANGE = "range"
    UPLOAD = "upload"
    TRIGGER = "trigger"


@dataclass
class Control:
    """
    A body control and its static or resolved choices.

    Attributes:
        control_type: Kind of control (input, select, upload...)
        appearance: Raw appearance attribute, if any
        choices: Choice values, in document order
    """
    control_type: ControlType
    appearance: Optional[str] = None
    choices: List[str] = field(default_factory=list)


class FormModel:
    """
    One level of a form's instance model.

    Nodes are built by the parser; the root node is the instance root element
    (whose id attribute is the form id) and has no parent.
    """

    def __init__(
        self,
        name: str,
        data_type: DataType = DataType.NULL,
        repeatable: bool = False,
        control: Optional[Control] = None,
        parent: Optional["FormModel"] = None,
    ):
        self.name = name
        self.data_type = data_type
        self.repeatable = repeatable
        self.control = control
        self.parent = parent
        self._children: List["FormModel"] = []

    def add_child(self, child: "FormModel") -> "FormModel":
        """Attach a child node, ignoring duplicates (repeat templates)."""
        child.parent = self
        if all(existing.name != child.name for existing in self._children):
            self._children.append(child)
        return child

    def children(self) -> List["FormModel"]:
        return list(self._children)

    def size(self) -> int:
        return len(self._children)

    def is_empty(self) -> bool:
        return not self._children

    def has_parent(self) -> bool:
        return self.parent is not None

    def count_ancestors(self) -> int:
        count = 0
        ancestor = self
        while ancestor.has_parent():
            count += 1
            ancestor = ancestor.parent
        return count

    def is_root(self) -> bool:
        return self.count_ancestors() == 0

    def fqn(self, shift: int = 0) -> str:
        """
        Fully qualified name: the names of this node and its ancestors below
        the root, joined with "-", dropping the first `shift` names.
        """
        names = []
        current = self
        while current.parent is not None:
            names.append(current.name)
            current = current.parent
        names.reverse()
        return "-".join(names[shift:])

    def flatten(self) -> Iterator["FormModel"]:
        """Yield every descendant, depth first, parents before children."""
        for child in self._children:
            yield child
            yield from child.flatten()

    def flat_map(self, mapper: Callable[["FormModel"], List]) -> List:
        return [item for child in self._children for item in mapper(child)]

    def is_choice_list(self) -> bool:
        if self.control is None:
            return False
        return (
            self.data_type == DataType.MULTIPLE_ITEMS
            or self.control.control_type == ControlType.SELECT_MULTI
        )

    def choices(self) -> List[str]:
        if self.control is None:
            return []
        # search() appearances pull choices from an external file at runtime
        if self.control.appearance and "search(" in self.control.appearance:
            return []
        return list(self.control.choices)

    def is_spatial(self) -> bool:
        return self.data_type in SPATIAL_TYPES

    def spatial_fields(self) -> List["FormModel"]:
        return [node for node in self.flatten() if node.is_spatial()]

    def repeatable_fields(self) -> List["FormModel"]:
        return [
            node for node in self.flatten()
            if node.data_type == DataType.NULL and node.repeatable
        ]

    def is_meta_audit(self) -> bool:
        return (
            self.name == "audit"
            and self.parent is not None
            and self.parent.name == "meta"
        )

    def has_audit_field(self) -> bool:
        audit = next((node for node in self.flatten() if node.name == "audit"), None)
        return audit is not None and audit.is_meta_audit()

    def child_by_name(self, name: str) -> "FormModel":
        for node in self.flatten():
            if node.name == name:
                return node
        raise KeyError(f"No field named {name!r} under {self.name!r}")

    def get_names(
        self,
        shift: int = 0,
        split_select_multiples: bool = False,
        remove_group_names: bool = False,
    ) -> List[str]:
        """
        Export column names for this node.

        Args:
            shift: Number of leading names to drop from each FQN
            split_select_multiples: Add one column per choice of select-multiple fields
            remove_group_names: Use the bare field name instead of the FQN

        Returns:
            List of column names
        """
        if self.data_type == DataType.NULL and self.repeatable:
            return ["SET-OF-" + self.fqn(shift)]
        if self.data_type == DataType.NULL and self.size() > 0:
            return self.flat_map(
                lambda child: child.get_names(shift, split_select_multiples, remove_group_names)
            )

        field_name = self.name if remove_group_names else self.fqn(shift)
        if self.data_type == DataType.GEOPOINT:
            return [
                f"{field_name}-Latitude",
                f"{field_name}-Longitude",
                f"{field_name}-Altitude",
                f"{field_name}-Accuracy",
            ]
        if self.is_choice_list() and split_select_multiples:
            return [field_name] + [f"{field_name}/{choice}" for choice in self.choices()]
        return [field_name]

    def __repr__(self) -> str:
        return f"FormModel(name={self.name!r}, data_type={self.data_type.value}, repeatable={self.repeatable})"
