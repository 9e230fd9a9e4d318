"""
Cost Code Entities - identifiers used to classify construction costs.

Provides:
- CostCode: validated AA-#### identifier with optional description
- CostCodeHierarchy: four-level dotted classification tree node
  (Division / Subdivision / Cost Type / Detail)
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from ..exceptions import ValidationError
from ..result import Result


COST_CODE_PATTERN = re.compile(r"^[A-Z]{2,5}-[0-9]{2,4}$")

# Two-digit segments for levels 1-3, three digits for the detail level
HIERARCHY_CODE_PATTERN = re.compile(r"^(\d{2})(\.(\d{2}))?(\.(\d{2}))?(\.(\d{3}))?$")

MIN_LEVEL = 1
MAX_LEVEL = 4
MIN_NAME_LENGTH = 2

LEVEL_NAMES = {
    1: "Division",
    2: "Subdivision",
    3: "Cost Type",
    4: "Detail",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CostCode:
    """
    Cost code identifier such as ``CONC-0310``.

    Attributes:
        value: Upper-cased code matching AA-## .. AAAAA-####
        description: Optional trimmed free text
    """

    value: str
    description: Optional[str] = None

    @classmethod
    def create(cls, value: str, description: Optional[str] = None) -> Result["CostCode"]:
        if not value or not value.strip():
            return Result.fail(ValidationError("value", "cost code is required"))

        normalized = value.strip().upper()
        if not COST_CODE_PATTERN.match(normalized):
            return Result.fail(ValidationError(
                "value", "cost code must match pattern AA-## (letters-numbers)"
            ))

        if description is not None:
            description = description.strip() or None

        return Result.ok(cls(value=normalized, description=description))

    def __str__(self) -> str:
        return self.value

    def to_dict(self) -> dict:
        return {"value": self.value, "description": self.description}


@dataclass(eq=False)
class CostCodeHierarchy:
    """
    Node in the cost code classification tree.

    The dotted code carries one segment per level, so ``01.02`` is a
    level-2 Subdivision under Division ``01``. Nodes are never physically
    removed; deactivate() is the soft delete.

    Attributes:
        id: Unique identifier
        code: Dotted numeric code (1-4 segments)
        name: Display name (at least two characters)
        level: 1=Division, 2=Subdivision, 3=Cost Type, 4=Detail
        parent_code: Code of the parent node (required when level > 1)
        description: Optional free text
        is_active: False once deactivated
        sort_order: Display ordering among siblings
    """

    code: str
    name: str
    level: int
    parent_code: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        code: str,
        name: str,
        level: int,
        parent_code: Optional[str] = None,
        description: Optional[str] = None,
        sort_order: int = 0,
        is_active: bool = True,
        id: Optional[UUID] = None,
    ) -> Result["CostCodeHierarchy"]:
        """
        Validate and build a hierarchy node.

        Checks run in order: required fields, code format, segment count
        equals level, level range, parent presence, name length.
        """
        if not code or not name or level is None:
            return Result.fail(ValidationError("code", "code, name and level are required"))

        code = code.strip()
        if not HIERARCHY_CODE_PATTERN.match(code):
            return Result.fail(ValidationError(
                "code", f"'{code}' is not a valid hierarchy code (e.g. 01, 01.02, 01.02.03, 01.02.03.001)"
            ))

        segments = len(code.split("."))
        if segments != level:
            return Result.fail(ValidationError(
                "level", f"code '{code}' has {segments} segment(s) but level is {level}"
            ))

        if level < MIN_LEVEL or level > MAX_LEVEL:
            return Result.fail(ValidationError("level", f"level must be between {MIN_LEVEL} and {MAX_LEVEL}"))

        if level > MIN_LEVEL and not (parent_code and parent_code.strip()):
            return Result.fail(ValidationError("parent_code", f"level {level} codes require a parent code"))

        if len(name.strip()) < MIN_NAME_LENGTH:
            return Result.fail(ValidationError("name", f"name must be at least {MIN_NAME_LENGTH} characters"))

        node = cls(
            code=code,
            name=name.strip(),
            level=level,
            parent_code=parent_code.strip() if parent_code else None,
            description=description.strip() if description else None,
            is_active=is_active,
            sort_order=sort_order,
            id=id or uuid4(),
        )
        return Result.ok(node)

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def activate(self) -> None:
        self.is_active = True
        self.touch()

    def deactivate(self) -> None:
        self.is_active = False
        self.touch()

    def update_description(self, description: Optional[str]) -> None:
        self.description = description
        self.touch()

    def update_sort_order(self, sort_order: int) -> None:
        self.sort_order = sort_order
        self.touch()

    @property
    def level_name(self) -> str:
        return LEVEL_NAMES[self.level]

    @property
    def is_division(self) -> bool:
        return self.level == 1

    @property
    def is_subdivision(self) -> bool:
        return self.level == 2

    @property
    def is_cost_type(self) -> bool:
        return self.level == 3

    @property
    def is_detail(self) -> bool:
        return self.level == 4

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "level": self.level,
            "level_name": self.level_name,
            "parent_code": self.parent_code,
            "description": self.description,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
