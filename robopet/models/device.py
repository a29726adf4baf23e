"""Robot pet domain models: components, problems, visual cues and customizations."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AgeGroup(str, Enum):
    YOUNG = "3-5"
    MIDDLE = "6-8"
    OLDER = "9-12"


class ComponentType(str, Enum):
    POWER_CORE = "power_core"
    MOTOR_SYSTEM = "motor_system"
    SENSOR_ARRAY = "sensor_array"
    CHASSIS_PLATING = "chassis_plating"
    PROCESSING_UNIT = "processing_unit"


class ProblemType(str, Enum):
    BROKEN = "broken"
    DIRTY = "dirty"
    DISCONNECTED = "disconnected"
    LOW_POWER = "low_power"


class ToolType(str, Enum):
    SCREWDRIVER = "screwdriver"
    WRENCH = "wrench"
    OIL_CAN = "oil_can"
    BATTERY = "battery"
    CIRCUIT_BOARD = "circuit_board"
    # Unlocked through milestones
    CLEANING_BRUSH = "cleaning_brush"
    DIAGNOSTIC_SCANNER = "diagnostic_scanner"
    PREMIUM_WRENCH = "premium_wrench"
    SUPER_BATTERY = "super_battery"


BASIC_TOOLS = [
    ToolType.SCREWDRIVER,
    ToolType.WRENCH,
    ToolType.OIL_CAN,
    ToolType.BATTERY,
    ToolType.CIRCUIT_BOARD,
]


class PetType(str, Enum):
    DOG = "dog"
    CAT = "cat"
    BIRD = "bird"
    DRAGON = "dragon"


COMPONENT_NAMES = {
    ComponentType.POWER_CORE: "Power Core",
    ComponentType.MOTOR_SYSTEM: "Motor System",
    ComponentType.SENSOR_ARRAY: "Sensor Array",
    ComponentType.CHASSIS_PLATING: "Chassis Plating",
    ComponentType.PROCESSING_UNIT: "Processing Unit",
}

# Hit-box size (width, height) around a component's centre
COMPONENT_SIZES = {
    ComponentType.CHASSIS_PLATING: (120.0, 80.0),
    ComponentType.POWER_CORE: (50.0, 50.0),
    ComponentType.SENSOR_ARRAY: (80.0, 40.0),
    ComponentType.MOTOR_SYSTEM: (70.0, 60.0),
    ComponentType.PROCESSING_UNIT: (60.0, 40.0),
}

_BASE_POSITIONS = {
    ComponentType.POWER_CORE: (100.0, 150.0),
    ComponentType.MOTOR_SYSTEM: (80.0, 120.0),
    ComponentType.SENSOR_ARRAY: (120.0, 80.0),
    ComponentType.CHASSIS_PLATING: (100.0, 100.0),
    ComponentType.PROCESSING_UNIT: (110.0, 90.0),
}

# Per-species layout tweaks on top of the base positions
_POSITION_OVERRIDES = {
    PetType.DOG: {ComponentType.SENSOR_ARRAY: (120.0, 70.0)},
    PetType.CAT: {ComponentType.SENSOR_ARRAY: (115.0, 80.0)},
    PetType.BIRD: {ComponentType.MOTOR_SYSTEM: (80.0, 110.0)},
    PetType.DRAGON: {ComponentType.POWER_CORE: (105.0, 150.0)},
}


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class Bounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.width and self.y <= y <= self.y + self.height


def component_bounds(component_type: ComponentType, position: Position) -> Bounds:
    """Hit-box centred on the component position."""
    width, height = COMPONENT_SIZES.get(component_type, (60.0, 60.0))
    return Bounds(x=position.x - width / 2, y=position.y - height / 2, width=width, height=height)


class VisualCue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["spark", "smoke", "dirt", "warning_light"]
    position: Position
    intensity: float = Field(ge=0.0, le=1.0)


class Problem(BaseModel):
    """A single fault on one component. Immutable once generated."""

    model_config = ConfigDict(frozen=True)

    id: str
    component: ComponentType
    problem_type: ProblemType
    severity: int = Field(ge=1, le=3)
    required_tool: ToolType
    description: str
    visual_cues: tuple[VisualCue, ...] = ()


class Component(BaseModel):
    id: str
    type: ComponentType
    name: str
    position: Position


class Customization(BaseModel):
    id: str
    type: Literal["color", "accessory", "pattern"]
    value: str
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RobotPet(BaseModel):
    id: str
    name: str
    pet_type: PetType
    components: list[Component]
    customizations: list[Customization] = []
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def component(self, component_type: ComponentType) -> Component | None:
        for c in self.components:
            if c.type == component_type:
                return c
        return None

    def component_types(self) -> list[ComponentType]:
        return [c.type for c in self.components]


def default_components(pet_type: PetType) -> list[Component]:
    """Full five-part component inventory laid out for the given species."""
    overrides = _POSITION_OVERRIDES.get(pet_type, {})
    components = []
    for component_type in ComponentType:
        x, y = overrides.get(component_type, _BASE_POSITIONS[component_type])
        components.append(Component(
            id=f"{pet_type.value}_{component_type.value}",
            type=component_type,
            name=COMPONENT_NAMES[component_type],
            position=Position(x=x, y=y),
        ))
    return components


def create_pet(name: str, pet_type: PetType, pet_id: str | None = None) -> RobotPet:
    return RobotPet(
        id=pet_id or f"pet_{uuid.uuid4().hex[:12]}",
        name=name,
        pet_type=pet_type,
        components=default_components(pet_type),
    )
