"""Capability registry with a name -> callable dispatch table."""

import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from .errors import DuplicateCapabilityError
from .models import Capability

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Registry of the capabilities available to a planner.

    Names are unique and a registered capability is never removed or
    redefined. Execution goes through a dispatch table populated at
    registration time.
    """

    def __init__(self, capabilities: Optional[list[Capability]] = None):
        """Initialize the registry, optionally seeded with capabilities."""
        self._capabilities: dict[str, Capability] = {}
        self._dispatch: dict[str, Callable[..., Any]] = {}
        for capability in capabilities or []:
            self.register(capability)

    def register(
        self,
        capability: Capability,
        executor: Optional[Callable[..., Any]] = None,
    ) -> None:
        """Register a capability; duplicate names are an error."""
        if capability.name in self._capabilities:
            raise DuplicateCapabilityError(capability.name)
        self._capabilities[capability.name] = capability
        backend = executor or capability.executor
        if backend is not None:
            self._dispatch[capability.name] = backend
        logger.debug("Registered capability %s", capability.name)

    def register_simple(
        self,
        name: str,
        description: str,
        executor: Callable[..., Any],
        input_schema: Optional[dict[str, Any]] = None,
        output_schema: Optional[dict[str, Any]] = None,
    ) -> Capability:
        """Register a capability with a simple interface."""
        capability = Capability(
            name=name,
            description=description,
            input_schema=input_schema or {},
            output_schema=output_schema or {},
            executor=executor,
        )
        self.register(capability)
        return capability

    def is_registered(self, name: str) -> bool:
        """Check if a capability is registered."""
        return name in self._capabilities

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    def get(self, name: str) -> Optional[Capability]:
        """Get a capability by name."""
        return self._capabilities.get(name)

    def list_capabilities(self) -> list[str]:
        """List all registered capability names."""
        return list(self._capabilities.keys())

    def capabilities(self) -> list[Capability]:
        """Return the registered capabilities."""
        return list(self._capabilities.values())

    def snapshot(self) -> list[str]:
        """Sorted capability names, used to record what a plan attempt saw."""
        return sorted(self._capabilities)

    def invoke(self, name: str, input_data: Any) -> Any:
        """Dispatch a call to the capability's execution backend."""
        if name not in self._capabilities:
            raise KeyError(f"Capability '{name}' is not registered")
        backend = self._dispatch.get(name)
        if backend is None:
            raise LookupError(f"Capability '{name}' has no execution backend")
        if isinstance(input_data, dict):
            is_valid, error = self.validate_input(name, input_data)
            if not is_valid:
                raise ValueError(error)
        return backend(input_data)

    def validate_input(self, name: str, input_data: dict[str, Any]) -> tuple[bool, Optional[str]]:
        """Validate input against the capability's input schema."""
        capability = self.get(name)
        if not capability:
            return False, f"Capability '{name}' is not registered"

        try:
            InputModel = self._create_model_from_schema(capability.input_schema, f"{name}Input")
            InputModel(**input_data)
            return True, None
        except ValidationError as e:
            return False, f"Input validation failed: {e}"

    def _create_model_from_schema(self, schema: dict[str, Any], model_name: str) -> type[BaseModel]:
        """Create a Pydantic model from a JSON schema."""
        annotations = {}
        field_defaults = {}
        required = set(schema.get("required", []))

        for field_name, field_def in schema.get("properties", {}).items():
            field_def = field_def if isinstance(field_def, dict) else {}
            field_type = self._get_pydantic_type(field_def.get("type", "string"))
            if "default" in field_def:
                field_defaults[field_name] = field_def["default"]
            elif required and field_name not in required:
                field_type = Optional[field_type]
                field_defaults[field_name] = None
            annotations[field_name] = field_type

        namespace = {
            "__annotations__": annotations,
            **field_defaults,
        }
        # Model names must be identifiers; capability names may contain dashes.
        safe_name = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in model_name)
        return type(safe_name, (BaseModel,), namespace)

    def _get_pydantic_type(self, json_type: str) -> type:
        """Convert JSON schema type to Python type."""
        type_map = {
            "string": str,
            "integer": int,
            "number": float,
            "boolean": bool,
            "array": list,
            "object": dict,
        }
        return type_map.get(json_type, str)
