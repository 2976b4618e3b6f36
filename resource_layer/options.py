"""
Construction options for resource registries.
"""

from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from shared.errors import ValidationError


class ResourceOptions(BaseModel):
    """Validated registry configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    id_key: str = Field(default="id", min_length=1)
    namespace: str = Field(default="core", min_length=1)
    use_content_cache_key: bool = False
    content_cache_key: Optional[str] = None
    extensions: Dict[str, Callable[..., Any]] = Field(default_factory=dict)

    @field_validator("extensions")
    @classmethod
    def _check_extension_names(cls, value: Dict[str, Callable[..., Any]]) -> Dict[str, Callable[..., Any]]:
        for hook_name in value:
            if not hook_name.isidentifier() or hook_name.startswith("_"):
                raise ValueError(f"invalid extension name: {hook_name!r}")
        return value

    @model_validator(mode="after")
    def _check_content_cache_key(self) -> "ResourceOptions":
        if self.use_content_cache_key and not self.content_cache_key:
            raise ValueError("use_content_cache_key requires a content_cache_key")
        return self

    @property
    def qualified_name(self) -> str:
        """Resource name qualified by its namespace."""
        return f"{self.namespace}:{self.name}"


def build_options(**kwargs: Any) -> ResourceOptions:
    """Build ResourceOptions, reporting problems as a bad request shape."""
    if not kwargs.get("name"):
        raise ValidationError("Resource must be instantiated with a name property")
    try:
        return ResourceOptions(**kwargs)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid resource options",
            details={"errors": exc.errors(include_url=False, include_context=False)}
        ) from exc
