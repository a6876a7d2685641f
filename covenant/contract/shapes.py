import re
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

from covenant.errors import ContractConfigurationError

# {"id": str, "limit": (int, 10)} or a ready pydantic model
Shape = Union[Mapping[str, Any], Type[BaseModel]]

_NON_WORD_RE = re.compile(r"\W+")


def is_model(value: Any) -> bool:
    return isinstance(value, type) and issubclass(value, BaseModel)


def _field_name(key: str) -> str:
    name = _NON_WORD_RE.sub("_", key).strip("_") or "field"
    if name[0].isdigit():
        name = f"f_{name}"
    return name


def compile_shape(name: str, shape: Optional[Shape]) -> Optional[Type[BaseModel]]:
    if shape is None:
        return None
    if is_model(shape):
        return shape
    if not isinstance(shape, Mapping):
        raise ContractConfigurationError(
            f"{name}: a shape must be a mapping of fields or a pydantic model, "
            f"got {type(shape).__name__}"
        )

    fields: Dict[str, Any] = {}
    for key, field in shape.items():
        annotation, default = field if isinstance(field, tuple) else (field, ...)
        if key.isidentifier() and not key.startswith("_"):
            fields[key] = (annotation, default)
        else:
            # "x-request-id" and friends keep their wire name as an alias
            fields[_field_name(key)] = (
                Annotated[annotation, Field(alias=key)],
                default,
            )

    return create_model(
        name,
        __config__=ConfigDict(populate_by_name=True),
        **fields,
    )


def shape_keys(model: Type[BaseModel]) -> List[str]:
    return [info.alias or key for key, info in model.model_fields.items()]


def error_shape(code: str) -> Type[BaseModel]:
    return create_model(f"Error_{_field_name(code)}", code=(Literal[code], ...))


def model_name(method: str, path: str, suffix: str) -> str:
    words = [part for part in _NON_WORD_RE.split(path) if part]
    return "".join(word[:1].upper() + word[1:] for word in [method, *words, suffix])
