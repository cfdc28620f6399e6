from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from cauth.core.errors import InvalidInput


SchemaT = TypeVar("SchemaT", bound=BaseModel)


def validate_input(schema: type[SchemaT], **values: Any) -> SchemaT:
    """Build ``schema`` from keyword values, reporting violations as InvalidInput."""
    try:
        return schema(**values)
    except ValidationError as e:
        fields = ", ".join(str(error["loc"][-1]) for error in e.errors() if error.get("loc"))
        raise InvalidInput(f"Invalid value for: {fields}") from e
