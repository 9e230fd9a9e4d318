"""
Service support - shared plumbing for application services.

Provides:
- repository_boundary: converts repository exceptions into failed Results
- validate_input: pydantic input validation surfaced as a failed Result
"""
import functools
import logging
from typing import Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from costcontrol.domain.exceptions import DomainError, RepositoryError, ValidationError
from costcontrol.domain.result import Result

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def repository_boundary(operation: str):
    """
    Decorate an async service method so no exception escapes it.

    DomainErrors (for example from Result.unwrap) become failed Results
    unchanged; anything else is treated as a repository fault, logged with
    its traceback and wrapped in RepositoryError.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except DomainError as e:
                logger.warning(f"{operation} failed: {e.message}")
                return Result.fail(e)
            except Exception as e:
                logger.exception(f"Repository failure during {operation}")
                return Result.fail(RepositoryError(operation, e))
        return wrapper
    return decorator


def validate_input(model_cls: Type[M], data: Union[M, dict]) -> Result[M]:
    """Validate ``data`` against ``model_cls``; accepts a model instance or a dict."""
    if isinstance(data, model_cls):
        return Result.ok(data)
    try:
        return Result.ok(model_cls.model_validate(data))
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or model_cls.__name__
        return Result.fail(ValidationError(field, first.get("msg", "invalid value")))
