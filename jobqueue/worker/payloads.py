"""
Payload registry and built-in payload types.

A payload is the unit of work carried by a job. It is stored on the job
record as ``{"job_type": ..., "data": ...}`` and rebuilt by the worker
through the registry before ``perform()`` is called.

Payloads must be idempotent - a job whose worker hangs past the staleness
window can be picked up and performed a second time.
"""

import asyncio
import importlib
import inspect
import json
import logging
from collections.abc import Callable
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError

from jobqueue.errors import DeserializationError, InvalidPayload
from jobqueue.types.job import JobHandler

logger = logging.getLogger(__name__)


class Payload(BaseModel):
    """
    Base class for job payloads.

    Subclasses declare their data as pydantic fields and implement ``perform``.

    Example:
        @register_payload("send_email")
        class SendEmail(Payload):
            to: str

            async def perform(self) -> None:
                ...
    """

    job_type: ClassVar[str] = ""

    async def perform(self) -> None:
        """Do the work. Subclasses must override this; enqueue rejects those that do not."""
        raise NotImplementedError(f"{type(self).__name__} does not implement perform()")

    @classmethod
    def is_performable(cls) -> bool:
        return cls.perform is not Payload.perform

    @property
    def display_name(self) -> str:
        return self.job_type or type(self).__name__


PayloadT = TypeVar("PayloadT", bound=type[Payload])

# Payload registry
_payloads: dict[str, type[Payload]] = {}


def register_payload(job_type: str) -> Callable[[PayloadT], PayloadT]:
    """
    Class decorator to register a payload type.

    Args:
        job_type: The name stored in the job handler.

    Returns:
        Decorator function.
    """
    def decorator(cls: PayloadT) -> PayloadT:
        cls.job_type = job_type
        _payloads[job_type] = cls
        logger.debug(f"Registered payload type: {job_type}")
        return cls
    return decorator


def get_payload_class(job_type: str) -> type[Payload] | None:
    """
    Get the payload class for a job type.

    Args:
        job_type: The job type.

    Returns:
        The payload class or None if not registered.
    """
    return _payloads.get(job_type)


def list_payload_types() -> list[str]:
    """List all registered job types."""
    return list(_payloads.keys())


def serialize_payload(payload: Payload) -> dict[str, Any]:
    """
    Turn a payload into the handler stored on the job record.

    Raises:
        InvalidPayload: If the payload type is not registered, does not
            implement perform(), or its data cannot be stored as JSON.
    """
    if get_payload_class(payload.job_type) is not type(payload):
        raise InvalidPayload(
            f"Payload type {type(payload).__name__} is not registered"
        )
    if not payload.is_performable():
        raise InvalidPayload(
            f"Payload type {type(payload).__name__} does not implement perform()"
        )
    try:
        data = payload.model_dump(mode="json")
    except PydanticSerializationError as e:
        raise InvalidPayload(f"Payload data is not serializable: {e}") from e
    return JobHandler(job_type=payload.job_type, data=data).model_dump(mode="json")


def deserialize_payload(handler: dict[str, Any]) -> Payload:
    """
    Rebuild a payload from a stored handler.

    Raises:
        DeserializationError: If the handler is malformed, the job type is
            unknown, or the data does not validate.
    """
    try:
        parsed = JobHandler.model_validate(handler)
    except ValidationError as e:
        raise DeserializationError(f"Malformed job handler: {e}") from e

    cls = get_payload_class(parsed.job_type)
    if cls is None:
        raise DeserializationError(f"No payload registered for job type: {parsed.job_type}")

    try:
        return cls.model_validate(parsed.data)
    except ValidationError as e:
        raise DeserializationError(
            f"Invalid data for job type {parsed.job_type}: {e}"
        ) from e


# ============================================================================
# Built-in payloads
# ============================================================================


def callable_target(func: Callable[..., Any]) -> str:
    """
    Compute the import path of a callable as ``module:qualname``.

    Raises:
        InvalidPayload: If the callable cannot be found again by import.
    """
    module = getattr(func, "__module__", None)
    qualname = getattr(func, "__qualname__", None)
    if not module or not qualname or "<" in qualname:
        raise InvalidPayload(
            f"Cannot enqueue {func!r}: only importable module-level callables can be stored"
        )

    target = f"{module}:{qualname}"
    try:
        resolved = resolve_target(target)
    except DeserializationError as e:
        raise InvalidPayload(f"Cannot enqueue {func!r}: {e}") from e
    # Bound methods of instances resolve to the plain function and lose self
    if resolved != func:
        raise InvalidPayload(f"Cannot enqueue {func!r}: {target} resolves to a different object")
    return target


def resolve_target(target: str) -> Callable[..., Any]:
    """
    Import the callable named by ``module:qualname``.

    Raises:
        DeserializationError: If the target cannot be imported.
    """
    module_name, _, qualname = target.partition(":")
    if not module_name or not qualname:
        raise DeserializationError(f"Invalid callable target: {target!r}")

    try:
        obj: Any = importlib.import_module(module_name)
        for attr in qualname.split("."):
            obj = getattr(obj, attr)
    except (ImportError, AttributeError) as e:
        raise DeserializationError(f"Cannot import {target}: {e}") from e

    if not callable(obj):
        raise DeserializationError(f"{target} is not callable")
    return obj


def _survives_json(value: Any) -> bool:
    # Tuples, datetimes, non-string keys and NaN all come back different
    try:
        return json.loads(json.dumps(value)) == value
    except (TypeError, ValueError):
        return False


@register_payload("callable")
class CallablePayload(Payload):
    """
    Delayed call of an importable function.

    Coroutine functions are awaited, plain functions run in a thread.
    """

    target: str
    args: list[Any] = []
    kwargs: dict[str, Any] = {}

    @classmethod
    def from_callable(
        cls,
        func: Callable[..., Any],
        args: tuple[Any, ...] | list[Any] = (),
        kwargs: dict[str, Any] | None = None,
    ) -> "CallablePayload":
        """
        Wrap a callable and its arguments.

        Raises:
            InvalidPayload: If the callable is not importable, does not
                accept the given arguments, or the arguments would not come
                back unchanged from JSON.
        """
        args = list(args)
        kwargs = dict(kwargs or {})
        target = callable_target(func)
        try:
            inspect.signature(func).bind(*args, **kwargs)
        except TypeError as e:
            raise InvalidPayload(f"Cannot enqueue {target}: {e}") from e
        except ValueError:
            # No signature available (some builtins); defer to call time
            pass

        if not _survives_json(args) or not _survives_json(kwargs):
            raise InvalidPayload(
                f"Cannot enqueue {target}: arguments must be plain JSON values "
                "(str, int, float, bool, None, lists and string-keyed dicts)"
            )
        return cls(target=target, args=args, kwargs=kwargs)

    @property
    def display_name(self) -> str:
        return self.target

    async def perform(self) -> None:
        func = resolve_target(self.target)
        if inspect.iscoroutinefunction(func):
            await func(*self.args, **self.kwargs)
        else:
            await asyncio.to_thread(func, *self.args, **self.kwargs)
