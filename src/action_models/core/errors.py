"""Exception and warning types shared across the package."""

from __future__ import annotations


class ActionModelsError(Exception):
    """Base class for package errors."""


class ActionModelsWarning(UserWarning):
    """Warning category for recoverable modeling conditions."""


class ModelSpecificationError(ActionModelsError, ValueError):
    """Declared schema and realized model disagree.

    Raised at construction time when declarations, the step function signature,
    step function return values or submodel names are inconsistent.
    """


class AttributeTypeError(ActionModelsError, TypeError):
    """Value is incompatible with the declared attribute type or shape."""


class UnknownAttributeError(ActionModelsError, KeyError):
    """Requested attribute name is not declared.

    Parameters
    ----------
    name : str
        Offending attribute name.
    kind : str
        Attribute kind, e.g. ``"parameter"``, ``"state"`` or ``"action"``.
    available : tuple[str, ...], optional
        Names that would have been accepted.
    location : str, optional
        Where the name was looked up, used in the message.
    """

    def __init__(
        self,
        name: str,
        kind: str,
        available: tuple[str, ...] = (),
        *,
        location: str = "model attributes or in the submodel",
    ) -> None:
        self.name = name
        self.kind = kind
        self.available = tuple(available)
        message = f"{kind} {name!r} not found in {location}"
        if self.available:
            message += f"; available: {', '.join(self.available)}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0])


class DatasetError(ActionModelsError, ValueError):
    """Dataset columns or values are incompatible with the action model."""


class RejectParameters(ActionModelsError):
    """Signal raised by step functions to reject the current parameter draw.

    When parameter-rejection checking is enabled for a fitted model, a draw
    that raises this error is given probability zero. Otherwise the error
    propagates like any other exception.
    """


__all__ = [
    "ActionModelsError",
    "ActionModelsWarning",
    "AttributeTypeError",
    "DatasetError",
    "ModelSpecificationError",
    "RejectParameters",
    "UnknownAttributeError",
]
