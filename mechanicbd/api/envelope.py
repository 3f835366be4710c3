"""Unwrap the API's ``{"success": true, "data": {...}}`` envelope into models."""

from typing import TypeVar

from pydantic import BaseModel, ValidationError

from mechanicbd.api.errors import ResponseShapeError

M = TypeVar("M", bound=BaseModel)


def _data(payload: dict) -> dict:
    data = payload.get("data")
    if data is None:
        # Some endpoints return the body without an envelope
        return payload
    if not isinstance(data, dict):
        return {"items": data}
    return data


def parse_data(payload: dict, model: type[M], key: str | None = None) -> M:
    """Validate ``payload["data"][key]`` (or ``payload["data"]``) as ``model``."""
    try:
        data = _data(payload)
        value = data[key] if key else data
        return model.model_validate(value)
    except (ValidationError, KeyError, TypeError) as exc:
        raise ResponseShapeError(payload=payload) from exc


def raw_data(payload: dict, key: str | None = None) -> dict:
    """The unparsed ``data`` object (or ``data[key]``), for storing as-is in the session."""
    data = _data(payload)
    value = data.get(key) if key else data
    if not isinstance(value, dict):
        raise ResponseShapeError(payload=payload)
    return value


def parse_list(payload: dict, model: type[M], key: str) -> list[M]:
    """Validate ``payload["data"][key]`` as a list of ``model``.

    A bare list under ``data`` is accepted as well.
    """
    try:
        data = _data(payload)
        items = data.get(key, data.get("items"))
        if items is None:
            raise KeyError(key)
        return [model.model_validate(item) for item in items]
    except (ValidationError, KeyError, TypeError, AttributeError) as exc:
        raise ResponseShapeError(payload=payload) from exc
