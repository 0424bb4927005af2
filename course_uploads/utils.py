"""Utility functions for the course upload service."""

import dataclasses
import os
import typing
from typing import Any
from typing import Callable
from typing import TypeVar


T = TypeVar("T")


def env(key: str, convert: Callable[[str], T] = typing.cast(Callable[[str], T], str), **kwargs: Any) -> T:
    """Load a value from environment variables with optional default and type conversion."""
    key, partition, default = key.partition(":")

    def default_factory(
        key_val: str = key, default_val: str = default, convert_func: Callable[[str], T] = convert
    ) -> T:
        if key_val in os.environ:
            return convert_func(os.environ[key_val])

        if partition == ":":
            return convert_func(default_val)

        raise KeyError(key_val)

    return typing.cast(T, dataclasses.field(default_factory=default_factory, **kwargs))


def split_csv(value: str) -> tuple[str, ...]:
    """Split a comma separated env value into a tuple of trimmed, non-empty items."""
    return tuple(item.strip() for item in value.split(",") if item.strip())


def mask_database_url(url: str) -> str:
    """Mask credentials in database URL for logging."""
    if "://" in url and "@" in url:
        prefix, rest = url.split("://", 1)
        if ":" in rest and "@" in rest:
            user_pass, host_db = rest.split("@", 1)
            if ":" in user_pass:
                user, _ = user_pass.split(":", 1)
                return f"{prefix}://{user}:***@{host_db}"
    return url
