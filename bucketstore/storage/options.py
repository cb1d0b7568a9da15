"""Object attribute and iteration option types shared by all backends."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from bucketstore.exceptions import OptionNotSupportedError


@dataclass(frozen=True)
class ObjectAttributes:
    """Metadata about a stored object."""

    size: int = 0
    last_modified: datetime | None = None


EMPTY_OBJECT_ATTRIBUTES = ObjectAttributes()


@dataclass(frozen=True)
class IterObjectAttributes:
    """
    Entry delivered to an iteration callback.

    Only the attributes requested through iteration options are populated;
    everything else keeps its default.
    """

    name: str
    last_modified: datetime | None = None


class IterOption(str, Enum):
    """Options accepted by Bucket.iter and Bucket.iter_with_attributes."""

    RECURSIVE = "recursive"
    UPDATED_AT = "updated_at"

    def __str__(self) -> str:
        return self.value


RECURSIVE = IterOption.RECURSIVE
WITH_UPDATED_AT = IterOption.UPDATED_AT


@dataclass
class IterParams:
    """Accumulated effect of a set of iteration options."""

    recursive: bool = False
    last_modified: bool = False


def apply_iter_options(*options: IterOption) -> IterParams:
    """Fold iteration options into an IterParams accumulator."""
    params = IterParams()
    for option in options:
        if option == IterOption.RECURSIVE:
            params.recursive = True
        elif option == IterOption.UPDATED_AT:
            params.last_modified = True
        else:
            raise OptionNotSupportedError(option)
    return params


def validate_iter_options(
    supported: Iterable[IterOption],
    *options: IterOption,
    provider: str | None = None,
) -> None:
    """
    Check every option against a backend's supported set.

    Raises:
        OptionNotSupportedError: For the first option the backend cannot honor
    """
    supported = frozenset(supported)
    for option in options:
        if option not in supported:
            raise OptionNotSupportedError(option, provider=provider)


def filter_name_only_options(*options: IterOption) -> tuple[IterOption, ...]:
    """Keep only options that do not require attribute computation."""
    return tuple(option for option in options if option == IterOption.RECURSIVE)
