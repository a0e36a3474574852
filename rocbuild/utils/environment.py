import dataclasses
import os
import typing

from rocbuild.errors import ConfigurationError

T = typing.TypeVar('T')
"""Type variable for :py:class:`~EnvironmentField` and related generics."""

@dataclasses.dataclass(slots=True)
class EnvironmentField(typing.Generic[T]):
    """
    Descriptor that returns a value read from an environment variable.

    The environment is read on every access, so that two builders configured
    at different times never share a stale value.

    Based on:

    * https://docs.python.org/3/howto/descriptor.html
    * https://mypy.readthedocs.io/en/stable/generics.html#defining-generic-classes
    """
    env: str | None = None
    """
    Name of the environment variable.
    """

    converter: typing.Callable[[str], T] | None = None
    """
    Callable to convert the value of the environment variable to the target type.

    It may raise :py:class:`ValueError`, which is turned into a :py:class:`rocbuild.errors.ConfigurationError`.
    """

    default: T | None = None
    """
    Default value if the environment variable does not exist.
    """

    _attr_name: str | None = dataclasses.field(default=None, init=False, repr=False)
    """
    Name of the attribute.
    """

    def __post_init__(self) -> None:
        if self.default is not None and self.converter is None:
            self.converter = type(self.default)

    def __set_name__(self, owner: type, name: str) -> None:
        """
        References:

        * https://docs.python.org/3/reference/datamodel.html#object.__set_name__
        """
        self._attr_name = name

    @typing.overload
    def __get__(self, instance: None, owner: type) -> "EnvironmentField[T]": ...

    @typing.overload
    def __get__(self, instance: object, owner: type) -> T | None: ...

    def __get__(self, instance, owner=None):
        """
        References:

        * https://docs.python.org/3/reference/datamodel.html#object.__get__
        """
        if instance is None:
            return self

        return self.read()

    @property
    def key(self) -> str:
        if (key := self.env or self._attr_name) is None:
            raise AttributeError("Descriptor not initialized properly.")
        return key

    def read(self) -> T | None:
        """
        Read from the environment.

        Returns :py:attr:`default` (possibly `None`) if the variable is not set.
        """
        if (value := os.getenv(self.key)) is None:
            return self.default

        if self.converter is None:
            return typing.cast(T, value)

        try:
            return self.converter(value)
        except ValueError as error:
            raise ConfigurationError(f'{self.key} is not set to a valid value: {value!r} ({error}).') from error

def positive_int(value: str) -> int:
    """
    Convert to a strictly positive integer, without clamping.

    >>> from rocbuild.utils.environment import positive_int
    >>> positive_int(' 8 ')
    8
    """
    if (converted := int(value.strip())) < 1:
        raise ValueError(f'expected a positive integer, got {converted}')
    return converted
