# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides the :class:`UserOptions` abstract dataclass used to configure pincal routines.
"""

from dataclasses import dataclass, fields

from typing import Dict, Any, TypeVar, Type

from abc import ABCMeta

from pincal._typing import CONFIG
from pincal.exceptions import ConfigurationError


OptionsT = TypeVar("OptionsT", bound="UserOptions")


@dataclass
class UserOptions(metaclass=ABCMeta):
    """
    This is an abstract class used to create a dataclass of user options.

    These options are used to set defaults for parameters set inside the associated class for the options.

    Custom objects built from this abstract class should follow the naming scheme <callable_name>Options and be
    provided through the options keyword argument of callable_name.__init__().

    To apply options to your class, the :meth:`apply_options` method should be invoked.

    for example:
        >>> @dataclass
        >>> class ExampleOptions(UserOptions):
        >>>     example_var : int = 1234

        >>> class Example:
        >>>     def __init__(self, options = None):
        >>>         if options is None:
        >>>             options = ExampleOptions()
        >>>         options.apply_options(self)  # apply the options as attributes of self
        >>> my_example = Example()
        >>> print(my_example.example_var)
        ...     1234
    """

    def override_options(self):
        """
        This method is used for special cases when certain options should be overwritten before they are applied
        """
        pass

    def apply_options(self, target: object) -> None:
        """
        Update the options as attributes of the object class

        :param target: the instance that we are to update
        """
        target.__dict__.update(self.options_dict)

    @property
    def options_dict(self) -> Dict[str, Any]:
        """
        Determine the options input to the dataclass.

        This property ignores anything that isn't a dataclass field
        """

        self.override_options()
        return {field.name: getattr(self, field.name) for field in fields(self)}

    @classmethod
    def from_mapping(cls: Type[OptionsT], config: CONFIG) -> OptionsT:
        """
        Build the options from a key/value configuration source.

        Keys that are not present keep their default values.

        :param config: the mapping to read the options from
        :return: the configured options
        :raises ConfigurationError: if the mapping contains a key that is not an option of this class
        """

        known = {field.name for field in fields(cls)}

        unknown = set(config) - known
        if unknown:
            raise ConfigurationError(f'Unknown options for {cls.__name__}: {", ".join(sorted(unknown))}')

        return cls(**dict(config))
