# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides the :class:`UserOptionConfigured` mixin class that lets a class be configured from a
:class:`.UserOptions` dataclass and later be reset to that configuration.

Example:
    Basic usage::

        @dataclass
        class SolverOptions(UserOptions):
            max_iter: int = 5

        class Solver(UserOptionConfigured[SolverOptions], SolverOptions):
            def __init__(self, options: SolverOptions | None = None):
                super().__init__(SolverOptions, options=options)

        solver = Solver()
        solver.max_iter = 6
        solver.reset_settings()  # max_iter is 5 again

.. Note::
    :class:`UserOptionConfigured` must come first in the bases of the configured class.
"""

import copy

from typing import Generic, TypeVar

from pincal.utilities.options import UserOptions


OptionsT = TypeVar("OptionsT", bound=UserOptions)


class UserOptionConfigured(Generic[OptionsT]):
    """
    Mixin class providing :class:`.UserOptions` based configuration with reset capability.

    The options used at initialization are stored (as a deep copy) in :attr:`original_options` so that later edits to
    the instance can be undone with :meth:`reset_settings`.  When no options are provided the default instance of
    ``options_type`` is used.
    """

    def __init__(self, options_type: type[OptionsT], *args, options: OptionsT | None = None, **kwargs) -> None:
        """
        :param options_type: The type of the :class:`.UserOptions` to use
        :param options: An optional instance of `options_type` preconfigured.
        """

        super().__init__(*args, **kwargs)

        if options is None:
            options = options_type()

        options.apply_options(self)

        self._original_options: OptionsT = copy.deepcopy(options)

    def reset_settings(self) -> None:
        """
        Resets the instance to the options it was originally initialized with.
        """

        self._original_options.apply_options(self)

    @property
    def original_options(self) -> OptionsT:
        """
        The options used during initialization.
        """
        return self._original_options
