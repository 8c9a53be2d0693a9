# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides a mixin implementing a default __repr__ built from the public state of an instance.
"""

from typing import Iterator, Tuple, Any


class AttributePrinting:
    """
    A mixin class that provides __repr__ functionality.

    Every instance attribute is reported as ``name=value``.  Private attributes (leading underscore) are reported under
    their public name when the class exposes a property of that name and are skipped otherwise.
    """

    def _public_state(self) -> Iterator[Tuple[str, Any]]:
        for attr, value in self.__dict__.items():
            if not attr.startswith('_'):
                yield attr, value
                continue

            prop_name = attr.lstrip('_')
            if isinstance(getattr(type(self), prop_name, None), property):
                yield prop_name, getattr(self, prop_name)

    def __repr__(self) -> str:
        attributes = ', '.join(f'{attr}={value!r}'.replace('\n', '') for attr, value in self._public_state())
        return f'{type(self).__name__}({attributes})'
