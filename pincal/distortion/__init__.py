# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This package provides the lens distortion strategies that can be plugged into a :class:`.PinholeProjection`.

=================================== ===================== ==============================================================
Class                               Config ``type``       Coefficients
=================================== ===================== ==============================================================
:class:`.NoDistortion`              ``none``              (none)
:class:`.RadialTangentialDistortion` ``radial_tangential`` ``k1``, ``k2``, ``p1``, ``p2``
:class:`.FisheyeDistortion`         ``fisheye``           ``w``
:class:`.EquidistantDistortion`     ``equidistant``       ``k1``, ``k2``, ``k3``, ``k4``
=================================== ===================== ==============================================================

Use :func:`distortion_from_config` to build one of these from a configuration mapping.
"""

from enum import Enum

from pincal._typing import CONFIG
from pincal.exceptions import ConfigurationError

from pincal.distortion.distortion import Distortion
from pincal.distortion.no_distortion import NoDistortion
from pincal.distortion.radial_tangential import RadialTangentialDistortion
from pincal.distortion.fisheye import FisheyeDistortion
from pincal.distortion.equidistant import EquidistantDistortion


class DistortionType(Enum):
    """
    An enum specifying the available distortion strategies by their configuration name.
    """

    NONE = 'none'
    """
    No distortion
    """

    RADIAL_TANGENTIAL = 'radial_tangential'
    """
    Radial-tangential (plumb bob) distortion
    """

    FISHEYE = 'fisheye'
    """
    Field of view fisheye distortion
    """

    EQUIDISTANT = 'equidistant'
    """
    Equidistant distortion
    """

    @property
    def distortion_class(self) -> type[Distortion]:
        """
        The class implementing this distortion type
        """

        match self:
            case DistortionType.NONE:
                return NoDistortion
            case DistortionType.RADIAL_TANGENTIAL:
                return RadialTangentialDistortion
            case DistortionType.FISHEYE:
                return FisheyeDistortion
            case DistortionType.EQUIDISTANT:
                return EquidistantDistortion

    @classmethod
    def from_class_name(cls, name: str) -> 'DistortionType':
        """
        Looks up the distortion type implemented by the class called ``name``.

        :raises ValueError: if no distortion type is implemented by a class with that name
        """

        for member in cls:
            if member.distortion_class.__name__ == name:
                return member

        raise ValueError(f'{name!r} is not a known distortion class')


def distortion_from_config(config: CONFIG) -> Distortion:
    """
    Builds a distortion strategy from a configuration mapping.

    The mapping must contain a ``type`` key naming one of the :class:`DistortionType` values along with the
    coefficients of that distortion, for instance ``{'type': 'fisheye', 'w': 0.9}``.

    :param config: The configuration mapping
    :return: The configured distortion
    :raises ConfigurationError: if the type is missing or unknown, or a coefficient is missing
    """

    if 'type' not in config:
        raise ConfigurationError("The distortion configuration must specify a 'type'")

    try:
        distortion_type = DistortionType(str(config['type']).lower())
    except ValueError as err:
        raise ConfigurationError(f'Unknown distortion type {config["type"]!r}') from err

    return distortion_type.distortion_class.from_config(config)


__all__ = ["Distortion", "NoDistortion", "RadialTangentialDistortion", "FisheyeDistortion", "EquidistantDistortion",
           "DistortionType", "distortion_from_config"]
