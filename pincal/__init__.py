# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
pincal provides a pinhole projection model with pluggable lens distortion and analytic Jacobians, along with the tools
to bootstrap its intrinsics from a single observation of a planar calibration grid.

The package is organized as

* :mod:`pincal.distortion` - the lens distortion strategies
* :mod:`pincal.camera_models` - the projection models and their persistence
* :mod:`pincal.calibration` - calibration targets, pose estimation, reprojection scoring and intrinsics initialization
* :mod:`pincal.transformation` - rigid transformations between frames
"""

from pincal.exceptions import ConfigurationError
from pincal.transformation import Transformation
from pincal.distortion import (Distortion, NoDistortion, RadialTangentialDistortion, FisheyeDistortion,
                               EquidistantDistortion)
from pincal.camera_models import PinholeProjection, save, load

__version__ = '1.0.0'

__all__ = ["ConfigurationError", "Transformation", "Distortion", "NoDistortion", "RadialTangentialDistortion",
           "FisheyeDistortion", "EquidistantDistortion", "PinholeProjection", "save", "load"]
