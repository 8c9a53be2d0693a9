# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This package provides the tools to bootstrap a projection model from observations of a planar grid calibration
target.

* :mod:`.targets` - the grid target and its observation in an image
* :mod:`.pose_estimation` - the pose of the target relative to the camera
* :mod:`.reprojection` - scoring of a model and pose against an observation
* :mod:`.intrinsics_initializer` - the initial guess of the pinhole intrinsics
* :mod:`.helpers` - planar circle helpers
"""

from pincal.calibration.targets import GridCalibrationTarget, GridCalibrationTargetObservation
from pincal.calibration.pose_estimation import estimate_transformation
from pincal.calibration.reprojection import compute_reprojection_error
from pincal.calibration.intrinsics_initializer import (IntrinsicsInitializer, IntrinsicsInitializerOptions,
                                                       initialize_intrinsics, estimate_row_focal_length,
                                                       estimate_homography_focal_length)
from pincal.calibration.helpers import intersect_circles, fit_circle

__all__ = ["GridCalibrationTarget", "GridCalibrationTargetObservation", "estimate_transformation",
           "compute_reprojection_error", "IntrinsicsInitializer", "IntrinsicsInitializerOptions",
           "initialize_intrinsics", "estimate_row_focal_length", "estimate_homography_focal_length",
           "intersect_circles", "fit_circle"]
