# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides the scoring of a projection model and target pose against an observation.
"""

import numpy as np

from pincal.transformation import Transformation
from pincal.camera_models import ProjectionModel
from pincal.calibration.targets import GridCalibrationTargetObservation


def compute_reprojection_error(model: ProjectionModel, observation: GridCalibrationTargetObservation,
                               T_target_camera: Transformation) -> tuple[float, int]:
    """
    Computes the summed pixel distance between the detected corners and their predicted projections.

    Every detected corner is moved into the camera frame with the inverse of ``T_target_camera`` and projected with
    ``model``.  Corners which do not project validly are not counted.

    :param model: The projection model to score
    :param observation: The observation of the target
    :param T_target_camera: The transformation from the camera frame to the target frame
    :return: The summed reprojection error in pixels and the number of corners that contributed to it
    """

    T_camera_target = T_target_camera.inverse()

    error_sum = 0.0
    count = 0

    for index in observation.get_corners_indices():

        projection = model.euclidean_to_keypoint(T_camera_target.apply(observation.target.point(index)))

        if projection.valid:
            error_sum += float(np.linalg.norm(observation.image_point(index) - projection.keypoint))
            count += 1

    return error_sum, count
