# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides the estimation of the pose of a calibration target relative to a camera from a single
observation.

The detected corners are first back projected through the current projection model, which removes the intrinsics and
the lens distortion, and the resulting normalized image plane locations are handed to :func:`cv2.solvePnP` with an
identity camera matrix and no distortion.
"""

import logging

from typing import Optional

import numpy as np
import cv2

from pincal.transformation import Transformation
from pincal.camera_models import ProjectionModel
from pincal.calibration.targets import GridCalibrationTargetObservation


_LOGGER: logging.Logger = logging.getLogger(__name__)

MINIMUM_CORRESPONDENCES: int = 4
"""
The fewest 3D/2D correspondences that are handed to the pose solver
"""


def estimate_transformation(model: ProjectionModel,
                            observation: GridCalibrationTargetObservation) -> Optional[Transformation]:
    """
    Estimates the transformation from the camera frame to the target frame (``T_target_camera``).

    Only corners whose back projection through ``model`` is valid and in front of the camera are used.  If fewer than
    :data:`MINIMUM_CORRESPONDENCES` remain, or the solver fails, ``None`` is returned.

    :param model: The projection model used to normalize the detected corners
    :param observation: The observation of the target
    :return: ``T_target_camera`` or ``None`` if the pose could not be estimated
    """

    target_points = []
    normalized_points = []

    for index in observation.get_corners_indices():

        back_projection = model.keypoint_to_euclidean(observation.image_point(index))

        ray = back_projection.point

        if back_projection.valid and ray[2] > 0:
            target_points.append(observation.target.point(index))
            normalized_points.append(ray[:2] / ray[2])

    if len(target_points) < MINIMUM_CORRESPONDENCES:
        _LOGGER.debug(f'Only {len(target_points)} usable correspondences for pose estimation, '
                      f'{MINIMUM_CORRESPONDENCES} are required')
        return None

    try:
        success, rotation_vector, translation = cv2.solvePnP(np.array(target_points, dtype=np.float64),
                                                             np.array(normalized_points, dtype=np.float64),
                                                             np.eye(3), np.zeros(4))
    except cv2.error as err:
        _LOGGER.debug(f'The pose solver failed: {err}')
        return None

    if not success:
        _LOGGER.debug('The pose solver did not converge')
        return None

    T_camera_target = Transformation(rotation_vector, translation)

    return T_camera_target.inverse()
