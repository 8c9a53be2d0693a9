# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This package provides the projection models used by pincal to map between camera frame points and image keypoints.

Currently the only concrete model is :class:`.PinholeProjection`, which pairs the pinhole model with any of the
distortion strategies in :mod:`pincal.distortion`.  Models can be written to/read from xml files with :func:`save` and
:func:`load`.
"""

from pincal.camera_models.camera_model import (ProjectionModel, ProjectionStatus, KeypointProjection,
                                               PointBackProjection, save, load)
from pincal.camera_models.pinhole_model import PinholeProjection

__all__ = ["ProjectionModel", "ProjectionStatus", "KeypointProjection", "PointBackProjection", "PinholeProjection",
           "save", "load"]
