from unittest import TestCase

import numpy as np

from pincal.camera_models import PinholeProjection
from pincal.distortion import RadialTangentialDistortion, EquidistantDistortion
from pincal.transformation import Transformation
from pincal.calibration import (GridCalibrationTarget, GridCalibrationTargetObservation, estimate_transformation,
                                compute_reprojection_error)
from pincal.calibration.pose_estimation import MINIMUM_CORRESPONDENCES


class TestEstimateTransformation(TestCase):

    def setUp(self):

        self.target = GridCalibrationTarget(6, 8, 0.05)

        self.T_camera_target = Transformation([0.1, 0.3, -0.2], [-0.15, -0.1, 1.1])

    def render(self, model):

        observation = GridCalibrationTargetObservation(self.target, model.rv, model.ru)

        for index in range(self.target.size):
            projection = model.euclidean_to_keypoint(self.T_camera_target.apply(self.target.point(index)))

            if projection.valid:
                observation.update_image_point(index, projection.keypoint)

        return observation

    def check_pose(self, model):

        observation = self.render(model)

        self.assertEqual(len(observation.get_corners_indices()), self.target.size)

        T_target_camera = estimate_transformation(model, observation)

        self.assertIsNotNone(T_target_camera)

        np.testing.assert_allclose(T_target_camera.matrix, self.T_camera_target.inverse().matrix, atol=1e-6)

    def test_no_distortion(self):

        self.check_pose(PinholeProjection(450, 460, 322, 238, 640, 480))

    def test_radial_tangential(self):

        self.check_pose(PinholeProjection.get_test_projection(RadialTangentialDistortion))

    def test_equidistant(self):

        self.check_pose(PinholeProjection.get_test_projection(EquidistantDistortion))

    def test_too_few_corners(self):

        model = PinholeProjection.get_test_projection()

        observation = self.render(model)

        keep = [0, 7, 41]

        self.assertEqual(len(keep), MINIMUM_CORRESPONDENCES - 1)

        for index in observation.get_corners_indices():
            if index not in keep:
                observation.remove_image_point(index)

        self.assertIsNone(estimate_transformation(model, observation))

        # corners outside of the image are not usable
        observation.update_image_point(47, [-5, -5])

        self.assertIsNone(estimate_transformation(model, observation))

        observation.update_image_point(47, model.euclidean_to_keypoint(
            self.T_camera_target.apply(self.target.point(47))).keypoint)

        self.assertIsNotNone(estimate_transformation(model, observation))

    def test_empty_observation(self):

        observation = GridCalibrationTargetObservation(self.target, 480, 640)

        self.assertIsNone(estimate_transformation(PinholeProjection.get_test_projection(), observation))


class TestComputeReprojectionError(TestCase):

    def setUp(self):

        self.target = GridCalibrationTarget(5, 6, 0.05)

        self.model = PinholeProjection.get_test_projection()

        self.T_camera_target = Transformation([0.05, -0.1, 0.02], [-0.12, -0.1, 0.9])

        self.observation = GridCalibrationTargetObservation(self.target, 480, 640)

        for index in range(self.target.size):
            self.observation.update_image_point(
                index, self.model.euclidean_to_keypoint(self.T_camera_target.apply(self.target.point(index))).keypoint
            )

    def test_true_pose(self):

        error, count = compute_reprojection_error(self.model, self.observation, self.T_camera_target.inverse())

        self.assertEqual(count, self.target.size)
        self.assertLess(error, 1e-9)

    def test_perturbed_pose(self):

        T_camera_target = Transformation(self.T_camera_target.rotation,
                                         self.T_camera_target.translation + [0.01, 0, 0])

        error, count = compute_reprojection_error(self.model, self.observation, T_camera_target.inverse())

        self.assertEqual(count, self.target.size)

        # every corner moves by roughly fu * 0.01 / depth pixels
        self.assertGreater(error / count, 3)
        self.assertLess(error / count, 6)

    def test_invalid_projections(self):

        model = self.model.copy()
        model.ru = 320

        expected = 0
        for index in range(self.target.size):
            if self.observation.image_point(index)[0] < 320:
                expected += 1

        self.assertLess(expected, self.target.size)

        _, count = compute_reprojection_error(model, self.observation, self.T_camera_target.inverse())

        self.assertEqual(count, expected)

    def test_behind_camera(self):

        T_camera_target = Transformation(self.T_camera_target.rotation, [0, 0, -0.9])

        error, count = compute_reprojection_error(self.model, self.observation, T_camera_target.inverse())

        self.assertEqual(count, 0)
        self.assertEqual(error, 0)

    def test_missing_corners(self):

        self.observation.remove_image_point(0)
        self.observation.remove_image_point(7)

        _, count = compute_reprojection_error(self.model, self.observation, self.T_camera_target.inverse())

        self.assertEqual(count, self.target.size - 2)
