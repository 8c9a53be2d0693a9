from unittest import TestCase

import warnings

from tempfile import TemporaryDirectory

from pathlib import Path

import numpy as np

import lxml.etree as etree

from pincal.camera_models import PinholeProjection, ProjectionStatus, save, load
from pincal.distortion import NoDistortion, RadialTangentialDistortion, FisheyeDistortion, EquidistantDistortion
from pincal.exceptions import ConfigurationError


def num_deriv(func, x, delta=1e-6) -> np.ndarray:

    x = np.asarray(x, dtype=np.float64)

    columns = []
    for i in range(x.size):
        step = np.zeros(x.size)
        step[i] = delta
        columns.append((func(x + step) - func(x - step)) / (2 * delta))

    return np.array(columns).T


POINTS = [[0.1, -0.05, 1.0], [0.3, 0.2, 2.5], [-0.4, 0.1, 1.3], [-2.0, -1.5, 9.0], [0.0, 0.0, 1.0]]

KEYPOINTS = [[100.0, 50.0], [500.0, 400.0], [330.0, 250.0], [20.0, 460.0], [620.5, 12.25]]


class TestPinholeProjection(TestCase):

    def setUp(self):

        self.distortion_type = NoDistortion

    def make_model(self) -> PinholeProjection:
        return PinholeProjection.get_test_projection(self.distortion_type)

    def test___init__(self):

        dist = self.distortion_type.get_test_distortion()

        model = PinholeProjection(fu=410, fv=390.5, cu=322, cv=241.5, ru=640, rv=480, distortion=dist)

        self.assertEqual(model.fu, 410)
        self.assertEqual(model.fv, 390.5)
        self.assertEqual(model.cu, 322)
        self.assertEqual(model.cv, 241.5)
        self.assertEqual(model.ru, 640)
        self.assertEqual(model.rv, 480)
        self.assertEqual(model.recip_fu, 1 / 410)
        self.assertEqual(model.recip_fv, 1 / 390.5)
        self.assertEqual(model.fu_over_fv, 410 / 390.5)
        self.assertEqual(model.distortion, dist)
        self.assertIsNot(model.distortion, dist)

    def test_caches(self):

        model = self.make_model()

        model.fu = 200

        self.assertEqual(model.recip_fu, 1 / 200)
        self.assertEqual(model.fu_over_fv, 200 / 400)

        model.fv = 100

        self.assertEqual(model.recip_fv, 1 / 100)
        self.assertEqual(model.fu_over_fv, 2)

    def test_zero_focal_length(self):

        model = self.make_model()

        model.set_parameters([0, 0, 319.5, 239.5])

        self.assertEqual(model.recip_fu, np.inf)
        self.assertEqual(model.recip_fv, np.inf)
        self.assertTrue(model.is_binary_equal(model.copy()))

    def test_center_invariance(self):

        model = self.make_model()

        projection = model.euclidean_to_keypoint([0, 0, 1])

        np.testing.assert_allclose(projection.keypoint, [model.cu, model.cv], atol=1e-12)
        self.assertTrue(projection.valid)

        # changing the distortion never moves the optical axis
        dist = model.distortion
        if dist.minimal_dimensions:
            dist.update(np.full(dist.minimal_dimensions, 0.05))

        np.testing.assert_allclose(model.euclidean_to_keypoint([0, 0, 1]).keypoint, [model.cu, model.cv], atol=1e-12)
        np.testing.assert_allclose(model.euclidean_to_keypoint([0, 0, 7.5]).keypoint, [model.cu, model.cv],
                                   atol=1e-12)

    def test_is_inside_image(self):

        model = self.make_model()

        self.assertTrue(model.is_inside_image([0, 0]))
        self.assertTrue(model.is_inside_image([model.ru - 1, model.rv - 1]))
        self.assertTrue(model.is_inside_image([model.ru - 1e-9, 0]))
        self.assertFalse(model.is_inside_image([-1, 0]))
        self.assertFalse(model.is_inside_image([-1, -1]))
        self.assertFalse(model.is_inside_image([model.ru, model.rv]))
        self.assertFalse(model.is_inside_image([model.ru, 0]))
        self.assertFalse(model.is_inside_image([0, model.rv]))
        self.assertFalse(model.is_inside_image([np.nan, 0]))

    def test_projection_status(self):

        model = self.make_model()

        cases = [([0, 0, 1], ProjectionStatus.KEYPOINT_VISIBLE),
                 ([0.1, -0.05, 2], ProjectionStatus.KEYPOINT_VISIBLE),
                 ([5, -5, 1], ProjectionStatus.KEYPOINT_OUTSIDE_IMAGE_BOX),
                 ([5000, -5, 1], ProjectionStatus.KEYPOINT_OUTSIDE_IMAGE_BOX),
                 ([0, 0, -1], ProjectionStatus.POINT_BEHIND_CAMERA),
                 ([-10, -10, -1], ProjectionStatus.POINT_BEHIND_CAMERA),
                 ([0.2, 0.1, 0], ProjectionStatus.POINT_BEHIND_CAMERA)]

        for point, status in cases:
            with self.subTest(point=point):
                projection = model.euclidean_to_keypoint(point, compute_jacobian=True)

                self.assertIs(projection.status, status)
                self.assertEqual(projection.valid, status is ProjectionStatus.KEYPOINT_VISIBLE)

                homogeneous = model.homogeneous_to_keypoint(np.append(point, 1.0), compute_jacobian=True)

                self.assertIs(homogeneous.status, status)

        # the flip of a negative w puts the point back in front of the camera
        self.assertIs(model.homogeneous_to_keypoint([0, 0, -1, -1]).status, ProjectionStatus.KEYPOINT_VISIBLE)

    def test_degenerate_state_is_quiet(self):

        model = self.make_model()
        model.set_parameters([0, 0, 319.5, 239.5])

        with warnings.catch_warnings():
            warnings.simplefilter('error', RuntimeWarning)

            for keypoint in [[100, 50], [319.5, 239.5]]:
                back_projection = model.keypoint_to_euclidean(keypoint, compute_jacobian=True)

                self.assertEqual(back_projection.jacobian.shape, (3, 2))
                self.assertEqual(model.keypoint_to_homogeneous(keypoint).point.shape, (4,))

            for point in [[0.2, 0.1, 0], [0, 0, 0], [0.1, 0.3, 1]]:
                projection = model.euclidean_to_keypoint(point, compute_jacobian=True)

                self.assertEqual(projection.jacobian.shape, (2, 3))
                self.assertEqual(model.euclidean_to_keypoint_intrinsics_jacobian(point).shape, (2, 4))
                self.assertEqual(model.euclidean_to_keypoint_distortion_jacobian(point).shape,
                                 (2, model.distortion.minimal_dimensions))

    def test_is_euclidean_visible(self):

        model = self.make_model()

        self.assertTrue(model.is_euclidean_visible([0, 0, 1]))
        self.assertFalse(model.is_euclidean_visible([5, -5, 1]))
        self.assertFalse(model.is_euclidean_visible([5000, -5, 1]))
        self.assertFalse(model.is_euclidean_visible([-10, -10, -1]))
        self.assertFalse(model.is_euclidean_visible([0, 0, -1]))
        self.assertFalse(model.is_euclidean_visible([0, 0, 0]))

    def test_behind_camera(self):

        model = self.make_model()

        for point in POINTS:
            with self.subTest(point=point):
                behind = -np.asarray(point)

                projection = model.euclidean_to_keypoint(behind)

                # lands in the same pixel but is never reported as visible
                np.testing.assert_allclose(projection.keypoint, model.euclidean_to_keypoint(point).keypoint)
                self.assertFalse(projection.valid)

    def test_zero_depth(self):

        model = self.make_model()

        projection = model.euclidean_to_keypoint([0.2, 0.1, 0.0], compute_jacobian=True)

        self.assertFalse(projection.valid)
        self.assertEqual(projection.jacobian.shape, (2, 3))

    def test_is_homogeneous_visible(self):

        model = self.make_model()

        self.assertTrue(model.is_homogeneous_visible([0, 0, 1, 1]))
        self.assertTrue(model.is_homogeneous_visible([0, 0, 1, 0]))
        # negative w only flips the sign of the whole point
        self.assertTrue(model.is_homogeneous_visible([0, 0, -1, -1]))
        self.assertFalse(model.is_homogeneous_visible([0, 0, 1, -1]))
        self.assertFalse(model.is_homogeneous_visible([0, 0, -1, 1]))

    def test_homogeneous_to_keypoint(self):

        model = self.make_model()

        for point in POINTS:
            with self.subTest(point=point):
                euclidean = model.euclidean_to_keypoint(point)

                for w in [1.0, 0.25, 0.0]:
                    homogeneous = model.homogeneous_to_keypoint(np.append(point, w))

                    np.testing.assert_array_equal(homogeneous.keypoint, euclidean.keypoint)
                    self.assertEqual(homogeneous.valid, euclidean.valid)

                flipped = model.homogeneous_to_keypoint(-np.append(point, 2.0))

                np.testing.assert_array_equal(flipped.keypoint, euclidean.keypoint)
                self.assertEqual(flipped.valid, euclidean.valid)

    def test_round_trip(self):

        model = self.make_model()

        rng = np.random.default_rng(8675309)

        for _ in range(100):

            point = model.create_random_visible_point(10, rng=rng)

            np.testing.assert_allclose(np.linalg.norm(point), 10)

            projection = model.euclidean_to_keypoint(point)

            if not projection.valid:
                continue

            back_projection = model.keypoint_to_euclidean(projection.keypoint)

            self.assertTrue(back_projection.valid)
            self.assertEqual(back_projection.point[2], 1)

            np.testing.assert_allclose(back_projection.point * point[2], point, atol=1e-4)

    def test_keypoint_round_trip(self):

        model = self.make_model()

        for keypoint in KEYPOINTS:
            with self.subTest(keypoint=keypoint):
                back_projection = model.keypoint_to_euclidean(keypoint)

                self.assertTrue(back_projection.valid)

                projection = model.euclidean_to_keypoint(back_projection.point * 3.5)

                self.assertTrue(projection.valid)
                np.testing.assert_allclose(projection.keypoint, keypoint, atol=1e-6)

    def test_keypoint_to_euclidean_validity(self):

        model = self.make_model()

        self.assertFalse(model.keypoint_to_euclidean([-1, 10]).valid)
        self.assertFalse(model.keypoint_to_euclidean([model.ru, 10]).valid)
        self.assertEqual(model.keypoint_to_euclidean([-1, 10]).point.shape, (3,))

    def test_euclidean_to_keypoint_jacobian(self):

        model = self.make_model()

        for point in POINTS:
            with self.subTest(point=point):
                projection = model.euclidean_to_keypoint(point, compute_jacobian=True)

                self.assertEqual(projection.jacobian.shape, (2, 3))

                jac_num = num_deriv(lambda p: model.euclidean_to_keypoint(p).keypoint, point)

                np.testing.assert_allclose(projection.jacobian, jac_num, rtol=1e-5, atol=1e-5)

        self.assertIsNone(model.euclidean_to_keypoint(POINTS[0]).jacobian)

    def test_homogeneous_to_keypoint_jacobian(self):

        model = self.make_model()

        for point in POINTS:
            for w in [1.0, -1.0, -0.5]:
                with self.subTest(point=point, w=w):
                    homogeneous = np.append(point, w)

                    if w < 0:
                        homogeneous[:3] *= -1

                    projection = model.homogeneous_to_keypoint(homogeneous, compute_jacobian=True)

                    self.assertEqual(projection.jacobian.shape, (2, 4))
                    np.testing.assert_array_equal(projection.jacobian[:, 3], [0, 0])

                    jac_num = num_deriv(lambda p: model.homogeneous_to_keypoint(p).keypoint, homogeneous)

                    np.testing.assert_allclose(projection.jacobian, jac_num, rtol=1e-5, atol=1e-5)

    def test_keypoint_to_euclidean_jacobian(self):

        model = self.make_model()

        for keypoint in KEYPOINTS:
            with self.subTest(keypoint=keypoint):
                back_projection = model.keypoint_to_euclidean(keypoint, compute_jacobian=True)

                self.assertEqual(back_projection.jacobian.shape, (3, 2))
                np.testing.assert_array_equal(back_projection.jacobian[2], [0, 0])

                jac_num = num_deriv(lambda k: model.keypoint_to_euclidean(k).point, keypoint, delta=1e-3)

                np.testing.assert_allclose(back_projection.jacobian, jac_num, rtol=1e-5, atol=1e-9)

    def test_keypoint_to_homogeneous(self):

        model = self.make_model()

        for keypoint in KEYPOINTS:
            with self.subTest(keypoint=keypoint):
                euclidean = model.keypoint_to_euclidean(keypoint, compute_jacobian=True)
                homogeneous = model.keypoint_to_homogeneous(keypoint, compute_jacobian=True)

                np.testing.assert_array_equal(homogeneous.point[:3], euclidean.point)
                self.assertEqual(homogeneous.point[3], 0)
                self.assertEqual(homogeneous.valid, euclidean.valid)

                self.assertEqual(homogeneous.jacobian.shape, (4, 2))
                np.testing.assert_array_equal(homogeneous.jacobian[:3], euclidean.jacobian)
                np.testing.assert_array_equal(homogeneous.jacobian[3], [0, 0])

    def test_intrinsics_jacobian(self):

        model = self.make_model()

        def project_with(params, point):
            other = model.copy()
            other.set_parameters(params)
            return other.euclidean_to_keypoint(point).keypoint

        for point in POINTS:
            with self.subTest(point=point):
                jac_ana = model.euclidean_to_keypoint_intrinsics_jacobian(point)

                self.assertEqual(jac_ana.shape, (2, 4))

                jac_num = num_deriv(lambda params: project_with(params, point), model.get_parameters(), delta=1e-3)

                np.testing.assert_allclose(jac_ana, jac_num, rtol=1e-6, atol=1e-9)

                np.testing.assert_array_equal(model.homogeneous_to_keypoint_intrinsics_jacobian(-np.append(point, 1)),
                                              jac_ana)

    def test_distortion_jacobian(self):

        model = self.make_model()

        def project_with(params, point):
            other = model.copy()
            other.distortion.parameters = params
            return other.euclidean_to_keypoint(point).keypoint

        for point in POINTS:
            with self.subTest(point=point):
                jac_ana = model.euclidean_to_keypoint_distortion_jacobian(point)

                self.assertEqual(jac_ana.shape, (2, model.distortion.minimal_dimensions))

                if model.distortion.minimal_dimensions:
                    jac_num = num_deriv(lambda params: project_with(params, point), model.distortion.parameters)

                    np.testing.assert_allclose(jac_ana, jac_num, rtol=1e-5, atol=1e-5)

                np.testing.assert_array_equal(model.homogeneous_to_keypoint_distortion_jacobian(np.append(point, 1)),
                                              jac_ana)

    def test_update(self):

        model = self.make_model()

        model.update([1, -2, 3, -4])

        np.testing.assert_array_equal(model.get_parameters(), [401, 398, 323, 236])
        self.assertEqual(model.recip_fu, 1 / 401)
        self.assertEqual(model.recip_fv, 1 / 398)
        self.assertEqual(model.fu_over_fv, 401 / 398)

        with self.assertRaises(ValueError):
            model.update([1, 2, 3])

    def test_parameters(self):

        model = self.make_model()

        np.testing.assert_array_equal(model.get_parameters(), [400, 400, 320, 240])
        np.testing.assert_array_equal(model.state_vector, [400, 400, 320, 240])
        self.assertEqual(model.minimal_dimensions, 4)
        self.assertEqual(model.parameter_size, (4, 1))

        model.set_parameters([500, 450, 300, 200])

        self.assertEqual(model.fu, 500)
        self.assertEqual(model.fv, 450)
        self.assertEqual(model.cu, 300)
        self.assertEqual(model.cv, 200)
        self.assertEqual(model.recip_fu, 1 / 500)
        self.assertEqual(model.fu_over_fv, 500 / 450)

    def test_resize_intrinsics(self):

        model = self.make_model()
        model.ru = 641

        model.resize_intrinsics(0.5)

        np.testing.assert_array_equal(model.get_parameters(), [200, 200, 160, 120])
        self.assertEqual(model.ru, 320)
        self.assertEqual(model.rv, 240)
        self.assertIsInstance(model.ru, int)
        self.assertEqual(model.recip_fu, 1 / 200)

    def test_create_random_keypoint(self):

        model = self.make_model()

        rng = np.random.default_rng(1)

        for _ in range(50):
            keypoint = model.create_random_keypoint(rng)

            self.assertTrue(0 <= keypoint[0] <= model.ru)
            self.assertTrue(0 <= keypoint[1] <= model.rv)

    def test_create_random_visible_point(self):

        model = self.make_model()

        rng = np.random.default_rng(2)

        for _ in range(50):
            point = model.create_random_visible_point(rng=rng)

            self.assertTrue(0 <= np.linalg.norm(point) <= 100)
            self.assertGreaterEqual(point[2], 0)

    def test_is_binary_equal(self):

        model = self.make_model()

        self.assertTrue(model.is_binary_equal(model.copy()))
        self.assertEqual(model, model.copy())

        other = model.copy()
        other.fu = 11111

        self.assertFalse(model.is_binary_equal(other))
        self.assertNotEqual(model, other)

        other = model.copy()
        other.rv = 481

        self.assertNotEqual(model, other)

        if model.distortion.minimal_dimensions:
            other = model.copy()
            parameters = other.distortion.parameters
            parameters[0] += 0.5
            other.distortion.parameters = parameters

            self.assertNotEqual(model, other)

    def test_distortion_property(self):

        model = self.make_model()

        dist = self.distortion_type.get_test_distortion()

        model.distortion = dist

        self.assertEqual(model.distortion, dist)
        self.assertIsNot(model.distortion, dist)

        with self.assertRaises(TypeError):
            model.distortion = [0.1, 0.2]

    def test_get_border_rays(self):

        model = self.make_model()

        rays = model.get_border_rays()

        self.assertEqual(rays.shape, (4, 8))
        np.testing.assert_array_equal(rays[2], np.ones(8))
        np.testing.assert_array_equal(rays[3], np.zeros(8))

        keypoints = [(0, 0), (0, 240), (0, 479), (639, 0), (639, 240), (639, 479), (320, 0), (320, 479)]

        for column, keypoint in enumerate(keypoints):
            with self.subTest(keypoint=keypoint):
                np.testing.assert_array_equal(rays[:, column], model.keypoint_to_homogeneous(keypoint).point)

    def test_project_onto_image(self):

        model = self.make_model()

        points = np.array(POINTS).T

        keypoints, valid = model.project_onto_image(points)

        self.assertEqual(keypoints.shape, (2, len(POINTS)))

        for column, point in enumerate(POINTS):
            projection = model.euclidean_to_keypoint(point)

            np.testing.assert_array_equal(keypoints[:, column], projection.keypoint)
            self.assertEqual(valid[column], projection.valid)

    def test_pixels_to_unit(self):

        model = self.make_model()

        units, valid = model.pixels_to_unit(np.array(KEYPOINTS).T)

        self.assertEqual(units.shape, (3, len(KEYPOINTS)))
        self.assertTrue(valid.all())
        np.testing.assert_allclose(np.linalg.norm(units, axis=0), 1)

        keypoints, valid = model.project_onto_image(units)

        self.assertTrue(valid.all())
        np.testing.assert_allclose(keypoints, np.array(KEYPOINTS).T, atol=1e-6)

    def test_pixels_to_unit_validity(self):

        model = self.make_model()

        pixels = np.array([[100, -1, model.ru, 30], [50, 20, 10, model.rv]], dtype=np.float64)

        units, valid = model.pixels_to_unit(pixels)

        self.assertEqual(units.shape, (3, 4))
        np.testing.assert_array_equal(valid, [True, False, False, False])

        for column in range(4):
            self.assertEqual(valid[column], model.keypoint_to_euclidean(pixels[:, column]).valid)

    def test_bad_shapes(self):

        model = self.make_model()

        with self.assertRaises(ValueError):
            model.euclidean_to_keypoint([1, 2])

        with self.assertRaises(ValueError):
            model.homogeneous_to_keypoint([1, 2, 3])

        with self.assertRaises(ValueError):
            model.keypoint_to_euclidean([1, 2, 3])

    def test_from_config(self):

        dist = self.distortion_type.get_test_distortion()

        config = {'fu': 400, 'fv': '401.5', 'cu': 320, 'cv': 240, 'ru': 640, 'rv': 480.0,
                  'distortion': {'type': {NoDistortion: 'none', RadialTangentialDistortion: 'radial_tangential',
                                          FisheyeDistortion: 'fisheye',
                                          EquidistantDistortion: 'equidistant'}[self.distortion_type],
                                 **dict(zip(dist.parameter_names, dist.parameters))}}

        model = PinholeProjection.from_config(config)

        self.assertEqual(model.fv, 401.5)
        self.assertEqual(model.rv, 480)
        self.assertEqual(model.distortion, dist)

        for key in ['fu', 'fv', 'cu', 'cv', 'ru', 'rv']:
            with self.subTest(missing=key):
                partial = dict(config)
                partial.pop(key)

                with self.assertRaises(ConfigurationError):
                    PinholeProjection.from_config(partial)

        with self.assertRaises(ConfigurationError):
            PinholeProjection.from_config({**config, 'fu': 'long'})

        self.assertIsInstance(PinholeProjection.from_config({key: config[key] for key in
                                                             ['fu', 'fv', 'cu', 'cv', 'ru', 'rv']}).distortion,
                              NoDistortion)

    def test_to_elem(self):

        model = self.make_model()

        elem = model.to_elem(etree.Element('test'))

        self.assertEqual(elem.get('version'), str(PinholeProjection.SERIALIZATION_VERSION))

        for name in ['fu', 'fv', 'cu', 'cv', 'ru', 'rv']:
            self.assertEqual(float(elem.find(name).text), getattr(model, name))

        self.assertEqual(elem.find('distortion').get('type'), self.distortion_type.__name__)

        # storing again replaces the old values
        model.fu = 123.0
        model.to_elem(elem)

        self.assertEqual(len(elem.findall('fu')), 1)
        self.assertEqual(len(elem.findall('distortion')), 1)
        self.assertEqual(PinholeProjection.from_elem(elem), model)

    def test_from_elem_newer_version(self):

        model = self.make_model()

        elem = model.to_elem(etree.Element('test'))
        elem.set('version', str(PinholeProjection.SERIALIZATION_VERSION + 1))

        with self.assertRaises(ConfigurationError):
            PinholeProjection.from_elem(elem)

    def test_from_elem_missing_value(self):

        model = self.make_model()

        elem = model.to_elem(etree.Element('test'))
        elem.remove(elem.find('cv'))

        with self.assertWarns(UserWarning):
            loaded = PinholeProjection.from_elem(elem)

        self.assertEqual(loaded.cv, PinholeProjection().cv)
        self.assertEqual(loaded.fu, model.fu)

    def test_save_load(self):

        models = [self.make_model(), PinholeProjection(500, 510, 300, 200, 600, 400), self.make_model()]
        models[2].resize_intrinsics(2)

        names = ['a', 'b', 'c']
        groups = [None, 'left', 'right']

        with TemporaryDirectory() as tmp:
            file = Path(tmp) / "save_test.xml"

            for group, name, model in zip(groups, names, models):
                save(file, name, model, group=group)

            for group, name, orig in zip(groups, names, models):
                with self.subTest(group=group, name=name):
                    loaded = load(file, name, group=group)

                    self.assertIsInstance(loaded, PinholeProjection)
                    self.assertEqual(loaded, orig)

            # overwriting keeps a single entry
            models[0].fu = 1.5
            save(file, 'a', models[0])

            self.assertEqual(load(file, 'a'), models[0])

            with self.assertRaises(LookupError):
                load(file, 'missing')


class TestPinholeProjectionRadialTangential(TestPinholeProjection):

    def setUp(self):

        self.distortion_type = RadialTangentialDistortion

    def test_equality_by_distortion(self):

        first = PinholeProjection(240, 480, 100, 200, 500, 500, RadialTangentialDistortion(0.5, 0.3, 0.2, 0.01))
        second = PinholeProjection(240, 480, 100, 200, 500, 500, RadialTangentialDistortion(0.0, 0.3, 0.2, 0.01))

        self.assertFalse(first.is_binary_equal(second))

        second.distortion.k1 = 0.5

        self.assertTrue(first.is_binary_equal(second))

        second.fu = 11111

        self.assertFalse(first.is_binary_equal(second))


class TestPinholeProjectionFisheye(TestPinholeProjection):

    def setUp(self):

        self.distortion_type = FisheyeDistortion


class TestPinholeProjectionEquidistant(TestPinholeProjection):

    def setUp(self):

        self.distortion_type = EquidistantDistortion
