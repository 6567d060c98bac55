from django.test import SimpleTestCase

from common.utils import Box, Point, contains, planar_distance


class ContainsTests(SimpleTestCase):
	def setUp(self):
		self.box = Box(Point(1.0, 10.0), Point(25.0, 2.0))

	def test_edges_are_inclusive(self):
		self.assertTrue(contains(self.box, Point(4.0, 10.0)))
		self.assertTrue(contains(self.box, Point(25.0, 2.0)))
		self.assertTrue(contains(self.box, Point(1.0, 2.0)))

	def test_outside_points(self):
		self.assertFalse(contains(self.box, Point(26.0, 5.0)))
		self.assertFalse(contains(self.box, Point(5.0, 1.999)))

	def test_corners_in_any_order(self):
		swapped = Box(Point(25.0, 2.0), Point(1.0, 10.0))

		self.assertEqual(swapped.x_bounds, (1.0, 25.0))
		self.assertEqual(swapped.y_bounds, (2.0, 10.0))
		self.assertTrue(contains(swapped, Point(4.0, 10.0)))
		self.assertFalse(contains(swapped, Point(26.0, 5.0)))


class PlanarDistanceTests(SimpleTestCase):
	def test_euclidean(self):
		self.assertEqual(planar_distance(Point(0, 0), Point(3, 4)), 5.0)
		self.assertAlmostEqual(planar_distance(Point(9, 9), Point(10, 10)), 1.41421356, places=6)
		self.assertAlmostEqual(planar_distance(Point(9, 9), Point(2, 2)), 9.89949494, places=6)
