from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch

from django.db import OperationalError
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.exceptions import ConnectivityError
from common.utils import Box, Point
from rides.models import Dispatch, Place, RideRequest
from .models import Availability
from .services import currently_available, declare_available
from .views import DeclareAvailableView

T0 = datetime(2026, 3, 15, 11, 0, tzinfo=dt_timezone.utc)
AREA = Box(Point(1.0, 10.0), Point(25.0, 2.0))


class AvailabilityLedgerTests(TestCase):
	def setUp(self):
		self.driver = User.objects.create_user(username='driver', password='x', role='driver')
		self.other_driver = User.objects.create_user(username='other', password='x', role='driver')
		self.client_user = User.objects.create_user(username='client', password='x', role='client')
		self.place = Place.objects.create(name='depot', x=5.0, y=5.0)

	def _dispatch(self, driver, at):
		ride = RideRequest.objects.create(client=self.client_user, source=self.place, requested_at=at)
		return Dispatch.objects.create(request=ride, driver=driver, car_x=5.0, car_y=5.0, dispatched_at=at)

	def test_every_declaration_is_appended(self):
		declare_available(self.driver.id, T0, Point(5, 5))
		declare_available(self.driver.id, T0 + timedelta(minutes=1), Point(6, 6))

		self.assertEqual(Availability.objects.filter(driver=self.driver).count(), 2)

	def test_latest_declaration_wins(self):
		declare_available(self.driver.id, T0, Point(5, 5))
		declare_available(self.driver.id, T0 + timedelta(minutes=1), Point(30, 30))

		self.assertEqual(currently_available(AREA, T0 + timedelta(minutes=2)), [])

		available = currently_available(AREA, T0 + timedelta(seconds=30))
		self.assertEqual([(d.driver_id, d.location) for d in available], [(self.driver.id, Point(5.0, 5.0))])

	def test_boundary_points_are_inside(self):
		declare_available(self.driver.id, T0, Point(4.0, 10.0))
		declare_available(self.other_driver.id, T0, Point(25.0, 2.0))

		available = currently_available(AREA, T0)

		self.assertEqual([d.driver_id for d in available], [self.driver.id, self.other_driver.id])

	def test_dispatch_supersedes_declaration_until_next_one(self):
		declare_available(self.driver.id, T0, Point(5, 5))
		self._dispatch(self.driver, T0 + timedelta(minutes=5))

		self.assertEqual(len(currently_available(AREA, T0 + timedelta(minutes=4))), 1)
		self.assertEqual(currently_available(AREA, T0 + timedelta(minutes=5)), [])

		declare_available(self.driver.id, T0 + timedelta(minutes=10), Point(6, 6))

		available = currently_available(AREA, T0 + timedelta(minutes=10))
		self.assertEqual([d.location for d in available], [Point(6.0, 6.0)])

	def test_dispatch_of_another_driver_does_not_supersede(self):
		declare_available(self.driver.id, T0, Point(5, 5))
		self._dispatch(self.other_driver, T0 + timedelta(minutes=5))

		self.assertEqual(len(currently_available(AREA, T0 + timedelta(minutes=6))), 1)

	def test_store_failure_raises_connectivity_error(self):
		with patch.object(Availability.objects, 'create', side_effect=OperationalError('down')):
			with self.assertRaises(ConnectivityError):
				declare_available(self.driver.id, T0, Point(5, 5))


class DeclareAvailableViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = User.objects.create_user(username='driver', password='x', role='driver')
		self.operator = User.objects.create_user(username='operator', password='x', role='client', is_staff=True)
		self.view = DeclareAvailableView.as_view()

	def test_declares_availability(self):
		request = self.factory.post(
			'/api/drivers/%d/available/' % self.driver.id,
			{'x': 4.0, 'y': 10.0, 'at': T0.isoformat()},
			format='json'
		)
		force_authenticate(request, user=self.operator)
		response = self.view(request, driver_id=self.driver.id)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['driver_id'], self.driver.id)
		self.assertEqual(Availability.objects.get().location, Point(4.0, 10.0))

	def test_unknown_driver_is_404(self):
		request = self.factory.post('/api/drivers/999/available/', {'x': 1, 'y': 1}, format='json')
		force_authenticate(request, user=self.operator)
		response = self.view(request, driver_id=999)

		self.assertEqual(response.status_code, 404)
		self.assertFalse(Availability.objects.exists())

	def test_requires_authentication(self):
		request = self.factory.post('/api/drivers/%d/available/' % self.driver.id, {'x': 1, 'y': 1}, format='json')
		response = self.view(request, driver_id=self.driver.id)

		self.assertEqual(response.status_code, 401)
