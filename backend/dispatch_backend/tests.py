from datetime import datetime, timezone as dt_timezone
from unittest.mock import patch

import redis
from django.db import OperationalError
from django.test import TestCase
from rest_framework.test import APIRequestFactory

from accounts.models import User
from rides.models import Dispatch, Place, RideRequest
from .views import health_check

T0 = datetime(2026, 3, 15, 11, 0, tzinfo=dt_timezone.utc)


@patch('dispatch_backend.views.celery_app.control.ping', return_value=[{'worker@host': {'ok': 'pong'}}])
@patch('dispatch_backend.views.redis.Redis.from_url')
class HealthCheckTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		client = User.objects.create_user(username='client', password='x', role='client')
		driver = User.objects.create_user(username='driver', password='x', role='driver')
		place = Place.objects.create(name='depot', x=1.0, y=1.0)
		dispatched = RideRequest.objects.create(client=client, source=place, requested_at=T0)
		RideRequest.objects.create(client=client, source=place, requested_at=T0)
		Dispatch.objects.create(request=dispatched, driver=driver, car_x=1.0, car_y=1.0, dispatched_at=T0)

	def _get(self):
		return health_check(self.factory.get('/health/'))

	def test_all_dependencies_up(self, mock_from_url, mock_ping):
		response = self._get()

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'healthy')
		self.assertEqual(response.data['services']['database']['open_requests'], 1)
		self.assertEqual(response.data['services']['database']['last_dispatch_at'], T0.isoformat())
		self.assertEqual(response.data['services']['workers']['workers'], 1)
		self.assertEqual(response.data['services']['channels']['status'], 'healthy')
		mock_from_url.return_value.ping.assert_called_once()

	def test_store_outage_is_reported(self, mock_from_url, mock_ping):
		with patch('dispatch_backend.views.Dispatch.objects.aggregate', side_effect=OperationalError('gone')):
			response = self._get()

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['services']['database']['status'].startswith('unhealthy'))
		self.assertEqual(response.data['services']['broker']['status'], 'healthy')

	def test_broker_outage_is_reported(self, mock_from_url, mock_ping):
		mock_from_url.return_value.ping.side_effect = redis.ConnectionError('refused')

		response = self._get()

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['services']['broker']['status'], 'unhealthy: refused')

	def test_no_worker_reply_is_unhealthy(self, mock_from_url, mock_ping):
		mock_ping.return_value = []

		response = self._get()

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['services']['workers']['workers'], 0)

	def test_missing_channel_layer_is_unhealthy(self, mock_from_url, mock_ping):
		with patch('dispatch_backend.views.get_channel_layer', return_value=None):
			response = self._get()

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['services']['channels']['status'], 'unhealthy: no channel layer')
