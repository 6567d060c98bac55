from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib import admin
from django.core.management import call_command
from django.db import OperationalError
from django.test import RequestFactory, TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.exceptions import ConflictError, ConnectivityError, UnknownPlaceError
from common.utils import Box, Point
from drivers.models import Availability
from drivers.services import declare_available
from services.matching import billing_totals, dispatch, dispatch_area, rank_clients, rank_requests
from services.ride_management import (
	OpenRequest,
	create_ride_request,
	find_dispatched_request,
	has_pickup,
	open_requests_in,
	record_pickup,
	was_dispatched,
)
from .models import Billed, Dispatch, Pickup, Place, RideRequest
from .tasks import dispatch_area_task
from .views import create_request, dispatch_drivers, dispatch_lookup, pickup

T0 = datetime(2026, 3, 15, 11, 0, tzinfo=dt_timezone.utc)
AREA = Box(Point(0.0, 12.0), Point(12.0, 0.0))


class DispatchFixtureMixin:
	"""Two drivers and two clients inside AREA, plus a far-away place for billing history."""

	def setUp(self):
		self.driver_one = User.objects.create_user(username='driver_one', password='x', role='driver')
		self.driver_two = User.objects.create_user(username='driver_two', password='x', role='driver')
		self.client_one = User.objects.create_user(username='client_one', password='x', role='client')
		self.client_two = User.objects.create_user(username='client_two', password='x', role='client')

		self.south = Place.objects.create(name='south', x=1.0, y=1.0)
		self.north = Place.objects.create(name='north', x=9.0, y=9.0)
		self.airport = Place.objects.create(name='airport', x=50.0, y=50.0)

	def bill(self, client, amount, at=None):
		"""Billing history from a past ride outside the dispatch area."""
		past = RideRequest.objects.create(
			client=client,
			source=self.airport,
			requested_at=at or T0 - timedelta(days=30),
		)
		Billed.objects.create(request=past, amount=Decimal(amount))
		return past

	def request_ride(self, client, place, at=None):
		return RideRequest.objects.create(client=client, source=place, requested_at=at or T0 + timedelta(minutes=1))

	def declare(self, driver, x, y, at=None):
		return declare_available(driver.id, at or T0, Point(x, y))


class DispatchEngineTests(DispatchFixtureMixin, TestCase):
	def test_higher_billing_client_gets_nearest_driver_first(self):
		self.declare(self.driver_one, 2, 2)
		self.declare(self.driver_two, 10, 10)
		self.bill(self.client_one, '50.00')
		self.bill(self.client_two, '100.00')
		ride_one = self.request_ride(self.client_one, self.south)
		ride_two = self.request_ride(self.client_two, self.north)

		records = dispatch(AREA, T0 + timedelta(minutes=5))

		self.assertEqual(
			[(r.request_id, r.driver_id) for r in records],
			[(ride_two.id, self.driver_two.id), (ride_one.id, self.driver_one.id)]
		)
		self.assertEqual(Dispatch.objects.count(), 2)

		stored = Dispatch.objects.get(request=ride_two)
		self.assertEqual(stored.car_location, Point(10.0, 10.0))
		self.assertEqual(stored.dispatched_at, T0 + timedelta(minutes=5))

	def test_priority_beats_distance(self):
		# Only driver_two is available; client_two outranks client_one even though
		# client_one would be the closer match.
		self.declare(self.driver_two, 2, 2)
		self.bill(self.client_two, '10.00')
		self.request_ride(self.client_one, self.south)
		ride_two = self.request_ride(self.client_two, self.north)

		records = dispatch(AREA, T0 + timedelta(minutes=5))

		self.assertEqual([(r.request_id, r.driver_id) for r in records], [(ride_two.id, self.driver_two.id)])

	def test_one_driver_two_tied_clients_dispatches_once(self):
		self.declare(self.driver_one, 5, 5)
		first = self.request_ride(self.client_one, self.south, at=T0 + timedelta(minutes=1))
		second = self.request_ride(self.client_two, self.north, at=T0 + timedelta(minutes=2))

		records = dispatch(AREA, T0 + timedelta(minutes=5))

		self.assertEqual(len(records), 1)
		self.assertEqual(records[0].request_id, first.id)
		self.assertEqual(Dispatch.objects.count(), 1)

		still_open = open_requests_in(AREA, T0 + timedelta(minutes=6))
		self.assertEqual([r.request_id for r in still_open], [second.id])

	def test_driver_is_not_reused_within_a_call(self):
		self.declare(self.driver_one, 1, 1)
		self.declare(self.driver_two, 11, 11)
		third_client = User.objects.create_user(username='client_three', password='x', role='client')
		self.request_ride(self.client_one, self.south)
		self.request_ride(self.client_two, self.south)
		self.request_ride(third_client, self.south)

		records = dispatch(AREA, T0 + timedelta(minutes=5))

		drivers = [r.driver_id for r in records]
		self.assertEqual(len(records), 2)
		self.assertEqual(len(set(drivers)), 2)

	def test_empty_area_is_a_no_op(self):
		self.request_ride(self.client_one, self.south)

		self.assertEqual(dispatch(AREA, T0 + timedelta(minutes=5)), [])
		self.assertFalse(Dispatch.objects.exists())

		RideRequest.objects.all().delete()
		self.declare(self.driver_one, 2, 2)

		self.assertEqual(dispatch(AREA, T0 + timedelta(minutes=5)), [])
		self.assertFalse(Dispatch.objects.exists())

	def test_repeated_call_does_not_dispatch_again(self):
		self.declare(self.driver_one, 2, 2)
		self.request_ride(self.client_one, self.south)
		at = T0 + timedelta(minutes=5)

		self.assertEqual(len(dispatch(AREA, at)), 1)
		self.assertEqual(dispatch(AREA, at), [])
		self.assertEqual(Dispatch.objects.count(), 1)

	def test_redeclared_driver_can_be_dispatched_again(self):
		self.declare(self.driver_one, 2, 2)
		self.request_ride(self.client_one, self.south)
		dispatch(AREA, T0 + timedelta(minutes=5))

		self.declare(self.driver_one, 3, 3, at=T0 + timedelta(minutes=20))
		later = self.request_ride(self.client_two, self.north, at=T0 + timedelta(minutes=21))

		records = dispatch(AREA, T0 + timedelta(minutes=25))

		self.assertEqual([(r.request_id, r.driver_id) for r in records], [(later.id, self.driver_one.id)])
		self.assertEqual(records[0].car_location, Point(3.0, 3.0))

	def test_drivers_and_requests_outside_area_are_ignored(self):
		self.declare(self.driver_one, 30, 30)
		self.declare(self.driver_two, 12, 0)  # southeast corner, inclusive
		self.request_ride(self.client_one, self.airport)
		ride_two = self.request_ride(self.client_two, self.north)

		records = dispatch(AREA, T0 + timedelta(minutes=5))

		self.assertEqual([(r.request_id, r.driver_id) for r in records], [(ride_two.id, self.driver_two.id)])

	def test_future_declarations_and_requests_are_not_seen(self):
		self.declare(self.driver_one, 2, 2, at=T0 + timedelta(minutes=10))
		self.request_ride(self.client_one, self.south)

		self.assertEqual(dispatch(AREA, T0 + timedelta(minutes=5)), [])

		self.declare(self.driver_two, 2, 2)
		self.request_ride(self.client_two, self.south, at=T0 + timedelta(minutes=10))

		records = dispatch(AREA, T0 + timedelta(minutes=5))
		self.assertEqual(len(records), 1)
		self.assertEqual(records[0].driver_id, self.driver_two.id)

	def test_equal_distance_goes_to_lowest_driver_id(self):
		self.declare(self.driver_two, 1, 3)
		self.declare(self.driver_one, 3, 1)
		ride = self.request_ride(self.client_one, Place.objects.create(name='middle', x=2.0, y=2.0))

		records = dispatch(AREA, T0 + timedelta(minutes=5))

		self.assertEqual([(r.request_id, r.driver_id) for r in records], [(ride.id, self.driver_one.id)])

	def test_conflicting_concurrent_dispatch_aborts_the_call(self):
		self.declare(self.driver_one, 2, 2)
		self.request_ride(self.client_one, self.south)
		elsewhere = self.request_ride(self.client_two, self.airport)
		at = T0 + timedelta(minutes=5)

		from drivers import services as driver_services
		real_currently_available = driver_services.currently_available

		def snapshot_then_lose_race(box, as_of):
			drivers = real_currently_available(box, as_of)
			Dispatch.objects.create(
				request=elsewhere, driver=self.driver_one, car_x=2.0, car_y=2.0, dispatched_at=as_of
			)
			return drivers

		with patch('services.matching.engine.currently_available', side_effect=snapshot_then_lose_race):
			with self.assertRaises(ConflictError):
				dispatch(AREA, at)

		self.assertFalse(Dispatch.objects.exists())

	def test_store_failure_leaves_no_partial_dispatch(self):
		self.declare(self.driver_one, 2, 2)
		self.declare(self.driver_two, 10, 10)
		self.request_ride(self.client_one, self.south)
		self.request_ride(self.client_two, self.north)

		with patch.object(Dispatch.objects, 'bulk_create', side_effect=OperationalError('server closed')):
			with self.assertRaises(ConnectivityError):
				dispatch(AREA, T0 + timedelta(minutes=5))

		self.assertFalse(Dispatch.objects.exists())
		self.assertEqual(len(open_requests_in(AREA, T0 + timedelta(minutes=5))), 2)

	@patch('realtime.notifications.notify_dispatch_event')
	def test_dispatch_notifies_after_commit(self, mock_notify):
		self.declare(self.driver_one, 2, 2)
		self.request_ride(self.client_one, self.south)

		with self.captureOnCommitCallbacks(execute=True):
			records = dispatch(AREA, T0 + timedelta(minutes=5))

		mock_notify.assert_called_once_with('ride_dispatched', records[0], self.client_one.id)


class DispatchAreaTests(DispatchFixtureMixin, TestCase):
	def test_retries_after_conflict(self):
		self.declare(self.driver_one, 2, 2)
		ride = self.request_ride(self.client_one, self.south)

		from services.matching import engine
		real_dispatch = engine.dispatch
		calls = []

		def conflict_once(box, at):
			calls.append(at)
			if len(calls) == 1:
				raise ConflictError("driver taken")
			return real_dispatch(box, at)

		with patch('services.matching.engine.dispatch', side_effect=conflict_once):
			result = dispatch_area(AREA, T0 + timedelta(minutes=5))

		self.assertTrue(result.success)
		self.assertEqual(result.extra['attempts'], 2)
		self.assertEqual([r.request_id for r in result.assignments], [ride.id])

	@patch('services.matching.engine.dispatch', side_effect=ConflictError("driver taken"))
	def test_gives_up_after_max_retries(self, mock_dispatch):
		result = dispatch_area(AREA, T0, max_retries=2)

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, 'conflict')
		self.assertEqual(mock_dispatch.call_count, 3)

	@patch('services.matching.engine.dispatch', side_effect=ConnectivityError("down"))
	def test_connectivity_failure_is_a_result_not_a_crash(self, mock_dispatch):
		result = dispatch_area(AREA, T0)

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, 'connectivity')
		mock_dispatch.assert_called_once()

	def test_management_command_dispatches_area(self):
		self.declare(self.driver_one, 2, 2)
		ride = self.request_ride(self.client_one, self.south)
		out = StringIO()

		call_command(
			'dispatch_area', '--nw', '0', '12', '--se', '12', '0',
			'--at', (T0 + timedelta(minutes=5)).isoformat(), stdout=out
		)

		self.assertIn(f"request {ride.id} -> driver {self.driver_one.id}", out.getvalue())
		self.assertTrue(Dispatch.objects.filter(request=ride).exists())

	def test_celery_task_dispatches_area(self):
		self.declare(self.driver_one, 2, 2)
		ride = self.request_ride(self.client_one, self.south)

		assignments = dispatch_area_task.apply(kwargs={
			'nw': [0, 12],
			'se': [12, 0],
			'at': (T0 + timedelta(minutes=5)).isoformat(),
		}).get()

		self.assertEqual(assignments, [{'request_id': ride.id, 'driver_id': self.driver_one.id}])

	def test_celery_task_reads_naive_timestamp_in_default_timezone(self):
		self.declare(self.driver_one, 2, 2)
		ride = self.request_ride(self.client_one, self.south)

		dispatch_area_task.apply(kwargs={'nw': [0, 12], 'se': [12, 0], 'at': '2026-03-15T11:05:00'}).get()

		self.assertEqual(Dispatch.objects.get(request=ride).dispatched_at, T0 + timedelta(minutes=5))

	def test_celery_task_rejects_malformed_timestamp(self):
		self.declare(self.driver_one, 2, 2)
		self.request_ride(self.client_one, self.south)

		with self.assertRaises(ValueError):
			dispatch_area_task.apply(kwargs={'nw': [0, 12], 'se': [12, 0], 'at': 'next tuesday'}).get()

		self.assertFalse(Dispatch.objects.exists())


class PriorityRankerTests(DispatchFixtureMixin, TestCase):
	def test_rank_is_descending_and_stable(self):
		totals = {1: Decimal('10'), 2: Decimal('30'), 3: Decimal('10'), 4: Decimal('0')}

		self.assertEqual(rank_clients([1, 2, 3, 4], totals), [2, 1, 3, 4])
		self.assertEqual(rank_clients([3, 2, 1, 4], totals), [2, 3, 1, 4])

	def test_unbilled_clients_rank_as_zero(self):
		self.assertEqual(rank_clients([7, 8, 9], {8: Decimal('5')}), [8, 7, 9])

	def test_billing_totals_sum_all_rides(self):
		self.bill(self.client_one, '20.00')
		self.bill(self.client_one, '15.50')
		self.bill(self.client_two, '30.00')

		totals = billing_totals([self.client_one.id, self.client_two.id, self.driver_one.id])

		self.assertEqual(totals[self.client_one.id], Decimal('35.50'))
		self.assertEqual(totals[self.client_two.id], Decimal('30.00'))
		self.assertEqual(totals[self.driver_one.id], Decimal('0'))

	def test_rank_requests_keeps_each_clients_requests_in_order(self):
		requests = [
			OpenRequest(1, 100, Point(0, 0)),
			OpenRequest(2, 200, Point(0, 0)),
			OpenRequest(3, 100, Point(0, 0)),
		]

		ranked = rank_requests(requests, {200: Decimal('5')})

		self.assertEqual([r.request_id for r in ranked], [2, 1, 3])


class RequestBookTests(DispatchFixtureMixin, TestCase):
	def test_create_ride_request_uses_place_registry(self):
		ride = create_ride_request(self.client_one.id, 'south', at=T0, destination='airport')

		self.assertEqual(ride.source_location, Point(1.0, 1.0))
		self.assertEqual(ride.destination, self.airport)
		self.assertEqual(ride.state, RideRequest.STATE_OPEN)

	def test_create_ride_request_rejects_unknown_place(self):
		with self.assertRaises(UnknownPlaceError):
			create_ride_request(self.client_one.id, 'atlantis', at=T0)
		self.assertFalse(RideRequest.objects.exists())

	def test_open_requests_exclude_dispatched_and_picked_up(self):
		self.declare(self.driver_one, 2, 2)
		ride = self.request_ride(self.client_one, self.south)
		waiting = self.request_ride(self.client_two, self.north)
		Dispatch.objects.create(request=ride, driver=self.driver_one, car_x=2, car_y=2, dispatched_at=T0)

		open_ids = [r.request_id for r in open_requests_in(AREA, T0 + timedelta(minutes=5))]

		self.assertEqual(open_ids, [waiting.id])
		ride.refresh_from_db()
		self.assertEqual(ride.state, RideRequest.STATE_DISPATCHED)

	def test_was_dispatched(self):
		self.declare(self.driver_one, 2, 2)
		ride = self.request_ride(self.client_one, self.south)
		dispatch(AREA, T0 + timedelta(minutes=5))

		self.assertEqual(was_dispatched(self.driver_one.id, self.client_one.id, T0 + timedelta(minutes=5)), ride.id)
		self.assertIsNone(was_dispatched(self.driver_one.id, self.client_one.id, T0 + timedelta(minutes=4)))
		self.assertIsNone(was_dispatched(self.driver_two.id, self.client_one.id, T0 + timedelta(hours=1)))
		self.assertEqual(find_dispatched_request(self.driver_one.id, self.client_one.id, T0 + timedelta(hours=1)), ride.id)


class PickupRecorderTests(DispatchFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.declare(self.driver_one, 2, 2)
		self.ride = self.request_ride(self.client_one, self.south)
		self.dispatched_at = T0 + timedelta(minutes=5)

	def test_pickup_before_any_dispatch_is_refused(self):
		self.assertFalse(record_pickup(self.driver_one.id, self.client_one.id, T0 + timedelta(minutes=10)))
		self.assertFalse(Pickup.objects.exists())

	def test_pickup_is_recorded_once(self):
		dispatch(AREA, self.dispatched_at)
		at = T0 + timedelta(minutes=12)

		self.assertTrue(record_pickup(self.driver_one.id, self.client_one.id, at))
		self.assertFalse(record_pickup(self.driver_one.id, self.client_one.id, at))
		self.assertEqual(Pickup.objects.count(), 1)
		self.assertTrue(has_pickup(self.driver_one.id, self.client_one.id, at))

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.state, RideRequest.STATE_PICKED_UP)

	def test_pickup_earlier_than_dispatch_is_refused(self):
		dispatch(AREA, self.dispatched_at)

		self.assertFalse(record_pickup(self.driver_one.id, self.client_one.id, T0 + timedelta(minutes=4)))
		self.assertFalse(Pickup.objects.exists())

	def test_pickup_by_other_driver_is_refused(self):
		dispatch(AREA, self.dispatched_at)

		self.assertFalse(record_pickup(self.driver_two.id, self.client_one.id, T0 + timedelta(minutes=12)))
		self.assertFalse(has_pickup(self.driver_two.id, self.client_one.id, T0 + timedelta(minutes=12)))

	def test_second_pickup_at_a_later_time_is_refused(self):
		dispatch(AREA, self.dispatched_at)
		first_at = T0 + timedelta(minutes=12)
		later_at = T0 + timedelta(minutes=20)

		self.assertTrue(record_pickup(self.driver_one.id, self.client_one.id, first_at))
		self.assertFalse(record_pickup(self.driver_one.id, self.client_one.id, later_at))

		self.assertEqual(Pickup.objects.count(), 1)
		self.assertEqual(Pickup.objects.get().picked_up_at, first_at)
		self.assertFalse(has_pickup(self.driver_one.id, self.client_one.id, later_at))
		self.assertFalse(has_pickup(self.driver_one.id, self.client_one.id, T0 + timedelta(minutes=11)))


class RideApiTests(DispatchFixtureMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.factory = APIRequestFactory()
		self.operator = User.objects.create_user(username='operator', password='x', role='client', is_staff=True)

	def _post(self, view, path, data):
		request = self.factory.post(path, data, format='json')
		force_authenticate(request, user=self.operator)
		return view(request)

	def test_dispatch_endpoint_returns_assignments(self):
		self.declare(self.driver_one, 2, 2)
		self.declare(self.driver_two, 10, 10)
		self.bill(self.client_two, '100.00')
		ride_one = self.request_ride(self.client_one, self.south)
		ride_two = self.request_ride(self.client_two, self.north)

		response = self._post(dispatch_drivers, '/api/rides/dispatch/', {
			'northwest': {'x': 0, 'y': 12},
			'southeast': {'x': 12, 'y': 0},
			'at': (T0 + timedelta(minutes=5)).isoformat(),
		})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(
			[(a['request_id'], a['driver_id']) for a in response.data['assignments']],
			[(ride_two.id, self.driver_two.id), (ride_one.id, self.driver_one.id)]
		)
		self.assertEqual(response.data['assignments'][0]['location'], {'x': 10.0, 'y': 10.0})

	@patch('rides.views.dispatch_area')
	def test_dispatch_endpoint_reports_store_outage(self, mock_dispatch_area):
		from services.matching import DispatchResult
		mock_dispatch_area.return_value = DispatchResult(success=False, message='down', error_code='connectivity')

		response = self._post(dispatch_drivers, '/api/rides/dispatch/', {
			'northwest': {'x': 0, 'y': 12},
			'southeast': {'x': 12, 'y': 0},
		})

		self.assertEqual(response.status_code, 503)

	def test_dispatch_endpoint_validates_area(self):
		response = self._post(dispatch_drivers, '/api/rides/dispatch/', {'northwest': {'x': 0}})

		self.assertEqual(response.status_code, 400)

	def test_pickup_endpoint(self):
		self.declare(self.driver_one, 2, 2)
		self.request_ride(self.client_one, self.south)
		dispatch(AREA, T0 + timedelta(minutes=5))
		payload = {
			'driver_id': self.driver_one.id,
			'client_id': self.client_one.id,
			'at': (T0 + timedelta(minutes=15)).isoformat(),
		}

		first = self._post(pickup, '/api/rides/pickup/', payload)
		second = self._post(pickup, '/api/rides/pickup/', payload)

		self.assertEqual(first.status_code, 201)
		self.assertTrue(first.data['recorded'])
		self.assertEqual(second.status_code, 200)
		self.assertFalse(second.data['recorded'])

	def test_create_request_endpoint(self):
		response = self._post(create_request, '/api/rides/requests/', {
			'client_id': self.client_one.id,
			'source': 'south',
			'at': T0.isoformat(),
		})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['state'], 'open')
		self.assertEqual(response.data['source'], 'south')

	def test_create_request_endpoint_rejects_unknown_place(self):
		response = self._post(create_request, '/api/rides/requests/', {
			'client_id': self.client_one.id,
			'source': 'atlantis',
		})

		self.assertEqual(response.status_code, 400)

	def test_was_dispatched_endpoint(self):
		self.declare(self.driver_one, 2, 2)
		ride = self.request_ride(self.client_one, self.south)
		dispatch(AREA, T0 + timedelta(minutes=5))

		request = self.factory.get('/api/rides/was-dispatched/', {
			'driver_id': self.driver_one.id,
			'client_id': self.client_one.id,
			'before': (T0 + timedelta(hours=1)).isoformat(),
		})
		force_authenticate(request, user=self.operator)
		response = dispatch_lookup(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['request_id'], ride.id)


class EventAdminTests(TestCase):
	def setUp(self):
		self.superuser = User.objects.create_superuser(username='root', password='x', email='root@example.com')
		self.request = RequestFactory().get('/admin/')
		self.request.user = self.superuser

	def test_event_tables_are_read_only_even_for_superusers(self):
		for model in (RideRequest, Dispatch, Pickup, Billed, Availability):
			model_admin = admin.site._registry[model]
			with self.subTest(model=model.__name__):
				self.assertFalse(model_admin.has_add_permission(self.request))
				self.assertFalse(model_admin.has_change_permission(self.request))
				self.assertFalse(model_admin.has_delete_permission(self.request))
				self.assertTrue(model_admin.has_view_permission(self.request))

	def test_place_registry_stays_editable(self):
		self.assertTrue(admin.site._registry[Place].has_add_permission(self.request))

	def test_user_list_counts_dispatches_per_driver(self):
		driver = User.objects.create_user(username='driver', password='x', role='driver')
		client = User.objects.create_user(username='client', password='x', role='client')
		place = Place.objects.create(name='depot', x=1.0, y=1.0)
		for minutes in (0, 30):
			ride = RideRequest.objects.create(client=client, source=place, requested_at=T0 + timedelta(minutes=minutes))
			Dispatch.objects.create(request=ride, driver=driver, car_x=1.0, car_y=1.0, dispatched_at=T0 + timedelta(minutes=minutes + 5))

		user_admin = admin.site._registry[User]
		rows = {u.username: u for u in user_admin.get_queryset(self.request)}

		self.assertEqual(user_admin.dispatch_count(rows['driver']), 2)
		self.assertEqual(user_admin.last_dispatched_at(rows['driver']), T0 + timedelta(minutes=35))
		self.assertEqual(user_admin.ride_request_count(rows['client']), 2)
		self.assertEqual(user_admin.dispatch_count(rows['client']), 0)
