import pytest

from spot_locator.models import GeoPoint, ParkingSpot, UserPosition
from spot_locator.position import PositionSource


class FakeTimer:
    """Stand-in for threading.Timer; fires only when the test says so."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args)


class FakeSource(PositionSource):
    def __init__(self):
        self.callback = None
        self.single_requests = []
        self.start_calls = 0
        self.stop_calls = 0

    def start_tracking(self, callback):
        self.start_calls += 1
        self.callback = callback

    def stop_tracking(self):
        self.stop_calls += 1
        self.callback = None

    def request_single_fix(self, callback):
        self.single_requests.append(callback)

    def emit(self, result):
        assert self.callback is not None, "tracking not started"
        self.callback(result)


def make_position(lat, lon, accuracy_m=5.0):
    return UserPosition(point=GeoPoint(latitude=lat, longitude=lon), accuracy_m=accuracy_m)


def make_spot(spot_id, lat, lon, capacity=10, available=5, name=None, price="0"):
    return ParkingSpot(
        id=spot_id,
        name=name or f"Spot {spot_id}",
        point=GeoPoint(latitude=lat, longitude=lon),
        capacity=capacity,
        available=available,
        price_per_hour=price,
    )


@pytest.fixture
def timers():
    created = []

    def factory(interval, function, args=()):
        t = FakeTimer(interval, function, args)
        created.append(t)
        return t

    factory.created = created
    return factory


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def hyderabad_spots():
    return [
        make_spot("1", 17.4947, 78.3996, capacity=40, available=25, name="Kukatpally Parking Zone", price="40"),
        make_spot("2", 17.4920, 78.3972, capacity=30, available=15, name="KPHB Colony Parking", price="30"),
        make_spot("3", 17.4937, 78.3923, capacity=120, available=50, name="Forum Mall Parking", price="50"),
        make_spot("4", 17.4957, 78.4008, capacity=60, available=35, name="Metro Station Parking", price="20"),
    ]


@pytest.fixture
def at_kukatpally():
    return make_position(17.4947, 78.3996)
