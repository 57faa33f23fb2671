import itertools
from datetime import date
from decimal import Decimal

import pytest

from flightbook import (
    BookingService,
    Flight,
    FlightStore,
    ReservationJournal,
    ReservationStore,
)


def build_flight(flight_id=101, departure="Warsaw", destination="London", seats=2, price="250.50"):
    return Flight(
        flight_id=flight_id,
        manufacture_date=date(2020, 3, 15),
        departure_city=departure,
        destination_city=destination,
        seat_capacity=seats,
        price=Decimal(price),
    )


@pytest.fixture
def make_flight():
    """Factory for standard flights; defaults to 101 Warsaw->London, 2 seats, 250.50."""
    return build_flight


@pytest.fixture
def journal_path(tmp_path):
    return tmp_path / "passengers.txt"


@pytest.fixture
def service(journal_path):
    """Booking service with one two-seat Warsaw->London flight."""
    reservations = ReservationStore()
    flights = FlightStore(reservations)
    flights.create(build_flight())
    codes = (f"CODE-{n}" for n in itertools.count(1))
    return BookingService(
        flights,
        reservations,
        journal=ReservationJournal(str(journal_path)),
        code_factory=lambda: next(codes),
    )


@pytest.fixture
def flight(service):
    return service.flights.get(101)
