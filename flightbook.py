#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import os
import re
import sys
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from itertools import count
from typing import Callable, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

logger = logging.getLogger(__name__)

DATE_FORMAT = "%d-%m-%Y"
FLIGHT_FIELDS = 6
RESERVATION_FIELDS = 5

COUNT_RE = re.compile(r"^[0-9]+$")
PRICE_RE = re.compile(r"^[0-9]+(\.[0-9]+)?$")
DATE_RE = re.compile(r"^[0-9]{2}-[0-9]{2}-[0-9]{4}$")


# ---------------------------
# Enums / Data Model
# ---------------------------

class FlightKind(str, Enum):
    STANDARD = "STANDARD"
    CARGO = "CARGO"
    PREMIUM = "PREMIUM"


class ErrorKind(str, Enum):
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    MALFORMED_LINE = "MALFORMED_LINE"
    UNKNOWN_FLIGHT = "UNKNOWN_FLIGHT"
    OVERBOOKED = "OVERBOOKED"
    IO_FAILURE = "IO_FAILURE"


@dataclass
class CargoDetails:
    capacity: float  # tons
    cargo_type: str


@dataclass
class PremiumDetails:
    lounge_access: bool
    special_service: str


@dataclass(eq=False)
class Flight:
    flight_id: int
    manufacture_date: date
    departure_city: str
    destination_city: str
    seat_capacity: int  # seats as read from the flight file
    price: Decimal
    brand: str = ""
    model: str = ""
    kind: FlightKind = FlightKind.STANDARD
    details: Optional[Union[CargoDetails, PremiumDetails]] = None

    def __post_init__(self) -> None:
        expected = {
            FlightKind.STANDARD: type(None),
            FlightKind.CARGO: CargoDetails,
            FlightKind.PREMIUM: PremiumDetails,
        }[self.kind]
        if not isinstance(self.details, expected):
            raise ValueError(f"{self.kind.value} flight cannot carry {type(self.details).__name__} details.")

    @classmethod
    def cargo(cls, capacity: float, cargo_type: str, **kwargs) -> "Flight":
        return cls(kind=FlightKind.CARGO, details=CargoDetails(capacity, cargo_type), **kwargs)

    @classmethod
    def premium(cls, lounge_access: bool, special_service: str, **kwargs) -> "Flight":
        return cls(kind=FlightKind.PREMIUM, details=PremiumDetails(lounge_access, special_service), **kwargs)


@dataclass
class Passenger:
    first_name: str
    last_name: str
    email: str
    reservation_code: str


@dataclass(eq=False)
class Reservation:
    reservation_id: int
    passenger: Passenger
    flight: Flight
    persisted: bool = True

    @property
    def amount_due(self) -> Decimal:
        # single seat, no taxes or fees
        return self.flight.price


# ---------------------------
# Errors
# ---------------------------

class BookingError(ValueError):
    pass


class NoSeatsAvailable(BookingError):
    def __init__(self, flight: Flight) -> None:
        super().__init__(f"No seats available on flight {flight.flight_id}.")
        self.flight = flight


class UnknownFlight(BookingError):
    def __init__(self, flight_id: object) -> None:
        super().__init__(f"Unknown flight_id: {flight_id}")
        self.flight_id = flight_id


@dataclass
class LoadIssue:
    kind: ErrorKind
    message: str
    line_no: Optional[int] = None


@dataclass
class LoadReport:
    path: str
    loaded: int = 0
    issues: List[LoadIssue] = field(default_factory=list)

    def report(self, kind: ErrorKind, message: str, line_no: Optional[int] = None) -> None:
        issue = LoadIssue(kind=kind, message=message, line_no=line_no)
        self.issues.append(issue)
        where = f"{self.path}:{line_no}" if line_no is not None else self.path
        logger.warning("%s (%s): %s", where, kind.value, message)

    def count(self, kind: ErrorKind) -> int:
        return sum(1 for issue in self.issues if issue.kind == kind)


# ---------------------------
# Record Stores
# ---------------------------

T = TypeVar("T")


class RecordStore(Generic[T]):
    """
    Ordered, unindexed collection of records.

    Lookups are linear scans. Updating or deleting a record that is not
    present is a silent no-op, and duplicates are accepted as given; callers
    that need uniqueness enforce it themselves.
    """

    def __init__(self) -> None:
        self._items: List[T] = []

    def create(self, item: T) -> None:
        self._items.append(item)

    def read(self) -> List[T]:
        """Live list; changes made through it are changes to the store."""
        return self._items

    def update(self, old_item: T, new_item: T) -> None:
        for i, item in enumerate(self._items):
            if item == old_item:
                self._items[i] = new_item
                return

    def delete(self, item: T) -> None:
        if item in self._items:
            self._items.remove(item)

    def find(self, predicate: Callable[[T], bool]) -> Optional[T]:
        return next((item for item in self._items if predicate(item)), None)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)


class ReservationStore(RecordStore[Reservation]):
    def passengers_for_flight(self, flight: Flight) -> List[Passenger]:
        return [r.passenger for r in self._items if r.flight is flight]

    def find_by_code(self, flight: Flight, reservation_code: str) -> Optional[Reservation]:
        return self.find(
            lambda r: r.passenger.reservation_code == reservation_code and r.flight is flight
        )


class FlightStore(RecordStore[Flight]):
    def __init__(self, reservations: Optional[ReservationStore] = None) -> None:
        super().__init__()
        self.reservations = reservations

    def available_seats(self, flight: Flight) -> int:
        if self.reservations is None:
            return flight.seat_capacity
        return flight.seat_capacity - len(self.reservations.passengers_for_flight(flight))

    def get(self, flight_id: int) -> Optional[Flight]:
        return self.find(lambda f: f.flight_id == flight_id)

    def _matches_city(self, city: str, attr: str) -> List[Flight]:
        wanted = city.casefold()
        return [
            f for f in self._items
            if getattr(f, attr).casefold() == wanted and self.available_seats(f) > 0
        ]

    def search_by_departure(self, city: str) -> List[Flight]:
        return self._matches_city(city, "departure_city")

    def search_by_destination(self, city: str) -> List[Flight]:
        return self._matches_city(city, "destination_city")

    def sort_by_price(self) -> List[Flight]:
        # sorted() is stable, ties keep load order
        return sorted(self._items, key=lambda f: f.price)

    def seats_for(self, flight_id: int) -> int:
        flight = self.get(flight_id)
        return self.available_seats(flight) if flight is not None else -1


class CargoFlightStore(FlightStore):
    """Queries only ever return cargo flights; never consulted by the booking engine."""

    @staticmethod
    def _cargo_only(flights: List[Flight]) -> List[Flight]:
        return [f for f in flights if f.kind == FlightKind.CARGO]

    def search_by_departure(self, city: str) -> List[Flight]:
        return self._cargo_only(super().search_by_departure(city))

    def search_by_destination(self, city: str) -> List[Flight]:
        return self._cargo_only(super().search_by_destination(city))

    def sort_by_price(self) -> List[Flight]:
        return self._cargo_only(super().sort_by_price())


# ---------------------------
# Persistence
# ---------------------------

def format_reservation_line(reservation: Reservation) -> str:
    p = reservation.passenger
    return f"{p.first_name},{p.last_name},{p.email},{p.reservation_code},{reservation.flight.flight_id}"


class ReservationJournal:
    """Append-only reservation file. Cancellations are never written back."""

    def __init__(self, path: str) -> None:
        self.path = path

    def _ends_mid_line(self) -> bool:
        try:
            with open(self.path, "rb") as f:
                f.seek(0, os.SEEK_END)
                if f.tell() == 0:
                    return False
                f.seek(-1, os.SEEK_END)
                return f.read(1) not in (b"\n", b"\r")
        except FileNotFoundError:
            return False

    def append(self, reservation: Reservation) -> None:
        # a hand-edited file may lack the final newline
        prefix = "\n" if self._ends_mid_line() else ""
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(prefix + format_reservation_line(reservation) + "\n")


def _read_lines(path: str, report: LoadReport, missing_ok: bool = False) -> List[Tuple[int, str]]:
    """Numbered, decoded lines. Undecodable lines are reported and left out."""
    try:
        with open(path, "rb") as f:
            raw_lines = f.read().splitlines()
    except FileNotFoundError:
        if not missing_ok:
            report.report(ErrorKind.FILE_NOT_FOUND, f"Cannot find file: {path}")
        return []
    except OSError as e:
        report.report(ErrorKind.IO_FAILURE, f"Cannot read {path}: {e}")
        return []

    lines = []
    for line_no, raw in enumerate(raw_lines, start=1):
        try:
            lines.append((line_no, raw.decode("utf-8")))
        except UnicodeDecodeError as e:
            report.report(ErrorKind.MALFORMED_LINE, f"Line is not valid UTF-8: {e.reason}", line_no)
    return lines


def _parse_count(raw: str, name: str) -> int:
    value = raw.strip()
    if not COUNT_RE.match(value):
        raise ValueError(f"invalid {name}: {raw!r}")
    return int(value)


def parse_flight_line(line: str) -> Flight:
    fields = line.split(",")
    if len(fields) != FLIGHT_FIELDS:
        raise ValueError(f"expected {FLIGHT_FIELDS} fields, got {len(fields)}")
    raw_id, raw_date, departure, destination, raw_seats, raw_price = fields
    if not DATE_RE.match(raw_date.strip()):
        raise ValueError(f"invalid manufacture date: {raw_date!r}, expected dd-MM-yyyy")
    if not PRICE_RE.match(raw_price.strip()):
        raise ValueError(f"invalid price: {raw_price!r}")
    return Flight(
        flight_id=_parse_count(raw_id, "flight id"),
        manufacture_date=datetime.strptime(raw_date.strip(), DATE_FORMAT).date(),
        departure_city=departure,
        destination_city=destination,
        seat_capacity=_parse_count(raw_seats, "seat count"),
        price=Decimal(raw_price.strip()),
    )


def load_flights(path: str, flights: FlightStore) -> LoadReport:
    report = LoadReport(path=path)
    for line_no, line in _read_lines(path, report):
        if not line.strip():
            continue
        try:
            flight = parse_flight_line(line)
        except ValueError as e:
            report.report(ErrorKind.MALFORMED_LINE, f"Invalid flight record: {e}", line_no)
            continue
        flights.create(flight)
        report.loaded += 1
    return report


def load_reservations(path: str, service: "BookingService") -> LoadReport:
    """
    Rebuild reservations from the journal. Each row is matched to an
    already-loaded flight; a missing file just means nothing was booked yet.
    """
    report = LoadReport(path=path)
    for line_no, line in _read_lines(path, report, missing_ok=True):
        if not line.strip():
            continue
        fields = line.split(",")
        if len(fields) != RESERVATION_FIELDS:
            report.report(
                ErrorKind.MALFORMED_LINE,
                f"Invalid reservation record: expected {RESERVATION_FIELDS} fields, got {len(fields)}",
                line_no,
            )
            continue
        first_name, last_name, email, code, raw_flight_id = fields
        try:
            flight_id = _parse_count(raw_flight_id, "flight id")
        except ValueError:
            report.report(ErrorKind.MALFORMED_LINE, f"Invalid flight id: {raw_flight_id!r}", line_no)
            continue
        flight = service.flights.get(flight_id)
        if flight is None:
            report.report(ErrorKind.UNKNOWN_FLIGHT, f"Reservation references unknown flight {flight_id}", line_no)
            continue
        if service.available_seats(flight) <= 0:
            report.report(ErrorKind.OVERBOOKED, f"Flight {flight_id} is already full, reservation {code} skipped", line_no)
            continue
        service.restore(Passenger(first_name, last_name, email, code), flight)
        report.loaded += 1
    return report


# ---------------------------
# Core Service
# ---------------------------

def new_reservation_code() -> str:
    return str(uuid.uuid4())


class BookingService:
    def __init__(
        self,
        flights: FlightStore,
        reservations: ReservationStore,
        journal: Optional[ReservationJournal] = None,
        code_factory: Callable[[], str] = new_reservation_code,
    ) -> None:
        self.flights = flights
        self.reservations = reservations
        self.journal = journal
        self.code_factory = code_factory
        self._ids = count(1)
        # seat counts are derived from the reservations held here
        if flights.reservations is None:
            flights.reservations = reservations
        elif flights.reservations is not reservations:
            raise ValueError("FlightStore is bound to a different ReservationStore.")

    def available_seats(self, flight: Flight) -> int:
        return self.flights.available_seats(flight)

    def passengers(self, flight: Flight) -> List[Passenger]:
        return self.reservations.passengers_for_flight(flight)

    def get_flight(self, flight_id: int) -> Flight:
        flight = self.flights.get(flight_id)
        if flight is None:
            raise UnknownFlight(flight_id)
        return flight

    def restore(self, passenger: Passenger, flight: Flight) -> Reservation:
        reservation = Reservation(reservation_id=next(self._ids), passenger=passenger, flight=flight)
        self.reservations.create(reservation)
        return reservation

    def book(self, flight: Flight, first_name: str, last_name: str, email: str) -> Reservation:
        """
        Book one seat on `flight`.

        The reservation store is the only thing mutated, so the flight's
        passenger list and seat count change in the same step. The journal
        append is best-effort: a failure marks the reservation unpersisted
        but keeps it in memory.
        """
        if self.available_seats(flight) <= 0:
            raise NoSeatsAvailable(flight)
        for label, value in (("first name", first_name), ("last name", last_name), ("email", email)):
            if "," in value or "\n" in value or "\r" in value:
                raise BookingError(f"The {label} must not contain commas or line breaks.")

        passenger = Passenger(
            first_name=first_name,
            last_name=last_name,
            email=email,
            reservation_code=self.code_factory(),
        )
        reservation = self.restore(passenger, flight)
        logger.info("Booked %s on flight %s", passenger.reservation_code, flight.flight_id)

        if self.journal is not None:
            try:
                self.journal.append(reservation)
            except OSError as e:
                reservation.persisted = False
                logger.error("Could not save reservation %s to %s: %s",
                             passenger.reservation_code, self.journal.path, e)
        return reservation

    def cancel(self, flight: Flight, reservation_code: str) -> bool:
        # in-memory only, the journal keeps the original line
        reservation = self.reservations.find_by_code(flight, reservation_code)
        if reservation is None:
            return False
        self.reservations.delete(reservation)
        logger.info("Cancelled %s on flight %s", reservation_code, flight.flight_id)
        return True


# ---------------------------
# Display
# ---------------------------

def describe_flight(flight: Flight, available: int) -> str:
    label = {
        FlightKind.STANDARD: "Flight",
        FlightKind.CARGO: "Cargo Flight",
        FlightKind.PREMIUM: "Premium Flight",
    }[flight.kind]
    text = (
        f"{label} ID: {flight.flight_id}, Departure: {flight.departure_city}, "
        f"Destination: {flight.destination_city}, "
        f"Manufacture Date: {flight.manufacture_date.strftime(DATE_FORMAT)}, "
        f"Available Seats: {available}, Price: {flight.price}"
    )
    if isinstance(flight.details, CargoDetails):
        text += f", Cargo Capacity: {flight.details.capacity} tons, Cargo Type: {flight.details.cargo_type}"
    elif isinstance(flight.details, PremiumDetails):
        text += f", Lounge Access: {flight.details.lounge_access}, Special Service: {flight.details.special_service}"
    return text


def describe_passenger(p: Passenger) -> str:
    return (
        f"First name: {p.first_name}, Last name: {p.last_name}, "
        f"Email: {p.email}, Reservation code: {p.reservation_code}"
    )


def print_flights(flights: List[Flight], svc: BookingService, out: Callable[[str], None] = print) -> None:
    if not flights:
        out("No flights found.")
        return
    for f in flights:
        out(describe_flight(f, svc.available_seats(f)))


def print_passengers(passengers: List[Passenger], out: Callable[[str], None] = print) -> None:
    if not passengers:
        out("No passengers.")
        return
    for p in passengers:
        out(describe_passenger(p))


def print_report(report: LoadReport, out: Callable[[str], None] = print) -> None:
    for issue in report.issues:
        where = f" (line {issue.line_no})" if issue.line_no is not None else ""
        out(f"ERROR: {issue.message}{where}")


def print_booking(reservation: Reservation, svc: BookingService, out: Callable[[str], None] = print) -> None:
    p = reservation.passenger
    out("BOOKING CONFIRMED")
    out(f"passenger={p.first_name} {p.last_name}")
    out(f"email={p.email}")
    out(f"reservation_code={p.reservation_code}")
    out(f"flight_id={reservation.flight.flight_id}")
    out(f"available_seats={svc.available_seats(reservation.flight)}")
    out(f"amount_due={reservation.amount_due}")
    if not reservation.persisted:
        out("ERROR: reservation could not be saved to disk; it will be lost on restart.")


# ---------------------------
# Interactive Console
# ---------------------------

def run_console(
    svc: BookingService,
    read: Callable[[str], str] = input,
    out: Callable[[str], None] = print,
) -> None:
    """Prompt loop; returns when the operator chooses exit or input ends."""
    while True:
        out("")
        out("Available flights:")
        print_flights(svc.flights.read(), svc, out)
        try:
            raw_id = read("Enter a flight ID to book, cancel or exit: ")
            try:
                flight = svc.get_flight(int(raw_id.strip()))
            except ValueError:
                out(f"ERROR: invalid flight ID: {raw_id!r}")
                continue

            out(f"Passengers on flight {flight.flight_id}:")
            passengers = svc.passengers(flight)
            print_passengers(passengers, out)

            action = read("Book (B), cancel (C) or exit (E)? ").strip().upper()
            if action == "B" and svc.available_seats(flight) > 0:
                first_name = read("First name: ")
                last_name = read("Last name: ")
                email = read("Email: ")
                print_booking(svc.book(flight, first_name, last_name, email), svc, out)
            elif action == "C" and passengers:
                code = read("Reservation code to cancel: ").strip()
                if svc.cancel(flight, code):
                    out("Reservation cancelled.")
                else:
                    out("ERROR: no reservation with that code on this flight.")
            elif action == "E":
                out("Closing. Thank you!")
                return
            else:
                out("ERROR: invalid action, or no seats/reservations for it.")
        except EOFError:
            return
        except ValueError as e:
            out(f"ERROR: {e}")


# ---------------------------
# CLI
# ---------------------------

def cmd_console(args: argparse.Namespace, svc: BookingService) -> int:
    run_console(svc, input, print)
    return 0


def cmd_list(args: argparse.Namespace, svc: BookingService) -> int:
    print_flights(svc.flights.read(), svc)
    return 0


def cmd_search(args: argparse.Namespace, svc: BookingService) -> int:
    if args.departure_city and args.destination_city:
        raise ValueError("Use either --departure-city or --destination-city, not both.")
    if args.departure_city:
        flights = svc.flights.search_by_departure(args.departure_city)
    elif args.destination_city:
        flights = svc.flights.search_by_destination(args.destination_city)
    else:
        raise ValueError("Must provide --departure-city or --destination-city.")
    print_flights(flights, svc)
    return 0


def cmd_by_price(args: argparse.Namespace, svc: BookingService) -> int:
    print_flights(svc.flights.sort_by_price(), svc)
    return 0


def cmd_seats(args: argparse.Namespace, svc: BookingService) -> int:
    seats = svc.flights.seats_for(args.flight_id)
    if seats < 0:
        raise UnknownFlight(args.flight_id)
    print(f"flight_id={args.flight_id}")
    print(f"available_seats={seats}")
    return 0


def cmd_passengers(args: argparse.Namespace, svc: BookingService) -> int:
    flight = svc.get_flight(args.flight_id)
    print(f"Passengers on flight {flight.flight_id}:")
    print_passengers(svc.passengers(flight))
    return 0


def cmd_book(args: argparse.Namespace, svc: BookingService) -> int:
    flight = svc.get_flight(args.flight_id)
    reservation = svc.book(flight, args.first_name, args.last_name, args.email)
    print_booking(reservation, svc)
    return 0 if reservation.persisted else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flightbook", description="Flight seat booking manager")
    parser.add_argument(
        "--flights-file",
        default=os.getenv("FLIGHTBOOK_FLIGHTS", "flights.txt"),
        help="Flight records, one per line (default: flights.txt)",
    )
    parser.add_argument(
        "--reservations-file",
        default=os.getenv("FLIGHTBOOK_RESERVATIONS", "passengers.txt"),
        help="Reservation records; new bookings are appended here (default: passengers.txt)",
    )
    parser.add_argument(
        "--log-level",
        default="ERROR",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="cmd")

    p_console = sub.add_parser("console", help="Interactive booking prompt (default)")
    p_console.set_defaults(func=cmd_console)

    p_list = sub.add_parser("list", help="List all flights")
    p_list.set_defaults(func=cmd_list)

    p_search = sub.add_parser("search", help="Flights with free seats from/to a city")
    p_search.add_argument("--departure-city", default=None)
    p_search.add_argument("--destination-city", default=None)
    p_search.set_defaults(func=cmd_search)

    p_price = sub.add_parser("by-price", help="List flights, cheapest first")
    p_price.set_defaults(func=cmd_by_price)

    p_seats = sub.add_parser("seats", help="Available seats for a flight")
    p_seats.add_argument("flight_id", type=int)
    p_seats.set_defaults(func=cmd_seats)

    p_passengers = sub.add_parser("passengers", help="Passengers booked on a flight")
    p_passengers.add_argument("flight_id", type=int)
    p_passengers.set_defaults(func=cmd_passengers)

    p_book = sub.add_parser("book", help="Book one seat")
    p_book.add_argument("flight_id", type=int)
    p_book.add_argument("--first-name", required=True)
    p_book.add_argument("--last-name", required=True)
    p_book.add_argument("--email", required=True)
    p_book.set_defaults(func=cmd_book)

    parser.set_defaults(func=cmd_console)
    return parser


def load_service(flights_file: str, reservations_file: str) -> Tuple[BookingService, List[LoadReport]]:
    reservations = ReservationStore()
    flights = FlightStore(reservations)
    svc = BookingService(flights, reservations, journal=ReservationJournal(reservations_file))
    reports = [load_flights(flights_file, flights), load_reservations(reservations_file, svc)]
    return svc, reports


def main(argv: List[str]) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        svc, reports = load_service(args.flights_file, args.reservations_file)
    except Exception as e:
        # carry on with empty stores so the operator still gets a prompt
        logger.exception("Startup load failed")
        print(f"ERROR: unexpected error while loading data: {e}")
        reservations = ReservationStore()
        svc = BookingService(FlightStore(reservations), reservations,
                             journal=ReservationJournal(args.reservations_file))
        reports = []
    for report in reports:
        print_report(report)

    try:
        return args.func(args, svc)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
