"""
Domain errors raised by the booking, chat and ride services.

Each error carries the HTTP status it maps to and a human-readable detail,
so routers can let them propagate and a single handler in ``main`` turns
them into responses.
"""


class CampusRidesError(Exception):
    status_code = 500
    default_detail = "Something went wrong"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(CampusRidesError):
    status_code = 400
    default_detail = "Invalid request"


class AuthenticationError(CampusRidesError):
    status_code = 401
    default_detail = "Invalid token"


class PermissionDenied(CampusRidesError):
    status_code = 403
    default_detail = "You are not allowed to do this"


class NotFoundError(CampusRidesError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(CampusRidesError):
    status_code = 409
    default_detail = "Conflict"


# Rides
class RideNotFound(NotFoundError):
    default_detail = "Ride does not exist"


class RideClosed(ValidationError):
    default_detail = "This ride has ended and can no longer be booked"


class CarNotFound(NotFoundError):
    default_detail = "Selected car not found"


# Bookings
class InvalidSeatCount(ValidationError):
    default_detail = "Enter a valid number of seats to book"


class OwnRideBooking(ValidationError):
    default_detail = "You cannot book your own ride"


class InsufficientSeats(ConflictError):
    default_detail = "Not enough available seats"


class DuplicateBooking(ConflictError):
    default_detail = "You already have an active booking for this ride"


class BookingNotFound(NotFoundError):
    default_detail = "Booking not found"


class BookingAlreadyCancelled(ConflictError):
    default_detail = "Booking is already cancelled"


# Chats
class ChatNotFound(NotFoundError):
    default_detail = "Chat not found"


class ProfileNotFound(NotFoundError):
    default_detail = "Profile not found"


class NotificationNotFound(NotFoundError):
    default_detail = "Notification not found"
