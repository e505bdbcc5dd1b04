from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum

class RideStatus(str, Enum):
    NOT_STARTED = "not_started"
    WAITING_FOR_CUSTOMER = "waiting_for_customer"
    STARTED = "started"
    FINISHED = "finished"
    CANCELLED = "cancelled"

class BookingStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"

class NotificationType(str, Enum):
    BOOKING = "booking"
    CANCELLATION = "cancellation"
    CHAT = "chat"
    RIDE_STATUS = "ride_status"

# Profile Schemas
class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    bio: Optional[str] = None
    university: Optional[str] = None
    profile_pic_url: Optional[str] = None
    location: Optional[str] = None

class ProfileResponse(ProfileUpdate):
    id: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Car Schemas
class CarCreate(BaseModel):
    name: str
    model: Optional[str] = None
    license_plate: Optional[str] = None
    max_capacity: int = Field(4, ge=1)
    image_urls: List[str] = []

class CarResponse(CarCreate):
    id: str
    owner_id: str
    created_at: datetime

    class Config:
        from_attributes = True

# Ride Schemas
class RideBase(BaseModel):
    car_id: str
    pickup_location: str
    destination_location: str
    pickup_city: Optional[str] = None
    destination_city: Optional[str] = None
    start_datetime: datetime
    end_datetime: datetime
    price_per_seat: float
    available_seats: int
    air_conditioning: bool = False
    wifi_available: bool = False
    tolls_included: bool = False
    toll_price: float = 0.0

class RideCreate(RideBase):
    price_per_seat: float = Field(..., ge=0)
    available_seats: int = Field(..., ge=1)
    toll_price: float = Field(0.0, ge=0)

# A fully booked ride has available_seats == 0
class RideResponse(RideBase):
    id: str
    owner_id: str
    status: RideStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RideStatusUpdate(BaseModel):
    status: RideStatus

# Booking Schemas
class BookingCreate(BaseModel):
    seats: int = 1

class BookingResponse(BaseModel):
    id: str
    ride_id: str
    rider_id: str
    seats_booked: int
    booking_time: datetime
    status: BookingStatus
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Chat Schemas
class ChatResponse(BaseModel):
    id: str
    participants: List[str]
    last_message: str
    updated_at: datetime
    unread_count: int = 0

class ChatOpenResponse(ChatResponse):
    created: bool

class MessageCreate(BaseModel):
    text: str

class MessageResponse(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    text: str
    sequence: int
    created_at: datetime

    class Config:
        from_attributes = True

# Notification Schemas
class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: NotificationType
    message: str
    read: bool
    created_at: datetime
    ride_id: Optional[str] = None
    chat_id: Optional[str] = None

    class Config:
        from_attributes = True

class UnreadCount(BaseModel):
    unread: int

# Email
class EmailRequest(BaseModel):
    to: str
    subject: str
    html: str
