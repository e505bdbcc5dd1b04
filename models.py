from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, JSON, Boolean, Text, Index, text
from sqlalchemy.orm import relationship
from database import Base
import datetime
import uuid

def generate_uuid():
    return str(uuid.uuid4())

class User(Base):
    __tablename__ = "users"
    # Same id as the auth provider's identity
    id = Column(String, primary_key=True)
    email = Column(String, index=True)
    full_name = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    university = Column(String, nullable=True)
    profile_pic_url = Column(String, nullable=True)
    location = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)

class Car(Base):
    __tablename__ = "cars"
    id = Column(String, primary_key=True, default=generate_uuid)
    owner_id = Column(String, index=True)
    name = Column(String)
    model = Column(String, nullable=True)
    license_plate = Column(String, nullable=True)
    max_capacity = Column(Integer, default=4)
    image_urls = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

class Ride(Base):
    __tablename__ = "rides"
    id = Column(String, primary_key=True, default=generate_uuid)
    owner_id = Column(String, index=True)
    car_id = Column(String, ForeignKey("cars.id"))

    pickup_location = Column(String, index=True)
    destination_location = Column(String, index=True)
    pickup_city = Column(String, nullable=True)
    destination_city = Column(String, nullable=True)

    start_datetime = Column(DateTime)
    end_datetime = Column(DateTime)

    price_per_seat = Column(Float)
    # The only contended counter; mutated by conditional UPDATEs only
    available_seats = Column(Integer, default=0)

    air_conditioning = Column(Boolean, default=False)
    wifi_available = Column(Boolean, default=False)
    tolls_included = Column(Boolean, default=False)
    toll_price = Column(Float, default=0.0)

    status = Column(String, default="not_started") # not_started, waiting_for_customer, started, finished, cancelled
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)

    car = relationship("Car")

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # One active booking per rider per ride
        Index(
            "uq_active_booking_per_rider",
            "ride_id",
            "rider_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
    id = Column(String, primary_key=True, default=generate_uuid)
    ride_id = Column(String, ForeignKey("rides.id"), index=True)
    rider_id = Column(String, index=True)
    seats_booked = Column(Integer)
    booking_time = Column(DateTime, default=datetime.datetime.utcnow)
    status = Column(String, default="active") # active, cancelled
    cancelled_at = Column(DateTime, nullable=True)

    ride = relationship("Ride")

class Chat(Base):
    __tablename__ = "chats"
    id = Column(String, primary_key=True, default=generate_uuid)
    pair_key = Column(String, unique=True, index=True)

    # Stored sorted so (a, b) and (b, a) land on the same row
    participant_a = Column(String, index=True)
    participant_b = Column(String, index=True)
    unread_a = Column(Integer, default=0)
    unread_b = Column(Integer, default=0)

    last_message = Column(Text, default="")
    message_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow)

    messages = relationship("Message", back_populates="chat", order_by="Message.sequence")

class Message(Base):
    __tablename__ = "messages"
    id = Column(String, primary_key=True, default=generate_uuid)
    chat_id = Column(String, ForeignKey("chats.id"), index=True)
    sender_id = Column(String)
    text = Column(Text)
    sequence = Column(Integer)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    chat = relationship("Chat", back_populates="messages")

class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, index=True)
    type = Column(String) # booking, cancellation, chat, ride_status
    message = Column(Text)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    ride_id = Column(String, nullable=True)
    chat_id = Column(String, nullable=True)
