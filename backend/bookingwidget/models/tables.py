from sqlalchemy import Column, Float, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Venues(Base):
    __tablename__ = 'venues'

    name = Column(Text, nullable=False)
    # Issued by the store, never generated by this service
    embed_key = Column(Text, nullable=False, unique=True)
    id = Column(Integer, primary_key=True)
    slug = Column(Text)
    primary_color = Column(Text, nullable=False, server_default=text("'#2563eb'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    activities = relationship('Activities', back_populates='venue')
    bookings = relationship('Bookings', back_populates='venue')


class Activities(Base):
    __tablename__ = 'activities'

    venue_id = Column(ForeignKey('venues.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    # Raw widget configuration (JSON), normalized on every read
    widget_config = Column(Text, nullable=False, server_default=text("'{}'"))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    venue = relationship('Venues', back_populates='activities')
    bookings = relationship('Bookings', back_populates='activity')
    capacity_versions = relationship('CapacityVersions', back_populates='activity')


class CapacityVersions(Base):
    """Per activity/date write counter; the row doubles as the submission lock."""
    __tablename__ = 'capacity_versions'
    __table_args__ = (
        UniqueConstraint('activity_id', 'date'),
    )

    activity_id = Column(ForeignKey('activities.id', ondelete='CASCADE'), nullable=False)
    date = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    version = Column(Integer, nullable=False, server_default=text('0'))

    activity = relationship('Activities', back_populates='capacity_versions')


class Bookings(Base):
    __tablename__ = 'bookings'

    venue_id = Column(ForeignKey('venues.id', ondelete='CASCADE'), nullable=False)
    activity_id = Column(ForeignKey('activities.id', ondelete='CASCADE'), nullable=False)
    booking_date = Column(Text, nullable=False)  # YYYY-MM-DD
    start_time = Column(Text, nullable=False)    # HH:MM
    end_time = Column(Text, nullable=False)      # HH:MM
    players = Column(Integer, nullable=False)
    confirmation_code = Column(Text, nullable=False, unique=True)
    customer_name = Column(Text, nullable=False)
    customer_email = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    payment_status = Column(Text, nullable=False, server_default=text("'pending'"))
    refund_status = Column(Text, nullable=False, server_default=text("'none'"))
    total_amount = Column(Float, nullable=False, server_default=text('0'))
    amount_paid = Column(Float, nullable=False, server_default=text('0'))
    ticket_selections = Column(Text, nullable=False, server_default=text("'[]'"))
    answers = Column(Text, nullable=False, server_default=text("'{}'"))
    id = Column(Integer, primary_key=True)
    customer_phone = Column(Text)
    refund_id = Column(Text)
    notes = Column(Text)
    cancel_reason = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    venue = relationship('Venues', back_populates='bookings')
    activity = relationship('Activities', back_populates='bookings')
