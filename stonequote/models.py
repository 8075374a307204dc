from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base


# Money columns are Numeric so values round-trip as Decimal, never float.
Money = Numeric(12, 2)
Rate = Numeric(12, 4)


# --- Organisation pricing configuration ---

class PricingSettings(Base):
    """One row per organisation. Missing row = the organisation cannot be priced."""
    __tablename__ = "pricing_settings"

    id = Column(Integer, primary_key=True, index=True)
    organisation_id = Column(String, unique=True, nullable=False, index=True)
    material_pricing_basis = Column(String, default="PER_SLAB")  # 'PER_SLAB' | 'PER_SQUARE_METRE'
    currency = Column(String, default="AUD")
    tax_rate = Column(Rate, default=10)  # percent
    waste_factor = Column(Rate, nullable=True)  # NULL = settings.DEFAULT_WASTE_FACTOR
    cutting_unit = Column(String, default="LINEAR_METRE")
    polishing_unit = Column(String, default="LINEAR_METRE")
    installation_unit = Column(String, default="SQUARE_METRE")
    templating_unit = Column(String, default="PER_KILOMETRE")
    delivery_unit = Column(String, default="PER_KILOMETRE")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ClientType(Base):
    __tablename__ = "client_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)  # 'Builder' | 'Cabinet Maker' | 'Retail' ...
    description = Column(Text, nullable=True)


class ClientTier(Base):
    __tablename__ = "client_tiers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    priority = Column(Integer, default=0)
    # {"fabrication_discount": 5}: percent off edges, cutouts and services
    discount_matrix = Column(JSON, nullable=True)


class PriceBook(Base):
    __tablename__ = "price_books"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    client_type_id = Column(Integer, ForeignKey("client_types.id"), nullable=True)
    client_tier_id = Column(Integer, ForeignKey("client_tiers.id"), nullable=True)
    default_price_book_id = Column(Integer, ForeignKey("price_books.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    client_type = relationship("ClientType")
    client_tier = relationship("ClientTier")
    quotes = relationship("Quote", back_populates="customer")


# --- Lookup tables ---

class Material(Base):
    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)  # 'caesarstone' | 'granite' | 'dekton' ...
    price_per_sqm = Column(Money, default=0)
    price_per_slab = Column(Money, nullable=True)
    is_active = Column(Boolean, default=True)


class EdgeType(Base):
    __tablename__ = "edge_types"

    id = Column(String, primary_key=True)  # slug, e.g. 'pencil_round', 'waterfall'
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    base_rate = Column(Money, nullable=False)  # per linear metre
    rate_20mm = Column(Money, nullable=True)
    rate_40mm = Column(Money, nullable=True)
    minimum_charge = Column(Money, nullable=True)
    minimum_length = Column(Rate, nullable=True)  # metres
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)


class CutoutType(Base):
    __tablename__ = "cutout_types"

    id = Column(String, primary_key=True)  # slug, e.g. 'undermount_sink'
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)
    base_rate = Column(Money, nullable=False)
    minimum_charge = Column(Money, nullable=True)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)


class ServiceRate(Base):
    __tablename__ = "service_rates"

    id = Column(Integer, primary_key=True, index=True)
    service_type = Column(String, unique=True, nullable=False)  # ServiceType value
    name = Column(String, nullable=False)
    rate_20mm = Column(Money, nullable=False)
    rate_40mm = Column(Money, nullable=False)
    minimum_charge = Column(Money, nullable=True)
    is_active = Column(Boolean, default=True)


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, default=0)
    client_type_id = Column(Integer, ForeignKey("client_types.id"), nullable=True)
    client_tier_id = Column(Integer, ForeignKey("client_tiers.id"), nullable=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    min_quote_value = Column(Money, nullable=True)
    max_quote_value = Column(Money, nullable=True)
    thickness_mm = Column(Integer, nullable=True)
    applies_to = Column(String, default="ALL")
    adjustment_type = Column(String, nullable=False)  # 'percentage' | 'fixed'
    adjustment_value = Column(Money, nullable=False)
    is_active = Column(Boolean, default=True)


class VolumeTier(Base):
    __tablename__ = "volume_tiers"

    id = Column(String, primary_key=True)  # 'small' | 'medium' | 'large' | 'enterprise'
    name = Column(String, nullable=False)
    min_square_metres = Column(Rate, nullable=False)
    max_square_metres = Column(Rate, nullable=True)  # NULL = no upper bound
    discount_percent = Column(Rate, nullable=False)


# --- Quotes ---

class Quote(Base):
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, index=True)
    quote_number = Column(String, unique=True, nullable=False)
    organisation_id = Column(String, default="default", index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    price_book_id = Column(Integer, ForeignKey("price_books.id"), nullable=True)
    project_name = Column(String, nullable=True)
    status = Column(String, default="draft")
    version = Column(Integer, default=1)  # bumped on every edit that changes pricing inputs
    tax_rate = Column(Rate, nullable=True)  # NULL = organisation's tax rate

    delivery_address = Column(Text, nullable=True)
    delivery_distance_km = Column(Rate, nullable=True)
    delivery_zone = Column(String, nullable=True)
    delivery_weight_kg = Column(Rate, nullable=True)
    delivery_cost = Column(Money, nullable=True)
    override_delivery_cost = Column(Money, nullable=True)

    templating_required = Column(Boolean, default=False)
    templating_distance_km = Column(Rate, nullable=True)
    templating_cost = Column(Money, nullable=True)
    override_templating_cost = Column(Money, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="quotes")
    rooms = relationship("QuoteRoom", back_populates="quote", cascade="all, delete-orphan",
                         order_by="QuoteRoom.sort_order")
    slab_optimizations = relationship("SlabOptimization", back_populates="quote",
                                      cascade="all, delete-orphan")


class QuoteRoom(Base):
    __tablename__ = "quote_rooms"

    id = Column(Integer, primary_key=True, index=True)
    quote_id = Column(Integer, ForeignKey("quotes.id"), nullable=False)
    name = Column(String, nullable=False)  # 'Kitchen' | 'Ensuite' ...
    sort_order = Column(Integer, default=0)

    quote = relationship("Quote", back_populates="rooms")
    pieces = relationship("QuotePiece", back_populates="room", cascade="all, delete-orphan",
                          order_by="QuotePiece.sort_order")


class QuotePiece(Base):
    __tablename__ = "quote_pieces"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("quote_rooms.id"), nullable=False)
    name = Column(String, default="")
    length_mm = Column(Integer, nullable=False)
    width_mm = Column(Integer, nullable=False)
    thickness_mm = Column(Integer, default=20)
    # Edge type ids; NULL = unfinished (raw) edge
    edge_top = Column(String, nullable=True)
    edge_bottom = Column(String, nullable=True)
    edge_left = Column(String, nullable=True)
    edge_right = Column(String, nullable=True)
    cutouts = Column(JSON, default=list)  # [{"cutout_type_id": "tap_hole", "quantity": 2}]
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=True)
    override_material_cost = Column(Money, nullable=True)
    sort_order = Column(Integer, default=0)

    room = relationship("QuoteRoom", back_populates="pieces")
    material = relationship("Material")


class SlabOptimization(Base):
    """Result of an external nesting run. Only the latest one per quote is used."""
    __tablename__ = "slab_optimizations"

    id = Column(Integer, primary_key=True, index=True)
    quote_id = Column(Integer, ForeignKey("quotes.id"), nullable=False)
    total_slabs = Column(Integer, nullable=False)
    waste_percent = Column(Rate, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    quote = relationship("Quote", back_populates="slab_optimizations")
